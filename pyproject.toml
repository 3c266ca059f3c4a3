[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kubetimeline"
version = "0.1.0"
description = "Filter and shape Kubernetes resource history into timeline and heatmap JSON"
requires-python = ">=3.10"
keywords = ["kubernetes", "timeline", "heatmap", "history", "monitoring"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
kubetimeline-config = "kubetimeline.config:main"

[tool.hatch.build.targets.wheel]
packages = ["kubetimeline"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
