"""Filter and shape Kubernetes resource history into timeline JSON, and load server settings."""

__version__ = "0.1.0"
__all__ = ["__version__"]