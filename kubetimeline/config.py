"""Server configuration from defaults, a YAML or JSON file, and command-line flags."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import MISSING, dataclass, field, fields
from datetime import timedelta
from typing import Any

import yaml

from .durations import format_duration, parse_duration

logger = logging.getLogger(__name__)

SLOOP_CONFIG_ENV_VAR = "SLOOP_CONFIG"

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT_MAX = (1 << 64) - 1
_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False"}


class ConfigError(Exception):
    """Raised when the configuration cannot be read or is not valid."""


class _ParseStopped(Exception):
    """Raised by a quiet parser instead of exiting."""


def _opt(json_key: str, kind: str, default: Any = MISSING, flag: str = "", help: str = "", **extra: Any) -> Any:
    metadata = {"json": json_key, "kind": kind, "flag": flag, "help": help}
    if default is MISSING:
        return field(metadata=metadata, **extra)
    return field(default=default, metadata=metadata, **extra)


@dataclass
class SloopConfig:
    """All server settings. A freshly built instance holds zero values; see ``default_config``."""

    # Only from the command line (or the environment).
    config_file: str = _opt("ConfigFile", "str", "", "config", "Path to a yaml or json config file")
    # Only from a file, because their types are complex.
    left_bar_links: list[Any] | None = _opt("leftBarLinks", "list", None)
    resource_links: list[Any] | None = _opt("resourceLinks", "list", None)
    exclusion_rules: dict[str, list[Any]] | None = _opt("exclusionRules", "map", None)
    # From a file or the command line.
    disable_kube_watcher: bool = _opt("disableKubeWatch", "bool", False, "disable-kube-watch", "Turn off kubernetes watch")
    kube_watch_resync_interval: timedelta = _opt(
        "kubeWatchResyncInterval", "duration", timedelta(0), "kube-watch-resync-interval",
        "OPTIONAL: Kubernetes watch resync interval",
    )
    web_files_path: str = _opt("webfilesPath", "str", "", "web-files-path", "Path to web files")
    bind_address: str = _opt("bindAddress", "str", "", "bind-address", "Web server bind ip address.")
    port: int = _opt("port", "int", 0, "port", "Web server port")
    store_root: str = _opt("storeRoot", "str", "", "store-root", "Path to store history data")
    max_lookback: timedelta = _opt("maxLookBack", "duration", timedelta(0), "max-look-back", "Max history data to keep")
    max_disk_mb: int = _opt("maxDiskMb", "int", 0, "max-disk-mb", "Max disk storage in MB")
    debug_playback_file: str = _opt(
        "debugPlaybackFile", "str", "", "playback-file", "Read watch data from a playback file"
    )
    debug_record_file: str = _opt("debugRecordFile", "str", "", "record-file", "Record watch data to a playback file")
    deletion_batch_size: int = _opt("deletionBatchSize", "int", 0, "deletion-batch-size", "Size of batch for deletion")
    use_mock_badger: bool = _opt("mockBadger", "bool", False, "use-mock-badger", "Use a fake in-memory mock of the store")
    disable_store_manager: bool = _opt(
        "disableStoreManager", "bool", False, "disable-store-manager",
        "Turn off store manager which is to clean up database",
    )
    cleanup_frequency: timedelta = _opt(
        "cleanupFrequency", "duration", timedelta(0), "cleanup-frequency",
        "Frequency between subsequent runs for the database cleanup",
    )
    keep_minor_node_updates: bool = _opt(
        "keepMinorNodeUpdates", "bool", False, "keep-minor-node-updates",
        "Keep all node updates even if change is only condition timestamps",
    )
    default_namespace: str = _opt("defaultNamespace", "str", "", "default-namespace", "Default UX filter namespace")
    default_kind: str = _opt("defaultKind", "str", "", "default-kind", "Default UX filter kind")
    default_lookback: str = _opt("defaultLookback", "str", "", "default-lookback", "Default UX filter lookback")
    use_kube_context: str = _opt("context", "str", "", "context", "Use a specific kubernetes context")
    display_context: str = _opt(
        "displayContext", "str", "", "display-context",
        "Override the display context, which is empty when running inside the cluster",
    )
    api_server_host: str = _opt("apiServerHost", "str", "", "apiserver-host", "Kubernetes API server endpoint")
    watch_crds: bool = _opt("watchCrds", "bool", False, "watch-crds", "Watch for activity for CRDs")
    crd_refresh_interval: timedelta = _opt(
        "crdRefreshInterval", "duration", timedelta(0), "crd-refresh-interval",
        "Frequency between CRD Informer refresh",
    )
    threshold_for_gc: float = _opt(
        "threshold for GC", "float", 0.0, "gc-threshold", "Threshold for GC to start garbage collecting"
    )
    restore_database_file: str = _opt(
        "restoreDatabaseFile", "str", "", "restore-database-file",
        "Restore database from backup file into current context.",
    )
    badger_discard_ratio: float = _opt(
        "badgerDiscardRatio", "float", 0.0, "badger-discard-ratio",
        "Value log GC compacts a log file when at least this fraction of it can be discarded",
    )
    badger_vlog_gc_freq: timedelta = _opt(
        "badgerVLogGCFreq", "duration", timedelta(0), "badger-vlog-gc-freq", "Frequency of running value log GC"
    )
    badger_max_table_size: int = _opt(
        "badgerMaxTableSize", "int", 0, "badger-max-table-size", "Max LSM table size in bytes.  0 = use store default"
    )
    badger_level_one_size: int = _opt(
        "badgerLevelOneSize", "int", 0, "badger-level-one-size",
        "The maximum total size for Level 1.  0 = use store default",
    )
    badger_lev_size_multiplier: int = _opt(
        "badgerLevSizeMultiplier", "int", 0, "badger-level-size-multiplier",
        "The ratio between the maximum sizes of contiguous levels in the LSM.  0 = use store default",
    )
    badger_keep_l0_in_memory: bool = _opt(
        "badgerKeepL0InMemory", "bool", False, "badger-keep-l0-in-memory",
        "Keeps all level 0 tables in memory for faster writes and compactions",
    )
    badger_vlog_file_size: int = _opt(
        "badgerVLogFileSize", "int", 0, "badger-vlog-file-size",
        "Max size in bytes per value log file. 0 = use store default",
    )
    badger_vlog_max_entries: int = _opt(
        "badgerVLogMaxEntries", "uint", 0, "badger-vlog-max-entries",
        "Max number of entries per value log files. 0 = use store default",
    )
    badger_use_lsm_only_options: bool = _opt(
        "badgerUseLSMOnlyOptions", "bool", False, "badger-use-lsm-only-options",
        "Keep values with the LSM tree to reduce value log disk usage",
    )
    badger_enable_event_logging: bool = _opt(
        "badgerEnableEventLogging", "bool", False, "badger-enable-event-logging", "Turns on store event logging"
    )
    badger_num_of_compactors: int = _opt(
        "badgerNumOfCompactors", "int", 0, "badger-number-of-compactors", "Number of compactors for the store"
    )
    badger_num_l0_tables: int = _opt(
        "badgerNumLevelZeroTables", "int", 0, "badger-number-of-level-zero-tables",
        "Number of level zero tables for the store",
    )
    badger_num_l0_tables_stall: int = _opt(
        "badgerNumLevelZeroTablesStall", "int", 0, "badger-number-of-zero-tables-stall",
        "Number of Level 0 tables that once reached causes the DB to stall until compaction succeeds",
    )
    badger_sync_writes: bool = _opt(
        "badgerSyncWrites", "bool", False, "badger-sync-writes", "Ensure writes are synced to disk"
    )
    badger_vlog_file_io_mapping: bool = _opt(
        "badgerVLogFileIOMapping", "bool", False, "badger-vlog-fileIO-mapping",
        "Load value log data with file IO instead of memory mapping",
    )
    badger_vlog_truncate: bool = _opt(
        "badgerVLogTruncate", "bool", False, "badger-vlog-truncate",
        "Truncate value log if the db offset is different from the db size",
    )
    enable_delete_keys: bool = _opt(
        "enableDeleteKeys", "bool", False, "enable-delete-keys", "Use delete prefixes instead of dropPrefix for GC"
    )
    enable_granular_metrics: bool = _opt(
        "enableGranularMetrics", "bool", False, "enable-granular-metrics",
        "Make metrics of event kind granular with reason, type and name",
    )
    privileged_access: bool = _opt(
        "PrivilegedAccess", "bool", False, "allow-privileged-access", "Allow access to the kube root path"
    )
    badger_detail_log_enabled: bool = _opt(
        "badgerDetailLogEnabled", "bool", False, "badger-detail-log-enabled", "Turns on detailed store logging"
    )

    def validate(self) -> None:
        """Raise ConfigError if a setting is out of bounds."""
        if self.max_lookback <= timedelta(0):
            raise ConfigError("SloopConfig value MaxLookback can not be <= 0")
        if self.default_lookback == "":
            raise ConfigError("DefaultLookback can not be empty string")
        try:
            parse_duration(self.default_lookback)
        except ValueError as exc:
            raise ConfigError(f"DefaultLookback is an invalid duration: {self.default_lookback}: {exc}") from exc
        if self.cleanup_frequency < timedelta(minutes=15):
            raise ConfigError(
                "CleanupFrequency can not be less than 15 minutes.  The store is lazy about freeing space "
                "on disk so we need to give it time to avoid over-correction"
            )

    def to_yaml(self) -> str:
        """Render every setting as YAML under its file key; durations as nanoseconds."""
        data: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if item.metadata["kind"] == "duration":
                value = (value // timedelta(microseconds=1)) * 1000
            data[item.metadata["json"]] = value
        return yaml.safe_dump(data, sort_keys=True, default_flow_style=False, allow_unicode=True)


def default_config() -> SloopConfig:
    """Return the settings used when nothing else is given."""
    return SloopConfig(
        config_file="",
        disable_kube_watcher=False,
        kube_watch_resync_interval=timedelta(minutes=30),
        web_files_path="./pkg/sloop/webserver/webfiles",
        bind_address="",
        port=8080,
        store_root="./data",
        max_lookback=timedelta(hours=14 * 24),
        max_disk_mb=32 * 1024,
        debug_playback_file="",
        debug_record_file="",
        deletion_batch_size=1000,
        use_mock_badger=False,
        disable_store_manager=False,
        cleanup_frequency=timedelta(minutes=30),
        keep_minor_node_updates=False,
        default_namespace="default",
        default_kind="_all",
        default_lookback="1h",
        use_kube_context="",
        display_context="",
        api_server_host="",
        watch_crds=True,
        crd_refresh_interval=timedelta(minutes=5),
        threshold_for_gc=0.8,
        restore_database_file="",
        badger_discard_ratio=0.99,
        badger_vlog_gc_freq=timedelta(minutes=1),
        badger_max_table_size=0,
        badger_level_one_size=0,
        badger_lev_size_multiplier=0,
        badger_keep_l0_in_memory=True,
        badger_vlog_file_size=0,
        badger_vlog_max_entries=200000,
        badger_use_lsm_only_options=True,
        badger_enable_event_logging=False,
        badger_num_of_compactors=0,
        badger_num_l0_tables=0,
        badger_num_l0_tables_stall=0,
        badger_sync_writes=True,
        badger_vlog_file_io_mapping=False,
        badger_vlog_truncate=True,
        enable_delete_keys=False,
        enable_granular_metrics=False,
        privileged_access=True,
        badger_detail_log_enabled=False,
        exclusion_rules={},
    )


def _convert(key: str, kind: str, value: Any, current: Any) -> Any:
    def mismatch() -> ConfigError:
        return ConfigError(f"cannot unmarshal {type(value).__name__} into field {key} of kind {kind}")

    if kind == "str":
        if not isinstance(value, str):
            raise mismatch()
        return value
    if kind == "bool":
        if not isinstance(value, bool):
            raise mismatch()
        return value
    if kind in ("int", "uint", "duration"):
        if isinstance(value, bool) or not isinstance(value, int):
            raise mismatch()
        low, high = (0, _UINT_MAX) if kind == "uint" else (_INT64_MIN, _INT64_MAX)
        if not low <= value <= high:
            raise ConfigError(f"value {value} overflows field {key}")
        if kind == "duration":
            return timedelta(microseconds=value // 1000)
        return value
    if kind == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise mismatch()
        return float(value)
    if kind == "list":
        if not isinstance(value, list):
            raise mismatch()
        return list(value)
    if kind == "map":
        if not isinstance(value, dict) or not all(isinstance(v, list) or v is None for v in value.values()):
            raise mismatch()
        merged = dict(current) if isinstance(current, dict) else {}
        merged.update({str(k): v for k, v in value.items()})
        return merged
    raise ConfigError(f"unknown field kind {kind}")


def _apply_document(document: Any, config: SloopConfig) -> None:
    if document is None:
        return
    if not isinstance(document, dict):
        raise ConfigError(f"cannot unmarshal {type(document).__name__} into a configuration")
    by_key = {item.metadata["json"]: item for item in fields(config)}
    by_folded = {}
    for item in fields(config):
        by_folded.setdefault(item.metadata["json"].casefold(), item)
    for raw_key, value in document.items():
        key = str(raw_key)
        item = by_key.get(key) or by_folded.get(key.casefold())
        if item is None or value is None:
            continue
        current = getattr(config, item.name)
        setattr(config, item.name, _convert(key, item.metadata["kind"], value, current))


def load_from_file(filename: str, config: SloopConfig | None) -> SloopConfig:
    """Read settings from a ``.yaml`` or ``.json`` file over ``config`` (updated in place) and return it.

    With ``config`` None the file is read over a zero-valued configuration.
    Raises ConfigError if the file cannot be read or parsed.
    """
    try:
        with open(filename, "rb") as handle:
            content = handle.read()
    except OSError as exc:
        raise ConfigError(f"failed to read {filename}. {exc}") from exc

    try:
        if ".yaml" in filename:
            document = yaml.safe_load(content)
        elif ".json" in filename:
            document = json.loads(content)
        else:
            raise ConfigError(f"incorrect file format {filename}. Use json or yaml file type. ")
    except (yaml.YAMLError, ValueError) as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(f"failed to unmarshal {filename}. {exc}") from exc

    result = config if config is not None else SloopConfig()
    try:
        _apply_document(document, result)
    except ConfigError as exc:
        raise ConfigError(f"failed to unmarshal {filename}. {exc}") from exc
    return result


def _parse_bool(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean {text!r}")


def _parse_int(text: str) -> int:
    value = int(text, 0)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range {text!r}")
    return value


def _parse_uint(text: str) -> int:
    value = int(text, 0)
    if not 0 <= value <= _UINT_MAX:
        raise ValueError(f"value out of range {text!r}")
    return value


_FLAG_TYPES = {
    "str": str,
    "int": _parse_int,
    "uint": _parse_uint,
    "float": float,
    "duration": parse_duration,
}

_GLOG_FLAGS = (
    ("logtostderr", _parse_bool, False, "log to standard error instead of files"),
    ("alsologtostderr", _parse_bool, False, "log to standard error as well as files"),
    ("v", _parse_int, 0, "log level for V logs"),
    ("stderrthreshold", _parse_int, 0, "logs at or above this threshold go to stderr"),
    ("vmodule", str, "", "comma-separated list of pattern=N settings for file-filtered logging"),
    ("log_backtrace_at", str, "", "when logging hits line file:N, emit a stack trace"),
)


class _Parser(argparse.ArgumentParser):
    quiet = False

    def error(self, message: str) -> Any:
        if self.quiet:
            raise _ParseStopped(message)
        return super().error(message)

    def exit(self, status: int = 0, message: str | None = None) -> Any:
        if self.quiet:
            raise _ParseStopped(message or "")
        return super().exit(status, message)


def _flag_fields(config: SloopConfig) -> list[Any]:
    return [item for item in fields(config) if item.metadata["flag"]]


def build_parser(config: SloopConfig) -> argparse.ArgumentParser:
    """Build the command-line parser whose defaults are the values in ``config``.

    Each flag is accepted with one or two leading dashes; boolean flags take
    an optional ``=value``. Logging flags are accepted and ignored.
    """
    parser = _Parser(prog="kubetimeline", allow_abbrev=False)
    for item in _flag_fields(config):
        name = item.metadata["flag"]
        kind = item.metadata["kind"]
        default = getattr(config, item.name)
        options = (f"--{name}", f"-{name}")
        if kind == "bool":
            parser.add_argument(
                *options, dest=item.name, nargs="?", const=True, type=_parse_bool,
                default=default, help=item.metadata["help"],
            )
        else:
            shown = format_duration(default) if kind == "duration" else default
            parser.add_argument(
                *options, dest=item.name, type=_FLAG_TYPES[kind], default=default,
                metavar=kind.upper(), help=f"{item.metadata['help']} (default {shown!r})",
            )
    for name, kind_type, default, help_text in _GLOG_FLAGS:
        options = (f"--{name}", f"-{name}")
        if kind_type is _parse_bool:
            parser.add_argument(
                *options, dest=f"_log_{name}", nargs="?", const=True, type=_parse_bool,
                default=default, help=help_text,
            )
        else:
            parser.add_argument(*options, dest=f"_log_{name}", type=kind_type, default=default, help=help_text)
    parser.add_argument("_extra_args", nargs="*", help=argparse.SUPPRESS)
    return parser


def config_file_path(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> str:
    """Return the config file named by ``--config``, else by ``SLOOP_CONFIG``, else an empty string."""
    if argv is None:
        argv = sys.argv[1:]
    if environ is None:
        environ = os.environ

    parser = build_parser(SloopConfig())
    parser.quiet = True
    flag_value = ""
    try:
        flag_value = parser.parse_args(list(argv)).config_file
    except _ParseStopped as exc:
        print(f"Failed to pre-parse flags looking for config file: {exc}")

    if flag_value:
        logger.info("Config flag: %s", flag_value)
        return flag_value
    env_value = environ.get(SLOOP_CONFIG_ENV_VAR, "")
    if env_value:
        logger.info("Config env: %s", env_value)
        return env_value
    logger.info("Default config set")
    return ""


def init_config(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> SloopConfig:
    """Build the configuration: defaults, then the config file if any, then command-line flags."""
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)
    final = default_config()
    filename = config_file_path(argv, environ)
    if filename:
        final = load_from_file(filename, final)
    namespace = build_parser(final).parse_args(argv)
    for item in _flag_fields(final):
        setattr(final, item.name, getattr(namespace, item.name))
    final.config_file = filename
    return final


def main(argv: Sequence[str] | None = None) -> int:
    """Load, print and validate the configuration; return 0 if it is valid, 1 otherwise."""
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    try:
        conf = init_config(argv)
    except ConfigError as exc:
        print(f"failed to load config: {exc}", file=sys.stderr)
        return 1
    print(conf.to_yaml(), end="")
    try:
        conf.validate()
    except ConfigError as exc:
        print(f"config validation failed: {exc}", file=sys.stderr)
        return 1
    return 0