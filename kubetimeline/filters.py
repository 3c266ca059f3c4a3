"""Row filters for stored keys and values, and the filter-list queries."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timezone

from .params import (
    ALL_KINDS,
    ALL_NAMESPACES,
    KIND_PARAM,
    NAME_MATCH_PARAM,
    NAME_PARAM,
    NAMESPACE_PARAM,
    UUID_PARAM,
    get_param,
)
from .types import ResourceSummary, ResourceSummaryKey, _marshal_indent

NODE_KIND = "Node"
NAMESPACE_KIND = "Namespace"

_RESOURCE_SUMMARY_TABLE = "ressum"
_EVENT_COUNT_TABLE = "eventcount"

_QUERY_NAMES = ("EventHeatMap",)

Params = Mapping[str, Sequence[str] | str]


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _parse_key(key: str, table: str) -> ResourceSummaryKey | None:
    """Split ``/<table>/<partition>/<kind>/<namespace>/<name>/<uid>``; None if malformed."""
    parts = key.split("/")
    if len(parts) != 7 or parts[0] or parts[1] != table:
        return None
    _, _, partition_id, kind, namespace, name, uid = parts
    return ResourceSummaryKey(partition_id, kind, namespace, name, uid)


def keep_row(
    name: str,
    kind: str,
    namespace: str,
    selected_kind: str,
    selected_namespace: str,
    name_substring: str,
    name_exact: str,
    selected_uuid: str,
    uuid: str,
) -> bool:
    """Decide whether a resource matches the selected kind, namespace, name and uuid.

    Nodes have no namespace, so they are kept for any namespace when the kind
    selected is Node, and hidden when all kinds of one namespace are shown.
    A Namespace resource is matched on its own name instead of its namespace.
    """
    if selected_kind != ALL_KINDS:
        if selected_kind != kind:
            return False
    elif selected_namespace != ALL_NAMESPACES and kind == NODE_KIND:
        return False

    if selected_namespace != ALL_NAMESPACES and selected_kind != NODE_KIND:
        compared = name if kind == NAMESPACE_KIND else namespace
        if selected_namespace != compared:
            return False

    if name_substring and name_substring not in name:
        return False
    if name_exact and name.casefold() != name_exact.casefold():
        return False
    if selected_uuid and selected_uuid != uuid:
        return False
    return True


def resource_filter(params: Params) -> Callable[[str], bool]:
    """Build a predicate over resource summary key strings from query parameters."""
    selected_namespace = get_param(params, NAMESPACE_PARAM)
    selected_kind = get_param(params, KIND_PARAM)
    name_substring = get_param(params, NAME_MATCH_PARAM)
    name_exact = get_param(params, NAME_PARAM)
    selected_uuid = get_param(params, UUID_PARAM)

    def keep(key: str) -> bool:
        parsed = _parse_key(key, _RESOURCE_SUMMARY_TABLE)
        if parsed is None:
            return False
        return keep_row(
            parsed.name, parsed.kind, parsed.namespace,
            selected_kind, selected_namespace, name_substring, name_exact,
            selected_uuid, parsed.uid,
        )

    return keep


def event_count_filter(params: Params) -> Callable[[str], bool]:
    """Build a predicate over event count key strings from query parameters."""
    selected_namespace = get_param(params, NAMESPACE_PARAM)
    selected_kind = get_param(params, KIND_PARAM)
    name_substring = get_param(params, NAME_MATCH_PARAM)

    def keep(key: str) -> bool:
        parsed = _parse_key(key, _EVENT_COUNT_TABLE)
        if parsed is None:
            return False
        return keep_row(
            parsed.name, parsed.kind, parsed.namespace,
            selected_kind, selected_namespace, name_substring, "", "", "",
        )

    return keep


def is_res_summary_in_time_range(start: datetime, end: datetime) -> Callable[[ResourceSummary], bool]:
    """Build a predicate telling whether a summary was seen at any time in [start, end]."""
    start = _as_utc(start)
    end = _as_utc(end)

    def in_range(summary: ResourceSummary) -> bool:
        if summary.first_seen is None or summary.last_seen is None:
            return False
        return not (_as_utc(summary.first_seen) > end or _as_utc(summary.last_seen) < start)

    return in_range


def is_payload_in_time_range(start: datetime, end: datetime) -> Callable[[datetime | None], bool]:
    """Build a predicate telling whether a payload timestamp lies within [start, end]."""
    start = _as_utc(start)
    end = _as_utc(end)

    def in_range(timestamp: datetime | None) -> bool:
        if timestamp is None:
            return False
        moment = _as_utc(timestamp)
        return start <= moment <= end

    return in_range


def namespace_names(keys: Iterable[ResourceSummaryKey]) -> list[str]:
    """Return the sorted distinct names of the given namespace keys."""
    return sorted({key.name for key in keys})


def kind_names(keys: Iterable[ResourceSummaryKey]) -> list[str]:
    """Return the sorted distinct kinds of the given keys, led by an empty entry."""
    return sorted({""} | {key.kind for key in keys})


def keep_new_kind(kind: str, seen: set[str] | dict[str, bool]) -> bool:
    """Return True the first time a kind is met, recording it in ``seen``."""
    if kind in seen:
        return False
    if isinstance(seen, dict):
        seen[kind] = True
    else:
        seen.add(kind)
    return True


def namespace_list_json(keys: Iterable[ResourceSummaryKey]) -> str:
    """Return the JSON list of namespaces among the keys, followed by the all-namespaces entry."""
    names = namespace_names(key for key in keys if key.kind == NAMESPACE_KIND)
    names.append(ALL_NAMESPACES)
    return _marshal_indent(names)


def kind_list_json(kinds: Iterable[str]) -> str:
    """Return the sorted JSON list of the kinds together with the all-kinds entry."""
    return _marshal_indent(sorted({ALL_KINDS, *kinds}))


def default_query() -> str:
    """Name of the query run when none is asked for."""
    return "EventHeatMap"


def query_names() -> list[str]:
    """Names of the queries offered to users."""
    return list(_QUERY_NAMES)


def available_queries_json() -> str:
    """JSON list of the queries offered to users."""
    return _marshal_indent(query_names())