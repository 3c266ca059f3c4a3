"""Names of query parameters shared between the web server and the queries."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

LOOKBACK_PARAM = "lookback"
NAMESPACE_PARAM = "namespace"
KIND_PARAM = "kind"
NAME_PARAM = "name"
NAME_MATCH_PARAM = "namematch"  # substring match on name
UUID_PARAM = "uuid"
START_TIME_PARAM = "start_time"
END_TIME_PARAM = "end_time"
CLICK_TIME_PARAM = "click_time"
QUERY_PARAM = "query"
SORT_PARAM = "sort"

ALL_KINDS = "_all"
ALL_NAMESPACES = "_all"
DEFAULT_NAMESPACE = "default"


def get_param(params: Mapping[str, Sequence[str] | str] | None, name: str) -> str:
    """Return the first value given for ``name``, or an empty string if there is none."""
    if not params:
        return ""
    values = params.get(name)
    if not values:
        return ""
    if isinstance(values, str):
        return values
    return values[0]