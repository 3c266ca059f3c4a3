"""Working out the time range of a query and clipping stored rows to it."""

from __future__ import annotations

import re
from collections.abc import Mapping, MutableMapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from .durations import parse_duration
from .params import END_TIME_PARAM, LOOKBACK_PARAM, START_TIME_PARAM, get_param
from .types import ResourceSummary, WatchActivity

MIN_LOOKBACK = timedelta(minutes=1)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_TIMESTAMP = re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})(?:[.,]([0-9]+))?")
_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _unix(moment: datetime) -> int:
    return (_as_utc(moment) - _EPOCH) // timedelta(seconds=1)


def compute_time_range(
    params: Mapping[str, Sequence[str] | str],
    end_of_time: datetime,
    max_lookback: timedelta,
) -> tuple[datetime, datetime]:
    """Return the (start, end) of a query from its ``lookback`` or ``start_time``/``end_time``.

    With a lookback the end is ``end_time`` if given, else ``end_of_time``.
    The range is shifted back so it never ends after ``end_of_time`` and is
    kept between ``MIN_LOOKBACK`` and ``max_lookback`` long.
    """
    lookback = get_param(params, LOOKBACK_PARAM)
    start_text = get_param(params, START_TIME_PARAM)
    end_text = get_param(params, END_TIME_PARAM)
    end_of_time = _as_utc(end_of_time)

    if not (start_text or end_text or lookback):
        raise ValueError(
            f"Time range must be set with either [{LOOKBACK_PARAM}] or both of "
            f"[{START_TIME_PARAM},{END_TIME_PARAM}] but all 3 were empty"
        )
    if lookback:
        if start_text:
            raise ValueError(
                f"When [{LOOKBACK_PARAM}] is set, you can not set both of [{START_TIME_PARAM},{END_TIME_PARAM}] "
                f"or set only [{START_TIME_PARAM}].  Got ({lookback},{start_text},{end_text}) respectively"
            )
    elif not start_text or not end_text:
        raise ValueError(
            f"Either {START_TIME_PARAM} and {END_TIME_PARAM} both need to be set or neither set.  "
            f"Got ({start_text},{end_text}) respectively"
        )

    if lookback:
        end = parse_timestamp_string(end_text) if end_text else end_of_time
        start = end - parse_duration(lookback)
    else:
        start = parse_unix_time_string(start_text)
        end = parse_unix_time_string(end_text)

    if end > end_of_time:
        shift = end - end_of_time
        start -= shift
        end -= shift

    if end - start < MIN_LOOKBACK:
        start = end - MIN_LOOKBACK
    if end - start > max_lookback:
        start = end - max_lookback
    return start, end


def parse_timestamp_string(text: str) -> datetime:
    """Parse ``YYYY-MM-DDTHH:MM:SS`` (optionally with fractional seconds) as UTC."""
    match = _TIMESTAMP.fullmatch(text)
    if match is None:
        raise ValueError(f'cannot parse "{text}" as "2006-01-02T15:04:05"')
    year, month, day, hour, minute, second, fraction = match.groups()
    microsecond = int((fraction + "000000")[:6]) if fraction else 0
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second),
        microsecond, tzinfo=timezone.utc,
    )


def parse_unix_time_string(text: str) -> datetime:
    """Parse a decimal count of seconds since the epoch into a UTC datetime."""
    if _INTEGER.fullmatch(text) is None:
        raise ValueError(f'invalid unix time "{text}"')
    seconds = int(text)
    if not _INT64_MIN <= seconds <= _INT64_MAX:
        raise ValueError(f'unix time "{text}" out of range')
    try:
        return _EPOCH + timedelta(seconds=seconds)
    except OverflowError as exc:
        raise ValueError(f'unix time "{text}" out of range') from exc


def _required(moment: datetime | None, what: str) -> datetime:
    if moment is None:
        raise ValueError(f"resource summary has no {what} timestamp")
    return _as_utc(moment)


def time_filter_res_sum_value(value: ResourceSummary, query_start: datetime, query_end: datetime) -> bool:
    """Tell whether a summary overlaps the query, clipping its times to the query range.

    Raises ValueError if the summary lacks a create or last-seen time.
    """
    start_ts = _required(value.create_time, "create")
    last_ts = _required(value.last_seen, "last seen")
    query_start = _as_utc(query_start)
    query_end = _as_utc(query_end)
    if start_ts > query_end or last_ts < query_start:
        return False
    if start_ts < query_start:
        value.create_time = query_start
    if last_ts > query_end:
        value.last_seen = query_end
    return True


def time_filter_res_sum_map(
    res_sum_map: MutableMapping[Any, ResourceSummary],
    query_start: datetime,
    query_end: datetime,
) -> None:
    """Clip every summary in place and drop those outside the query range."""
    for key, value in list(res_sum_map.items()):
        if not time_filter_res_sum_value(value, query_start, query_end):
            del res_sum_map[key]


def time_filter_watch_activity_occurrences(
    occurrences: Sequence[int], query_start: datetime, query_end: datetime
) -> list[int]:
    """Keep the unix-second occurrences that fall within the query range, inclusive."""
    start = _unix(query_start)
    end = _unix(query_end)
    return [when for when in occurrences if start <= when <= end]


def time_filter_watch_activity(activity: WatchActivity, query_start: datetime, query_end: datetime) -> WatchActivity:
    """Filter both occurrence lists of an activity in place and return it."""
    activity.changed_at = time_filter_watch_activity_occurrences(activity.changed_at, query_start, query_end)
    activity.no_change_at = time_filter_watch_activity_occurrences(activity.no_change_at, query_start, query_end)
    return activity


def time_filter_watch_activity_map(
    activity_map: MutableMapping[Any, WatchActivity],
    query_start: datetime,
    query_end: datetime,
) -> None:
    """Filter every activity in place and drop those left with no occurrences."""
    for key, value in list(activity_map.items()):
        filtered = time_filter_watch_activity(value, query_start, query_end)
        if not filtered.changed_at and not filtered.no_change_at:
            del activity_map[key]
        else:
            activity_map[key] = filtered