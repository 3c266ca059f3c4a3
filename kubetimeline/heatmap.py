"""Building the heat-map timeline from resource summaries, event counts and watch activity."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from .filters import NODE_KIND
from .timerange import time_filter_res_sum_map, time_filter_watch_activity_map
from .types import (
    Overlay,
    ResourceSummary,
    ResourceSummaryKey,
    TimelineRoot,
    TimelineRow,
    ViewOptions,
    WatchActivity,
)

logger = logging.getLogger(__name__)

EMPTY_PARTITION = ""
DEFAULT_RESYNC = timedelta(minutes=30)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MINUTE_SECONDS = 60


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _unix(moment: datetime) -> int:
    return (_as_utc(moment) - _EPOCH) // timedelta(seconds=1)


def _required(moment: datetime | None, what: str) -> datetime:
    if moment is None:
        raise ValueError(f"resource summary has no {what} timestamp")
    return _as_utc(moment)


def adjust_last_seen_time(summary: ResourceSummary, query_end: datetime, resync: timedelta) -> None:
    """Extend the last-seen time to the query end when it lies within one resync of it.

    Deleted resources are left alone. Raises ValueError if there is no last-seen time.
    """
    if summary.deleted_at_end:
        return
    last_ts = _required(summary.last_seen, "last seen")
    query_end = _as_utc(query_end)
    if last_ts + resync >= query_end:
        summary.last_seen = query_end


def adjust_last_seen_time_map(
    summaries: Mapping[ResourceSummaryKey, ResourceSummary], query_end: datetime, resync: timedelta
) -> None:
    """Apply ``adjust_last_seen_time`` to every summary."""
    for summary in summaries.values():
        adjust_last_seen_time(summary, query_end, resync)


def res_sum_to_timeline_row(key: ResourceSummaryKey, summary: ResourceSummary) -> TimelineRow:
    """Turn one stored summary into a timeline row spanning creation to last seen."""
    start = _unix(_required(summary.create_time, "create"))
    end = _unix(_required(summary.last_seen, "last seen"))
    return TimelineRow(
        text=key.name,
        kind=key.kind,
        start_date=start,
        end_date=end,
        duration=end - start,
        overlays=[],
        namespace=key.namespace,
    )


def take_newest(left: TimelineRow | None, right: TimelineRow | None) -> TimelineRow | None:
    """Return the row that ends later; the right one on a tie."""
    if left is None:
        return right
    if right is None:
        return left
    return left if left.end_date > right.end_date else right


def res_sums_to_timeline_map(
    summaries: Mapping[ResourceSummaryKey, ResourceSummary],
) -> dict[ResourceSummaryKey, TimelineRow]:
    """Map each resource, across partitions, to the newest row built from its summaries."""
    result: dict[ResourceSummaryKey, TimelineRow] = {}
    for key, summary in summaries.items():
        joined = replace(key, partition_id=EMPTY_PARTITION)
        row = res_sum_to_timeline_row(joined, summary)
        result[joined] = take_newest(row, result.get(joined)) if joined in result else row
    return result


def event_counts_to_overlays(minute_counts: Mapping[int, Mapping[str, int]]) -> list[Overlay]:
    """Build one overlay per minute listing its event reasons and counts, sorted by time.

    ``minute_counts`` maps a unix minute start (in seconds) to counts per reason.
    """
    overlays = []
    for minute, counts in minute_counts.items():
        if not counts:
            continue
        text = " ".join(f"{reason}:{counts[reason]}" for reason in sorted(counts))
        overlays.append(
            Overlay(
                text=text,
                start_date=minute,
                duration=_MINUTE_SECONDS,
                end_date=minute + _MINUTE_SECONDS,
            )
        )
    overlays.sort(key=lambda overlay: overlay.start_date)
    return overlays


def merge_overlays(
    rows: Mapping[ResourceSummaryKey, TimelineRow],
    overlays: Mapping[ResourceSummaryKey, Iterable[Overlay]],
) -> None:
    """Attach to every row the overlays stored under its key.

    Events about a Node carry the node name as the uid, so nodes are looked up that way.
    """
    for key, row in rows.items():
        lookup = replace(key, uid=key.name) if key.kind == NODE_KIND else key
        row.overlays = list(overlays.get(lookup, ()))


def merge_watch_activity(
    rows: Mapping[ResourceSummaryKey, TimelineRow],
    activity: Mapping[ResourceSummaryKey, WatchActivity],
) -> None:
    """Copy the watch activity times of each resource onto its row."""
    for key, row in rows.items():
        found = activity.get(key)
        if found is None:
            logger.debug("no activity - %s", key)
            continue
        row.changed_at = list(found.changed_at) or None
        row.no_change_at = list(found.no_change_at) or None


def adjust_overlays(rows: Iterable[TimelineRow]) -> None:
    """Clip per-minute overlays so they lie within the span of their row."""
    rows = list(rows)
    for row in rows:
        for overlay in row.overlays or ():
            too_early = row.start_date - overlay.start_date
            if 0 < too_early < 60 * 1000:
                overlay.start_date += too_early
                overlay.duration -= too_early
                if overlay.duration <= 0:
                    overlay.duration = 0
                    overlay.start_date = overlay.end_date
    for row in rows:
        for overlay in row.overlays or ():
            over = overlay.end_date - row.end_date
            if 0 < over < 60 * 1000:
                overlay.end_date -= over
                overlay.duration -= over
                if overlay.duration <= 0:
                    overlay.duration = 0
                    overlay.end_date = overlay.start_date


def validate_rows(rows: Iterable[TimelineRow], request_id: str) -> list[str]:
    """Log and return a message for every inconsistency found in the rows and their overlays."""
    problems: list[str] = []
    for row in rows:
        if row.start_date > row.end_date:
            problems.append(f"reqId: {request_id} d3 row has start {row.start_date} > end {row.end_date}")
        if row.start_date + row.duration != row.end_date:
            problems.append(
                f"reqId: {request_id} d3 row times are inconsistent. start {row.start_date} + duration "
                f"{row.duration} != end {row.end_date}.  Off by {row.start_date + row.duration - row.end_date}"
            )
        if row.duration < 0:
            problems.append(f"reqId: {request_id} d3row has negative duration {row.duration}")

        for overlay in row.overlays or ():
            if overlay.start_date > overlay.end_date:
                problems.append(
                    f"reqId: {request_id} overlay has start {overlay.start_date} > end {overlay.end_date}"
                )
            if overlay.start_date + overlay.duration != overlay.end_date:
                problems.append(
                    f"reqId: {request_id} overlay times are inconsistent. start {overlay.start_date} + duration "
                    f"{overlay.duration} != end {overlay.end_date}.  Off by "
                    f"{overlay.start_date + overlay.duration - overlay.end_date}"
                )
            if overlay.duration < 0:
                problems.append(
                    f"reqId: {request_id} overlay has negative duration [{overlay.text}] {overlay.duration}"
                )
            if overlay.start_date < row.start_date:
                problems.append(
                    f"reqId: {request_id} overlay is outside the bounds of d3 row.  OL Start "
                    f"{overlay.start_date} < D3 Start {row.start_date}.  Too early by "
                    f"{row.start_date - overlay.start_date} ms"
                )
            if overlay.end_date > row.end_date:
                overlay_end = overlay.start_date + overlay.duration
                row_end = row.start_date + row.duration
                problems.append(
                    f"reqId: {request_id} overlay is outside the bounds of d3 row.  OL End {overlay_end} > "
                    f"D3 End {row_end}.  Runs over by {overlay_end - row_end} ms"
                )
    for problem in problems:
        logger.error(problem)
    return problems


def _join_overlays(
    overlays: Mapping[ResourceSummaryKey, Iterable[Overlay]],
) -> dict[ResourceSummaryKey, list[Overlay]]:
    joined: dict[ResourceSummaryKey, list[Overlay]] = {}
    for key, items in overlays.items():
        joined.setdefault(replace(key, partition_id=EMPTY_PARTITION), []).extend(
            replace(item) for item in items
        )
    return joined


def _join_activity(
    activity: Mapping[ResourceSummaryKey, WatchActivity],
) -> dict[ResourceSummaryKey, WatchActivity]:
    joined: dict[ResourceSummaryKey, WatchActivity] = {}
    for key, value in activity.items():
        combined = joined.setdefault(replace(key, partition_id=EMPTY_PARTITION), WatchActivity())
        combined.changed_at.extend(value.changed_at)
        combined.no_change_at.extend(value.no_change_at)
    return joined


def build_timeline(
    summaries: Mapping[ResourceSummaryKey, ResourceSummary],
    overlays: Mapping[ResourceSummaryKey, Iterable[Overlay]],
    activity: Mapping[ResourceSummaryKey, WatchActivity],
    query_start: datetime,
    query_end: datetime,
    sort: str = "",
) -> str:
    """Return the timeline JSON for the resources seen between ``query_start`` and ``query_end``.

    Summaries are clipped to the query range, overlays (keyed by resource, any
    partition) are attached to their rows, and watch activity inside the range
    is added. The inputs are not modified.
    """
    summary_map: MutableMapping[ResourceSummaryKey, ResourceSummary] = {
        key: replace(value, relationships=list(value.relationships)) for key, value in summaries.items()
    }
    activity_map: MutableMapping[ResourceSummaryKey, WatchActivity] = {
        key: WatchActivity(list(value.changed_at), list(value.no_change_at)) for key, value in activity.items()
    }

    time_filter_res_sum_map(summary_map, query_start, query_end)
    time_filter_watch_activity_map(activity_map, query_start, query_end)
    adjust_last_seen_time_map(summary_map, query_end, DEFAULT_RESYNC)

    rows = res_sums_to_timeline_map(summary_map)
    merge_overlays(rows, _join_overlays(overlays))
    merge_watch_activity(rows, _join_activity(activity_map))

    output_rows = list(rows.values()) or None
    if output_rows:
        adjust_overlays(output_rows)
        validate_rows(output_rows, "")

    root = TimelineRoot(view_opt=ViewOptions(sort=sort), rows=output_rows)
    return root.to_json()