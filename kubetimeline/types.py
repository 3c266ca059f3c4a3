"""Data types for timeline output and stored resource summaries."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_JSON_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


def _marshal_indent(obj: Any) -> str:
    # One-space indentation with HTML-sensitive characters escaped.
    return json.dumps(obj, indent=1, ensure_ascii=False).translate(_JSON_ESCAPES)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _timestamp_dict(moment: datetime) -> dict[str, int]:
    delta = _as_utc(moment) - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    nanos = delta.microseconds * 1000
    result: dict[str, int] = {}
    if seconds:
        result["seconds"] = seconds
    if nanos:
        result["nanos"] = nanos
    return result


@dataclass
class ViewOptions:
    sort: str = ""


@dataclass
class Overlay:
    """A timed annotation drawn on top of a timeline row."""

    text: str = ""
    start_date: int = 0
    duration: int = 0
    end_date: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "start_date": self.start_date,
            "duration": self.duration,
            "end_date": self.end_date,
        }


@dataclass
class TimelineRow:
    """One resource shown on the timeline."""

    text: str = ""
    duration: int = 0
    kind: str = ""
    namespace: str = ""
    overlays: list[Overlay] | None = field(default_factory=list)
    changed_at: list[int] | None = None
    no_change_at: list[int] | None = None
    start_date: int = 0
    end_date: int = 0

    def to_dict(self) -> dict[str, Any]:
        overlays = None if self.overlays is None else [o.to_dict() for o in self.overlays]
        return {
            "text": self.text,
            "duration": self.duration,
            "kind": self.kind,
            "namespace": self.namespace,
            "overlays": overlays,
            "changedat": None if self.changed_at is None else list(self.changed_at),
            "nochangeat": None if self.no_change_at is None else list(self.no_change_at),
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


@dataclass
class TimelineRoot:
    """The document returned by the timeline query."""

    view_opt: ViewOptions = field(default_factory=ViewOptions)
    rows: list[TimelineRow] | None = None

    def to_dict(self) -> dict[str, Any]:
        rows = None if self.rows is None else [row.to_dict() for row in self.rows]
        return {"view_options": {"sort": self.view_opt.sort}, "rows": rows}

    def to_json(self) -> str:
        return _marshal_indent(self.to_dict())


@dataclass(frozen=True)
class ResourceSummaryKey:
    partition_id: str = ""
    kind: str = ""
    namespace: str = ""
    name: str = ""
    uid: str = ""


@dataclass
class ResourceSummary:
    first_seen: datetime | None = None
    last_seen: datetime | None = None
    create_time: datetime | None = None
    deleted_at_end: bool = False
    relationships: list[str] = field(default_factory=list)


@dataclass
class WatchActivity:
    """Unix seconds at which a watched resource changed or was seen unchanged."""

    changed_at: list[int] = field(default_factory=list)
    no_change_at: list[int] = field(default_factory=list)


@dataclass
class ResSummaryOutput:
    """A resource summary together with the key it was stored under."""

    key: ResourceSummaryKey = field(default_factory=ResourceSummaryKey)
    summary: ResourceSummary = field(default_factory=ResourceSummary)

    def is_empty(self) -> bool:
        return self == ResSummaryOutput()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "PartitionId": self.key.partition_id,
            "Kind": self.key.kind,
            "Namespace": self.key.namespace,
            "Name": self.key.name,
            "Uid": self.key.uid,
        }
        summary = self.summary
        if summary.first_seen is not None:
            out["firstSeen"] = _timestamp_dict(summary.first_seen)
        if summary.create_time is not None:
            out["createTime"] = _timestamp_dict(summary.create_time)
        if summary.last_seen is not None:
            out["lastSeen"] = _timestamp_dict(summary.last_seen)
        if summary.deleted_at_end:
            out["deletedAtEnd"] = True
        if summary.relationships:
            out["relationships"] = list(summary.relationships)
        return out

    def to_json(self) -> str:
        return _marshal_indent(self.to_dict())