"""Output records for resource payload and event queries."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from .types import _marshal_indent

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ZERO_TIME = "0001-01-01T00:00:00Z"


def _format_nanos(nanos: int | None) -> str:
    """Format unix nanoseconds as RFC 3339 with trailing zeros of the fraction dropped."""
    if nanos is None:
        return _ZERO_TIME
    seconds, fraction = divmod(nanos, 1_000_000_000)
    text = (_EPOCH + timedelta(seconds=seconds)).strftime("%Y-%m-%dT%H:%M:%S")
    if fraction:
        text += "." + f"{fraction:09d}".rstrip("0")
    return text + "Z"


@dataclass
class PayloadOutput:
    """One stored version of a resource."""

    payload_key: str = ""
    payload_time: int = 0  # unix nanoseconds
    payload: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"payloadKey": self.payload_key, "payloadTime": self.payload_time}
        if self.payload:
            out["payload"] = self.payload
        return out


@dataclass
class EventOutput:
    """One stored event about a resource."""

    partition_id: str = ""
    namespace: str = ""
    name: str = ""
    watch_timestamp: int | None = None  # unix nanoseconds
    kind: str = ""
    watch_type: int = 0
    payload: str = ""
    event_key: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "partitionId": self.partition_id,
            "namespace": self.namespace,
            "name": self.name,
            "watchTimestamp": _format_nanos(self.watch_timestamp),
        }
        if self.kind:
            out["kind"] = self.kind
        if self.watch_type:
            out["watchType"] = self.watch_type
        if self.payload:
            out["payload"] = self.payload
        out["eventKey"] = self.event_key
        return out


def remove_dupe_payloads(payloads: Iterable[PayloadOutput]) -> list[PayloadOutput]:
    """Sort payloads by time and drop each one identical to the payload before it.

    Leading empty payloads are dropped as well.
    """
    result: list[PayloadOutput] = []
    last_payload = ""
    for item in sorted(payloads, key=lambda p: p.payload_time):
        if item.payload != last_payload:
            result.append(item)
        last_payload = item.payload
    return result


def payloads_to_json(payloads: Iterable[PayloadOutput]) -> str:
    """JSON list of the payloads, sorted by time with unchanged versions removed."""
    return _marshal_indent([p.to_dict() for p in remove_dupe_payloads(payloads)])


def events_to_json(events: Iterable[EventOutput]) -> str:
    """JSON list of the events, or an empty string when there are none."""
    items = [event.to_dict() for event in events]
    if not items:
        return ""
    return _marshal_indent(items)