import json
from datetime import datetime, timezone

from kubetimeline.types import (
    Overlay,
    ResourceSummary,
    ResourceSummaryKey,
    ResSummaryOutput,
    TimelineRoot,
    TimelineRow,
    ViewOptions,
)

FIRST_SEEN = datetime(2019, 3, 4, 3, 4, 5, tzinfo=timezone.utc)
LAST_SEEN = datetime(2019, 3, 6, 2, 4, 0, tzinfo=timezone.utc)


def test_overlay_dict_keys_and_values():
    overlay = Overlay(text="ContainerCreated:3", start_date=1551400080, duration=60, end_date=1551400140)
    result = overlay.to_dict()
    assert list(result) == ["text", "start_date", "duration", "end_date"]
    assert result["start_date"] == 1551400080
    assert result["end_date"] == 1551400140


def test_row_without_activity_has_null_lists():
    row = TimelineRow(text="somename", duration=3480, kind="Pod", namespace="somens",
                      start_date=1551398520, end_date=1551402000)
    result = row.to_dict()
    assert result["changedat"] is None
    assert result["nochangeat"] is None
    assert result["overlays"] == []
    assert result["duration"] == 3480


def test_row_with_activity_and_overlays():
    overlay = Overlay(text="a", start_date=1, duration=2, end_date=3)
    row = TimelineRow(overlays=[overlay], changed_at=[1551400080], no_change_at=[1551398820])
    result = row.to_dict()
    assert result["overlays"] == [overlay.to_dict()]
    assert result["changedat"] == [1551400080]
    assert result["nochangeat"] == [1551398820]


def test_root_json_round_trip():
    root = TimelineRoot(view_opt=ViewOptions(sort="name"), rows=[TimelineRow(text="x", kind="Pod")])
    assert json.loads(root.to_json()) == root.to_dict()
    assert root.to_dict()["view_options"] == {"sort": "name"}


def test_root_without_rows_is_null():
    assert json.loads(TimelineRoot().to_json())["rows"] is None


def test_root_json_uses_single_space_indent():
    text = TimelineRoot().to_json()
    assert text.startswith('{\n "view_options"')


def test_root_json_escapes_html_characters():
    text = TimelineRoot(rows=[TimelineRow(text="<x>")]).to_json()
    assert "\\u003cx\\u003e" in text
    assert json.loads(text)["rows"][0]["text"] == "<x>"


def test_default_output_is_empty():
    assert ResSummaryOutput().is_empty()


def test_output_with_key_is_not_empty():
    output = ResSummaryOutput(key=ResourceSummaryKey(name="someName"))
    assert not output.is_empty()


def test_output_dict_matches_stored_summary():
    output = ResSummaryOutput(
        key=ResourceSummaryKey("001551668400", "someKind", "someNamespace", "someName", "someuid"),
        summary=ResourceSummary(first_seen=FIRST_SEEN, last_seen=LAST_SEEN),
    )
    expected = {
        "PartitionId": "001551668400",
        "Kind": "someKind",
        "Namespace": "someNamespace",
        "Name": "someName",
        "Uid": "someuid",
        "firstSeen": {"seconds": 1551668645},
        "lastSeen": {"seconds": 1551837840},
    }
    assert output.to_dict() == expected
    assert json.loads(output.to_json()) == expected


def test_output_includes_deleted_flag_and_relationships():
    output = ResSummaryOutput(summary=ResourceSummary(deleted_at_end=True, relationships=["owner"]))
    result = output.to_dict()
    assert result["deletedAtEnd"] is True
    assert result["relationships"] == ["owner"]
    assert "createTime" not in result


def test_naive_timestamp_is_read_as_utc():
    naive = ResSummaryOutput(summary=ResourceSummary(last_seen=LAST_SEEN.replace(tzinfo=None)))
    aware = ResSummaryOutput(summary=ResourceSummary(last_seen=LAST_SEEN))
    assert naive.to_dict()["lastSeen"] == aware.to_dict()["lastSeen"]