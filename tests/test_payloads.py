import json

from kubetimeline.payloads import (
    EventOutput,
    PayloadOutput,
    events_to_json,
    payloads_to_json,
    remove_dupe_payloads,
)

POD_PAYLOAD = """{
  "metadata": {
    "name": "someName",
    "namespace": "someNamespace",
    "uid": "6c2a9795-a282-11e9-ba2f-14187761de09",
    "creationTimestamp": "2019-07-09T19:47:45Z"
  }
}"""

BASE_NANOS = 1_551_000_000_000_000_000
MINUTE_NANOS = 60_000_000_000


def test_remove_dupe_payloads_empty():
    assert remove_dupe_payloads([]) == []


def test_remove_dupe_payloads_two_unique_sorted():
    items = [
        PayloadOutput(payload_time=BASE_NANOS + MINUTE_NANOS, payload="abc"),
        PayloadOutput(payload_time=BASE_NANOS, payload="def"),
    ]
    assert remove_dupe_payloads(items) == [
        PayloadOutput(payload_time=BASE_NANOS, payload="def"),
        PayloadOutput(payload_time=BASE_NANOS + MINUTE_NANOS, payload="abc"),
    ]


def test_remove_dupe_payloads_two_same_keeps_first():
    items = [
        PayloadOutput(payload_time=BASE_NANOS + MINUTE_NANOS, payload="abc"),
        PayloadOutput(payload_time=BASE_NANOS, payload="abc"),
    ]
    assert remove_dupe_payloads(items) == [PayloadOutput(payload_time=BASE_NANOS, payload="abc")]


def test_remove_dupe_payloads_keeps_changes_back():
    items = [
        PayloadOutput(payload_time=1, payload="a"),
        PayloadOutput(payload_time=2, payload="b"),
        PayloadOutput(payload_time=3, payload="a"),
    ]
    assert [p.payload for p in remove_dupe_payloads(items)] == ["a", "b", "a"]


def test_payloads_to_json_empty():
    assert payloads_to_json([]) == "[]"


def test_payloads_to_json_single():
    key = "/watch/001546398000/someKind/someNamespace/someName/1546398245000000006"
    out = payloads_to_json([PayloadOutput(key, 1546398245000000006, POD_PAYLOAD)])
    assert json.loads(out) == [
        {"payloadKey": key, "payloadTime": 1546398245000000006, "payload": POD_PAYLOAD}
    ]
    assert out.startswith('[\n {\n  "payloadKey"')


def test_payload_to_dict_omits_empty_payload():
    assert PayloadOutput("k", 5).to_dict() == {"payloadKey": "k", "payloadTime": 5}


def test_events_to_json_empty():
    assert events_to_json([]) == ""


def test_events_to_json_single():
    payload = '{"reason":"someReason","count": 10}'
    key = "/watch/001546398000/Event/someNamespace/someName.xx/1546398245000000006"
    event = EventOutput(
        partition_id="001546398000",
        namespace="someNamespace",
        name="someName.xx",
        watch_timestamp=1546398245000000006,
        kind="Event",
        payload=payload,
        event_key=key,
    )
    assert json.loads(events_to_json([event])) == [
        {
            "partitionId": "001546398000",
            "namespace": "someNamespace",
            "name": "someName.xx",
            "watchTimestamp": "2019-01-02T03:04:05.000000006Z",
            "kind": "Event",
            "payload": payload,
            "eventKey": key,
        }
    ]


def test_event_to_dict_defaults():
    assert EventOutput(event_key="k").to_dict() == {
        "partitionId": "",
        "namespace": "",
        "name": "",
        "watchTimestamp": "0001-01-01T00:00:00Z",
        "eventKey": "k",
    }


def test_event_watch_type_and_whole_seconds():
    event = EventOutput(watch_timestamp=1546398245000000000, watch_type=2)
    out = event.to_dict()
    assert out["watchTimestamp"] == "2019-01-02T03:04:05Z"
    assert out["watchType"] == 2


def test_json_escapes_html_characters():
    out = payloads_to_json([PayloadOutput("k", 1, "<a&b>")])
    assert "\\u003ca\\u0026b\\u003e" in out