from datetime import datetime, timedelta, timezone

import pytest

from kubetimeline.filters import (
    available_queries_json,
    default_query,
    event_count_filter,
    is_payload_in_time_range,
    is_res_summary_in_time_range,
    keep_new_kind,
    keep_row,
    kind_list_json,
    kind_names,
    namespace_list_json,
    namespace_names,
    query_names,
    resource_filter,
)
from kubetimeline.types import ResourceSummary, ResourceSummaryKey

SOME_TS = datetime(2019, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
FIRST_SEEN = datetime(2019, 3, 4, 3, 4, 5, tzinfo=timezone.utc)
MOST_RECENT = datetime(2019, 3, 6, 3, 4, 0, tzinfo=timezone.utc)
LAST_SEEN = MOST_RECENT - timedelta(hours=1)
CREATE_TIME = MOST_RECENT - timedelta(hours=3)


def get_params():
    return {
        "query": ["EventHeatMap"],
        "namespace": ["some-namespace"],
        "kind": ["_all"],
        "lookback": ["24h"],
        "dhxr1567107277290": ["1"],
    }


def res_sum():
    return ResourceSummary(first_seen=FIRST_SEEN, last_seen=LAST_SEEN, create_time=CREATE_TIME)


def test_event_count_namespace_not_selected():
    key = "/eventcount/001567105200/StatefulSet/some-user/vrb-mgmt-pd/52071bcf-64cf-11e9-b4c3-1418774b3e9d"
    assert event_count_filter(get_params())(key) is False


def test_event_count_namespace_selected():
    key = "/eventcount/001567105200/StatefulSet/some-namespace/vrb-mgmt-pd/52071bcf-64cf-11e9-b4c3-1418774b3e9d"
    assert event_count_filter(get_params())(key) is True


def test_node_kind_ignores_namespace():
    params = get_params()
    params["kind"] = ["Node"]
    params["namespace"] = ["someNamespace"]
    assert event_count_filter(params)("/eventcount/001567022400/Node//somehost/somehost") is True


def test_node_returned_for_all_namespaces():
    params = get_params()
    params["kind"] = ["Node"]
    params["namespace"] = ["_all"]
    assert event_count_filter(params)("/eventcount/001567022400/Node//somehost/somehost") is True


def test_node_not_returned_for_all_kinds_in_some_namespace():
    params = {"kind": ["_all"], "namespace": ["foo"]}
    assert event_count_filter(params)("/eventcount/001567022400/Node//somehost/somehost") is False


def test_node_returned_for_all_kinds_all_namespaces():
    params = {"kind": ["_all"], "namespace": ["_all"]}
    assert event_count_filter(params)("/eventcount/001567022400/Node//somehost/somehost") is True


def test_kind_namespace_matches_name_not_namespace():
    params = {"namespace": ["some-namespace"], "kind": ["Namespace"]}
    other = "/ressum/001567094400/Namespace//some-othernamespace/96b0e282-9744-11e8-9d31-1418775557c8"
    same = "/ressum/001567094400/Namespace//some-namespace/96b0e282-9744-11e8-9d31-1418775557c8"
    assert resource_filter(params)(other) is False
    assert resource_filter(params)(same) is True


@pytest.mark.parametrize(
    "key",
    [
        "/eventcount/001567022400/Node//somehost/somehost",
        "/ressum/001567094400/Namespace",
        "not a key",
    ],
)
def test_resource_filter_rejects_other_keys(key):
    params = {"namespace": ["_all"], "kind": ["_all"]}
    assert resource_filter(params)(key) is False


def test_event_count_filter_rejects_resource_key():
    params = {"namespace": ["_all"], "kind": ["_all"]}
    key = "/ressum/001562961600/Deployment/some-namespace/some-name/f8f372a3"
    assert event_count_filter(params)(key) is False


def test_resource_filter_wrong_kind_and_namespace():
    params = get_params()
    params.update(kind=["someKind"], namespace=["someNamespace"], name=["someName"], uuid=["someuid"])
    keep = resource_filter(params)
    assert keep("/ressum/001546398000/someKind/someNs/mynamespace/68510937-4ffc-11e9-8e26-1418775557c8") is False
    assert keep("/ressum/001546398000/SomeKind/namespace-b/somename-b/45510937-d4fc-11e9-8e26-14187754567") is False
    assert keep("/ressum/001551668400/someKind/someNamespace/someName/someuid") is True
    assert keep("/ressum/001551668400/someKind/someNamespace/someName/otheruid") is False


def test_keep_row_name_rules():
    assert keep_row("Web-1", "Pod", "ns", "Pod", "ns", "", "web-1", "", "u") is True
    assert keep_row("web-1", "Pod", "ns", "Pod", "ns", "eb-", "", "", "u") is True
    assert keep_row("web-1", "Pod", "ns", "Pod", "ns", "api", "", "", "u") is False
    assert keep_row("web-1", "Pod", "ns", "Pod", "ns", "", "web-2", "", "u") is False


def test_res_summary_in_time_range_false():
    assert is_res_summary_in_time_range(SOME_TS - timedelta(hours=1), SOME_TS + timedelta(hours=1))(res_sum()) is False


def test_res_summary_in_time_range_true():
    check = is_res_summary_in_time_range(FIRST_SEEN - timedelta(hours=24), LAST_SEEN + timedelta(hours=24))
    assert check(res_sum()) is True


def test_res_summary_not_in_later_range():
    check = is_res_summary_in_time_range(SOME_TS + timedelta(minutes=60), SOME_TS + timedelta(minutes=160))
    assert check(res_sum()) is False


def test_res_summary_without_times_is_excluded():
    check = is_res_summary_in_time_range(SOME_TS, SOME_TS + timedelta(hours=1))
    assert check(ResourceSummary()) is False


def test_payload_in_time_range_true():
    assert is_payload_in_time_range(SOME_TS - timedelta(minutes=60), SOME_TS + timedelta(minutes=60))(SOME_TS) is True


def test_payload_in_time_range_false():
    assert is_payload_in_time_range(SOME_TS + timedelta(minutes=60), SOME_TS + timedelta(minutes=65))(SOME_TS) is False
    assert is_payload_in_time_range(SOME_TS, SOME_TS)(None) is False


def test_namespace_list_json_success():
    keys = [
        ResourceSummaryKey("001546398000", "Namespace", "", "mynamespace", "68510937-4ffc-11e9-8e26-1418775557c8"),
        ResourceSummaryKey("001546398000", "Deployment", "namespace-b", "somename-b", "45510937"),
    ]
    assert namespace_list_json(keys) == '[\n "mynamespace",\n "_all"\n]'


def test_namespace_list_json_no_namespaces():
    keys = [
        ResourceSummaryKey("001546398000", "SomeKind", "namespace-a", "mynamespace", "68510937"),
        ResourceSummaryKey("001546398000", "SomeKind", "namespace-b", "somename-b", "45510937"),
    ]
    assert namespace_list_json(keys) == '[\n "_all"\n]'


def test_kind_list_json():
    assert kind_list_json(["Namespace", "Deployment"]) == '[\n "Deployment",\n "Namespace",\n "_all"\n]'


def test_namespace_names_removes_duplicates():
    keys = {
        ResourceSummaryKey("0", "Namespace", "", "name1", "uid1"): res_sum(),
        ResourceSummaryKey("1", "Namespace", "", "name2", "uid2"): res_sum(),
        ResourceSummaryKey("2", "Namespace", "", "name2", "uid23"): res_sum(),
    }
    assert namespace_names(keys) == ["name1", "name2"]


def test_kind_names():
    keys = {
        ResourceSummaryKey("0", "Pod", "", "name1", "uid1"): res_sum(),
        ResourceSummaryKey("1", "Deployment", "", "name2", "uid2"): res_sum(),
        ResourceSummaryKey("2", "Deployment", "", "name2", "uid23"): res_sum(),
    }
    assert kind_names(keys) == ["", "Deployment", "Pod"]


def test_keep_new_kind_first_time():
    seen = {}
    assert keep_new_kind("StatefulSet", seen) is True
    assert seen == {"StatefulSet": True}
    assert keep_new_kind("StatefulSet", seen) is False


def test_keep_new_kind_already_seen():
    assert keep_new_kind("Deployment", {"Deployment": True}) is False


def test_query_listing():
    assert default_query() == "EventHeatMap"
    assert query_names() == ["EventHeatMap"]
    assert available_queries_json() == '[\n "EventHeatMap"\n]'