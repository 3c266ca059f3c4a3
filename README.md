# kubetimeline

kubetimeline is the query layer of a Kubernetes history viewer. It works on
records that are already in memory: resource summaries, per-minute event
counts, watch activity and stored payloads. From these it builds the JSON that
a timeline UI draws.

## Modules

- `kubetimeline.params` holds the names of the query parameters (`lookback`,
  `start_time`, `end_time`, `namespace`, `kind`, `name`, `namematch`, `uuid`,
  `sort`, ...). `get_param(params, name)` returns the first value given for a
  parameter, or `""` when there is none.
- `kubetimeline.durations` parses duration strings such as `1h30m` or `250ms`
  with `parse_duration` and writes them back with `format_duration`.
- `kubetimeline.types` holds the data classes: `TimelineRoot`, `TimelineRow`,
  `Overlay`, `ViewOptions`, `ResourceSummaryKey`, `ResourceSummary`,
  `WatchActivity` and `ResSummaryOutput`, with `to_dict` / `to_json` where
  they are output.
- `kubetimeline.timerange`:
  - `compute_time_range(params, end_of_time, max_lookback)` works out the
    window of a query.
  - `parse_timestamp_string` and `parse_unix_time_string` read the time
    parameters.
  - The `time_filter_*` functions clip resource summaries and watch activity
    to the window, in place.
- `kubetimeline.filters`:
  - `keep_row`, `resource_filter(params)` and `event_count_filter(params)`
    decide which stored keys a query keeps. They match on kind, namespace,
    name substring, exact name (case-insensitive) and uid.
  - `is_res_summary_in_time_range` and `is_payload_in_time_range` build
    predicates over times.
  - `namespace_list_json`, `kind_list_json` and `available_queries_json` build
    the lists that the filter drop-downs show.
- `kubetimeline.payloads` provides `PayloadOutput` and `EventOutput`.
  `remove_dupe_payloads` sorts payloads by time and drops each one that is
  equal to the one before it. `payloads_to_json` and `events_to_json` write the
  lists. `events_to_json` returns `""` when there are no events.
- `kubetimeline.heatmap`:
  - `build_timeline(summaries, overlays, activity, query_start, query_end, sort)`
    turns summaries, overlays and watch activity into the timeline JSON. It
    does not modify its inputs.
  - `event_counts_to_overlays` builds per-minute overlays from reason counts.
  - `merge_overlays`, `merge_watch_activity`, `adjust_overlays` and
    `validate_rows` are the steps it is built from.
- `kubetimeline.config` holds the server settings:
  - `SloopConfig` is the settings object, and `default_config()` returns the
    defaults.
  - `load_from_file` reads `.yaml` or `.json` files.
  - `init_config(argv, environ)` applies, in order, the defaults, the file
    named by `--config` or by the `SLOOP_CONFIG` environment variable, and the
    command-line flags.
  - `SloopConfig.validate()` raises `ConfigError` on bad settings.

## Installing

```
pip install .
```

## Working out a time range

```python
from datetime import datetime, timedelta, timezone
from kubetimeline.timerange import compute_time_range

end_of_time = datetime(2019, 3, 1, 4, 4, tzinfo=timezone.utc)
start, end = compute_time_range({"lookback": ["2h"]}, end_of_time, timedelta(hours=24))
```

`compute_time_range` raises `ValueError` in these cases:

- none of `lookback`, `start_time` or `end_time` is given;
- `lookback` is given together with `start_time`;
- only one of `start_time` and `end_time` is given, without `lookback`.

The window is shifted back so that it never ends after `end_of_time`. Its
length is kept between one minute and `max_lookback`.

## Settings

`kubetimeline-config` prints, as YAML, the settings that come out of the
defaults, the optional config file and the given flags:

```
kubetimeline-config --config settings.yaml --port 9090 --max-look-back 48h
```

Flags can be written with one or two dashes. The command exits with status 1
in two cases:

- the config file cannot be read or parsed;
- the settings fail validation, for example when `max-look-back` is not
  positive, the cleanup frequency is under 15 minutes, or the default lookback
  is not a valid duration.

## What this package does not do

The package has no storage engine, no Kubernetes watcher and no web server.
It does not read from a database or serve HTTP. The caller hands it records
as Python mappings and gets back JSON strings or filtered data. The settings
in `SloopConfig` are only loaded, printed and validated; nothing in the
package acts on them.

## Tests

```
pip install .[test]
pytest
```