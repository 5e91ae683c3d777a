# graviola

`graviola` puts several Prometheus-compatible remote storages behind one
querier. A query is sent to every remote concurrently, and the answers are
combined into a single set of series by a merge strategy of your choice. It has
no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `graviola.model`: the shared data types.
  - `Labels`: an immutable label set, sorted by name. Build it with
    `Labels.from_strings("job", "api", ...)` or from a mapping. It also offers
    `get(name)` and `to_dict()`.
  - `compare_labels(a, b)` orders two label sets and returns -1, 0 or 1.
  - `Matcher` and `MatchType` (`EQUAL`, `NOT_EQUAL`, `REGEX`, `NOT_REGEX`).
    `str(matcher)` renders it as `name="value"`.
  - `SamplePair` holds a millisecond timestamp and a value. `Series` holds labels
    and datapoints.
  - `Annotations` is a dict of warnings keyed by message, with `add`, `merge` and
    `as_strings`.
  - `SeriesSet` holds `series`, `annotations` and an optional `error`.
  - `SelectHints` holds `start`, `end` and `step`, all in milliseconds.
  - `Querier` is the abstract interface: `select`, `label_values`, `label_names`
    and `close`. It can also be used as a context manager.
- `graviola.remote`
  - `RemoteStorage(name, address, path_prefix="", *, logger=None, timeout=None, opener=None)`
    is a `Querier` for one remote's HTTP API. It calls `/api/v1/query`,
    `/api/v1/query_range`, `/api/v1/labels` and `/api/v1/label/<name>/values`,
    each under the optional path prefix.
  - `to_promql_query(matchers)` renders matchers as a selector, for example
    `{job="api",}`.
  - `RemoteStorageError` is raised, or carried on the result, when a remote
    cannot be used.
  - `LabelNamesResponse` is a parsed label-names body.
- `graviola.merge`
  - `MergeQuerier(queriers, merge_strategy)` sends each query to all of its
    queriers in threads. Series sets are combined by the merge strategy. Label
    values and names are combined and deduplicated.
  - With a single querier, `select` is passed straight to that querier without
    merging.
  - `LabelResult` holds the combined outcome of a label query.
- `graviola.mergestrategy`: two ways to combine series that have equal labels.
  Both sort the output series by label set.
  - `AlwaysMergeStrategy` joins all datapoints and sorts them by timestamp. When
    two datapoints share a timestamp, the first one is kept.
  - `KeepBiggestMergeStrategy` keeps the series with the most datapoints. On a
    tie, the first one is kept.
  - Either strategy merges the annotations of all inputs. The errors of the inputs
    are joined into an `ExceptionGroup`.
- `graviola.failurestrategy`: what to do when some queriers fail.
  - `FailAllStrategy` passes errors through.
  - `PartialResponseStrategy` drops the error whenever some data still came back.
- `graviola.remote_group`
  - `RemoteGroup(name, remote_storages, on_query_failure, merge_strategy, logger=None)`
    combines a `MergeQuerier` with a failure strategy. Since it is itself a
    `Querier`, groups can be nested.
  - `merge_strategy_factory(name)` accepts `"always_merge"` or `"keep_biggest"`.
  - `query_failure_strategy_factory(name)` accepts `"fail_all"` or
    `"partial_response"`.
  - Both factories raise `ValueError` for any other name.
- `graviola.storage`
  - `GraviolaStorage(groups, merge_strategy, logger=None)` wraps the groups in a
    root `RemoteGroup` that uses `FailAllStrategy`. `querier(mint, maxt)` returns
    that root group.
  - `chunk_querier` always raises `RuntimeError`.
  - `GraviolaExemplarQueryable.exemplar_querier()` returns `None`.

## Example

```python
from graviola.failurestrategy import PartialResponseStrategy
from graviola.model import Matcher, MatchType, SelectHints
from graviola.remote import RemoteStorage
from graviola.remote_group import RemoteGroup, merge_strategy_factory
from graviola.storage import GraviolaStorage

remotes = [
    RemoteStorage("east", "http://localhost:9090"),
    RemoteStorage("west", "http://localhost:9091", timeout=10),
]
group = RemoteGroup(
    "main", remotes, PartialResponseStrategy(), merge_strategy_factory("always_merge")
)
storage = GraviolaStorage([group], merge_strategy_factory("keep_biggest"))

querier = storage.querier(0, 0)
series_set = querier.select(
    True,
    SelectHints(start=1_700_000_000_000, end=1_700_000_600_000),
    [Matcher(MatchType.EQUAL, "__name__", "up")],
)
if series_set.error is not None:
    print("query failed:", series_set.error)
for series in series_set.series:
    print(series.labels.to_dict(), [(p.timestamp, p.value) for p in series.datapoints])

names, annotations = querier.label_names(None, [])
```

## How queries are sent

`RemoteStorage.select` picks the query type from the hints:

- If `start` and `end` are both 0, it sends an instant query with no time.
- If `start` and `end` are equal but not 0, it sends an instant query with
  `time` set to that value.
- Otherwise it sends a range query with `start`, `end` and `step`.

Timestamps and the step are given in milliseconds and sent as whole seconds. A
step of 0 is sent as 30 seconds.

Only `vector` and `matrix` results are understood. Any other result type is
reported as an error.

## Errors

- `select` does not raise on remote failures. The error is carried in
  `SeriesSet.error`, and a remote's failure is also added to its annotations.
  Warnings sent by a remote become annotations.
- `label_values` and `label_names` raise on failure. `RemoteStorage` raises
  `RemoteStorageError`.
- When several queriers fail, `MergeQuerier` raises an `ExceptionGroup` of all
  the failures. Its `annotations` attribute holds the warnings gathered, with the
  failures included.

## What this package does not do

This is a library only. It has no command-line program, no HTTP server exposing
a query API, and no PromQL evaluation engine. Nothing loads configuration from
files: you build remotes, groups and strategies in code. Exemplar queries are not
served.