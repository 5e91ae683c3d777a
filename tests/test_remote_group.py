import random
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from graviola.failurestrategy import FailAllStrategy, PartialResponseStrategy
from graviola.model import (
    Annotations,
    Labels,
    Matcher,
    MatchType,
    Querier,
    SamplePair,
    SelectHints,
    Series,
    SeriesSet,
)
from graviola.remote_group import (
    RemoteGroup,
    merge_strategy_factory,
    query_failure_strategy_factory,
)

GOROUTINES_TOTAL = 10
MATCHERS = [
    Matcher(MatchType.EQUAL, "somename", "somevalforlabel"),
    Matcher(MatchType.EQUAL, "somename2", "somevalforlabel2"),
]


class FakeQuerier(Querier):
    def __init__(self, series_set=None, error=None, select_fn=None):
        self.series_set = series_set
        self.error = error
        self.select_fn = select_fn
        self.close_called = 0
        self._lock = threading.Lock()

    def _series(self):
        return self.series_set.series if self.series_set else []

    def select(self, sort_series, hints, matchers):
        if self.select_fn:
            return self.select_fn(sort_series, hints, matchers)
        return self.series_set if self.series_set is not None else SeriesSet()

    def label_values(self, name, hints, matchers):
        if self.error:
            raise self.error
        return [s.labels.get(name) for s in self._series() if s.labels.get(name)], Annotations()

    def label_names(self, hints, matchers):
        if self.error:
            raise self.error
        return [n for s in self._series() for n, _ in s.labels], Annotations()

    def close(self):
        with self._lock:
            self.close_called += 1


def series(*label_strings, points=()):
    return Series(Labels.from_strings(*label_strings), list(points))


def make_group(*queriers, failure=None):
    return RemoteGroup(
        "any name", list(queriers), failure or FailAllStrategy(), merge_strategy_factory("always_merge")
    )


def two_label_storages():
    storage1 = FakeQuerier(SeriesSet([series("label1", "val1"), series("__name__", "name1")]))
    storage2 = FakeQuerier(SeriesSet([
        series("label2", "val2"),
        series("__name__", "name1"),
        series("__name__", "name2"),
    ]))
    return storage1, storage2


def check_two_series(result, point1, point2):
    assert len(result.series) == 2
    for s in result.series:
        if s.labels == Labels.from_strings("label1", "val1"):
            assert s.datapoints == [point1]
        else:
            assert s.datapoints == [point2]


def test_close_is_sent_to_remotes():
    storage1, storage2 = FakeQuerier(), FakeQuerier()
    make_group(storage1, storage2).close()
    assert storage1.close_called == 1
    assert storage2.close_called == 1


def test_select():
    point1, point2 = SamplePair(5819, 5.9), SamplePair(5999, 5.1)
    storage1 = FakeQuerier(SeriesSet([series("label1", "val1", points=[point1])]))
    storage2 = FakeQuerier(SeriesSet([series("label2", "val2", points=[point2])]))
    result = make_group(storage1, storage2).select(True, SelectHints(), MATCHERS)
    check_two_series(result, point1, point2)


def test_concurrent_selects():
    point1 = SamplePair(random.randrange(1, 2**62), random.random())
    point2 = SamplePair(random.randrange(1, 2**62), random.random())
    storage1 = FakeQuerier(SeriesSet([series("label1", "val1", points=[point1])]))
    storage2 = FakeQuerier(SeriesSet([series("label2", "val2", points=[point2])]))
    sut = make_group(storage1, storage2)

    with ThreadPoolExecutor(max_workers=GOROUTINES_TOTAL) as pool:
        results = list(pool.map(
            lambda _: sut.select(True, SelectHints(), MATCHERS), range(GOROUTINES_TOTAL)
        ))

    assert len(results) == GOROUTINES_TOTAL
    for result in results:
        check_two_series(result, point1, point2)


def random_select_fn(*label_strings):
    def select(sort_series, hints, matchers):
        point = SamplePair(random.randrange(1, 2**62), random.random())
        return SeriesSet([series(*label_strings, points=[point])])
    return select


def test_concurrent_selects_with_different_answers():
    storage1 = FakeQuerier(select_fn=random_select_fn("label1", "val1"))
    storage2 = FakeQuerier(select_fn=random_select_fn("label2", "val2"))
    sut = make_group(storage1, storage2)

    with ThreadPoolExecutor(max_workers=GOROUTINES_TOTAL) as pool:
        results = list(pool.map(
            lambda _: sut.select(True, SelectHints(), MATCHERS), range(GOROUTINES_TOTAL)
        ))

    assert len(results) == GOROUTINES_TOTAL
    for result in results:
        assert len(result.series) == 2
        assert all(len(s.datapoints) == 1 for s in result.series)


def test_label_names_and_values():
    storage1, storage2 = two_label_storages()
    sut = make_group(storage1, storage2)

    values, annotations = sut.label_names(None, MATCHERS)
    assert len(annotations) == 0
    assert sorted(values) == ["__name__", "label1", "label2"]

    values, annotations = sut.label_values("__name__", None, [])
    assert len(annotations) == 0
    assert sorted(values) == ["name1", "name2"]

    values, _ = sut.label_values("label1", None, [])
    assert values == ["val1"]

    values, _ = sut.label_values("label2", None, [])
    assert values == ["val2"]


def test_concurrent_label_names():
    sut = make_group(*two_label_storages())
    with ThreadPoolExecutor(max_workers=GOROUTINES_TOTAL) as pool:
        results = list(pool.map(lambda _: sut.label_names(None, MATCHERS)[0], range(GOROUTINES_TOTAL)))
    assert len(results) == GOROUTINES_TOTAL
    for names in results:
        assert sorted(names) == ["__name__", "label1", "label2"]


def test_concurrent_label_values():
    sut = make_group(*two_label_storages())
    with ThreadPoolExecutor(max_workers=GOROUTINES_TOTAL) as pool:
        results = list(pool.map(
            lambda _: sut.label_values("__name__", None, MATCHERS)[0], range(GOROUTINES_TOTAL)
        ))
    assert len(results) == GOROUTINES_TOTAL
    for values in results:
        assert sorted(values) == ["name1", "name2"]


def test_fail_all_raises_when_one_remote_fails():
    storage1, _ = two_label_storages()
    failure = RuntimeError("remote down")
    sut = make_group(storage1, FakeQuerier(error=failure))
    with pytest.raises(ExceptionGroup) as excinfo:
        sut.label_names(None, [])
    assert excinfo.value.exceptions == (failure,)


def test_partial_response_keeps_values_when_one_remote_fails():
    storage1, _ = two_label_storages()
    sut = make_group(storage1, FakeQuerier(error=RuntimeError("remote down")),
                     failure=PartialResponseStrategy())
    values, annotations = sut.label_values("__name__", None, [])
    assert values == ["name1"]
    assert annotations.as_strings() == ["remote down"]


def test_partial_response_drops_select_error_when_data_exists():
    point = SamplePair(10, 1.0)
    good = FakeQuerier(SeriesSet([series("a", "b", points=[point])]))
    bad = FakeQuerier(SeriesSet(error=RuntimeError("boom")))
    sut = make_group(good, bad, failure=PartialResponseStrategy())
    result = sut.select(True, SelectHints(), [])
    assert result.error is None
    assert result.series[0].datapoints == [point]


def _failed_set_with_data():
    return SeriesSet([series("a", "b", points=[SamplePair(10, 1.0)])], error=RuntimeError("boom"))


def test_fail_all_factory_keeps_the_error():
    strategy = query_failure_strategy_factory("fail_all")
    result = strategy.for_series_set(_failed_set_with_data())
    assert str(result.error) == "boom"


def test_partial_response_factory_drops_the_error_when_data_exists():
    strategy = query_failure_strategy_factory("partial_response")
    result = strategy.for_series_set(_failed_set_with_data())
    assert result.error is None
    assert result.series[0].datapoints == [SamplePair(10, 1.0)]


def _overlapping_sets():
    return [
        SeriesSet([series("x", "1", points=[SamplePair(1, 1.0), SamplePair(2, 2.0)])]),
        SeriesSet([series("x", "1", points=[SamplePair(3, 3.0)])]),
    ]


def test_always_merge_factory_merges_datapoints():
    result = merge_strategy_factory("always_merge").merge(_overlapping_sets())
    assert result.series == [
        series("x", "1", points=[SamplePair(1, 1.0), SamplePair(2, 2.0), SamplePair(3, 3.0)])
    ]


def test_keep_biggest_factory_keeps_biggest_series():
    result = merge_strategy_factory("keep_biggest").merge(_overlapping_sets())
    assert result.series == [
        series("x", "1", points=[SamplePair(1, 1.0), SamplePair(2, 2.0)])
    ]


@pytest.mark.parametrize("factory", [query_failure_strategy_factory, merge_strategy_factory])
def test_factories_reject_unknown_names(factory):
    with pytest.raises(ValueError):
        factory("unknown")