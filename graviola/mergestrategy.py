"""Strategies for combining the series sets returned by several queriers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from functools import cmp_to_key
from itertools import groupby
from operator import attrgetter

from graviola.model import Annotations, SamplePair, Series, SeriesSet, compare_labels

_by_labels = cmp_to_key(lambda a, b: compare_labels(a.labels, b.labels))
_labels_of = attrgetter("labels")


class MergeStrategy(ABC):
    @abstractmethod
    def merge(self, series_sets: Sequence[SeriesSet]) -> SeriesSet: ...


def _sorted_series(series_sets: Iterable[SeriesSet]) -> list[Series]:
    return sorted((s for sset in series_sets for s in sset.series), key=_by_labels)


def _merge_annotations(series_sets: Iterable[SeriesSet]) -> Annotations:
    merged = Annotations()
    for sset in series_sets:
        merged.merge(sset.warnings())
    return merged


def _join_errors(series_sets: Iterable[SeriesSet]) -> Exception | None:
    errors = [sset.error for sset in series_sets if sset.error is not None]
    if not errors:
        return None
    return ExceptionGroup("\n".join(str(e) for e in errors), errors)


def _result(series: list[Series], series_sets: Sequence[SeriesSet]) -> SeriesSet:
    return SeriesSet(
        series=series,
        annotations=_merge_annotations(series_sets),
        error=_join_errors(series_sets),
    )


def _drop_repeated_timestamps(points: Iterable[SamplePair]) -> list[SamplePair]:
    # A zero timestamp counts as "nothing seen yet", so zeros are never deduplicated.
    kept: list[SamplePair] = []
    current = 0
    for point in points:
        if current == 0 or point.timestamp != current:
            kept.append(point)
            current = point.timestamp
    return kept


class AlwaysMergeStrategy(MergeStrategy):
    """Merges datapoints of equal series; on equal timestamps the first one wins."""

    def merge(self, series_sets: Sequence[SeriesSet]) -> SeriesSet:
        if not series_sets:
            return SeriesSet()
        if len(series_sets) == 1:
            return series_sets[0]

        merged = []
        for labels, group in groupby(_sorted_series(series_sets), key=_labels_of):
            points = sorted(
                (p for s in group for p in s.datapoints), key=attrgetter("timestamp")
            )
            merged.append(Series(labels, _drop_repeated_timestamps(points)))
        return _result(merged, series_sets)


class KeepBiggestMergeStrategy(MergeStrategy):
    """Keeps, among equal series, the one with most datapoints; ties keep the first."""

    def merge(self, series_sets: Sequence[SeriesSet]) -> SeriesSet:
        if not series_sets:
            return SeriesSet()
        if len(series_sets) == 1:
            return series_sets[0]

        merged = [
            max(group, key=lambda s: len(s.datapoints))
            for _, group in groupby(_sorted_series(series_sets), key=_labels_of)
        ]
        return _result(merged, series_sets)