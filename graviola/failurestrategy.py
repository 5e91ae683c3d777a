"""Policies deciding whether a partial failure fails the whole query."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from graviola.model import SeriesSet


class OnQueryFailureStrategy(ABC):
    @abstractmethod
    def for_series_set(self, series_set: SeriesSet) -> SeriesSet: ...

    @abstractmethod
    def for_labels(
        self, values: Sequence[str] | None, error: Exception | None
    ) -> tuple[Sequence[str] | None, Exception | None]: ...


class FailAllStrategy(OnQueryFailureStrategy):
    """Any failure is reported as is."""

    def for_series_set(self, series_set: SeriesSet) -> SeriesSet:
        return series_set

    def for_labels(self, values, error):
        return values, error


class PartialResponseStrategy(OnQueryFailureStrategy):
    """A failure is dropped whenever some data still came back."""

    def for_series_set(self, series_set: SeriesSet) -> SeriesSet:
        if series_set.error is None:
            return series_set
        if not any(s.datapoints for s in series_set.series):
            return series_set
        series_set.error = None
        return series_set

    def for_labels(self, values, error):
        if error is None or not values:
            return values, error
        return values, None