"""A querier that fans a query out to several queriers and combines the answers."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from graviola.mergestrategy import MergeStrategy
from graviola.model import Annotations, Matcher, Querier, SelectHints, SeriesSet


@dataclass
class LabelResult:
    """Combined outcome of a label query: values, warnings and an optional error."""

    values: list[str] = field(default_factory=list)
    annotations: Annotations = field(default_factory=Annotations)
    error: Exception | None = None


def _dedupe(values: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _join_errors(errors: list[Exception], annotations: Annotations) -> ExceptionGroup:
    joined = ExceptionGroup("\n".join(str(e) for e in errors), errors)
    # Callers that catch the failure still get the warnings gathered so far.
    joined.annotations = annotations
    return joined


def _outcome(result: LabelResult) -> tuple[list[str], Annotations]:
    if result.error is not None:
        raise result.error
    return result.values, result.annotations


_LabelCall = Callable[[Querier], tuple[list[str], Annotations]]


class MergeQuerier(Querier):
    """Queries all wrapped queriers concurrently and merges their results.

    A failing label query raises an ``ExceptionGroup`` of every failure; its
    ``annotations`` attribute holds the warnings collected, failures included.
    """

    def __init__(self, queriers: Sequence[Querier] | None, merge_strategy: MergeStrategy) -> None:
        if merge_strategy is None:
            raise ValueError("the merge strategy cannot be None when creating a MergeQuerier")
        self._queriers = list(queriers or ())
        self._merge_strategy = merge_strategy

    def select(
        self, sort_series: bool, hints: SelectHints, matchers: Sequence[Matcher]
    ) -> SeriesSet:
        if not self._queriers:
            return SeriesSet()
        if len(self._queriers) == 1:
            return self._queriers[0].select(sort_series, hints, matchers)

        with ThreadPoolExecutor(max_workers=len(self._queriers)) as pool:
            series_sets = list(
                pool.map(lambda q: q.select(True, hints, matchers), self._queriers)
            )
        return self._merge_strategy.merge(series_sets)

    def close(self) -> None:
        """Close every wrapped querier; the first failure is raised afterwards."""
        errors: list[Exception] = []
        for querier in self._queriers:
            try:
                querier.close()
            except Exception as exc:  # noqa: BLE001 - every querier must be closed
                errors.append(exc)
        if errors:
            raise errors[0]

    def label_values(
        self, name: str, hints: object, matchers: Sequence[Matcher]
    ) -> tuple[list[str], Annotations]:
        return _outcome(self._gather_label_values(name, hints, matchers))

    def label_names(
        self, hints: object, matchers: Sequence[Matcher]
    ) -> tuple[list[str], Annotations]:
        return _outcome(self._gather_label_names(hints, matchers))

    def _gather_label_values(
        self, name: str, hints: object, matchers: Sequence[Matcher]
    ) -> LabelResult:
        return self._gather(lambda q: q.label_values(name, hints, matchers))

    def _gather_label_names(self, hints: object, matchers: Sequence[Matcher]) -> LabelResult:
        return self._gather(lambda q: q.label_names(hints, matchers))

    def _gather(self, call: _LabelCall) -> LabelResult:
        if not self._queriers:
            return LabelResult()

        if len(self._queriers) == 1:
            try:
                values, annotations = call(self._queriers[0])
            except Exception as exc:  # noqa: BLE001 - reported through the result
                return LabelResult(error=exc)
            return LabelResult(_dedupe(values), annotations)

        with ThreadPoolExecutor(max_workers=len(self._queriers)) as pool:
            futures = [pool.submit(call, querier) for querier in self._queriers]

        values: list[str] = []
        annotations = Annotations()
        errors: list[Exception] = []
        for future in futures:
            try:
                found, found_annotations = future.result()
            except Exception as exc:  # noqa: BLE001 - collected and joined below
                errors.append(exc)
                annotations.add(exc)
                continue
            annotations.merge(found_annotations)
            values.extend(found)

        error = _join_errors(errors, annotations) if errors else None
        return LabelResult(_dedupe(values), annotations, error)