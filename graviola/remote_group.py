"""Groups of queriers that behave like a single querier."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from graviola.failurestrategy import (
    FailAllStrategy,
    OnQueryFailureStrategy,
    PartialResponseStrategy,
)
from graviola.merge import MergeQuerier
from graviola.mergestrategy import AlwaysMergeStrategy, KeepBiggestMergeStrategy, MergeStrategy
from graviola.model import Annotations, Matcher, Querier, SelectHints, SeriesSet

STRATEGY_FAIL_ALL = "fail_all"
STRATEGY_PARTIAL_RESPONSE = "partial_response"
MERGE_STRATEGY_ALWAYS_MERGE = "always_merge"
MERGE_STRATEGY_KEEP_BIGGEST = "keep_biggest"


def query_failure_strategy_factory(strategy_name: str) -> OnQueryFailureStrategy:
    match strategy_name:
        case "fail_all":
            return FailAllStrategy()
        case "partial_response":
            return PartialResponseStrategy()
    raise ValueError(f"unrecognized failure strategy {strategy_name!r}")


def merge_strategy_factory(strategy_name: str) -> MergeStrategy:
    match strategy_name:
        case "always_merge":
            return AlwaysMergeStrategy()
        case "keep_biggest":
            return KeepBiggestMergeStrategy()
    raise ValueError(f"unrecognized merge strategy {strategy_name!r}")


class RemoteGroup(Querier):
    """A named group of queriers, usable wherever a single querier is."""

    def __init__(
        self,
        name: str,
        remote_storages: Sequence[Querier],
        on_query_failure: OnQueryFailureStrategy,
        merge_strategy: MergeStrategy,
        logger: logging.Logger | None = None,
    ) -> None:
        self.name = name
        self._on_query_failure = on_query_failure
        self._merger = MergeQuerier(remote_storages, merge_strategy)
        self._logger = logging.LoggerAdapter(
            logger or logging.getLogger(__name__), {"group": name, "component": "group"}
        )

    def select(
        self, sort_series: bool, hints: SelectHints, matchers: Sequence[Matcher]
    ) -> SeriesSet:
        response = self._merger.select(sort_series, hints, matchers)
        return self._on_query_failure.for_series_set(response)

    def close(self) -> None:
        self._merger.close()

    def label_values(
        self, name: str, hints: object, matchers: Sequence[Matcher]
    ) -> tuple[list[str], Annotations]:
        result = self._merger._gather_label_values(name, hints, matchers)
        return self._apply_failure_strategy(result.values, result.annotations, result.error)

    def label_names(
        self, hints: object, matchers: Sequence[Matcher]
    ) -> tuple[list[str], Annotations]:
        result = self._merger._gather_label_names(hints, matchers)
        return self._apply_failure_strategy(result.values, result.annotations, result.error)

    def _apply_failure_strategy(
        self, values: list[str], annotations: Annotations, error: Exception | None
    ) -> tuple[list[str], Annotations]:
        values, error = self._on_query_failure.for_labels(values, error)
        if error is not None:
            self._logger.debug("label query failed: %s", error)
            raise error
        return list(values or ()), annotations