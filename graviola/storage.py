"""The storage facade handed to the query engine."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from graviola.failurestrategy import FailAllStrategy
from graviola.mergestrategy import MergeStrategy
from graviola.model import Querier
from graviola.remote_group import RemoteGroup


class GraviolaStorage:
    """Wraps a list of groups behind a single root group acting as a queryable storage."""

    def __init__(
        self,
        groups: Sequence[Querier],
        merge_strategy: MergeStrategy,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._root_group = RemoteGroup(
            "root", groups, FailAllStrategy(), merge_strategy, logger=self._logger
        )

    def querier(self, mint: int, maxt: int) -> Querier:
        return self._root_group

    def chunk_querier(self, mint: int, maxt: int) -> Querier:
        """Chunk queries are not served by this storage; always raises."""
        self._logger.error("chunk_querier called on GraviolaStorage")
        raise RuntimeError("should not call chunk_querier")


class GraviolaExemplarQueryable:
    """Exemplar source with no exemplars to offer."""

    def exemplar_querier(self) -> None:
        """Return no exemplar querier, as none is available."""
        return None