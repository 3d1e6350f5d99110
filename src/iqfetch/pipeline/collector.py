"""Fold dispatcher outcomes into success and failure accumulators."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Generic, TypeVar

from iqfetch.pipeline.models import (
    CollectedResults,
    ItemEmpty,
    ItemFailure,
    ItemSuccess,
    Outcome,
)

RecordT = TypeVar("RecordT")

logger = logging.getLogger(__name__)


class ResultCollector(Generic[RecordT]):
    """Single consumer of outcomes; the only writer of its accumulators."""

    def __init__(self) -> None:
        self.results: CollectedResults[RecordT] = CollectedResults()

    def add(self, outcome: Outcome) -> None:
        if isinstance(outcome, ItemSuccess):
            self.results.records.extend(outcome.records)
            self.results.succeeded += 1
        elif isinstance(outcome, ItemEmpty):
            self.results.empty += 1
        elif isinstance(outcome, ItemFailure):
            logger.warning("Item failed: %s", outcome.error)
            self.results.failures.append(outcome.error)
        else:
            raise TypeError(f"Unsupported outcome type: {type(outcome).__name__}")

    def collect(self, outcomes: Iterable[Outcome]) -> CollectedResults[RecordT]:
        """Drain ``outcomes`` completely; item failures never stop the loop."""

        for outcome in outcomes:
            self.add(outcome)
        logger.info(
            "Collected outcomes: records=%d succeeded=%d empty=%d failed=%d",
            len(self.results.records),
            self.results.succeeded,
            self.results.empty,
            len(self.results.failures),
        )
        return self.results
