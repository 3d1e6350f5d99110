"""Run sequencing: listing, lookup, bounded dispatch, collection, write."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

from iqfetch.pipeline.collector import ResultCollector
from iqfetch.pipeline.dispatcher import DEFAULT_MAX_CONCURRENT, BoundedDispatcher
from iqfetch.pipeline.models import (
    EmptyListingError,
    ListingError,
    LookupBuildError,
    Outcome,
    PipelineError,
    RunResult,
    RunStage,
    WorkItem,
    WriteError,
)

ItemT = TypeVar("ItemT", bound=WorkItem)
LookupT = TypeVar("LookupT")
RecordT = TypeVar("RecordT")

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineSteps(Generic[ItemT, LookupT, RecordT]):
    """Collaborators the orchestrator drives; each is called from one place only."""

    list_items: Callable[[threading.Event], Sequence[ItemT]]
    build_lookup: Callable[[threading.Event], LookupT]
    fetch_one: Callable[[threading.Event, ItemT, LookupT], Outcome]
    write: Callable[[Path, list[RecordT]], Path]


class RunOrchestrator(Generic[ItemT, LookupT, RecordT]):
    """Drives one run through its stages and decides the final outcome.

    Listing, lookup and write errors abort the run. Item errors only end up
    in ``RunResult.failures``; the artifact is still written.
    """

    def __init__(
        self,
        steps: PipelineSteps[ItemT, LookupT, RecordT],
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        item_label: str = "items",
        item_kind: str = "item",
    ) -> None:
        self.steps = steps
        self.max_concurrent = max_concurrent
        self.item_label = item_label
        self.item_kind = item_kind
        self.stage = RunStage.START

    def run(
        self,
        destination: Path,
        *,
        cancel_event: threading.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> RunResult:
        cancel = cancel_event if cancel_event is not None else threading.Event()
        timer: threading.Timer | None = None
        if timeout_seconds:
            timer = threading.Timer(timeout_seconds, _cancel_on_timeout, args=(cancel,))
            timer.daemon = True
            timer.start()
        self.stage = RunStage.START
        try:
            return self._run(destination, cancel)
        except PipelineError:
            self._advance(RunStage.FAILED)
            raise
        finally:
            if timer is not None:
                timer.cancel()

    def _run(self, destination: Path, cancel: threading.Event) -> RunResult:
        try:
            items = list(self.steps.list_items(cancel))
        except PipelineError:
            raise
        except Exception as exc:
            raise ListingError(message=f"list {self.item_label}: {exc}") from exc
        logger.info("Fetched %s: count=%d", self.item_label, len(items))
        if not items:
            logger.warning("No %s found; nothing to report", self.item_label)
            raise EmptyListingError(message=f"no {self.item_label} found")
        self._advance(RunStage.LISTING_FETCHED)

        try:
            lookup = self.steps.build_lookup(cancel)
        except PipelineError:
            raise
        except Exception as exc:
            raise LookupBuildError(message=f"build lookup: {exc}") from exc
        self._advance(RunStage.LOOKUP_BUILT)

        dispatcher: BoundedDispatcher[ItemT] = BoundedDispatcher(
            lambda item: self.steps.fetch_one(cancel, item, lookup),
            max_concurrent=self.max_concurrent,
            cancel_event=cancel,
            item_kind=self.item_kind,
        )
        outcomes = dispatcher.dispatch(items)
        self._advance(RunStage.DISPATCHED)
        collector: ResultCollector[RecordT] = ResultCollector()
        results = collector.collect(outcomes)
        self._advance(RunStage.COLLECTED)
        if cancel.is_set():
            logger.warning(
                "Run cancelled: writing partial report, skipped=%d",
                dispatcher.stats.skipped,
            )

        logger.info(
            "Writing report: path=%s total_rows=%d",
            destination,
            len(results.records),
        )
        try:
            target = self.steps.write(destination, results.records)
        except PipelineError:
            raise
        except OSError as exc:
            raise WriteError(message=str(exc), path=str(destination)) from exc
        self._advance(RunStage.WRITTEN)

        result = RunResult(
            path=target,
            record_count=len(results.records),
            failures=list(results.failures),
            items_total=len(items),
            skipped=dispatcher.stats.skipped,
            cancelled=cancel.is_set(),
        )
        self._advance(RunStage.DONE)
        aggregate = result.failure_error()
        if aggregate is not None:
            logger.warning("Report written with errors: path=%s error=%s", result.path, aggregate)
        else:
            logger.info("Report written successfully: %s", result.path)
        return result

    def _advance(self, stage: RunStage) -> None:
        logger.debug("Run stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage


def _cancel_on_timeout(cancel: threading.Event) -> None:
    logger.warning("Run timeout reached; cancelling remaining items")
    cancel.set()
