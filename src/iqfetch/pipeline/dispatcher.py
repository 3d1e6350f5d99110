"""Bounded worker-pool dispatcher.

``max_concurrent`` long-lived worker threads pull items from a shared queue,
so at most that many work calls are ever in flight regardless of how many
items are submitted. Outcomes are pushed into an unbounded queue and a
sentinel follows once every worker has exited.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator, Sequence
from typing import Generic, TypeVar

from iqfetch.pipeline.models import (
    DispatchStats,
    ItemEmpty,
    ItemError,
    ItemFailure,
    ItemSuccess,
    Outcome,
    WorkItem,
)

DEFAULT_MAX_CONCURRENT = 10

ItemT = TypeVar("ItemT", bound=WorkItem)

logger = logging.getLogger(__name__)

_SENTINEL = object()
_OUTCOME_TYPES = (ItemSuccess, ItemEmpty, ItemFailure)


class BoundedDispatcher(Generic[ItemT]):
    """Runs a work function for every item under a fixed concurrency ceiling."""

    def __init__(
        self,
        work: Callable[[ItemT], Outcome],
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        cancel_event: threading.Event | None = None,
        item_kind: str = "item",
        thread_name_prefix: str = "iqfetch-worker",
    ) -> None:
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be > 0.")
        self._work = work
        self._max_concurrent = max_concurrent
        self._cancel = cancel_event if cancel_event is not None else threading.Event()
        self._item_kind = item_kind
        self._thread_name_prefix = thread_name_prefix
        self._stats_lock = threading.Lock()
        self._in_flight = 0
        self.stats = DispatchStats()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def dispatch(self, items: Sequence[ItemT]) -> Iterator[Outcome]:
        """Start the worker pool and return an iterator over outcomes.

        Workers are running when this returns. The iterator ends only after
        every worker has terminated, so a consumer that drains it has observed
        every outcome that was produced.
        """

        pending: queue.Queue[ItemT] = queue.Queue()
        for item in items:
            pending.put(item)
        outcomes: queue.Queue[object] = queue.Queue()
        self.stats.submitted = len(items)

        worker_count = min(self._max_concurrent, len(items))
        workers = [
            threading.Thread(
                target=self._worker,
                args=(pending, outcomes),
                name=f"{self._thread_name_prefix}-{index}",
                daemon=True,
            )
            for index in range(worker_count)
        ]
        logger.info(
            "Dispatching %d items on %d workers (max %d concurrent)",
            len(items),
            worker_count,
            self._max_concurrent,
        )
        started: list[threading.Thread] = []
        try:
            for worker in workers:
                worker.start()
                started.append(worker)
        except RuntimeError:
            if not started:
                raise
            logger.warning(
                "Started %d of %d workers; continuing with fewer",
                len(started),
                worker_count,
                exc_info=True,
            )

        def _close_when_done() -> None:
            for worker in started:
                worker.join()
            outcomes.put(_SENTINEL)

        threading.Thread(
            target=_close_when_done,
            name=f"{self._thread_name_prefix}-closer",
            daemon=True,
        ).start()
        return self._drain(outcomes)

    def _drain(self, outcomes: queue.Queue[object]) -> Iterator[Outcome]:
        while True:
            outcome = outcomes.get()
            if outcome is _SENTINEL:
                break
            yield outcome  # type: ignore[misc]

        logger.info(
            "Dispatch finished: started=%d skipped=%d max_in_flight=%d",
            self.stats.started,
            self.stats.skipped,
            self.stats.max_in_flight,
        )

    def _worker(self, pending: queue.Queue[ItemT], outcomes: queue.Queue[object]) -> None:
        while True:
            try:
                item = pending.get_nowait()
            except queue.Empty:
                return
            if self._cancel.is_set():
                with self._stats_lock:
                    self.stats.skipped += 1
                logger.debug("Cancelled before start: item=%s", item.item_id)
                continue
            outcomes.put(self._run_item(item))

    def _run_item(self, item: ItemT) -> Outcome:
        self._enter()
        try:
            outcome = self._work(item)
        except ItemError as exc:
            return ItemFailure(exc)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Work raised for item=%s", item.item_id, exc_info=True)
            return ItemFailure(
                ItemError(
                    message=str(exc) or type(exc).__name__,
                    item_id=item.item_id,
                    cause=exc,
                    item_kind=self._item_kind,
                ),
            )
        finally:
            self._leave()
        if not isinstance(outcome, _OUTCOME_TYPES):
            logger.warning(
                "Work returned %s for item=%s",
                type(outcome).__name__,
                item.item_id,
            )
            return ItemFailure(
                ItemError(
                    message=f"unsupported outcome {type(outcome).__name__}",
                    item_id=item.item_id,
                    item_kind=self._item_kind,
                ),
            )
        return outcome

    def _enter(self) -> None:
        with self._stats_lock:
            self.stats.started += 1
            self._in_flight += 1
            self.stats.max_in_flight = max(self.stats.max_in_flight, self._in_flight)

    def _leave(self) -> None:
        with self._stats_lock:
            self._in_flight -= 1
