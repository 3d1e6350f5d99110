"""Domain models and error taxonomy for the fetch-aggregate pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Generic, Protocol, TypeVar

RecordT = TypeVar("RecordT")


class RunStage(str, Enum):
    """Linear lifecycle of one pipeline run."""

    START = "start"
    LISTING_FETCHED = "listing_fetched"
    LOOKUP_BUILT = "lookup_built"
    DISPATCHED = "dispatched"
    COLLECTED = "collected"
    WRITTEN = "written"
    DONE = "done"
    FAILED = "failed"


class WorkItem(Protocol):
    """Anything the dispatcher can schedule: it only needs a stable identifier."""

    @property
    def item_id(self) -> str:
        raise NotImplementedError


@dataclass(slots=True)
class PipelineError(Exception):
    """Base pipeline error."""

    message: str

    def __str__(self) -> str:
        return self.message


class ListingError(PipelineError):
    """Item listing could not be obtained; the run cannot start."""


class EmptyListingError(ListingError):
    """Item listing succeeded but returned nothing to process."""


class LookupBuildError(PipelineError):
    """Auxiliary lookup data could not be built before dispatch."""


@dataclass(slots=True)
class ItemError(PipelineError):
    """Failure isolated to one item; never aborts the run."""

    item_id: str
    cause: BaseException | None = None
    item_kind: str = "item"

    def __str__(self) -> str:
        return f"{self.item_kind} {self.item_id}: {self.message}"


@dataclass(slots=True)
class WriteError(PipelineError):
    """Output artifact could not be committed."""

    stage: str = "write"
    path: str = ""


@dataclass(slots=True)
class ItemFailuresError(PipelineError):
    """Aggregate of every item failure from a run that still produced output."""

    failures: list[ItemError] = field(default_factory=list)

    @classmethod
    def join(cls, failures: list[ItemError]) -> ItemFailuresError:
        details = "; ".join(str(failure) for failure in failures)
        return cls(
            message=f"encountered {len(failures)} item error(s) while fetching reports: {details}",
            failures=list(failures),
        )


@dataclass(slots=True, frozen=True)
class ItemSuccess(Generic[RecordT]):
    """Item produced records."""

    item_id: str
    records: list[RecordT]


@dataclass(slots=True, frozen=True)
class ItemEmpty:
    """Item legitimately had nothing to contribute."""

    item_id: str


@dataclass(slots=True, frozen=True)
class ItemFailure:
    """Item failed; the error carries the item identifier."""

    error: ItemError

    @property
    def item_id(self) -> str:
        return self.error.item_id


Outcome = ItemSuccess | ItemEmpty | ItemFailure


@dataclass(slots=True)
class DispatchStats:
    """Counters maintained by the dispatcher for one run."""

    submitted: int = 0
    started: int = 0
    skipped: int = 0
    max_in_flight: int = 0


@dataclass(slots=True)
class CollectedResults(Generic[RecordT]):
    """Accumulators filled by the result collector."""

    records: list[RecordT] = field(default_factory=list)
    failures: list[ItemError] = field(default_factory=list)
    succeeded: int = 0
    empty: int = 0

    @property
    def outcomes(self) -> int:
        return self.succeeded + self.empty + len(self.failures)


@dataclass(slots=True)
class RunResult:
    """Terminal state of a run that wrote its artifact."""

    path: Path
    record_count: int
    failures: list[ItemError] = field(default_factory=list)
    items_total: int = 0
    skipped: int = 0
    cancelled: bool = False

    @property
    def is_partial(self) -> bool:
        return bool(self.failures) or self.skipped > 0

    def failure_error(self) -> ItemFailuresError | None:
        """Return the aggregate item error, or ``None`` on a clean run."""
        if not self.failures:
            return None
        return ItemFailuresError.join(self.failures)
