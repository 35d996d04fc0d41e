"""Data models for synchronization passes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from docsync.models.records import SourceRecord

if TYPE_CHECKING:
    from docsync.models.config import SyncSettings
    from docsync.storage.progress import ProgressSink
    from docsync.sync.timeout_governor import TimeoutGovernor


class SyncRunConfig(BaseModel):
    """Options for one sync pass."""

    check_deletions: bool = Field(default=True, description="Reconcile records deleted upstream")
    incremental: bool = Field(default=True, description="Only fetch records changed since last pass")
    force_refresh: bool = Field(
        default=False, description="Ignore the watermark and per-record skip checks"
    )

    @property
    def uses_change_filter(self) -> bool:
        return self.incremental and not self.force_refresh


class SyncState(BaseModel):
    """Persisted watermark for a container."""

    container_id: str = Field(default=..., description="Source container (space key)")
    last_sync_time: datetime | None = Field(
        default=None, description="End of the last completed pass, None if never synced"
    )
    record_count: int = Field(default=0, ge=0, description="Records seen by the last pass")


class OutcomeKind(str, Enum):
    """Per-record result of a sync pass."""

    IMPORTED = "imported"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


class RecordOutcome(BaseModel):
    """What happened to a single record."""

    external_id: str = Field(default=..., description="Source record id")
    kind: OutcomeKind = Field(default=..., description="Outcome variant")
    reason: str | None = Field(default=None, description="Failure reason for FAILED outcomes")
    local_id: int | None = Field(default=None, description="Local item id when written")

    @classmethod
    def failed(cls, external_id: str, reason: str) -> RecordOutcome:
        return cls(external_id=external_id, kind=OutcomeKind.FAILED, reason=reason)


class FetchResult(BaseModel):
    """Records obtained from the source and how they were obtained."""

    records: list[SourceRecord] = Field(default_factory=list)
    filtered: bool = Field(default=False, description="Records came from a server-side filter")
    complete: bool = Field(default=True, description="The listing call succeeded")
    fell_back: bool = Field(default=False, description="An unfiltered fallback was used")
    error: str | None = Field(default=None, description="Last fetch error, if any")

    @property
    def is_full_listing(self) -> bool:
        """True when records are a full, successfully fetched source listing."""
        return self.complete and not self.filtered


class TimeoutStatus(BaseModel):
    """Time budget consumption at a loop boundary."""

    elapsed_time: float = Field(default=..., ge=0.0)
    time_limit: float = Field(default=..., gt=0.0)
    usage_percent: float = Field(default=..., ge=0.0)
    should_warn: bool = False
    should_stop: bool = False


class SyncPassResult(BaseModel):
    """Final, immutable report of a sync pass."""

    model_config = {"frozen": True}

    container_id: str = Field(default=..., description="Source container that was synced")
    status: Literal["completed", "failed"] = Field(default="completed")
    total: int = Field(default=0, ge=0, description="Records selected for processing")
    processed: int = Field(default=0, ge=0, description="Records attempted")
    imported: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    deleted: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)
    elapsed_time: float = Field(default=0.0, ge=0.0, description="Pass duration in seconds")
    outcomes: list[RecordOutcome] = Field(default_factory=list)
    stopped_early: bool = Field(default=False, description="Stopped by the time budget")
    watermark_advanced: bool = Field(default=False)
    error: str | None = Field(default=None, description="Pass-level failure")
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def success(self) -> bool:
        """A pass succeeds unless it failed as a whole; per-record failures do not count."""
        return self.status == "completed"


class PassTally:
    """Mutable per-pass counters. Owned by one thread of control."""

    def __init__(self) -> None:
        self.imported = 0
        self.updated = 0
        self.skipped = 0
        self.failed = 0
        self.outcomes: list[RecordOutcome] = []
        self.errors: list[str] = []

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    def record(self, outcome: RecordOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.kind is OutcomeKind.IMPORTED:
            self.imported += 1
        elif outcome.kind is OutcomeKind.UPDATED:
            self.updated += 1
        elif outcome.kind is OutcomeKind.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.errors.append(f"{outcome.external_id}: {outcome.reason}")

    def merge(self, other: PassTally) -> None:
        self.imported += other.imported
        self.updated += other.updated
        self.skipped += other.skipped
        self.failed += other.failed
        self.outcomes.extend(other.outcomes)
        self.errors.extend(other.errors)


@dataclass
class SyncPassContext:
    """Everything a component needs for one pass, threaded through every call."""

    task_id: str
    container_id: str
    config: SyncRunConfig
    settings: SyncSettings
    governor: TimeoutGovernor
    progress: ProgressSink
    time_limit: int
    start_time: float
    started_at: datetime
    tally: PassTally = field(default_factory=PassTally)
    total: int = 0
    deleted: int = 0
    errors: list[str] = field(default_factory=list)
    stopped_early: bool = False
    budget_warned: bool = False
