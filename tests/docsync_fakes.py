"""In-memory collaborators shared by the sync tests."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator

from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.vectorstores import InMemoryVectorStore

from docsync.errors import ErrorCategory, FetchError
from docsync.ingestion.source import SourceClient
from docsync.models.config import SyncSettings
from docsync.models.records import (
    ContentBlock,
    FilterSpec,
    MultiSelectProperty,
    NumberProperty,
    SourceRecord,
    TextProperty,
)
from docsync.processing.chunker import DocumentChunker
from docsync.storage.content_store import VectorContentStore
from docsync.storage.link_index import LinkIndex
from docsync.storage.progress import ProgressSink, ProgressUpdate
from docsync.sync.lease import SyncLease
from docsync.sync.sync_coordinator import SyncCoordinator
from docsync.sync.timeout_governor import TimeoutGovernor
from docsync.sync.timestamp_tracker import TimestampTracker

CONTAINER_ID = "DOCS"


def utc(year: int, month: int = 1, day: int = 1, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_record(
    record_id: str,
    last_modified: datetime,
    title: str | None = None,
    version: int = 1,
    labels: list[str] | None = None,
) -> SourceRecord:
    """Build a Confluence-shaped SourceRecord."""
    return SourceRecord(
        id=record_id,
        container_id=CONTAINER_ID,
        last_modified=last_modified,
        properties={
            "title": TextProperty(value=title if title is not None else f"Page {record_id}"),
            "version": NumberProperty(value=version),
            "labels": MultiSelectProperty(value=labels or []),
        },
        content_ref=f"{record_id}@{version}",
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource(SourceClient):
    """Source holding records in memory, with failure injection and a call log.

    ``list_failures`` are raised by successive listing calls, one per call,
    before any records are returned. Every ``get_content`` call advances
    ``clock`` by ``seconds_per_record`` when a clock is given.
    """

    def __init__(
        self,
        records: list[SourceRecord] | None = None,
        clock: FakeClock | None = None,
        seconds_per_record: float = 0.0,
    ):
        self.records: dict[str, SourceRecord] = {record.id: record for record in records or []}
        self.bodies: dict[str, str] = {}
        self.list_failures: list[Exception] = []
        self.content_failures: dict[str, Exception] = {}
        self.list_calls: list[FilterSpec | None] = []
        self.content_calls: list[str] = []
        self.clock = clock
        self.seconds_per_record = seconds_per_record

    def put(self, record: SourceRecord, body: str | None = None) -> None:
        self.records[record.id] = record
        if body is not None:
            self.bodies[record.id] = body

    def remove(self, record_id: str) -> None:
        self.records.pop(record_id, None)

    def list_records(
        self, container_id: str, filter_spec: FilterSpec | None = None
    ) -> list[SourceRecord]:
        self.list_calls.append(filter_spec)
        if self.list_failures:
            raise self.list_failures.pop(0)

        records = sorted(self.records.values(), key=lambda record: record.last_modified)
        if filter_spec is not None:
            records = [r for r in records if r.last_modified > filter_spec.modified_after]
        return records

    def get_record(self, record_id: str) -> SourceRecord:
        if record_id not in self.records:
            raise FetchError(
                f"Page {record_id} not found", ErrorCategory.SOURCE_NOT_FOUND_ERROR
            )
        return self.records[record_id]

    def get_content(self, record_id: str) -> Iterator[ContentBlock]:
        self.content_calls.append(record_id)
        if self.clock is not None:
            self.clock.advance(self.seconds_per_record)
        if record_id in self.content_failures:
            raise self.content_failures[record_id]

        body = self.bodies.get(record_id, f"<p>Body of record {record_id}.</p>")
        yield ContentBlock(block_type="p", html=body)


class RecordingProgressSink(ProgressSink):
    """Keeps every update; optionally raises to simulate a broken transport."""

    def __init__(self, fail: bool = False):
        self.updates: list[tuple[str, ProgressUpdate]] = []
        self.fail = fail

    def update(self, task_id: str, progress: ProgressUpdate) -> bool:
        if self.fail:
            raise RuntimeError("progress transport down")
        self.updates.append((task_id, progress))
        return True

    @property
    def statuses(self) -> list[str]:
        return [update.status for _, update in self.updates]


class FixedBudgetGovernor(TimeoutGovernor):
    """Governor with a fixed budget so tests do not depend on the host."""

    def __init__(self, time_limit: int, clock: FakeClock):
        super().__init__(memory_budget_mb=1024, clock=clock)
        self.time_limit = time_limit

    def optimal_timeout(self, incremental, memory_budget_bytes=None, is_background=None) -> int:
        return self.time_limit


@dataclass
class SyncHarness:
    source: FakeSource
    vector_store: InMemoryVectorStore
    link_index: LinkIndex
    store: VectorContentStore
    tracker: TimestampTracker
    progress: RecordingProgressSink
    clock: FakeClock
    coordinator: SyncCoordinator


def make_chunker() -> DocumentChunker:
    return DocumentChunker(chunk_size=500, chunk_overlap=50)


def make_content_store(
    link_index: LinkIndex | None = None,
) -> tuple[VectorContentStore, InMemoryVectorStore, LinkIndex]:
    vector_store = InMemoryVectorStore(embedding=DeterministicFakeEmbedding(size=16))
    link_index = link_index or LinkIndex()
    return VectorContentStore(vector_store, make_chunker(), link_index), vector_store, link_index


def build_harness(
    records: list[SourceRecord] | None = None,
    settings: SyncSettings | None = None,
    time_limit: int = 900,
    seconds_per_record: float = 0.0,
    progress: RecordingProgressSink | None = None,
) -> SyncHarness:
    """Wire a coordinator against in-memory collaborators."""
    clock = FakeClock()
    source = FakeSource(records, clock=clock, seconds_per_record=seconds_per_record)
    store, vector_store, link_index = make_content_store()
    tracker = TimestampTracker(vector_store)
    progress = progress or RecordingProgressSink()

    coordinator = SyncCoordinator(
        source=source,
        store=store,
        timestamp_tracker=tracker,
        chunker=make_chunker(),
        container_id=CONTAINER_ID,
        settings=settings,
        progress=progress,
        lease=SyncLease(None),
        governor=FixedBudgetGovernor(time_limit, clock),
        sleep=lambda seconds: None,
    )
    return SyncHarness(
        source=source,
        vector_store=vector_store,
        link_index=link_index,
        store=store,
        tracker=tracker,
        progress=progress,
        clock=clock,
        coordinator=coordinator,
    )
