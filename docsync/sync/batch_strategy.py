"""Execution paths for processing the records of a sync pass."""

import gc
from abc import ABC, abstractmethod
from typing import Any, Mapping

import structlog
from pydantic import ValidationError

from docsync.errors import RecordValidationError, TimeoutStop
from docsync.ingestion.source import SourceClient
from docsync.models.config import SyncSettings
from docsync.models.records import LocalLink, SourceRecord
from docsync.processing.chunker import DocumentChunker
from docsync.processing.metadata_enricher import MetadataEnricher
from docsync.storage.content_store import ContentStore
from docsync.storage.progress import ProgressStatus, ProgressUpdate
from docsync.sync.change_detector import ChangeDetector
from docsync.sync.models import OutcomeKind, PassTally, RecordOutcome, SyncPassContext

log = structlog.stdlib.get_logger()


def publish_progress(
    ctx: SyncPassContext,
    status: ProgressStatus = "running",
    message: str = "",
) -> bool:
    """Send a progress snapshot. Sink failures are logged, never raised."""
    update = ProgressUpdate(
        status=status,
        total=ctx.total,
        processed=ctx.tally.processed,
        imported=ctx.tally.imported,
        updated=ctx.tally.updated,
        skipped=ctx.tally.skipped,
        failed=ctx.tally.failed,
        deleted=ctx.deleted,
        message=message,
    )
    try:
        return ctx.progress.update(ctx.task_id, update)
    except Exception as e:
        log.warning("progress_update_failed", task_id=ctx.task_id, error=str(e))
        return False


def check_time_budget(ctx: SyncPassContext) -> None:
    """Poll the time budget at an iteration boundary.

    Raises:
        TimeoutStop: If the pass must stop before the next record
    """
    status = ctx.governor.status(ctx.start_time, ctx.time_limit)
    if status.should_stop:
        if not ctx.stopped_early:
            log.warning(
                "time_budget_exhausted",
                container_id=ctx.container_id,
                elapsed_seconds=round(status.elapsed_time, 1),
                time_limit=ctx.time_limit,
                usage_percent=round(status.usage_percent, 1),
            )
        ctx.stopped_early = True
        raise TimeoutStop(f"Time budget of {ctx.time_limit}s exhausted")
    if status.should_warn and not ctx.budget_warned:
        ctx.budget_warned = True
        log.warning(
            "time_budget_warning",
            container_id=ctx.container_id,
            usage_percent=round(status.usage_percent, 1),
        )


class RecordProcessor:
    """Syncs a single record into the content store.

    Steps: validate, look up the link, skip check, fetch content, render,
    write, update the link. Any failure becomes a FAILED outcome.
    """

    def __init__(
        self,
        source: SourceClient,
        store: ContentStore,
        detector: ChangeDetector,
        chunker: DocumentChunker,
        enricher: MetadataEnricher | None = None,
    ):
        self._source = source
        self._store = store
        self._detector = detector
        self._chunker = chunker
        self._enricher = enricher or MetadataEnricher()

    def process(
        self,
        record: SourceRecord | Mapping[str, Any],
        force_refresh: bool = False,
        links: Mapping[str, LocalLink] | None = None,
    ) -> RecordOutcome:
        """
        Process one record.

        Args:
            record: Record to sync; raw mappings are validated first
            force_refresh: Write even when the record looks unchanged
            links: Preloaded links; looked up individually when None

        Returns:
            RecordOutcome for the record
        """
        external_id = str(record.get("id", "")) if isinstance(record, Mapping) else record.id

        try:
            record = self._validate(record)
            if links is not None:
                link = links.get(record.id)
            else:
                link = self._store.find_by_external_id(record.id)

            if not force_refresh and self._detector.should_skip(record, link):
                log.debug("record_unchanged_skipped", external_id=record.id)
                return RecordOutcome(
                    external_id=record.id,
                    kind=OutcomeKind.SKIPPED,
                    local_id=link.local_id if link else None,
                )

            content = self._chunker.render(self._source.get_content(record.id))
            metadata = self._enricher.build_metadata(record)
            local_id = self._store.create_or_update(metadata, content, record.id)
            self._detector.update_link(record, local_id)

        except Exception as e:
            log.warning(
                "record_sync_failed",
                external_id=external_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RecordOutcome.failed(external_id or "<unknown>", str(e) or type(e).__name__)

        kind = OutcomeKind.IMPORTED if link is None else OutcomeKind.UPDATED
        log.info("record_synced", external_id=record.id, local_id=local_id, outcome=kind.value)
        return RecordOutcome(external_id=record.id, kind=kind, local_id=local_id)

    @staticmethod
    def _validate(record: SourceRecord | Mapping[str, Any]) -> SourceRecord:
        if isinstance(record, SourceRecord):
            return record
        try:
            return SourceRecord.model_validate(record)
        except ValidationError as e:
            raise RecordValidationError(f"Invalid source record: {e}") from e


class ExecutionPath(ABC):
    """Strategy for iterating the records of a pass."""

    name: str = ""

    def __init__(self, processor: RecordProcessor, store: ContentStore, settings: SyncSettings):
        self._processor = processor
        self._store = store
        self._settings = settings

    @abstractmethod
    def execute(self, records: list[SourceRecord], ctx: SyncPassContext) -> None:
        """Process records, recording outcomes in ``ctx.tally``."""


class SequentialPath(ExecutionPath):
    """One record at a time with periodic memory reclamation and progress."""

    name = "sequential"

    def execute(self, records: list[SourceRecord], ctx: SyncPassContext) -> None:
        reclaim_every = self._settings.memory_reclaim_interval
        progress_every = self._settings.progress_interval

        try:
            for position, record in enumerate(records, start=1):
                check_time_budget(ctx)

                outcome = self._processor.process(record, force_refresh=ctx.config.force_refresh)
                ctx.tally.record(outcome)

                if position % reclaim_every == 0:
                    gc.collect()

                early_failure = outcome.kind is OutcomeKind.FAILED and position <= progress_every
                if position % progress_every == 0 or early_failure:
                    publish_progress(ctx, message=f"Processed {position} of {len(records)}")
        except TimeoutStop:
            log.info("sequential_path_stopped", processed=ctx.tally.processed)


class BulkPath(ExecutionPath):
    """Batched link lookup, locally accumulated tally, one progress update."""

    name = "bulk"

    def execute(self, records: list[SourceRecord], ctx: SyncPassContext) -> None:
        links = self._store.find_many([record.id for record in records])
        local = PassTally()

        try:
            for record in records:
                check_time_budget(ctx)
                local.record(
                    self._processor.process(
                        record, force_refresh=ctx.config.force_refresh, links=links
                    )
                )
        except TimeoutStop:
            log.info("bulk_path_stopped", processed=local.processed)
        finally:
            ctx.tally.merge(local)

        publish_progress(ctx, message=f"Processed {local.processed} of {len(records)}")


class BatchStrategySelector:
    """Chooses the bulk or sequential path by record count."""

    def __init__(self, processor: RecordProcessor, store: ContentStore, settings: SyncSettings):
        self._processor = processor
        self._store = store
        self._settings = settings

    def select(self, record_count: int) -> ExecutionPath:
        if self._settings.bulk_mode_enabled and record_count >= self._settings.bulk_threshold:
            path: ExecutionPath = BulkPath(self._processor, self._store, self._settings)
        else:
            path = SequentialPath(self._processor, self._store, self._settings)

        log.info("execution_path_selected", path=path.name, record_count=record_count)
        return path

    def run(self, records: list[SourceRecord], ctx: SyncPassContext) -> None:
        self.select(len(records)).execute(records, ctx)
