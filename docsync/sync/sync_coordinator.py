"""Synchronization coordinator for orchestrating sync passes."""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

import structlog

from docsync.errors import FatalSyncError, FetchError
from docsync.ingestion.source import SourceClient
from docsync.models.config import SyncSettings
from docsync.processing.chunker import DocumentChunker
from docsync.processing.metadata_enricher import MetadataEnricher
from docsync.storage.content_store import ContentStore
from docsync.storage.progress import NullProgressSink, ProgressSink
from docsync.sync.batch_strategy import BatchStrategySelector, RecordProcessor, publish_progress
from docsync.sync.change_detector import ChangeDetector
from docsync.sync.deletion_reconciler import DeletionReconciler
from docsync.sync.error_classifier import ErrorClassifier
from docsync.sync.lease import SyncLease
from docsync.sync.models import (
    FetchResult,
    RecordOutcome,
    SyncPassContext,
    SyncPassResult,
    SyncRunConfig,
    SyncState,
)
from docsync.sync.timeout_governor import TimeoutGovernor
from docsync.sync.timestamp_tracker import TimestampTracker

log = structlog.stdlib.get_logger()


class SyncCoordinator:
    """Orchestrates synchronization between a source container and the content store.

    One pass at a time per source/store pair: every entry point holds the
    lease while it runs.
    """

    def __init__(
        self,
        source: SourceClient,
        store: ContentStore,
        timestamp_tracker: TimestampTracker,
        chunker: DocumentChunker,
        container_id: str,
        settings: SyncSettings | None = None,
        progress: ProgressSink | None = None,
        lease: SyncLease | None = None,
        governor: TimeoutGovernor | None = None,
        classifier: ErrorClassifier | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize sync coordinator.

        Args:
            source: Source collaborator
            store: Content store collaborator
            timestamp_tracker: Watermark persistence
            chunker: Renderer and chunker for record content
            container_id: Source container to sync (space key)
            settings: Sync tunables
            progress: Optional progress sink (discards updates if None)
            lease: Optional lease (process-local if None)
            governor: Optional time budget governor
            classifier: Optional error classifier
            sleep: Wait function used before listing retries
        """
        self._source = source
        self._store = store
        self._timestamp_tracker = timestamp_tracker
        self._container_id = container_id
        self._settings = settings or SyncSettings()
        self._progress = progress or NullProgressSink()
        self._lease = lease or SyncLease(None, ttl_seconds=self._settings.lease_ttl_seconds)
        self._governor = governor or TimeoutGovernor(self._settings.memory_budget_mb)

        self._change_detector = ChangeDetector(
            source, store, self._settings, classifier or ErrorClassifier(), sleep
        )
        self._deletion_reconciler = DeletionReconciler(store, self._settings)
        self._processor = RecordProcessor(
            source, store, self._change_detector, chunker, MetadataEnricher()
        )
        self._selector = BatchStrategySelector(self._processor, store, self._settings)

        log.info("sync_coordinator_initialized", container_id=container_id)

    @property
    def container_id(self) -> str:
        return self._container_id

    def run(self, config: SyncRunConfig | None = None) -> SyncPassResult:
        """
        Run one sync pass.

        Args:
            config: Pass options (incremental with deletion check by default)

        Returns:
            SyncPassResult; ``status == "failed"`` when no records could be retrieved

        Raises:
            SyncInProgressError: If another pass holds the lease
            FatalSyncError: On an unexpected exception
        """
        config = config or SyncRunConfig()

        with self._lease.hold(self._settings.lease_wait_seconds):
            ctx = self._new_context(config)
            with structlog.contextvars.bound_contextvars(
                task_id=ctx.task_id, container_id=self._container_id
            ):
                return self._run_guarded(ctx)

    def _run_guarded(self, ctx: SyncPassContext) -> SyncPassResult:
        config = ctx.config
        log.info(
            "sync_pass_started",
            container_id=self._container_id,
            incremental=config.incremental,
            check_deletions=config.check_deletions,
            force_refresh=config.force_refresh,
            time_limit=ctx.time_limit,
        )
        publish_progress(ctx, message="Sync started")

        try:
            return self._run_pass(ctx)
        except Exception as e:
            log.exception(
                "sync_pass_crashed",
                container_id=self._container_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            publish_progress(ctx, status="failed", message=f"Sync crashed: {e}")
            raise FatalSyncError(f"Sync pass crashed: {e}") from e

    def sync_record(self, external_id: str, force: bool = False) -> RecordOutcome:
        """
        Sync a single record outside a full pass. The watermark is not touched.

        Args:
            external_id: Source record id
            force: Write even when the record looks unchanged

        Returns:
            RecordOutcome for the record
        """
        with self._lease.hold(self._settings.lease_wait_seconds):
            try:
                record = self._source.get_record(external_id)
            except Exception as e:
                log.warning("single_record_fetch_failed", external_id=external_id, error=str(e))
                return RecordOutcome.failed(external_id, str(e) or type(e).__name__)

            outcome = self._processor.process(record, force_refresh=force)
            log.info("single_record_synced", external_id=external_id, outcome=outcome.kind.value)
            return outcome

    def delete_record(self, external_id: str) -> bool:
        """
        Delete the local item of a record removed at the source.

        Protected links are kept.

        Args:
            external_id: Source record id

        Returns:
            True if the local item is gone afterwards
        """
        with self._lease.hold(self._settings.lease_wait_seconds):
            link = self._store.find_by_external_id(external_id)
            if link is None:
                log.info("delete_record_not_linked", external_id=external_id)
                return True
            if link.protected:
                log.info("delete_record_protected", external_id=external_id)
                return False

            if not self._store.delete(link.local_id):
                log.error(
                    "delete_record_failed", external_id=external_id, local_id=link.local_id
                )
                return False
            self._store.remove_link(external_id)
            log.info("record_deleted", external_id=external_id, local_id=link.local_id)
            return True

    def _new_context(self, config: SyncRunConfig) -> SyncPassContext:
        time_limit = self._governor.optimal_timeout(incremental=config.incremental)
        return SyncPassContext(
            task_id=f"sync-{self._container_id}-{uuid.uuid4().hex[:8]}",
            container_id=self._container_id,
            config=config,
            settings=self._settings,
            governor=self._governor,
            progress=self._progress,
            time_limit=time_limit,
            start_time=self._governor.now(),
            started_at=datetime.now(timezone.utc),
        )

    def _run_pass(self, ctx: SyncPassContext) -> SyncPassResult:
        config = ctx.config
        sync_state = self._timestamp_tracker.load_sync_state(self._container_id)
        watermark = sync_state.last_sync_time if sync_state else None

        retrieval_failed = False
        if config.uses_change_filter:
            fetch = self._change_detector.fetch_changes(self._container_id, watermark)
            if not fetch.complete:
                if watermark is None:
                    return self._finish_failed(ctx, f"No records retrievable: {fetch.error}")
                retrieval_failed = True
                ctx.errors.append(f"Record retrieval failed: {fetch.error}")
        else:
            try:
                fetch = FetchResult(records=self._change_detector.fetch_all(self._container_id))
            except FetchError as e:
                return self._finish_failed(ctx, str(e))

        records = fetch.records
        if not records and watermark is None:
            return self._finish_failed(ctx, "No records retrievable")

        if config.check_deletions:
            ctx.deleted = self._reconcile_deletions(ctx, fetch)

        if not records:
            if retrieval_failed:
                log.warning("sync_pass_retrieval_failed", container_id=self._container_id)
            else:
                log.info("no_changes_detected", container_id=self._container_id)
            return self._finish(ctx, advance_watermark=not retrieval_failed, record_count=0)

        if config.uses_change_filter and len(records) > self._settings.refilter_threshold:
            records = self._change_detector.refilter(records)

        ctx.total = len(records)
        publish_progress(ctx, message=f"Processing {ctx.total} records")
        self._selector.run(records, ctx)

        return self._finish(
            ctx,
            advance_watermark=not ctx.stopped_early and not retrieval_failed,
            record_count=len(fetch.records),
        )

    def _reconcile_deletions(self, ctx: SyncPassContext, fetch: FetchResult) -> int:
        if fetch.is_full_listing:
            current_ids = {record.id for record in fetch.records}
        else:
            try:
                current_ids = {
                    record.id for record in self._change_detector.fetch_all(self._container_id)
                }
            except FetchError as e:
                log.warning(
                    "deletion_check_skipped_fetch_failed",
                    container_id=self._container_id,
                    error=str(e),
                    category=e.category.value,
                )
                ctx.errors.append(f"Deletion check skipped: {e}")
                return 0

        return self._deletion_reconciler.reconcile(current_ids)

    def _finish(
        self, ctx: SyncPassContext, advance_watermark: bool, record_count: int
    ) -> SyncPassResult:
        if advance_watermark:
            # Start of the pass, before the listing, so edits made while it ran are listed again.
            self._timestamp_tracker.save_sync_state(
                SyncState(
                    container_id=self._container_id,
                    last_sync_time=ctx.started_at,
                    record_count=record_count,
                )
            )
        elif ctx.stopped_early:
            log.warning(
                "sync_pass_stopped_early",
                container_id=self._container_id,
                processed=ctx.tally.processed,
                total=ctx.total,
            )

        result = self._build_result(ctx, status="completed", watermark_advanced=advance_watermark)
        publish_progress(ctx, status="completed", message="Sync completed")

        log.info(
            "sync_pass_completed",
            container_id=self._container_id,
            total=result.total,
            imported=result.imported,
            updated=result.updated,
            skipped=result.skipped,
            failed=result.failed,
            deleted=result.deleted,
            stopped_early=result.stopped_early,
            watermark_advanced=advance_watermark,
            elapsed_seconds=round(result.elapsed_time, 2),
        )
        return result

    def _finish_failed(self, ctx: SyncPassContext, error: str) -> SyncPassResult:
        ctx.errors.append(error)
        result = self._build_result(ctx, status="failed", error=error)
        publish_progress(ctx, status="failed", message=error)

        log.error(
            "sync_pass_failed",
            container_id=self._container_id,
            error=error,
            elapsed_seconds=round(result.elapsed_time, 2),
        )
        return result

    def _build_result(
        self,
        ctx: SyncPassContext,
        status: str,
        watermark_advanced: bool = False,
        error: str | None = None,
    ) -> SyncPassResult:
        tally = ctx.tally
        return SyncPassResult(
            container_id=self._container_id,
            status=status,
            total=ctx.total,
            processed=tally.processed,
            imported=tally.imported,
            updated=tally.updated,
            skipped=tally.skipped,
            failed=tally.failed,
            deleted=ctx.deleted,
            errors=[*ctx.errors, *tally.errors],
            elapsed_time=max(0.0, self._governor.now() - ctx.start_time),
            outcomes=list(tally.outcomes),
            stopped_early=ctx.stopped_early,
            watermark_advanced=watermark_advanced,
            error=error,
            started_at=ctx.started_at,
            finished_at=datetime.now(timezone.utc),
        )
