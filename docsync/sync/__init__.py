"""Synchronization components for keeping the content store in step with the source."""

from docsync.sync.batch_strategy import (
    BatchStrategySelector,
    BulkPath,
    RecordProcessor,
    SequentialPath,
)
from docsync.sync.change_detector import ChangeDetector
from docsync.sync.deletion_reconciler import DeletionReconciler
from docsync.sync.error_classifier import ErrorClassifier
from docsync.sync.lease import SyncLease
from docsync.sync.models import (
    FetchResult,
    OutcomeKind,
    RecordOutcome,
    SyncPassContext,
    SyncPassResult,
    SyncRunConfig,
    SyncState,
    TimeoutStatus,
)
from docsync.sync.sync_coordinator import SyncCoordinator
from docsync.sync.timeout_governor import TimeoutGovernor
from docsync.sync.timestamp_tracker import TimestampTracker
from docsync.sync.triggers import SyncTriggers, WebhookResult

__all__ = [
    "BatchStrategySelector",
    "BulkPath",
    "ChangeDetector",
    "DeletionReconciler",
    "ErrorClassifier",
    "FetchResult",
    "OutcomeKind",
    "RecordOutcome",
    "RecordProcessor",
    "SequentialPath",
    "SyncCoordinator",
    "SyncLease",
    "SyncPassContext",
    "SyncPassResult",
    "SyncRunConfig",
    "SyncState",
    "SyncTriggers",
    "TimeoutGovernor",
    "TimeoutStatus",
    "TimestampTracker",
    "WebhookResult",
]
