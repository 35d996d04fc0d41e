"""Mapping of manual, scheduled and webhook triggers onto sync passes."""

import threading
from typing import Any, Literal, Mapping

import structlog
from pydantic import BaseModel, Field

from docsync.errors import SyncInProgressError
from docsync.models.config import WebhookConfig
from docsync.sync.models import OutcomeKind, RecordOutcome, SyncPassResult, SyncRunConfig
from docsync.sync.sync_coordinator import SyncCoordinator

log = structlog.stdlib.get_logger()

# Confluence webhook event names.
DELETE_EVENTS = frozenset({"page_removed", "page_trashed"})
SINGLE_RECORD_EVENTS = frozenset(
    {
        "page_created",
        "page_updated",
        "page_restored",
        "page_moved",
        "page_archived",
        "page_unarchived",
        "label_added",
        "label_removed",
    }
)
FORCED_EVENTS = frozenset({"page_updated"})
CONTAINER_EVENTS = frozenset({"space_updated"})
GENERIC_EVENT_PREFIXES = ("page_", "attachment_", "label_")

WebhookAction = Literal["deleted", "record_synced", "pass_run", "ignored", "busy"]


class WebhookResult(BaseModel):
    """What a webhook event led to."""

    event_type: str = Field(default="")
    action: WebhookAction = Field(default="ignored")
    record_id: str | None = Field(default=None)
    success: bool = Field(default=True)
    message: str = Field(default="")
    outcome: RecordOutcome | None = Field(default=None)
    pass_result: SyncPassResult | None = Field(default=None)


def _nested(payload: Mapping[str, Any], *keys: str) -> Any:
    value: Any = payload
    for key in keys:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def extract_event_type(payload: Mapping[str, Any]) -> str:
    """Event name from ``event``, ``webhookEvent`` or ``type``, plain or nested."""
    for key in ("event", "webhookEvent", "type"):
        value = payload.get(key)
        if isinstance(value, Mapping):
            value = value.get("type") or value.get("name")
        if isinstance(value, str) and value:
            return value
    return ""


def extract_container_id(payload: Mapping[str, Any]) -> str | None:
    """Space key of the affected content, when the payload carries one."""
    candidate = (
        _nested(payload, "page", "spaceKey")
        or _nested(payload, "content", "spaceKey")
        or _nested(payload, "space", "key")
    )
    return str(candidate) if candidate else None


def extract_record_id(payload: Mapping[str, Any]) -> str | None:
    """Find the affected record id in the places webhook payloads carry it."""
    candidates = (
        _nested(payload, "page", "id"),
        _nested(payload, "content", "id"),
        _nested(payload, "labeled", "id"),
        _nested(payload, "entity", "id"),
        _nested(payload, "data", "id"),
    )
    for candidate in candidates:
        if candidate:
            return str(candidate)
    return None


class SyncTriggers:
    """Entry points that turn external events into coordinator calls."""

    def __init__(self, coordinator: SyncCoordinator, webhook_config: WebhookConfig | None = None):
        self._coordinator = coordinator
        self._webhook_config = webhook_config or WebhookConfig()

    def manual(
        self,
        incremental: bool = True,
        check_deletions: bool = True,
        force_refresh: bool = False,
    ) -> SyncPassResult:
        """Run a pass requested by an operator."""
        log.info(
            "manual_sync_triggered",
            incremental=incremental,
            check_deletions=check_deletions,
            force_refresh=force_refresh,
        )
        return self._coordinator.run(
            SyncRunConfig(
                incremental=incremental,
                check_deletions=check_deletions,
                force_refresh=force_refresh,
            )
        )

    def scheduled(self) -> SyncPassResult:
        """Run the periodic incremental pass with deletion reconciliation."""
        log.info("scheduled_sync_triggered", container_id=self._coordinator.container_id)
        return self._coordinator.run(SyncRunConfig(incremental=True, check_deletions=True))

    def run_periodically(self, interval_seconds: float, stop_event: threading.Event) -> int:
        """
        Run scheduled passes until ``stop_event`` is set.

        A pass that finds another pass running is skipped, not queued.

        Returns:
            Number of passes that ran
        """
        runs = 0
        while not stop_event.is_set():
            try:
                result = self.scheduled()
                runs += 1
                if not result.success:
                    log.error("scheduled_sync_failed", error=result.error)
            except SyncInProgressError:
                log.warning("scheduled_sync_skipped_busy")

            if stop_event.wait(interval_seconds):
                break

        log.info("scheduled_sync_stopped", runs=runs)
        return runs

    def handle_webhook(self, payload: Mapping[str, Any]) -> WebhookResult:
        """
        Dispatch a webhook event.

        Args:
            payload: Decoded webhook body (transport and signature checks happen upstream)

        Returns:
            WebhookResult describing the action taken
        """
        event_type = extract_event_type(payload)
        record_id = extract_record_id(payload)
        log.info("webhook_received", event_type=event_type, record_id=record_id)

        container_id = extract_container_id(payload)
        if container_id and container_id != self._coordinator.container_id:
            log.info("webhook_other_space_ignored", event_type=event_type, space_key=container_id)
            return WebhookResult(
                event_type=event_type,
                action="ignored",
                record_id=record_id,
                message=f"Event for space {container_id}",
            )

        try:
            if event_type in DELETE_EVENTS and record_id:
                deleted = self._coordinator.delete_record(record_id)
                return WebhookResult(
                    event_type=event_type,
                    action="deleted",
                    record_id=record_id,
                    success=deleted,
                    message="Local item deleted" if deleted else "Local item kept",
                )

            if event_type in SINGLE_RECORD_EVENTS or event_type in DELETE_EVENTS:
                return self._sync_single(event_type, record_id)

            if event_type in CONTAINER_EVENTS:
                return self._run_pass(
                    event_type,
                    record_id,
                    SyncRunConfig(
                        incremental=self._webhook_config.incremental,
                        check_deletions=self._webhook_config.check_deletions,
                    ),
                )

            if event_type.startswith(GENERIC_EVENT_PREFIXES):
                return self._run_pass(
                    event_type,
                    record_id,
                    SyncRunConfig(
                        incremental=self._webhook_config.incremental, check_deletions=False
                    ),
                )

        except SyncInProgressError as e:
            log.warning("webhook_sync_busy", event_type=event_type, record_id=record_id)
            return WebhookResult(
                event_type=event_type,
                action="busy",
                record_id=record_id,
                success=False,
                message=str(e),
            )

        log.info("webhook_ignored", event_type=event_type)
        return WebhookResult(event_type=event_type, action="ignored", message="Unhandled event")

    def _sync_single(self, event_type: str, record_id: str | None) -> WebhookResult:
        if not record_id:
            log.warning("webhook_missing_record_id", event_type=event_type)
            return self._fallback_pass(event_type, None)

        outcome = self._coordinator.sync_record(record_id, force=event_type in FORCED_EVENTS)
        if outcome.kind is OutcomeKind.FAILED:
            log.warning(
                "webhook_single_sync_failed",
                event_type=event_type,
                record_id=record_id,
                reason=outcome.reason,
            )
            return self._fallback_pass(event_type, record_id)

        return WebhookResult(
            event_type=event_type,
            action="record_synced",
            record_id=record_id,
            success=True,
            message=f"Record {outcome.kind.value}",
            outcome=outcome,
        )

    def _fallback_pass(self, event_type: str, record_id: str | None) -> WebhookResult:
        return self._run_pass(
            event_type, record_id, SyncRunConfig(incremental=True, check_deletions=False)
        )

    def _run_pass(
        self, event_type: str, record_id: str | None, config: SyncRunConfig
    ) -> WebhookResult:
        result = self._coordinator.run(config)
        return WebhookResult(
            event_type=event_type,
            action="pass_run",
            record_id=record_id,
            success=result.success,
            message=result.error or "Sync pass completed",
            pass_result=result,
        )
