"""Reconciliation of local items whose source records were deleted."""

from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from docsync.models.config import SyncSettings
from docsync.models.records import LocalLink, ensure_utc
from docsync.storage.content_store import ContentStore

log = structlog.stdlib.get_logger()


class DeletionReconciler:
    """Deletes local items whose external id is missing from the source listing.

    Links are scanned in batches ordered by local id. Protected links and links
    synced within the grace window are never deleted.
    """

    def __init__(
        self,
        store: ContentStore,
        settings: SyncSettings | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._store = store
        self._settings = settings or SyncSettings()
        self._now = now

    def reconcile(self, current_external_ids: set[str]) -> int:
        """
        Delete local items absent from the current source listing.

        Args:
            current_external_ids: Every external id the source currently lists

        Returns:
            Number of local items deleted
        """
        if not current_external_ids:
            log.warning("deletion_check_skipped_empty_listing")
            return 0

        batch_size = self._settings.deletion_batch_size
        grace_cutoff = self._now() - timedelta(hours=self._settings.deletion_grace_hours)

        deleted = 0
        scanned = 0
        protected = 0
        in_grace = 0
        offset = 0

        while True:
            batch = self._store.list_links(offset, batch_size)
            if not batch:
                break

            survivors = 0
            for link in batch:
                scanned += 1
                if link.external_id in current_external_ids:
                    survivors += 1
                    continue
                if link.protected:
                    protected += 1
                    survivors += 1
                    log.info("deletion_skipped_protected", external_id=link.external_id)
                    continue
                if self._within_grace(link, grace_cutoff):
                    in_grace += 1
                    survivors += 1
                    log.warning(
                        "deletion_skipped_recently_synced",
                        external_id=link.external_id,
                        synced_at=link.synced_at.isoformat() if link.synced_at else None,
                    )
                    continue

                if self._delete_link(link):
                    deleted += 1
                else:
                    survivors += 1

            # Deleted rows no longer occupy positions, so only survivors move the cursor.
            offset += survivors
            if len(batch) < batch_size:
                break

        log.info(
            "deletion_reconciliation_complete",
            scanned=scanned,
            deleted=deleted,
            protected=protected,
            in_grace_window=in_grace,
        )
        return deleted

    def _within_grace(self, link: LocalLink, grace_cutoff: datetime) -> bool:
        if link.synced_at is None:
            return False
        return ensure_utc(link.synced_at) > grace_cutoff

    def _delete_link(self, link: LocalLink) -> bool:
        try:
            if not self._store.delete(link.local_id):
                log.error(
                    "local_item_delete_failed",
                    external_id=link.external_id,
                    local_id=link.local_id,
                )
                return False
            self._store.remove_link(link.external_id)
        except Exception as e:
            log.error(
                "local_item_delete_failed",
                external_id=link.external_id,
                local_id=link.local_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        log.info("local_item_deleted", external_id=link.external_id, local_id=link.local_id)
        return True
