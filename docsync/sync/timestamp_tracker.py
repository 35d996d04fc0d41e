"""Watermark persistence for incremental synchronization."""

from datetime import datetime

import structlog
from langchain_core.documents import Document
from langchain_core.vectorstores import VectorStore

from docsync.errors import PersistenceError
from docsync.models.records import parse_timestamp
from docsync.sync.models import SyncState

log = structlog.stdlib.get_logger()


class TimestampTracker:
    """Stores the per-container watermark as a marker document in the vector store.

    Keeping the watermark next to the content means a wiped store also wipes
    the watermark, which forces the next pass to be a full one.
    """

    SYNC_STATE_ID: str = "__sync_state__"

    def __init__(self, vector_store: VectorStore):
        """
        Initialize timestamp tracker.

        Args:
            vector_store: LangChain VectorStore instance for persistence
        """
        self._vector_store: VectorStore = vector_store
        log.info("timestamp_tracker_initialized")

    def _document_id(self, container_id: str) -> str:
        return f"{self.SYNC_STATE_ID}_{container_id}"

    def save_sync_state(self, sync_state: SyncState) -> None:
        """
        Save the watermark for a container, replacing any previous one.

        Args:
            sync_state: Sync state to save

        Raises:
            PersistenceError: If the vector store rejects the write
        """
        doc_id = self._document_id(sync_state.container_id)
        last_sync_time = (
            sync_state.last_sync_time.isoformat() if sync_state.last_sync_time else ""
        )

        log.info(
            "saving_sync_state",
            container_id=sync_state.container_id,
            last_sync_time=last_sync_time or None,
            record_count=sync_state.record_count,
        )

        sync_doc = Document(
            id=doc_id,
            page_content=f"Sync state for container {sync_state.container_id}",
            metadata={
                "is_sync_state": True,
                "container_id": sync_state.container_id,
                "last_sync_time": last_sync_time,
                "record_count": sync_state.record_count,
            },
        )

        try:
            self._vector_store.add_documents([sync_doc], ids=[doc_id])
        except Exception as e:
            log.error(
                "failed_to_save_sync_state",
                container_id=sync_state.container_id,
                error=str(e),
            )
            raise PersistenceError(f"Failed to save sync state: {e}") from e

        log.info("sync_state_saved", container_id=sync_state.container_id)

    def load_sync_state(self, container_id: str) -> SyncState | None:
        """
        Load the watermark for a container.

        Args:
            container_id: Source container (space key)

        Returns:
            SyncState if found, None otherwise

        Raises:
            PersistenceError: If the vector store cannot be read
        """
        try:
            results = self._vector_store.get_by_ids([self._document_id(container_id)])
        except Exception as e:
            log.error("failed_to_load_sync_state", container_id=container_id, error=str(e))
            raise PersistenceError(f"Failed to load sync state: {e}") from e

        if not results:
            log.info("no_sync_state_found", container_id=container_id)
            return None

        metadata = results[0].metadata
        if not metadata.get("is_sync_state"):
            log.warning("invalid_sync_state_metadata", container_id=container_id)
            return None

        last_sync_str = metadata.get("last_sync_time") or None
        sync_state = SyncState(
            container_id=container_id,
            last_sync_time=parse_timestamp(last_sync_str) if last_sync_str else None,
            record_count=metadata.get("record_count", 0),
        )

        log.info(
            "sync_state_loaded",
            container_id=container_id,
            last_sync_time=sync_state.last_sync_time,
        )
        return sync_state

    def last_sync_time(self, container_id: str) -> datetime | None:
        """Watermark timestamp for a container, None when never synced."""
        sync_state = self.load_sync_state(container_id)
        return sync_state.last_sync_time if sync_state else None
