"""Durable index of local links and stored documents."""

import os
import tempfile
import threading
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from docsync.errors import PersistenceError
from docsync.models.records import LocalLink, StoredDocument

log = structlog.stdlib.get_logger()


class _IndexSnapshot(BaseModel):
    """On-disk layout of the link index."""

    next_local_id: int = Field(default=1, ge=1)
    links: dict[str, LocalLink] = Field(default_factory=dict)
    documents: dict[int, StoredDocument] = Field(default_factory=dict)


class LinkIndex:
    """Keeps LocalLinks keyed by external id and StoredDocuments keyed by local id.

    With a path, every mutation is written through to a JSON file using an
    atomic replace. Without a path the index lives in memory only. A mutation
    builds a new snapshot and only replaces the in-memory one once it is on
    disk, so a failed write leaves both unchanged.
    """

    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path is not None else None
        self._lock = threading.RLock()
        self._state = self._load()

        log.info(
            "link_index_initialized",
            path=str(self._path) if self._path else None,
            link_count=len(self._state.links),
        )

    # Links

    def get_link(self, external_id: str) -> LocalLink | None:
        with self._lock:
            return self._state.links.get(external_id)

    def get_links(self, external_ids: list[str]) -> dict[str, LocalLink]:
        with self._lock:
            return {
                external_id: self._state.links[external_id]
                for external_id in external_ids
                if external_id in self._state.links
            }

    def upsert_link(self, link: LocalLink) -> None:
        with self._lock:
            self._commit(links={**self._state.links, link.external_id: link})

    def remove_link(self, external_id: str) -> bool:
        with self._lock:
            if external_id not in self._state.links:
                return False
            links = dict(self._state.links)
            del links[external_id]
            self._commit(links=links)
            return True

    def list_links(self, offset: int, limit: int) -> list[LocalLink]:
        """Return a page of links ordered by local id."""
        with self._lock:
            ordered = sorted(self._state.links.values(), key=lambda link: link.local_id)
            return ordered[offset : offset + limit]

    def link_count(self) -> int:
        with self._lock:
            return len(self._state.links)

    # Documents

    def allocate_local_id(self) -> int:
        with self._lock:
            local_id = self._state.next_local_id
            self._commit(next_local_id=local_id + 1)
            return local_id

    def get_document(self, local_id: int) -> StoredDocument | None:
        with self._lock:
            return self._state.documents.get(local_id)

    def find_document(self, external_id: str) -> StoredDocument | None:
        with self._lock:
            for document in self._state.documents.values():
                if document.external_id == external_id:
                    return document
            return None

    def put_document(self, document: StoredDocument) -> None:
        with self._lock:
            self._commit(documents={**self._state.documents, document.local_id: document})

    def remove_document(self, local_id: int) -> StoredDocument | None:
        with self._lock:
            document = self._state.documents.get(local_id)
            if document is not None:
                documents = dict(self._state.documents)
                del documents[local_id]
                self._commit(documents=documents)
            return document

    # Persistence

    def _load(self) -> _IndexSnapshot:
        if self._path is None or not self._path.exists():
            return _IndexSnapshot()

        try:
            return _IndexSnapshot.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.error("link_index_load_failed", path=str(self._path), error=str(e))
            raise PersistenceError(f"Failed to load link index from {self._path}: {e}") from e

    def _commit(self, **changes) -> None:
        state = self._state.model_copy(update=changes)
        self._write(state)
        self._state = state

    def _write(self, state: _IndexSnapshot) -> None:
        if self._path is None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".link_index_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(state.model_dump_json())
            os.replace(tmp_path, self._path)
        except OSError as e:
            Path(tmp_path).unlink(missing_ok=True)
            log.error("link_index_write_failed", path=str(self._path), error=str(e))
            raise PersistenceError(f"Failed to write link index to {self._path}: {e}") from e
