"""Content store: where rendered records are written and links are kept."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import structlog
from langchain_core.vectorstores import VectorStore

from docsync.errors import PersistenceError
from docsync.models.chunks import to_langchain_documents
from docsync.models.records import LocalLink, StoredDocument
from docsync.processing.chunker import DocumentChunker
from docsync.storage.link_index import LinkIndex

log = structlog.stdlib.get_logger()


class ContentStore(ABC):
    """Local store the sync core writes into."""

    @abstractmethod
    def find_by_external_id(self, external_id: str) -> LocalLink | None:
        """Return the link for a source record, or None."""

    @abstractmethod
    def find_many(self, external_ids: list[str]) -> dict[str, LocalLink]:
        """Batched link lookup keyed by external id."""

    @abstractmethod
    def create_or_update(self, metadata: dict[str, Any], content: str, external_id: str) -> int:
        """Write a local item for a record and return its local id.

        Raises:
            PersistenceError: If the write fails
        """

    @abstractmethod
    def delete(self, local_id: int) -> bool:
        """Delete a local item. Returns False when the delete failed."""

    @abstractmethod
    def list_links(self, offset: int, limit: int) -> list[LocalLink]:
        """Page through links ordered by local id."""

    @abstractmethod
    def save_link(self, link: LocalLink) -> None:
        """Insert or replace the link for ``link.external_id``."""

    @abstractmethod
    def remove_link(self, external_id: str) -> None:
        """Drop the link for a record, if any."""


class VectorContentStore(ContentStore):
    """ContentStore backed by a LangChain VectorStore and a LinkIndex.

    Each local item is stored as a set of chunk documents with ids
    ``{local_id}_{chunk_index}``. Rewriting an item replaces all of its chunks.
    """

    def __init__(self, vector_store: VectorStore, chunker: DocumentChunker, link_index: LinkIndex):
        """
        Initialize the content store.

        Args:
            vector_store: LangChain VectorStore instance holding chunk documents
            chunker: Chunker used to split rendered content
            link_index: Durable link and document index
        """
        self._vector_store = vector_store
        self._chunker = chunker
        self._link_index = link_index
        log.info("vector_content_store_initialized")

    def find_by_external_id(self, external_id: str) -> LocalLink | None:
        return self._link_index.get_link(external_id)

    def find_many(self, external_ids: list[str]) -> dict[str, LocalLink]:
        return self._link_index.get_links(external_ids)

    def create_or_update(self, metadata: dict[str, Any], content: str, external_id: str) -> int:
        """
        Write the rendered content of a record.

        The local id is reused when the record already has a link or a stored
        document, so retries after a partial write never create duplicates.

        Args:
            metadata: Flat document metadata
            content: Rendered plain text
            external_id: Source record id

        Returns:
            Local id of the written item

        Raises:
            PersistenceError: If the vector store rejects the write
        """
        link = self._link_index.get_link(external_id)
        existing = (
            self._link_index.get_document(link.local_id)
            if link is not None
            else self._link_index.find_document(external_id)
        )

        if link is not None:
            local_id = link.local_id
        elif existing is not None:
            local_id = existing.local_id
        else:
            local_id = self._link_index.allocate_local_id()

        chunks = self._chunker.chunk_content(local_id, external_id, content, metadata)
        chunk_ids = [chunk.chunk_id for chunk in chunks]

        try:
            if chunks:
                self._vector_store.add_documents(to_langchain_documents(chunks), ids=chunk_ids)
        except Exception as e:
            log.error(
                "content_write_failed",
                external_id=external_id,
                local_id=local_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceError(f"Failed to write content for {external_id}: {e}") from e

        # Old chunks stay in place until the new ones are stored.
        new_ids = set(chunk_ids)
        stale_ids = [] if existing is None else [i for i in existing.chunk_ids if i not in new_ids]
        if stale_ids and not self._delete_chunks(stale_ids, local_id):
            chunk_ids = chunk_ids + stale_ids

        self._link_index.put_document(
            StoredDocument(
                local_id=local_id,
                external_id=external_id,
                title=str(metadata.get("title", "")),
                chunk_ids=chunk_ids,
                updated_at=datetime.now(timezone.utc),
                metadata=metadata,
            )
        )

        log.info(
            "content_written",
            external_id=external_id,
            local_id=local_id,
            chunk_count=len(chunk_ids),
            replaced=existing is not None,
        )
        return local_id

    def delete(self, local_id: int) -> bool:
        document = self._link_index.get_document(local_id)
        if document is None:
            log.warning("delete_missing_document", local_id=local_id)
            return True

        try:
            if document.chunk_ids:
                self._vector_store.delete(ids=document.chunk_ids)
        except Exception as e:
            log.error(
                "content_delete_failed",
                local_id=local_id,
                external_id=document.external_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        self._link_index.remove_document(local_id)
        log.info("content_deleted", local_id=local_id, external_id=document.external_id)
        return True

    def _delete_chunks(self, chunk_ids: list[str], local_id: int) -> bool:
        try:
            self._vector_store.delete(ids=chunk_ids)
        except Exception as e:
            # Still tracked on the document, so the next rewrite or delete retries them.
            log.warning(
                "stale_chunk_delete_failed",
                local_id=local_id,
                chunk_count=len(chunk_ids),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True

    def list_links(self, offset: int, limit: int) -> list[LocalLink]:
        return self._link_index.list_links(offset, limit)

    def save_link(self, link: LocalLink) -> None:
        self._link_index.upsert_link(link)

    def remove_link(self, external_id: str) -> None:
        self._link_index.remove_link(external_id)

    def get_document(self, local_id: int) -> StoredDocument | None:
        return self._link_index.get_document(local_id)
