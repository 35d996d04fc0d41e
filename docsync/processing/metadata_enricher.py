"""Metadata enrichment for stored documents and their chunks."""

from typing import Any

import structlog

from docsync.models.chunks import DocumentChunk
from docsync.models.records import (
    CheckboxProperty,
    DateProperty,
    MultiSelectProperty,
    NumberProperty,
    PropertyValue,
    SelectProperty,
    SourceRecord,
    TextProperty,
    UrlProperty,
)

log = structlog.stdlib.get_logger()

MetadataValue = str | int | float | bool


def default_title(record_id: str) -> str:
    """Title used when a record has no title text."""
    return f"Untitled Page {record_id[-8:]}"


def flatten_property(prop: PropertyValue) -> MetadataValue | None:
    """Convert a typed property to a scalar metadata value.

    Vector stores only accept scalar metadata, so multi-selects are joined
    and dates/URLs become strings. Empty values map to None.
    """
    if isinstance(prop, TextProperty):
        return prop.value or None
    if isinstance(prop, NumberProperty):
        return prop.value
    if isinstance(prop, SelectProperty):
        return prop.value
    if isinstance(prop, MultiSelectProperty):
        return ", ".join(prop.value) if prop.value else None
    if isinstance(prop, DateProperty):
        return prop.value.isoformat() if prop.value else None
    if isinstance(prop, CheckboxProperty):
        return prop.value
    if isinstance(prop, UrlProperty):
        return str(prop.value) if prop.value else None
    return None


class MetadataEnricher:
    """Enriches stored documents and chunks with metadata from source records.

    This class is responsible for:
    1. Flattening a record's typed properties into store metadata
    2. Generating unique chunk_ids in format {local_id}_{chunk_index}
    """

    def build_metadata(self, record: SourceRecord) -> dict[str, MetadataValue]:
        """Build the flat metadata for a record.

        Args:
            record: Source record

        Returns:
            Scalar metadata keyed by property name, plus identity fields
        """
        metadata: dict[str, MetadataValue] = {}
        for name, prop in record.properties.items():
            value = flatten_property(prop)
            if value is not None:
                metadata[name] = value

        metadata["title"] = record.title.strip() or default_title(record.id)
        metadata["external_id"] = record.id
        metadata["container_id"] = record.container_id
        metadata["last_modified"] = record.last_modified.isoformat()
        if record.parent_id:
            metadata["parent_id"] = record.parent_id

        return metadata

    def enrich_chunk(
        self,
        local_id: int,
        external_id: str,
        metadata: dict[str, Any],
        chunk_text: str,
        chunk_index: int,
    ) -> DocumentChunk:
        """Create a DocumentChunk carrying the document's metadata."""
        return DocumentChunk(
            chunk_id=f"{local_id}_{chunk_index}",
            local_id=local_id,
            external_id=external_id,
            content=chunk_text,
            metadata=dict(metadata),
            chunk_index=chunk_index,
        )

    def enrich_chunks(
        self,
        local_id: int,
        external_id: str,
        metadata: dict[str, Any],
        chunk_texts: list[str],
    ) -> list[DocumentChunk]:
        """Enrich multiple text chunks with the metadata of their document.

        Args:
            local_id: Local item id owning the chunks
            external_id: Source record id
            metadata: Flat document metadata
            chunk_texts: List of text chunks to enrich

        Returns:
            List of DocumentChunk objects with enriched metadata
        """
        chunks = []
        for idx, chunk_text in enumerate(chunk_texts):
            chunk = self.enrich_chunk(local_id, external_id, metadata, chunk_text, idx)
            chunks.append(chunk)

        log.debug(
            "chunks_enriched",
            local_id=local_id,
            external_id=external_id,
            num_chunks=len(chunks),
        )

        return chunks
