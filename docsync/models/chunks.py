"""Document chunk model and its mapping to LangChain documents."""

from typing import Any

from langchain_core.documents import Document
from pydantic import BaseModel, Field, field_validator


class DocumentChunk(BaseModel):
    """Represents a chunk of a stored document with metadata."""

    chunk_id: str = Field(
        default=..., description="Unique chunk identifier (format: {local_id}_{chunk_index})"
    )
    local_id: int = Field(default=..., ge=1, description="Owning local item id")
    external_id: str = Field(default=..., description="Source record id")
    content: str = Field(default=..., min_length=1, description="Chunk text content")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Flat metadata (title, url, labels, dates)",
    )
    chunk_index: int = Field(default=..., ge=0, description="Zero-based chunk position")

    @field_validator("chunk_id")
    @classmethod
    def validate_chunk_id_format(cls, v: str) -> str:
        """Validate that chunk_id follows the format {local_id}_{chunk_index}."""
        if "_" not in v:
            raise ValueError("chunk_id must follow format {local_id}_{chunk_index}")
        return v


def to_langchain_document(chunk: DocumentChunk) -> Document:
    """Convert DocumentChunk to LangChain Document.

    Chunk identity fields are copied into the metadata so that documents can
    be traced back to their local item.
    """
    metadata = chunk.metadata.copy()
    metadata["chunk_id"] = chunk.chunk_id
    metadata["local_id"] = chunk.local_id
    metadata["external_id"] = chunk.external_id
    metadata["chunk_index"] = chunk.chunk_index

    return Document(id=chunk.chunk_id, page_content=chunk.content, metadata=metadata)


def to_langchain_documents(chunks: list[DocumentChunk]) -> list[Document]:
    """Convert a list of DocumentChunks to LangChain Documents."""
    return [to_langchain_document(chunk) for chunk in chunks]
