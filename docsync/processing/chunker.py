"""Rendering and chunking of record content for the content store."""

import re
from typing import Any, Iterable

import structlog
from bs4 import BeautifulSoup
from langchain_text_splitters import RecursiveCharacterTextSplitter
from structlog.stdlib import BoundLogger

from docsync.models.chunks import DocumentChunk
from docsync.models.records import ContentBlock
from docsync.processing.metadata_enricher import MetadataEnricher

log: BoundLogger = structlog.stdlib.get_logger()


class DocumentChunker:
    """Renders content blocks to plain text and splits it into chunks.

    Uses LangChain RecursiveCharacterTextSplitter so that chunks keep
    paragraph and sentence boundaries where possible.
    """

    def __init__(self, chunk_size: int, chunk_overlap: int) -> None:
        """Initialize the document chunker.

        Args:
            chunk_size: Target chunk size in characters (500-2000)
            chunk_overlap: Overlap between chunks in characters (0-500)
        """
        if not 500 <= chunk_size <= 2000:
            raise ValueError(f"chunk_size must be between 500 and 2000, got {chunk_size}")
        if not 0 <= chunk_overlap <= 500:
            raise ValueError(f"chunk_overlap must be between 0 and 500, got {chunk_overlap}")

        self.chunk_size: int = chunk_size
        self.chunk_overlap: int = chunk_overlap

        self.text_splitter: RecursiveCharacterTextSplitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", ""],
            is_separator_regex=False,
        )

        self.metadata_enricher: MetadataEnricher = MetadataEnricher()

        log.info(
            "document_chunker_initialized",
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )

    @staticmethod
    def clean_html(html_content: str) -> str:
        """Extract plain text from storage-format HTML.

        Script and style elements are dropped. Each non-empty line becomes its
        own paragraph.
        """
        soup = BeautifulSoup(html_content, "html.parser")

        for element in soup(["script", "style"]):
            element.decompose()

        text = soup.get_text(separator="\n")

        lines = [line.strip() for line in text.splitlines()]
        text = "\n\n".join(line for line in lines if line)
        text = re.sub(r" +", " ", text)

        return text.strip()

    def render(self, blocks: Iterable[ContentBlock]) -> str:
        """Render a stream of content blocks to plain text.

        Args:
            blocks: Content blocks in document order

        Returns:
            Plain text, empty when no block carries text
        """
        parts = []
        block_count = 0
        for block in blocks:
            block_count += 1
            text = self.clean_html(block.html)
            if text:
                parts.append(text)

        rendered = "\n\n".join(parts)
        log.debug("content_rendered", block_count=block_count, content_length=len(rendered))
        return rendered

    def chunk_content(
        self,
        local_id: int,
        external_id: str,
        content: str,
        metadata: dict[str, Any],
    ) -> list[DocumentChunk]:
        """Split rendered content into chunks for one local item.

        Args:
            local_id: Local item id owning the chunks
            external_id: Source record id
            content: Rendered plain text
            metadata: Flat document metadata copied into every chunk

        Returns:
            List of DocumentChunk objects, empty for blank content
        """
        if not content.strip():
            log.warning("empty_content_after_rendering", external_id=external_id)
            return []

        text_chunks = [chunk for chunk in self.text_splitter.split_text(content) if chunk.strip()]
        chunks = self.metadata_enricher.enrich_chunks(local_id, external_id, metadata, text_chunks)

        log.info(
            "document_chunked",
            local_id=local_id,
            external_id=external_id,
            num_chunks=len(chunks),
            avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks) if chunks else 0,
        )

        return chunks
