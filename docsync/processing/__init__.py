"""Content processing module for rendering, chunking and metadata enrichment."""

from docsync.processing.chunker import DocumentChunker
from docsync.processing.metadata_enricher import MetadataEnricher, default_title

__all__ = ["DocumentChunker", "MetadataEnricher", "default_title"]
