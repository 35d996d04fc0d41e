"""Source-side components for reading records from Confluence."""

from docsync.ingestion.confluence_client import ConfluenceClient
from docsync.ingestion.source import SourceClient

__all__ = ["ConfluenceClient", "SourceClient"]
