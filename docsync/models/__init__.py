"""Data models for the sync system."""

from docsync.models.chunks import DocumentChunk, to_langchain_document, to_langchain_documents
from docsync.models.config import (
    AppConfig,
    ConfluenceConfig,
    LoggingConfig,
    ProcessingConfig,
    StateConfig,
    SyncSettings,
    VectorStoreConfig,
    WebhookConfig,
)
from docsync.models.records import (
    CheckboxProperty,
    ContentBlock,
    DateProperty,
    FilterSpec,
    LocalLink,
    MultiSelectProperty,
    NumberProperty,
    PropertyValue,
    SelectProperty,
    SourceRecord,
    StoredDocument,
    TextProperty,
    UrlProperty,
    ensure_utc,
    parse_timestamp,
)

__all__ = [
    "DocumentChunk",
    "to_langchain_document",
    "to_langchain_documents",
    "AppConfig",
    "ConfluenceConfig",
    "LoggingConfig",
    "ProcessingConfig",
    "StateConfig",
    "SyncSettings",
    "VectorStoreConfig",
    "WebhookConfig",
    "CheckboxProperty",
    "ContentBlock",
    "DateProperty",
    "FilterSpec",
    "LocalLink",
    "MultiSelectProperty",
    "NumberProperty",
    "PropertyValue",
    "SelectProperty",
    "SourceRecord",
    "StoredDocument",
    "TextProperty",
    "UrlProperty",
    "ensure_utc",
    "parse_timestamp",
]
