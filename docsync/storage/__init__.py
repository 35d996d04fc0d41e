"""Local storage components: content store, link index and progress reporting."""

from docsync.storage.content_store import ContentStore, VectorContentStore
from docsync.storage.link_index import LinkIndex
from docsync.storage.progress import (
    FileProgressTracker,
    NullProgressSink,
    ProgressSink,
    ProgressUpdate,
)

__all__ = [
    "ContentStore",
    "FileProgressTracker",
    "LinkIndex",
    "NullProgressSink",
    "ProgressSink",
    "ProgressUpdate",
    "VectorContentStore",
]
