"""Source collaborator interface."""

from abc import ABC, abstractmethod
from typing import Iterator

from docsync.models.records import ContentBlock, FilterSpec, SourceRecord


class SourceClient(ABC):
    """Remote hierarchical-document source, read-only to the sync core.

    Implementations raise their native exceptions; the sync core classifies
    them. Records are validated at this boundary.
    """

    @abstractmethod
    def list_records(
        self, container_id: str, filter_spec: FilterSpec | None = None
    ) -> list[SourceRecord]:
        """List the records of a container, optionally filtered server side."""

    @abstractmethod
    def get_record(self, record_id: str) -> SourceRecord:
        """Fetch a single record."""

    @abstractmethod
    def get_content(self, record_id: str) -> Iterator[ContentBlock]:
        """Stream the content blocks of a record in document order."""
