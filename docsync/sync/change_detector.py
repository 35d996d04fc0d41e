"""Change detection for identifying records that need to be synced."""

import hashlib
import json
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from docsync.errors import FetchError
from docsync.ingestion.source import SourceClient
from docsync.models.config import SyncSettings
from docsync.models.records import FilterSpec, LocalLink, SourceRecord, ensure_utc
from docsync.storage.content_store import ContentStore
from docsync.sync.error_classifier import ErrorClassifier
from docsync.sync.models import FetchResult

log = structlog.stdlib.get_logger()


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ChangeDetector:
    """Decides which records changed and fetches them from the source.

    Owns the listing recovery policy: a retryable failure of the filtered
    listing is retried once after a short wait, then one unfiltered listing is
    tried, and if that fails too the pass gets an empty, incomplete result.
    """

    def __init__(
        self,
        source: SourceClient,
        store: ContentStore,
        settings: SyncSettings | None = None,
        classifier: ErrorClassifier | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize change detector.

        Args:
            source: Source collaborator
            store: Content store holding LocalLinks
            settings: Sync tunables
            classifier: Error classifier for listing failures
            sleep: Wait function used before retries
        """
        self._source = source
        self._store = store
        self._settings = settings or SyncSettings()
        self._classifier = classifier or ErrorClassifier()
        self._sleep = sleep

    def compute_hashes(self, record: SourceRecord) -> tuple[str, str]:
        """
        Hash a record's content reference and property set.

        Args:
            record: Source record

        Returns:
            (content_hash, properties_hash) as sha256 hex digests
        """
        canonical_properties = json.dumps(
            {name: prop.model_dump(mode="json") for name, prop in record.properties.items()},
            sort_keys=True,
            separators=(",", ":"),
        )
        return _sha256(record.content_ref), _sha256(canonical_properties)

    def should_skip(self, record: SourceRecord, link: LocalLink | None) -> bool:
        """
        Check whether a record is unchanged since its last successful sync.

        Args:
            record: Current record from the source
            link: Stored link for the record, if any

        Returns:
            True if the record can be skipped
        """
        if link is None or link.last_synced_edit_time is None:
            return False

        tolerance = timedelta(seconds=self._settings.timestamp_tolerance_seconds)
        source_time = ensure_utc(record.last_modified)
        synced_time = ensure_utc(link.last_synced_edit_time)
        if source_time > synced_time + tolerance:
            return False

        if self._settings.compare_hashes:
            content_hash, properties_hash = self.compute_hashes(record)
            if content_hash != link.content_hash or properties_hash != link.properties_hash:
                log.debug("record_hash_changed", external_id=record.id)
                return False

        return True

    def build_filter(self, watermark: datetime | None) -> FilterSpec | None:
        if watermark is None:
            return None
        return FilterSpec(modified_after=watermark)

    def update_link(self, record: SourceRecord, local_id: int) -> LocalLink:
        """
        Record a successful sync of a record.

        Must be called only after the content write succeeded.

        Args:
            record: Record that was written
            local_id: Local item id the record was written to

        Returns:
            The persisted LocalLink
        """
        existing = self._store.find_by_external_id(record.id)
        content_hash, properties_hash = self.compute_hashes(record)

        link = LocalLink(
            external_id=record.id,
            local_id=local_id,
            last_synced_edit_time=record.last_modified,
            content_hash=content_hash,
            properties_hash=properties_hash,
            protected=existing.protected if existing else False,
            synced_at=datetime.now(timezone.utc),
        )
        self._store.save_link(link)
        return link

    def refilter(self, records: list[SourceRecord]) -> list[SourceRecord]:
        """
        Drop records whose links say they are unchanged.

        Args:
            records: Candidate records

        Returns:
            Records that still need syncing, in input order
        """
        links = self._store.find_many([record.id for record in records])
        changed = [
            record for record in records if not self.should_skip(record, links.get(record.id))
        ]

        log.info(
            "records_refiltered",
            before=len(records),
            after=len(changed),
        )
        return changed

    def fetch_changes(self, container_id: str, watermark: datetime | None) -> FetchResult:
        """
        Fetch records modified since the watermark.

        Never raises for source failures; an exhausted recovery yields an
        empty result with ``complete`` False.

        Args:
            container_id: Source container
            watermark: End of the last completed pass, None for a full listing

        Returns:
            FetchResult describing the records and how they were obtained
        """
        filter_spec = self.build_filter(watermark)
        log.info(
            "fetching_changes",
            container_id=container_id,
            watermark=watermark.isoformat() if watermark else None,
        )

        try:
            records = self._list_with_retry(container_id, filter_spec)
            return FetchResult(records=records, filtered=filter_spec is not None)
        except Exception as e:
            first_error = e

        if filter_spec is None:
            log.error("full_fetch_failed", container_id=container_id, error=str(first_error))
            return FetchResult(complete=False, error=str(first_error))

        log.warning(
            "filtered_fetch_failed_falling_back",
            container_id=container_id,
            error=str(first_error),
        )
        try:
            records = self._source.list_records(container_id, None)
        except Exception as e:
            log.error(
                "unfiltered_fallback_failed",
                container_id=container_id,
                error=str(e),
                category=self._classifier.classify(e).value,
            )
            return FetchResult(complete=False, fell_back=True, error=str(e))

        log.info("unfiltered_fallback_succeeded", container_id=container_id, count=len(records))
        return FetchResult(records=records, filtered=False, fell_back=True)

    def fetch_all(self, container_id: str) -> list[SourceRecord]:
        """
        Fetch the full, unfiltered listing of a container.

        Args:
            container_id: Source container

        Returns:
            Every record of the container

        Raises:
            FetchError: If the listing fails after the recovery policy
        """
        try:
            return self._list_with_retry(container_id, None)
        except Exception as e:
            category = self._classifier.classify(e)
            raise FetchError(f"Full listing of {container_id} failed: {e}", category) from e

    def _list_with_retry(
        self, container_id: str, filter_spec: FilterSpec | None
    ) -> list[SourceRecord]:
        try:
            return self._source.list_records(container_id, filter_spec)
        except Exception as e:
            category = self._classifier.classify(e)
            log.warning(
                "listing_failed",
                container_id=container_id,
                filtered=filter_spec is not None,
                category=category.value,
                error=str(e),
            )
            if not self._classifier.should_retry(category):
                raise

        self._sleep(self._settings.retry_backoff_seconds)
        log.info("retrying_listing", container_id=container_id, filtered=filter_spec is not None)
        return self._source.list_records(container_id, filter_spec)
