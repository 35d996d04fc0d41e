"""Property-based tests for change detection and listing recovery."""

from datetime import timedelta

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from docsync.errors import ErrorCategory, FetchError
from docsync.models.config import SyncSettings
from docsync.models.records import LocalLink, TextProperty
from docsync.sync.change_detector import ChangeDetector
from docsync_fakes import CONTAINER_ID, FakeSource, make_content_store, make_record, utc

log = structlog.stdlib.get_logger()

WATERMARK = utc(2024, 1, 1)


def make_detector(source: FakeSource, settings_: SyncSettings | None = None):
    store, _, link_index = make_content_store()
    sleeps: list[float] = []
    detector = ChangeDetector(source, store, settings_, sleep=sleeps.append)
    return detector, link_index, sleeps


def synced_link(detector: ChangeDetector, record, **overrides) -> LocalLink:
    content_hash, properties_hash = detector.compute_hashes(record)
    fields = dict(
        external_id=record.id,
        local_id=1,
        last_synced_edit_time=record.last_modified,
        content_hash=content_hash,
        properties_hash=properties_hash,
    )
    fields.update(overrides)
    return LocalLink(**fields)


class TestShouldSkip:
    def test_no_link_is_never_skipped(self):
        detector, _, _ = make_detector(FakeSource())

        assert not detector.should_skip(make_record("1", WATERMARK), None)

    @given(offset_minutes=st.integers(min_value=1, max_value=60 * 24 * 365))
    @settings(max_examples=50, deadline=None)
    def test_newer_edit_is_not_skipped(self, offset_minutes: int):
        detector, _, _ = make_detector(FakeSource())
        record = make_record("1", WATERMARK)
        link = synced_link(
            detector, record, last_synced_edit_time=WATERMARK - timedelta(minutes=offset_minutes)
        )

        assert not detector.should_skip(record, link), "Newer edits must be synced"

    def test_unchanged_record_is_skipped(self):
        detector, _, _ = make_detector(FakeSource())
        record = make_record("1", WATERMARK)

        assert detector.should_skip(record, synced_link(detector, record))

    def test_changed_properties_are_not_skipped(self):
        detector, _, _ = make_detector(FakeSource())
        record = make_record("1", WATERMARK)
        link = synced_link(detector, record)
        record.properties["title"] = TextProperty(value="Renamed")

        assert not detector.should_skip(record, link)

    def test_hash_check_can_be_disabled(self):
        detector, _, _ = make_detector(FakeSource(), SyncSettings(compare_hashes=False))
        record = make_record("1", WATERMARK)

        assert detector.should_skip(record, synced_link(detector, record, content_hash="stale"))

    def test_tolerance_absorbs_clock_skew(self):
        detector, _, _ = make_detector(
            FakeSource(), SyncSettings(timestamp_tolerance_seconds=5, compare_hashes=False)
        )
        record = make_record("1", WATERMARK + timedelta(seconds=3))
        link = synced_link(detector, record, last_synced_edit_time=WATERMARK)

        assert detector.should_skip(record, link)


class TestUpdateLink:
    def test_update_link_preserves_protection(self):
        detector, link_index, _ = make_detector(FakeSource())
        record = make_record("1", WATERMARK)
        link_index.upsert_link(LocalLink(external_id="1", local_id=7, protected=True))

        link = detector.update_link(record, 7)

        assert link.protected, "Protection flag must survive a sync"
        assert link.last_synced_edit_time == record.last_modified
        assert link.synced_at is not None
        assert link_index.get_link("1") == link


class TestFetchChanges:
    def test_watermark_filter_returns_only_changed_records(self):
        """Two of three records changed after 2024-01-01; only they are fetched."""
        source = FakeSource(
            [
                make_record("old", WATERMARK - timedelta(days=3)),
                make_record("new-1", WATERMARK + timedelta(hours=1)),
                make_record("new-2", WATERMARK + timedelta(days=2)),
            ]
        )
        detector, _, _ = make_detector(source)

        result = detector.fetch_changes(CONTAINER_ID, WATERMARK)

        assert [record.id for record in result.records] == ["new-1", "new-2"]
        assert result.filtered and result.complete and not result.fell_back
        assert source.list_calls[0].modified_after == WATERMARK

    def test_no_watermark_is_a_full_listing(self):
        source = FakeSource([make_record("1", WATERMARK)])
        detector, _, _ = make_detector(source)

        result = detector.fetch_changes(CONTAINER_ID, None)

        assert result.is_full_listing
        assert source.list_calls == [None]

    def test_retryable_failure_is_retried_once(self):
        source = FakeSource([make_record("1", WATERMARK + timedelta(days=1))])
        source.list_failures = [Exception("503 Service Unavailable")]
        detector, _, sleeps = make_detector(source, SyncSettings(retry_backoff_seconds=2.5))

        result = detector.fetch_changes(CONTAINER_ID, WATERMARK)

        assert result.complete and result.filtered
        assert len(source.list_calls) == 2
        assert sleeps == [2.5]

    @given(
        message=st.sampled_from(
            ["429 Too Many Requests", "502 Bad Gateway", "Connection reset by peer"]
        )
    )
    @settings(max_examples=10, deadline=None)
    def test_failed_retry_falls_back_exactly_once(self, message: str):
        """A retryable filtered failure that fails again triggers one unfiltered fetch."""
        source = FakeSource([make_record("1", WATERMARK - timedelta(days=1))])
        source.list_failures = [Exception(message), Exception(message)]
        detector, _, _ = make_detector(source)

        result = detector.fetch_changes(CONTAINER_ID, WATERMARK)

        unfiltered_calls = [call for call in source.list_calls if call is None]
        assert len(unfiltered_calls) == 1, f"Expected one fallback, got {source.list_calls}"
        assert result.fell_back and result.complete and not result.filtered
        assert [record.id for record in result.records] == ["1"]

    def test_non_retryable_failure_falls_back_without_retry(self):
        source = FakeSource([make_record("1", WATERMARK)])
        source.list_failures = [Exception("CQL could not parse lastmodified")]
        detector, _, sleeps = make_detector(source)

        result = detector.fetch_changes(CONTAINER_ID, WATERMARK)

        assert source.list_calls[0] is not None and source.list_calls[1] is None
        assert len(source.list_calls) == 2
        assert sleeps == []
        assert result.fell_back and result.complete

    def test_exhausted_recovery_is_incomplete(self):
        source = FakeSource()
        source.list_failures = [Exception("HTTP 503"), Exception("HTTP 503"), Exception("HTTP 503")]
        detector, _, _ = make_detector(source)

        result = detector.fetch_changes(CONTAINER_ID, WATERMARK)

        assert not result.complete
        assert result.records == []
        assert len([call for call in source.list_calls if call is None]) == 1

    def test_full_listing_failure_has_no_fallback(self):
        source = FakeSource()
        source.list_failures = [Exception("401 Unauthorized")]
        detector, _, _ = make_detector(source)

        result = detector.fetch_changes(CONTAINER_ID, None)

        assert not result.complete
        assert source.list_calls == [None]


class TestFetchAll:
    def test_fetch_all_raises_categorized_error(self):
        source = FakeSource()
        source.list_failures = [Exception("401 Unauthorized")]
        detector, _, _ = make_detector(source)

        with pytest.raises(FetchError) as excinfo:
            detector.fetch_all(CONTAINER_ID)

        assert excinfo.value.category is ErrorCategory.AUTH_ERROR


class TestRefilter:
    def test_refilter_drops_unchanged_records_in_order(self):
        records = [make_record(str(i), WATERMARK + timedelta(minutes=i)) for i in range(5)]
        detector, link_index, _ = make_detector(FakeSource(records))
        for record in records[1::2]:
            link_index.upsert_link(synced_link(detector, record))

        changed = detector.refilter(records)

        assert [record.id for record in changed] == ["0", "2", "4"]
