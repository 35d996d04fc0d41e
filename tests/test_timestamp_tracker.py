"""Unit tests for TimestampTracker."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from langchain_core.documents import Document
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.vectorstores import InMemoryVectorStore

from docsync.errors import PersistenceError
from docsync.sync.models import SyncState
from docsync.sync.timestamp_tracker import TimestampTracker


@pytest.fixture
def tracker():
    return TimestampTracker(InMemoryVectorStore(embedding=DeterministicFakeEmbedding(size=8)))


def test_missing_state_is_none(tracker):
    assert tracker.load_sync_state("DOCS") is None
    assert tracker.last_sync_time("DOCS") is None


def test_save_and_load_roundtrip(tracker):
    when = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)

    tracker.save_sync_state(SyncState(container_id="DOCS", last_sync_time=when, record_count=12))

    state = tracker.load_sync_state("DOCS")
    assert state.last_sync_time == when
    assert state.record_count == 12


def test_save_replaces_previous_state(tracker):
    first = datetime(2024, 1, 1, tzinfo=timezone.utc)
    second = datetime(2024, 2, 1, tzinfo=timezone.utc)

    tracker.save_sync_state(SyncState(container_id="DOCS", last_sync_time=first))
    tracker.save_sync_state(SyncState(container_id="DOCS", last_sync_time=second))

    assert tracker.last_sync_time("DOCS") == second


def test_containers_are_independent(tracker):
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)

    tracker.save_sync_state(SyncState(container_id="A", last_sync_time=when))

    assert tracker.last_sync_time("B") is None


def test_non_state_document_is_ignored():
    vector_store = MagicMock()
    vector_store.get_by_ids.return_value = [Document(page_content="x", metadata={})]

    assert TimestampTracker(vector_store).load_sync_state("DOCS") is None


def test_store_failures_raise_persistence_error():
    vector_store = MagicMock()
    vector_store.add_documents.side_effect = RuntimeError("offline")
    vector_store.get_by_ids.side_effect = RuntimeError("offline")
    tracker = TimestampTracker(vector_store)

    with pytest.raises(PersistenceError):
        tracker.save_sync_state(SyncState(container_id="DOCS"))
    with pytest.raises(PersistenceError):
        tracker.load_sync_state("DOCS")
