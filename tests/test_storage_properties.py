"""Property-based tests for the link index, content store and progress tracker."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from docsync.errors import PersistenceError
from docsync.models.records import LocalLink
from docsync.storage.content_store import VectorContentStore
from docsync.storage.link_index import LinkIndex
from docsync.storage.progress import FileProgressTracker, ProgressUpdate
from docsync_fakes import make_chunker, make_content_store

LONG_TEXT = " ".join(f"Sentence number {i} about the sync system." for i in range(80))


class TestLinkIndex:
    def test_links_survive_reload(self, tmp_path):
        path = tmp_path / "state" / "links.json"
        index = LinkIndex(path)
        local_id = index.allocate_local_id()
        index.upsert_link(
            LocalLink(
                external_id="abc",
                local_id=local_id,
                last_synced_edit_time=datetime(2024, 1, 2, tzinfo=timezone.utc),
                protected=True,
            )
        )

        reloaded = LinkIndex(path)

        assert reloaded.get_link("abc") == index.get_link("abc")
        assert reloaded.allocate_local_id() == local_id + 1, "Id counter must persist"

    def test_corrupt_file_raises_persistence_error(self, tmp_path):
        path = tmp_path / "links.json"
        path.write_text("{not json")

        with pytest.raises(PersistenceError):
            LinkIndex(path)

    @given(count=st.integers(min_value=0, max_value=40), page=st.integers(min_value=1, max_value=7))
    @settings(max_examples=30, deadline=None)
    def test_pagination_covers_all_links_in_local_id_order(self, count: int, page: int):
        index = LinkIndex()
        for i in reversed(range(count)):
            index.upsert_link(LocalLink(external_id=f"e{i}", local_id=i + 1))

        seen = []
        offset = 0
        while batch := index.list_links(offset, page):
            seen.extend(link.local_id for link in batch)
            offset += len(batch)

        assert seen == list(range(1, count + 1))

    def test_remove_link_reports_presence(self):
        index = LinkIndex()
        index.upsert_link(LocalLink(external_id="a", local_id=1))

        assert index.remove_link("a") is True
        assert index.remove_link("a") is False

    def test_failed_write_leaves_memory_matching_disk(self, tmp_path):
        path = tmp_path / "links.json"
        index = LinkIndex(path)
        index.upsert_link(LocalLink(external_id="a", local_id=index.allocate_local_id()))

        with patch("docsync.storage.link_index.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError):
                index.upsert_link(LocalLink(external_id="b", local_id=2))
            with pytest.raises(PersistenceError):
                index.allocate_local_id()
            with pytest.raises(PersistenceError):
                index.remove_link("a")

        assert index.get_link("b") is None
        assert index.get_link("a") is not None
        assert index.allocate_local_id() == 2, "A failed allocation must not consume an id"
        reloaded = LinkIndex(path)
        assert reloaded.get_link("a") is not None
        assert reloaded.get_link("b") is None


class TestVectorContentStore:
    def test_create_writes_chunks_and_document(self):
        store, vector_store, link_index = make_content_store()

        local_id = store.create_or_update({"title": "Long"}, LONG_TEXT, "ext-1")

        document = link_index.get_document(local_id)
        assert document is not None and document.external_id == "ext-1"
        assert len(document.chunk_ids) > 1, "Long content should produce several chunks"
        stored = vector_store.get_by_ids(document.chunk_ids)
        assert len(stored) == len(document.chunk_ids)
        assert all(doc.metadata["external_id"] == "ext-1" for doc in stored)

    def test_rewrite_replaces_old_chunks(self):
        store, vector_store, link_index = make_content_store()
        local_id = store.create_or_update({"title": "Long"}, LONG_TEXT, "ext-1")
        old_chunk_ids = link_index.get_document(local_id).chunk_ids

        again = store.create_or_update({"title": "Short"}, "Now it is short.", "ext-1")

        assert again == local_id, "Retrying a write must reuse the local id"
        new_chunk_ids = link_index.get_document(local_id).chunk_ids
        assert new_chunk_ids == [f"{local_id}_0"]
        stale = set(old_chunk_ids) - set(new_chunk_ids)
        assert vector_store.get_by_ids(sorted(stale)) == []

    def test_delete_removes_chunks(self):
        store, vector_store, link_index = make_content_store()
        local_id = store.create_or_update({"title": "T"}, "Some content.", "ext-1")
        chunk_ids = link_index.get_document(local_id).chunk_ids

        assert store.delete(local_id) is True
        assert vector_store.get_by_ids(chunk_ids) == []
        assert link_index.get_document(local_id) is None

    def test_vector_store_failure_raises_persistence_error(self):
        vector_store = MagicMock()
        vector_store.add_documents.side_effect = RuntimeError("store offline")
        store = VectorContentStore(vector_store, make_chunker(), LinkIndex())

        with pytest.raises(PersistenceError):
            store.create_or_update({"title": "T"}, "Some content.", "ext-1")

    def test_failed_rewrite_keeps_previous_chunks(self):
        store, vector_store, link_index = make_content_store()
        local_id = store.create_or_update({"title": "Long"}, LONG_TEXT, "ext-1")
        old_chunk_ids = link_index.get_document(local_id).chunk_ids

        with patch.object(vector_store, "add_documents", side_effect=RuntimeError("store offline")):
            with pytest.raises(PersistenceError):
                store.create_or_update({"title": "Short"}, "Now it is short.", "ext-1")

        assert link_index.get_document(local_id).chunk_ids == old_chunk_ids
        assert len(vector_store.get_by_ids(old_chunk_ids)) == len(old_chunk_ids)

    def test_stale_chunks_stay_tracked_when_their_delete_fails(self):
        store, vector_store, link_index = make_content_store()
        local_id = store.create_or_update({"title": "Long"}, LONG_TEXT, "ext-1")
        old_chunk_ids = link_index.get_document(local_id).chunk_ids

        with patch.object(vector_store, "delete", side_effect=RuntimeError("store offline")):
            store.create_or_update({"title": "Short"}, "Now it is short.", "ext-1")

        tracked = link_index.get_document(local_id).chunk_ids
        assert tracked[0] == f"{local_id}_0"
        assert set(tracked) == set(old_chunk_ids)

        assert store.delete(local_id) is True
        assert vector_store.get_by_ids(old_chunk_ids) == []

    def test_delete_failure_returns_false(self):
        vector_store = MagicMock()
        link_index = LinkIndex()
        store = VectorContentStore(vector_store, make_chunker(), link_index)
        local_id = store.create_or_update({"title": "T"}, "Some content.", "ext-1")
        vector_store.delete.side_effect = RuntimeError("store offline")

        assert store.delete(local_id) is False
        assert link_index.get_document(local_id) is not None


class TestFileProgressTracker:
    def test_update_and_read(self, tmp_path):
        tracker = FileProgressTracker(tmp_path / "progress")

        ok = tracker.update("task-1", ProgressUpdate(total=4, processed=1, message="going"))

        assert ok
        progress = tracker.read("task-1")
        assert progress.processed == 1
        assert progress.percentage == 25.0

    def test_unwritable_directory_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        assert FileProgressTracker(blocker / "progress").update("t", ProgressUpdate()) is False

    @given(total=st.integers(min_value=0, max_value=1000), data=st.data())
    @settings(max_examples=50, deadline=None)
    def test_percentage_is_bounded(self, total: int, data):
        processed = data.draw(st.integers(min_value=0, max_value=total))

        percentage = ProgressUpdate(total=total, processed=processed).percentage

        assert 0.0 <= percentage <= 100.0
