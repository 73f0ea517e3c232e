"""Tests for record store backends and store-call normalization."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from supabase import PostgrestAPIError

from diarysync.config import get_settings
from diarysync.database import InMemoryRecordStore, SupabaseRecordStore, build_store
from diarysync.errors import InvalidRequest, StoreUnavailable, VersionConflict
from diarysync.sync import DiaryBody, RecordStore, StoredDiary, VersionLedger, call_store


def make_diary(diary_id="d1", versions=("v1",), owner="owner-1", **fields) -> StoredDiary:
    return StoredDiary(owner, diary_id, DiaryBody(**fields), VersionLedger(versions))


class TestInMemoryRecordStore:
    """Tests for the in-memory backend."""

    @pytest.mark.asyncio
    async def test_create_then_get(self):
        store = InMemoryRecordStore()
        await store.create(make_diary(title="hello"))

        stored = await store.get("owner-1", "d1")

        assert stored.body.title == "hello"
        assert stored.current_version == "v1"
        assert await store.get("owner-1", "missing") is None

    @pytest.mark.asyncio
    async def test_create_existing_conflicts(self):
        store = InMemoryRecordStore()
        await store.create(make_diary())

        with pytest.raises(VersionConflict):
            await store.create(make_diary())

    @pytest.mark.asyncio
    async def test_update_is_conditional_on_last_version(self):
        store = InMemoryRecordStore()
        await store.create(make_diary(versions=("v1", "v2")))

        with pytest.raises(VersionConflict):
            await store.update(make_diary(versions=("v1", "v2", "v3")), "v1")

        await store.update(make_diary(versions=("v1", "v2", "v3")), "v2")
        assert (await store.get("owner-1", "d1")).ledger.to_list() == ["v1", "v2", "v3"]

    @pytest.mark.asyncio
    async def test_update_missing_conflicts(self):
        with pytest.raises(VersionConflict):
            await InMemoryRecordStore().update(make_diary(), "v1")

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self):
        store = InMemoryRecordStore()
        await store.create(make_diary(labels=["a"]))

        fetched = await store.get("owner-1", "d1")
        fetched.body.labels.append("mutated")
        fetched.ledger.append("v-mutated")

        again = await store.get("owner-1", "d1")
        assert again.body.labels == ["a"]
        assert again.ledger.to_list() == ["v1"]

    @pytest.mark.asyncio
    async def test_list_for_owner_is_partitioned(self):
        store = InMemoryRecordStore()
        await store.create(make_diary("d1"))
        await store.create(make_diary("d2"))
        await store.create(make_diary("d1", owner="owner-2"))

        mine = await store.list_for_owner("owner-1")

        assert sorted(d.diary_id for d in mine) == ["d1", "d2"]
        assert all(d.owner_id == "owner-1" for d in mine)

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryRecordStore(), RecordStore)


def _supabase_client(data):
    """Mock Supabase client whose query chain executes to ``data``."""
    client = MagicMock()
    query = client.table.return_value
    for method in ("select", "eq", "limit", "insert", "update"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data)
    return client, query


class TestSupabaseRecordStore:
    """Tests for the Supabase backend against a mocked client."""

    @pytest.mark.asyncio
    async def test_get_parses_row(self):
        row = make_diary(title="remote", labels=["x"], versions=("v1", "v2")).to_row()
        client, query = _supabase_client([row])
        store = SupabaseRecordStore(client, "diaries")

        stored = await store.get("owner-1", "d1")

        client.table.assert_called_with("diaries")
        query.eq.assert_any_call("owner_id", "owner-1")
        query.eq.assert_any_call("diary_id", "d1")
        assert stored.body.title == "remote"
        assert stored.ledger.to_list() == ["v1", "v2"]

    @pytest.mark.asyncio
    async def test_get_missing(self):
        client, _ = _supabase_client([])
        assert await SupabaseRecordStore(client).get("owner-1", "d1") is None

    @pytest.mark.asyncio
    async def test_update_filters_on_last_version(self):
        client, query = _supabase_client([{"diary_id": "d1"}])
        store = SupabaseRecordStore(client)

        await store.update(make_diary(versions=("v1", "v2")), "v1")

        written = query.update.call_args.args[0]
        assert written["versions"] == ["v1", "v2"]
        assert written["last_version"] == "v2"
        assert "owner_id" not in written
        query.eq.assert_any_call("last_version", "v1")

    @pytest.mark.asyncio
    async def test_update_matching_nothing_conflicts(self):
        client, _ = _supabase_client([])

        with pytest.raises(VersionConflict):
            await SupabaseRecordStore(client).update(make_diary(), "stale")

    @pytest.mark.asyncio
    async def test_duplicate_insert_conflicts(self):
        client, query = _supabase_client([])
        query.execute.side_effect = PostgrestAPIError(
            {"message": "duplicate key value", "code": "23505", "hint": None, "details": None}
        )

        with pytest.raises(VersionConflict):
            await SupabaseRecordStore(client).create(make_diary())

    @pytest.mark.asyncio
    async def test_other_insert_errors_propagate(self):
        client, query = _supabase_client([])
        query.execute.side_effect = PostgrestAPIError(
            {"message": "permission denied", "code": "42501", "hint": None, "details": None}
        )

        with pytest.raises(StoreUnavailable):
            await call_store(SupabaseRecordStore(client).create(make_diary()), timeout=1)

    @pytest.mark.asyncio
    async def test_list_for_owner(self):
        rows = [make_diary("d1").to_row(), make_diary("d2").to_row()]
        client, query = _supabase_client(rows)

        records = await SupabaseRecordStore(client).list_for_owner("owner-1")

        assert [r.diary_id for r in records] == ["d1", "d2"]
        query.eq.assert_called_with("owner_id", "owner-1")


class TestCallStore:
    """Tests for deadline and error normalization around store calls."""

    @pytest.mark.asyncio
    async def test_passes_result_through(self):
        async def ok():
            return 42

        assert await call_store(ok(), timeout=1) == 42

    @pytest.mark.asyncio
    async def test_timeout_becomes_store_unavailable(self):
        with pytest.raises(StoreUnavailable):
            await call_store(asyncio.sleep(1), timeout=0.01)

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_store_unavailable(self):
        async def broken():
            raise OSError("socket closed")

        with pytest.raises(StoreUnavailable) as exc_info:
            await call_store(broken(), timeout=1)
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_version_conflict_and_sync_errors_pass_through(self):
        async def racing():
            raise VersionConflict("o", "d", "v1")

        async def invalid():
            raise InvalidRequest("bad")

        with pytest.raises(VersionConflict):
            await call_store(racing(), timeout=1)
        with pytest.raises(InvalidRequest):
            await call_store(invalid(), timeout=1)


class TestBuildStore:
    """Tests for store selection from settings."""

    def test_memory_by_default(self):
        assert isinstance(build_store(get_settings()), InMemoryRecordStore)

    def test_supabase_requires_credentials(self):
        settings = get_settings().model_copy(update={"store_backend": "supabase", "supabase_url": None})
        with pytest.raises(ValueError):
            build_store(settings)

    def test_supabase_store(self):
        settings = get_settings().model_copy(update={
            "store_backend": "supabase",
            "supabase_url": "https://test.supabase.co",
            "supabase_secret_key": "test-secret-key",
            "diaries_table": "test_diaries",
        })
        with patch("diarysync.database.create_client") as mock_create:
            store = build_store(settings)

        mock_create.assert_called_once_with("https://test.supabase.co", "test-secret-key")
        assert isinstance(store, SupabaseRecordStore)
