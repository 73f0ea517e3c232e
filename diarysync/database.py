"""Record store backends for diaries (Supabase and in-memory)."""

import asyncio
import copy
from typing import Annotated, Optional

from fastapi import Depends, Request
from supabase import Client, PostgrestAPIError, create_client

from .config import Settings, get_settings
from .errors import VersionConflict
from .logging_config import get_logger
from .sync.ledger import StoredDiary
from .sync.store import RecordStore

logger = get_logger("diarysync.store")

# Postgres unique_violation
_UNIQUE_VIOLATION = "23505"


# =============================================================================
# In-memory store
# =============================================================================

class InMemoryRecordStore:
    """Process-local store for development and tests.

    Records are deep-copied on the way in and out so callers can never mutate
    stored state without going through ``create``/``update``.
    """

    def __init__(self):
        self._records: dict[tuple[str, str], StoredDiary] = {}

    async def get(self, owner_id: str, diary_id: str) -> Optional[StoredDiary]:
        record = self._records.get((owner_id, diary_id))
        return copy.deepcopy(record) if record is not None else None

    async def create(self, record: StoredDiary) -> None:
        key = (record.owner_id, record.diary_id)
        if key in self._records:
            raise VersionConflict(record.owner_id, record.diary_id, None)
        self._records[key] = copy.deepcopy(record)

    async def update(self, record: StoredDiary, expected_version: Optional[str]) -> None:
        key = (record.owner_id, record.diary_id)
        current = self._records.get(key)
        if current is None or current.current_version != expected_version:
            raise VersionConflict(record.owner_id, record.diary_id, expected_version)
        self._records[key] = copy.deepcopy(record)

    async def list_for_owner(self, owner_id: str) -> list[StoredDiary]:
        return [
            copy.deepcopy(record)
            for (owner, _), record in self._records.items()
            if owner == owner_id
        ]

    async def ping(self) -> bool:
        return True


# =============================================================================
# Supabase store
# =============================================================================

class SupabaseRecordStore:
    """Diaries stored one row per (owner_id, diary_id) in a Supabase table.

    The body columns and the ``versions`` array live in the same row, so an
    update writes both or neither. Updates are conditional on
    ``last_version`` matching what the caller read.
    """

    def __init__(self, client: Client, table: str = "diaries"):
        self._client = client
        self._table = table

    def _query(self):
        return self._client.table(self._table)

    async def get(self, owner_id: str, diary_id: str) -> Optional[StoredDiary]:
        query = (
            self._query()
            .select("*")
            .eq("owner_id", owner_id)
            .eq("diary_id", diary_id)
            .limit(1)
        )
        result = await asyncio.to_thread(query.execute)
        return StoredDiary.from_row(result.data[0]) if result.data else None

    async def create(self, record: StoredDiary) -> None:
        query = self._query().insert(record.to_row())
        try:
            await asyncio.to_thread(query.execute)
        except PostgrestAPIError as e:
            if e.code == _UNIQUE_VIOLATION:
                raise VersionConflict(record.owner_id, record.diary_id, None) from e
            raise

    async def update(self, record: StoredDiary, expected_version: Optional[str]) -> None:
        row = record.to_row()
        owner_id = row.pop("owner_id")
        diary_id = row.pop("diary_id")
        query = (
            self._query()
            .update(row)
            .eq("owner_id", owner_id)
            .eq("diary_id", diary_id)
            .eq("last_version", expected_version)
        )
        result = await asyncio.to_thread(query.execute)
        if not result.data:
            raise VersionConflict(owner_id, diary_id, expected_version)

    async def list_for_owner(self, owner_id: str) -> list[StoredDiary]:
        query = self._query().select("*").eq("owner_id", owner_id)
        result = await asyncio.to_thread(query.execute)
        return [StoredDiary.from_row(row) for row in result.data or []]

    async def ping(self) -> bool:
        query = self._query().select("diary_id").limit(1)
        await asyncio.to_thread(query.execute)
        return True


def build_store(settings: Settings) -> RecordStore:
    """Construct the record store selected by settings."""
    if settings.store_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_secret_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY must be set for the supabase store")
        client = create_client(settings.supabase_url, settings.supabase_secret_key)
        logger.info(f"Using Supabase record store (table={settings.diaries_table})")
        return SupabaseRecordStore(client, settings.diaries_table)
    logger.info("Using in-memory record store")
    return InMemoryRecordStore()


def get_store(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> RecordStore:
    """FastAPI dependency for the application's record store."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        store = build_store(settings)
        request.app.state.store = store
    return store


# Type alias for dependency injection
Store = Annotated[RecordStore, Depends(get_store)]
