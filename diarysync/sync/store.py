"""The record store capability the sync core depends on."""

import asyncio
from typing import Awaitable, Optional, Protocol, TypeVar, runtime_checkable

from ..errors import StoreUnavailable, SyncError, VersionConflict
from ..logging_config import get_logger
from .ledger import StoredDiary

logger = get_logger("diarysync.store")

T = TypeVar("T")


@runtime_checkable
class RecordStore(Protocol):
    """Persistence capability for diaries, keyed by (owner_id, diary_id).

    Each call either completes fully or raises. ``create`` and ``update`` raise
    ``VersionConflict`` when another writer got there first; any other failure
    surfaces as ``StoreUnavailable``.
    """

    async def get(self, owner_id: str, diary_id: str) -> Optional[StoredDiary]:
        ...

    async def create(self, record: StoredDiary) -> None:
        ...

    async def update(self, record: StoredDiary, expected_version: Optional[str]) -> None:
        ...

    async def list_for_owner(self, owner_id: str) -> list[StoredDiary]:
        ...

    async def ping(self) -> bool:
        ...


async def call_store(awaitable: Awaitable[T], timeout: float) -> T:
    """Await a store call with a deadline, normalizing failures.

    Sync errors and ``VersionConflict`` pass through; a timeout or any other
    exception becomes ``StoreUnavailable``.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except (SyncError, VersionConflict):
        raise
    except asyncio.TimeoutError as e:
        logger.error(f"Store call timed out after {timeout}s")
        raise StoreUnavailable("Record store timed out") from e
    except Exception as e:
        logger.error(f"Store call failed: {e}", exc_info=True)
        raise StoreUnavailable("Record store unavailable") from e
