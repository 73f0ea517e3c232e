"""Per-diary mutual exclusion for the read-decide-write cycle."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from ..errors import StoreUnavailable
from ..logging_config import get_logger

logger = get_logger("diarysync.sync.locks")


@dataclass
class _LockState:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    ref_count: int = 0


class RecordLocks:
    """Registry of asyncio locks keyed by (owner_id, diary_id).

    Entries are created on first use and dropped once no holder or waiter
    remains, so the registry only ever holds diaries with in-flight syncs.
    Different diaries never contend.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._locks: dict[tuple[str, str], _LockState] = {}

    @asynccontextmanager
    async def hold(self, owner_id: str, diary_id: str) -> AsyncIterator[None]:
        key = (owner_id, diary_id)
        state = self._locks.get(key)
        if state is None:
            state = _LockState()
            self._locks[key] = state
        state.ref_count += 1
        try:
            try:
                await asyncio.wait_for(state.lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                logger.warning(f"Lock wait timed out after {self.timeout}s: {owner_id}/{diary_id}")
                raise StoreUnavailable("Timed out waiting for a concurrent sync of this diary") from e
            try:
                yield
            finally:
                state.lock.release()
        finally:
            state.ref_count -= 1
            if state.ref_count == 0:
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
