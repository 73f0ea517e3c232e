"""Read-only detection of diaries a client must re-sync."""

from dataclasses import dataclass
from typing import Optional, Sequence

from ..errors import InvalidRequest, Unauthorized
from ..logging_config import get_logger
from .store import RecordStore, call_store

logger = get_logger("diarysync.sync.staleness")


@dataclass(frozen=True)
class VersionQuery:
    """A client's claim about which version of a diary it holds."""
    diary_id: str
    version: Optional[str] = None


class StalenessChecker:
    """Compares client-held versions with the server ledgers of one owner."""

    def __init__(self, store: RecordStore, *, timeout: float = 10.0):
        self._store = store
        self.timeout = timeout

    async def check(self, owner_id: Optional[str], queries: Optional[Sequence[VersionQuery]]) -> list[str]:
        """Return the ids of diaries whose client version is not the server's latest.

        A diary the server has never seen counts as needing sync. The result
        keeps the order of ``queries`` and lists each id once. One store read
        for the whole batch.
        """
        if not owner_id:
            raise Unauthorized("Invalid user")
        if not queries:
            raise InvalidRequest("Invalid or empty 'list' in request body")
        for query in queries:
            if not query.diary_id:
                raise InvalidRequest("Missing required field: diaryId")

        records = await call_store(self._store.list_for_owner(owner_id), self.timeout)
        latest = {record.diary_id: record.current_version for record in records}

        need_sync: list[str] = []
        seen: set[str] = set()
        for query in queries:
            if query.diary_id in seen:
                continue
            if query.diary_id not in latest or latest[query.diary_id] != query.version:
                need_sync.append(query.diary_id)
                seen.add(query.diary_id)

        logger.debug(f"Staleness {owner_id}: {len(need_sync)}/{len(queries)} need sync ({len(records)} on server)")
        return need_sync
