"""Conflict resolution for single-diary sync requests.

A client sends the version it last saw from the server (``previous_version``)
and the version of its new edit (``current_version``). Against the stored
ledger that yields exactly one of four paths, checked in order:

1. unknown diary        -> create it, ledger ``[previous, current]``
2. previous == last     -> fast-forward: overwrite the editable fields
3. current in ledger    -> stale client: the server already has this edit,
                           hand back the server copy, change nothing
4. otherwise            -> genuine conflict: concatenate client and server
                           content, append ``current`` and a fresh merge version

The ledger membership test in (3) is what separates a client that is merely
behind from two edits made independently.
"""

import uuid
from dataclasses import dataclass, replace
from typing import Callable, Literal, Optional, Union

from ..errors import ConflictMergeFailure, InvalidRequest, StoreUnavailable, Unauthorized, VersionConflict
from ..logging_config import get_logger
from .ledger import TEMPORAL_FIELDS, DiaryBody, StoredDiary, VersionLedger
from .locks import RecordLocks
from .store import RecordStore, call_store

logger = get_logger("diarysync.sync.resolver")

TemporalPolicy = Literal["server", "client"]


def new_merge_version() -> str:
    """Random, collision-resistant id for a server-made merge."""
    return f"merge-{uuid.uuid4().hex}"


@dataclass
class SyncItem:
    """One client update intent for one diary."""
    diary_id: str
    previous_version: str
    current_version: str
    body: DiaryBody


@dataclass(frozen=True)
class Accepted:
    """The edit was applied as-is (new diary or fast-forward)."""
    current_version: str
    created: bool = False


@dataclass(frozen=True)
class StaleClient:
    """The client is behind; it should replace its copy with ``diary``."""
    current_version: str
    diary: StoredDiary


@dataclass(frozen=True)
class Merged:
    """Concurrent edits were merged into ``diary`` under ``current_version``."""
    current_version: str
    diary: StoredDiary


SyncOutcome = Union[Accepted, StaleClient, Merged]


def merge_bodies(client: DiaryBody, server: DiaryBody, temporal_policy: TemporalPolicy = "server") -> DiaryBody:
    """Combine two independent edits without dropping either.

    Text and labels are concatenated client first, then server. Timestamps come
    wholesale from one side, chosen by ``temporal_policy``.
    """
    temporal_source = server if temporal_policy == "server" else client
    merged = DiaryBody(
        title=client.title + server.title,
        content=client.content + server.content,
        labels=list(client.labels) + list(server.labels),
    )
    return replace(merged, **{name: getattr(temporal_source, name) for name in TEMPORAL_FIELDS})


class ConflictResolver:
    """Applies sync items to the record store under per-diary serialization.

    Args:
        store: Record store capability.
        locks: Shared per-diary lock registry. One per process.
        timeout: Deadline in seconds for each store call.
        max_attempts: How many times to re-run the decision after losing a
            conditional write to another process.
        temporal_policy: Whose timestamps survive a conflict merge.
        version_factory: Source of merge version ids.
    """

    def __init__(
        self,
        store: RecordStore,
        locks: Optional[RecordLocks] = None,
        *,
        timeout: float = 10.0,
        max_attempts: int = 3,
        temporal_policy: TemporalPolicy = "server",
        version_factory: Callable[[], str] = new_merge_version,
    ):
        self._store = store
        self._locks = locks if locks is not None else RecordLocks(timeout=timeout)
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.temporal_policy = temporal_policy
        self._version_factory = version_factory

    async def resolve(self, owner_id: Optional[str], item: SyncItem) -> SyncOutcome:
        """Decide and apply one sync item. See the module docstring."""
        if not owner_id:
            raise Unauthorized("Invalid user")
        if not item.diary_id:
            raise InvalidRequest("Missing required field: diaryId")
        if not item.previous_version or not item.current_version:
            raise InvalidRequest(f"Missing previousVersion or currentVersion for diaryId: {item.diary_id}")

        return await self._serialized(owner_id, item.diary_id, lambda stored: self._decide(owner_id, item, stored))

    async def put(self, owner_id: Optional[str], diary_id: str, body: DiaryBody, version: str) -> Accepted:
        """Store ``body`` verbatim under ``version``, creating the diary if needed.

        Unlike ``resolve`` this trusts the caller completely: no staleness or
        conflict checks. The ledger is still only appended to.
        """
        if not owner_id:
            raise Unauthorized("Invalid user")
        if not diary_id or not version:
            raise InvalidRequest("Missing required fields: diaryId, version")

        async def overwrite(stored: Optional[StoredDiary]) -> Accepted:
            if stored is None:
                record = StoredDiary(owner_id, diary_id, body, VersionLedger([version]))
                await call_store(self._store.create(record), self.timeout)
                return Accepted(version, created=True)
            ledger = stored.ledger.copy()
            if ledger.last_version != version:
                ledger.append(version)
            record = replace(stored, body=body, ledger=ledger)
            await call_store(self._store.update(record, stored.current_version), self.timeout)
            return Accepted(version)

        return await self._serialized(owner_id, diary_id, overwrite)

    async def _serialized(self, owner_id: str, diary_id: str, step):
        async with self._locks.hold(owner_id, diary_id):
            for attempt in range(1, self.max_attempts + 1):
                stored = await call_store(self._store.get(owner_id, diary_id), self.timeout)
                try:
                    return await step(stored)
                except VersionConflict as e:
                    logger.warning(f"Lost write race (attempt {attempt}/{self.max_attempts}): {e}")
        raise StoreUnavailable(f"Diary {diary_id} is being modified concurrently, retry later")

    async def _decide(self, owner_id: str, item: SyncItem, stored: Optional[StoredDiary]) -> SyncOutcome:
        if stored is None:
            record = StoredDiary(
                owner_id=owner_id,
                diary_id=item.diary_id,
                body=item.body,
                ledger=VersionLedger([item.previous_version, item.current_version]),
            )
            await call_store(self._store.create(record), self.timeout)
            logger.debug(f"Created {owner_id}/{item.diary_id} at {item.current_version}")
            return Accepted(item.current_version, created=True)

        last_version = stored.current_version

        if item.previous_version == last_version:
            ledger = stored.ledger.copy()
            ledger.append(item.current_version)
            record = replace(stored, body=stored.body.with_edit(item.body), ledger=ledger)
            await call_store(self._store.update(record, last_version), self.timeout)
            logger.debug(f"Fast-forward {owner_id}/{item.diary_id}: {last_version} -> {item.current_version}")
            return Accepted(item.current_version)

        if item.current_version in stored.ledger:
            logger.debug(f"Stale client {owner_id}/{item.diary_id}: has {item.current_version}, server at {last_version}")
            return StaleClient(last_version, stored)

        merge_version = self._fresh_merge_version(stored.ledger, item.current_version)
        ledger = stored.ledger.copy()
        ledger.append(item.current_version)
        ledger.append(merge_version)
        body = merge_bodies(item.body, stored.body, self.temporal_policy)
        record = replace(stored, body=body, ledger=ledger)
        await call_store(self._store.update(record, last_version), self.timeout)
        logger.debug(f"Merged {owner_id}/{item.diary_id}: {item.current_version} + {last_version} -> {merge_version}")
        return Merged(merge_version, record)

    def _fresh_merge_version(self, ledger: VersionLedger, client_version: str) -> str:
        # One retry on collision, then give up
        for _ in range(2):
            candidate = self._version_factory()
            if candidate not in ledger and candidate != client_version:
                return candidate
            logger.warning(f"Merge version collision on {candidate!r}, regenerating")
        raise ConflictMergeFailure("Could not generate a unique merge version, retry the sync")
