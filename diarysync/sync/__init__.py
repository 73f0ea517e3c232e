"""Diary synchronization core: ledger, conflict resolution, staleness checks."""

from .ledger import DiaryBody, StoredDiary, VersionLedger
from .locks import RecordLocks
from .resolver import (
    Accepted,
    ConflictResolver,
    Merged,
    StaleClient,
    SyncItem,
    SyncOutcome,
    merge_bodies,
    new_merge_version,
)
from .staleness import StalenessChecker, VersionQuery
from .store import RecordStore, call_store

__all__ = [
    "Accepted",
    "ConflictResolver",
    "DiaryBody",
    "Merged",
    "RecordLocks",
    "RecordStore",
    "StaleClient",
    "StalenessChecker",
    "StoredDiary",
    "SyncItem",
    "SyncOutcome",
    "VersionLedger",
    "VersionQuery",
    "call_store",
    "merge_bodies",
    "new_merge_version",
]
