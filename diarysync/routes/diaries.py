"""Diary sync routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from ..auth import CurrentOwner
from ..config import Settings, get_settings
from ..database import Store
from ..errors import DiaryNotFound, InvalidRequest, SyncError
from ..logging_config import get_logger, log_sync_operation
from ..models import (
    AddDiaryRequest,
    AddDiaryResponse,
    BatchSyncRequest,
    BatchSyncResponse,
    DiaryListResponse,
    DiaryPayload,
    DiaryResponse,
    NeedSyncRequest,
    NeedSyncResponse,
    SyncRequest,
    SyncResponse,
)
from ..rate_limit import SYNC_RATE_LIMIT, limiter
from ..sync import (
    Accepted,
    ConflictResolver,
    Merged,
    RecordLocks,
    StaleClient,
    StalenessChecker,
    SyncOutcome,
    call_store,
)

logger = get_logger("diarysync.sync")
router = APIRouter(prefix="/diaries", tags=["diaries"])


def get_record_locks(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> RecordLocks:
    """The process-wide per-diary lock registry, owned by the app."""
    locks = getattr(request.app.state, "record_locks", None)
    if locks is None:
        locks = RecordLocks(timeout=settings.store_timeout_seconds)
        request.app.state.record_locks = locks
    return locks


def get_resolver(
    store: Store,
    locks: Annotated[RecordLocks, Depends(get_record_locks)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ConflictResolver:
    return ConflictResolver(
        store,
        locks,
        timeout=settings.store_timeout_seconds,
        max_attempts=settings.max_write_attempts,
        temporal_policy=settings.merge_temporal_policy,
    )


def get_staleness_checker(
    store: Store,
    settings: Annotated[Settings, Depends(get_settings)],
) -> StalenessChecker:
    return StalenessChecker(store, timeout=settings.store_timeout_seconds)


Resolver = Annotated[ConflictResolver, Depends(get_resolver)]
Checker = Annotated[StalenessChecker, Depends(get_staleness_checker)]


def _outcome_name(outcome: SyncOutcome) -> str:
    if isinstance(outcome, Accepted):
        return "create" if outcome.created else "fast_forward"
    if isinstance(outcome, StaleClient):
        return "stale"
    return "merge"


def outcome_to_response(outcome: SyncOutcome) -> SyncResponse:
    """Map a resolver outcome onto the sync response envelope."""
    if isinstance(outcome, StaleClient):
        return SyncResponse(
            current_version=outcome.current_version,
            new_diary=DiaryPayload.from_stored(outcome.diary),
        )
    if isinstance(outcome, Merged):
        return SyncResponse(
            current_version=outcome.current_version,
            update_diary=DiaryPayload.from_stored(outcome.diary),
        )
    return SyncResponse(current_version=outcome.current_version)


@router.post("/sync", response_model=SyncResponse, response_model_exclude_none=True)
@limiter.limit(SYNC_RATE_LIMIT)
async def sync_diary(
    request: Request,
    payload: SyncRequest,
    auth: CurrentOwner,
    resolver: Resolver,
):
    """
    Reconcile one diary edit with the server copy.

    Responds with one of:
    - ``{currentVersion}``: edit accepted (new diary or fast-forward)
    - ``{currentVersion, newDiary}``: client was stale, adopt the server copy
    - ``{currentVersion, updateDiary}``: concurrent edits merged, adopt the merge
    """
    try:
        outcome = await resolver.resolve(auth.owner_id, payload.to_item())
    except SyncError as e:
        log_sync_operation(auth.owner_id, "sync", payload.diary_id, False, e.message)
        raise
    log_sync_operation(auth.owner_id, _outcome_name(outcome), payload.diary_id, True, outcome.current_version)
    return outcome_to_response(outcome)


@router.post("/sync/batch", response_model=BatchSyncResponse, response_model_exclude_none=True)
@limiter.limit(SYNC_RATE_LIMIT)
async def sync_diaries(
    request: Request,
    payload: BatchSyncRequest,
    auth: CurrentOwner,
    resolver: Resolver,
):
    """
    Reconcile several diary edits in order.

    Each item is resolved independently; a failing item is reported inline
    and does not stop the rest.
    """
    if not payload.items:
        raise InvalidRequest("Invalid or empty 'list' in request body")

    logger.info(f"BATCH | {auth.owner_id} | {len(payload.items)} items")
    results = []
    for item in payload.items:
        try:
            outcome = await resolver.resolve(auth.owner_id, item.to_item())
        except SyncError as e:
            log_sync_operation(auth.owner_id, "sync", item.diary_id, False, e.message)
            results.append(SyncResponse(diary_id=item.diary_id, error=e.message, is_success=False))
            continue
        log_sync_operation(auth.owner_id, _outcome_name(outcome), item.diary_id, True, outcome.current_version)
        response = outcome_to_response(outcome)
        response.diary_id = item.diary_id
        results.append(response)

    failed = sum(1 for r in results if not r.is_success)
    logger.info(f"BATCH COMPLETE | {auth.owner_id} | ok={len(results) - failed} failed={failed}")
    return BatchSyncResponse(results=results)


@router.post("/need-sync", response_model=NeedSyncResponse)
@limiter.limit(SYNC_RATE_LIMIT)
async def need_sync(
    request: Request,
    payload: NeedSyncRequest,
    auth: CurrentOwner,
    checker: Checker,
):
    """
    Report which of the client's diaries differ from the server's latest version.

    Read-only. Diaries the server has never seen are always reported.
    """
    queries = [item.to_query() for item in payload.items] if payload.items else None
    try:
        need = await checker.check(auth.owner_id, queries)
    except SyncError as e:
        log_sync_operation(auth.owner_id, "need_sync", None, False, e.message)
        raise
    log_sync_operation(auth.owner_id, "need_sync", None, True, f"{len(need)}/{len(queries)} stale")
    return NeedSyncResponse(need_sync_diaries=need)


@router.post("", response_model=AddDiaryResponse)
async def add_diary(
    payload: AddDiaryRequest,
    auth: CurrentOwner,
    resolver: Resolver,
):
    """
    Store a diary as-is under the given version, creating or overwriting it.

    No conflict detection: the version is appended to the ledger and the body
    replaced wholesale.
    """
    outcome = await resolver.put(auth.owner_id, payload.diary_id, payload.to_body(), payload.version)
    log_sync_operation(auth.owner_id, "add", payload.diary_id, True, outcome.current_version)
    return AddDiaryResponse(current_version=outcome.current_version, created=outcome.created)


@router.get("", response_model=DiaryListResponse, response_model_exclude_none=True)
async def list_diaries(
    auth: CurrentOwner,
    store: Store,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Return every diary of the caller with its current version.

    Use for initial setup on a new device.
    """
    records = await call_store(store.list_for_owner(auth.owner_id), settings.store_timeout_seconds)
    records.sort(key=lambda r: r.diary_id)
    return DiaryListResponse(diaries=[DiaryPayload.from_stored(r) for r in records])


@router.get("/{diary_id}", response_model=DiaryResponse, response_model_exclude_none=True)
async def get_diary(
    diary_id: str,
    auth: CurrentOwner,
    store: Store,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Return one diary with its full version history."""
    record = await call_store(store.get(auth.owner_id, diary_id), settings.store_timeout_seconds)
    if record is None:
        raise DiaryNotFound(f"Diary not found: {diary_id}")
    return DiaryResponse(diary=DiaryPayload.from_stored(record, include_history=True))
