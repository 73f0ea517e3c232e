"""Error taxonomy for diary synchronization.

Every rejection the sync core produces is a ``SyncError`` subclass. The HTTP
layer maps them to the ``{"error": ..., "isSuccess": false}`` envelope using
``status_code``.
"""

from typing import Any


class SyncError(Exception):
    """Base class for structured sync failures."""

    code = "sync_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict[str, Any]:
        return {"error": self.message, "isSuccess": False}


class InvalidRequest(SyncError):
    """Malformed request or missing required fields."""

    code = "invalid_request"
    status_code = 400


class Unauthorized(SyncError):
    """No resolvable owner identity."""

    code = "unauthorized"
    status_code = 401


class StoreUnavailable(SyncError):
    """The record store failed or timed out."""

    code = "store_unavailable"
    status_code = 503


class ConflictMergeFailure(SyncError):
    """A unique merge version could not be generated. Retryable."""

    code = "conflict_merge_failure"
    status_code = 409


class DiaryNotFound(SyncError):
    """The requested diary does not exist for this owner."""

    code = "not_found"
    status_code = 404


class VersionConflict(Exception):
    """A conditional store write lost a race with another writer.

    Raised by record stores and consumed by the resolver, which re-reads the
    record and re-runs the decision. Never surfaces to clients.
    """

    def __init__(self, owner_id: str, diary_id: str, expected_version: str | None):
        super().__init__(
            f"Diary {owner_id}/{diary_id} changed concurrently "
            f"(expected last version {expected_version!r})"
        )
        self.owner_id = owner_id
        self.diary_id = diary_id
        self.expected_version = expected_version
