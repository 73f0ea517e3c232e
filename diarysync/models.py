"""Pydantic models for API requests and responses.

The wire format is camelCase (``diaryId``, ``previousVersion``...); Python code
uses snake_case attribute names. Version ids are opaque strings; numeric
versions sent by clients are coerced to strings so ``1700000000000`` and
``"1700000000000"`` compare equal.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .sync import DiaryBody, StoredDiary, SyncItem, VersionQuery

Timestamp = Optional[Union[str, int, float]]


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


# =============================================================================
# Diary Models
# =============================================================================

class DiaryFields(CamelModel):
    """Diary body fields shared by requests and responses."""
    title: str = ""
    content: str = ""
    created_at: Timestamp = None
    updated_at: Timestamp = None
    sleep_start_at: Timestamp = None
    sleep_end_at: Timestamp = None
    labels: list[str] = []

    def to_body(self) -> DiaryBody:
        return DiaryBody(
            title=self.title,
            content=self.content,
            created_at=self.created_at,
            updated_at=self.updated_at,
            sleep_start_at=self.sleep_start_at,
            sleep_end_at=self.sleep_end_at,
            labels=list(self.labels),
        )


class DiaryPayload(DiaryFields):
    """A server-side diary as returned to clients."""
    diary_id: str
    version: Optional[str] = None
    versions: Optional[list[str]] = None  # Full ledger, only on detail reads

    @classmethod
    def from_stored(cls, stored: StoredDiary, include_history: bool = False) -> "DiaryPayload":
        body = stored.body
        return cls(
            diary_id=stored.diary_id,
            title=body.title,
            content=body.content,
            created_at=body.created_at,
            updated_at=body.updated_at,
            sleep_start_at=body.sleep_start_at,
            sleep_end_at=body.sleep_end_at,
            labels=list(body.labels),
            version=stored.current_version,
            versions=stored.ledger.to_list() if include_history else None,
        )


class AddDiaryRequest(DiaryFields):
    """Request to store a diary verbatim under a version."""
    diary_id: str
    version: str


class DiaryListResponse(CamelModel):
    """All diaries of the caller."""
    diaries: list[DiaryPayload]
    is_success: bool = True


class DiaryResponse(CamelModel):
    """A single diary with its version history."""
    diary: DiaryPayload
    is_success: bool = True


# =============================================================================
# Sync Models
# =============================================================================

class SyncRequest(DiaryFields):
    """A client's update intent for one diary."""
    diary_id: str
    previous_version: str
    current_version: str

    def to_item(self) -> SyncItem:
        return SyncItem(
            diary_id=self.diary_id,
            previous_version=self.previous_version,
            current_version=self.current_version,
            body=self.to_body(),
        )


class SyncResponse(CamelModel):
    """Outcome of one sync item.

    Exactly one of ``new_diary`` (client is stale, adopt the server copy) and
    ``update_diary`` (edits were merged, adopt the merge) is set, or neither
    when the edit was accepted as-is.
    """
    current_version: Optional[str] = None
    new_diary: Optional[DiaryPayload] = None
    update_diary: Optional[DiaryPayload] = None
    diary_id: Optional[str] = None  # Only set inside batch results
    error: Optional[str] = None
    is_success: bool = True


class BatchSyncRequest(CamelModel):
    """Several sync items, applied in order."""
    items: Optional[list[SyncRequest]] = Field(default=None, alias="list")


class BatchSyncResponse(CamelModel):
    results: list[SyncResponse]
    is_success: bool = True


class VersionQueryItem(CamelModel):
    """Which version of a diary the client holds."""
    diary_id: str = ""
    version: Optional[str] = None

    def to_query(self) -> VersionQuery:
        return VersionQuery(diary_id=self.diary_id, version=self.version)


class NeedSyncRequest(CamelModel):
    """Request to find which diaries are out of date on the client."""
    items: Optional[list[VersionQueryItem]] = Field(default=None, alias="list")


class NeedSyncResponse(CamelModel):
    need_sync_diaries: list[str]
    is_success: bool = True


class AddDiaryResponse(CamelModel):
    current_version: str
    created: bool = False
    is_success: bool = True


class ErrorResponse(CamelModel):
    error: str
    is_success: bool = False
