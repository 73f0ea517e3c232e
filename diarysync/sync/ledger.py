"""Diary records and their append-only version ledger.

A ``VersionLedger`` is the causal witness for one diary: every accepted edit
appends its version id, nothing is ever removed or reordered, and the last
entry is the version the server currently holds.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Iterator, Optional, Union

# Client timestamps are opaque: ISO strings or epoch numbers, passed through as sent
Timestamp = Optional[Union[str, int, float]]

# Fields a client edit may overwrite. createdAt is fixed at creation.
MUTABLE_FIELDS = ("title", "updated_at", "sleep_start_at", "sleep_end_at", "labels", "content")

# Fields whose value after a conflict merge is chosen by the temporal policy
TEMPORAL_FIELDS = ("created_at", "updated_at", "sleep_start_at", "sleep_end_at")


@dataclass
class DiaryBody:
    """The user-visible content of a diary."""
    title: str = ""
    content: str = ""
    created_at: Timestamp = None
    updated_at: Timestamp = None
    sleep_start_at: Timestamp = None
    sleep_end_at: Timestamp = None
    labels: list[str] = field(default_factory=list)

    def with_edit(self, edit: "DiaryBody") -> "DiaryBody":
        """Return this body with the client-editable fields taken from ``edit``."""
        return replace(self, **{name: _copy(getattr(edit, name)) for name in MUTABLE_FIELDS})


def _copy(value: Any) -> Any:
    return list(value) if isinstance(value, list) else value


class VersionLedger:
    """Ordered, append-only history of version ids for one diary."""

    def __init__(self, versions: Optional[Iterable[str]] = None):
        self._versions: list[str] = []
        self._known: set[str] = set()
        for version in versions or ():
            self.append(version)

    def append(self, version: str) -> None:
        self._versions.append(version)
        self._known.add(version)

    @property
    def last_version(self) -> Optional[str]:
        """The currently accepted version, or None for an empty ledger."""
        return self._versions[-1] if self._versions else None

    def contains(self, version: str) -> bool:
        return version in self._known

    def copy(self) -> "VersionLedger":
        return VersionLedger(self._versions)

    def to_list(self) -> list[str]:
        return list(self._versions)

    def __contains__(self, version: object) -> bool:
        return version in self._known

    def __iter__(self) -> Iterator[str]:
        return iter(self._versions)

    def __len__(self) -> int:
        return len(self._versions)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionLedger):
            return NotImplemented
        return self._versions == other._versions

    def __repr__(self) -> str:
        return f"VersionLedger({self._versions!r})"


@dataclass
class StoredDiary:
    """A diary as held by the record store: owner, body and ledger."""
    owner_id: str
    diary_id: str
    body: DiaryBody
    ledger: VersionLedger

    @property
    def current_version(self) -> Optional[str]:
        return self.ledger.last_version

    def to_row(self) -> dict[str, Any]:
        """Flatten to a table row (snake_case columns)."""
        return {
            "owner_id": self.owner_id,
            "diary_id": self.diary_id,
            "title": self.body.title,
            "content": self.body.content,
            "created_at": self.body.created_at,
            "updated_at": self.body.updated_at,
            "sleep_start_at": self.body.sleep_start_at,
            "sleep_end_at": self.body.sleep_end_at,
            "labels": list(self.body.labels),
            "versions": self.ledger.to_list(),
            "last_version": self.ledger.last_version,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "StoredDiary":
        """Build from a table row, tolerating missing optional columns."""
        return cls(
            owner_id=row["owner_id"],
            diary_id=row["diary_id"],
            body=DiaryBody(
                title=row.get("title") or "",
                content=row.get("content") or "",
                created_at=row.get("created_at"),
                updated_at=row.get("updated_at"),
                sleep_start_at=row.get("sleep_start_at"),
                sleep_end_at=row.get("sleep_end_at"),
                labels=list(row.get("labels") or []),
            ),
            ledger=VersionLedger(row.get("versions") or []),
        )
