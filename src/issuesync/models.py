"""Data model shared by the collector, the field mappers and the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class FieldKey(Enum):
    """Logical fields the engine stores on a target ticket.

    The value is the human-readable name of the custom field on the target
    tracker, used to resolve the physical field id at startup.
    """

    SOURCE_ID = "GitHub ID"
    SOURCE_NUMBER = "GitHub Number"
    SOURCE_STATUS = "GitHub Status"
    SOURCE_REPORTER = "GitHub Reporter"
    SOURCE_LABELS = "GitHub Labels"
    SOURCE_COMMITS = "GitHub Commits"
    LAST_SYNC = "Last Issue-Sync Update"
    SOURCE_DATA = "GitHub Data"

    @property
    def display_name(self) -> str:
        return self.value


@dataclass(frozen=True)
class SourceIssue:
    """Immutable snapshot of a GitHub issue.

    ``board_column`` and ``commit_ids`` are derived by replaying the issue's
    event history; they are never read directly from the issue payload.
    """

    id: int
    number: int
    title: str
    body: str = ""
    state: str = ""
    reporter: str = ""
    labels: tuple[str, ...] = ()
    board_column: str | None = None
    commit_ids: tuple[str, ...] = ()
    comment_count: int = 0
    is_pull_request: bool = False
    html_url: str = ""

    @property
    def label_string(self) -> str:
        """Labels joined the way they are written to the target."""
        return ",".join(self.labels)


class EventKind(Enum):
    ADDED = "added_to_project"
    MOVED = "moved_columns_in_project"
    REMOVED = "removed_from_project"
    COMMIT_LINKED = "commit_linked"
    OTHER = "other"


@dataclass(frozen=True)
class IssueEvent:
    """One entry of an issue's event history."""

    kind: EventKind
    column_name: str | None = None
    commit_id: str | None = None


@dataclass(frozen=True)
class SourceUser:
    login: str
    name: str = ""
    html_url: str = ""


@dataclass(frozen=True)
class SourceComment:
    id: int
    body: str
    author: str
    created_at: datetime
    html_url: str = ""


@dataclass(frozen=True)
class TargetComment:
    id: str
    body: str


@dataclass
class TargetTicket:
    """A JIRA issue as seen by the engine."""

    key: str
    id: str = ""
    summary: str = ""
    description: str = ""
    status: str = ""
    custom_fields: dict[str, Any] = field(default_factory=dict)
    comments: list[TargetComment] = field(default_factory=list)

    @classmethod
    def from_field_set(cls, fields: dict[str, Any], key: str = "", id: str = "") -> TargetTicket:
        """Build a ticket view of a field set produced by a field mapper."""
        return cls(
            key=key,
            id=id,
            summary=fields.get("summary") or "",
            description=fields.get("description") or "",
            custom_fields={k: v for k, v in fields.items() if k.startswith("customfield_")},
        )


@dataclass(frozen=True)
class Transition:
    id: str
    name: str
    to_status: str


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a paginated listing."""

    items: list[T]
    is_last: bool


@dataclass
class SyncReport:
    """Counters for one reconciliation pass."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    transition_failures: int = 0
    failures: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.created + self.updated + self.unchanged + self.failed
