"""Base class for source tracker clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from issuesync.models import IssueEvent, Page, SourceComment, SourceIssue, SourceUser


class SourceClient(ABC):
    """Thin wrapper around a source tracker's API.

    Every method performs at most one logical remote operation and never
    retries; callers wrap them with :func:`issuesync.retry.retry`.
    Pages are numbered from 0.
    """

    @abstractmethod
    def connect(self) -> None:
        """Establish and verify the connection."""

    @abstractmethod
    def has_projects(self) -> bool:
        """Return whether project boards are enabled on the repository."""

    @abstractmethod
    def list_issues_page(self, since: datetime, page: int) -> Page[SourceIssue]:
        """Return one page of issues updated since ``since``, oldest first."""

    @abstractmethod
    def list_events_page(self, number: int, page: int) -> Page[IssueEvent]:
        """Return one page of the event history of issue ``number``."""

    @abstractmethod
    def list_comments(self, number: int) -> list[SourceComment]:
        """Return all comments of issue ``number`` in ascending creation order."""

    @abstractmethod
    def get_user(self, login: str) -> SourceUser:
        """Look up a user by login."""

    @abstractmethod
    def get_source_name(self) -> str:
        """Return a human-readable name for this source."""
