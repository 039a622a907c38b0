"""Base class for target tracker clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from issuesync.fields import FieldMetadata
from issuesync.models import TargetComment, TargetTicket, Transition


class TargetClient(ABC):
    """Thin wrapper around a target tracker's API.

    Methods make single remote calls and never retry; the ticket repository
    wraps them with :func:`issuesync.retry.retry`.
    """

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the target tracker."""

    @abstractmethod
    def list_fields(self) -> list[FieldMetadata]:
        """Return metadata of every field known to the tracker."""

    @abstractmethod
    def search(self, query: str) -> list[TargetTicket]:
        """Return every ticket matching ``query``, across all result pages."""

    @abstractmethod
    def get_issue(self, key: str) -> TargetTicket:
        """Fetch one ticket by key."""

    @abstractmethod
    def create_issue(self, fields: dict[str, Any]) -> TargetTicket:
        """Create a ticket; the returned ticket may be partial."""

    @abstractmethod
    def update_issue(self, key: str, fields: dict[str, Any]) -> TargetTicket:
        """Update the given fields of ticket ``key``."""

    @abstractmethod
    def get_transitions(self, key: str) -> list[Transition]:
        """List the transitions available from the ticket's current status."""

    @abstractmethod
    def apply_transition(self, key: str, transition_id: str) -> None:
        """Apply a workflow transition."""

    @abstractmethod
    def add_comment(self, key: str, body: str) -> TargetComment:
        """Add a comment to ticket ``key``."""

    @abstractmethod
    def update_comment(self, key: str, comment_id: str, body: str) -> TargetComment:
        """Replace the body of an existing comment."""
