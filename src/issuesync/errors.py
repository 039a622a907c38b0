"""Exceptions raised by issuesync."""

from __future__ import annotations


class IssueSyncError(Exception):
    """Base class for all issuesync errors."""


class ConfigurationError(IssueSyncError):
    """Raised when the run cannot start because of missing or invalid settings."""


class FieldValueError(IssueSyncError):
    """Raised when a logical field cannot be read from a ticket."""

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(message)
        self.field_name = field_name


class FieldNotFoundError(FieldValueError):
    """The field is not present on the ticket."""

    def __init__(self, field_name: str) -> None:
        super().__init__(field_name, f"Field '{field_name}' not found")


class FieldTypeMismatchError(FieldValueError):
    """The stored value cannot be coerced to the expected type."""

    def __init__(self, field_name: str, expected: str, value: object) -> None:
        super().__init__(
            field_name,
            f"Field '{field_name}' expected {expected}; got {type(value).__name__} ({value!r})",
        )
        self.value = value


class NoSuchTransitionError(IssueSyncError):
    """No workflow transition leads from the ticket's status to the desired one."""

    def __init__(self, ticket_key: str, current: str, desired: str) -> None:
        super().__init__(f"No transition from '{current}' to '{desired}' found for issue {ticket_key}")
        self.ticket_key = ticket_key
        self.current = current
        self.desired = desired


class RemoteCallError(IssueSyncError):
    """A remote call failed after all retries."""

    def __init__(self, message: str, body: str = "") -> None:
        super().__init__(f"{message}: {body}" if body else message)
        self.body = body
