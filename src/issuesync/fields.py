"""Field mappers: how logical fields are stored on JIRA tickets.

Two strategies exist and they are not interoperable:

* ``direct`` stores every logical field in its own custom field.
* ``blob`` stores all logical fields as one JSON object in a single
  "GitHub Data" custom field.

The strategy is chosen once per run; the resolved mapper is immutable.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

from issuesync.errors import ConfigurationError, FieldNotFoundError, FieldTypeMismatchError, IssueSyncError
from issuesync.models import FieldKey, SourceIssue, TargetTicket

# JIRA datetime format used for the "Last Issue-Sync Update" field
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S.0%z"

FieldMetadata = Mapping[str, Any]


def sync_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime(DATE_FORMAT)


@dataclass(frozen=True)
class FieldMapping:
    """Resolved association between logical fields and JIRA custom field ids."""

    ids: Mapping[FieldKey, str]

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", MappingProxyType(dict(self.ids)))

    def field_id(self, key: FieldKey) -> str:
        """Return the numeric custom field id, as used in JQL ``cf[<id>]``."""
        try:
            return self.ids[key]
        except KeyError:
            raise ConfigurationError(f"Field '{key.display_name}' is not part of the field mapping") from None

    def complete_key(self, key: FieldKey) -> str:
        """Return the field name used in ticket payloads, e.g. ``customfield_10001``."""
        return f"customfield_{self.field_id(key)}"

    @classmethod
    def resolve(cls, required: Iterable[FieldKey], metadata: Iterable[FieldMetadata]) -> FieldMapping:
        """Match required fields by name against JIRA field metadata.

        Every required field must match exactly one custom field.
        """
        by_name: dict[str, list[str]] = {}
        for field in metadata:
            schema = field.get("schema") or {}
            custom_id = schema.get("customId")
            if custom_id is None:
                continue
            by_name.setdefault(field.get("name", ""), []).append(str(custom_id))

        ids: dict[FieldKey, str] = {}
        for key in required:
            matches = by_name.get(key.display_name, [])
            if not matches:
                raise ConfigurationError(
                    f"Could not find ID of '{key.display_name}' custom field; check that it is named correctly"
                )
            if len(matches) > 1:
                raise ConfigurationError(
                    f"Found {len(matches)} custom fields named '{key.display_name}'; field names must be unique"
                )
            ids[key] = matches[0]
        return cls(ids)


class FieldMapper(ABC):
    """Projects source issues onto ticket fields and reads them back."""

    #: Logical fields that must resolve to a physical field for this strategy.
    required_fields: tuple[FieldKey, ...] = ()
    name: str = ""

    def __init__(self, mapping: FieldMapping, project: str, issue_type: str = "Task") -> None:
        self.mapping = mapping
        self.project = project
        self.issue_type = issue_type

    @classmethod
    def resolve_field_ids(cls, list_fields: Callable[[], Iterable[FieldMetadata]]) -> FieldMapping:
        """Query JIRA field metadata and resolve this strategy's fields."""
        return FieldMapping.resolve(cls.required_fields, list_fields())

    @property
    def supports_jql_filter(self) -> bool:
        """Whether the SourceID field can be used in a JQL query."""
        return False

    def base_fields(self, issue: SourceIssue) -> dict[str, Any]:
        return {
            "project": {"key": self.project},
            "issuetype": {"name": self.issue_type},
            "summary": issue.title,
            "description": issue.body,
        }

    @abstractmethod
    def map_fields(self, issue: SourceIssue) -> dict[str, Any]:
        """Return the JIRA field set for ``issue``."""

    @abstractmethod
    def get_field_value(self, ticket: TargetTicket, key: FieldKey) -> Any:
        """Return one logical field's value from ``ticket``.

        Raises FieldNotFoundError or FieldTypeMismatchError.
        """


def _as_int(key: FieldKey, value: Any) -> int:
    # JIRA returns number fields as floats
    if isinstance(value, bool):
        raise FieldTypeMismatchError(key.display_name, "an integer", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise FieldTypeMismatchError(key.display_name, "an integer", value)


def _as_commit_list(key: FieldKey, value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [c for c in value.split(",") if c]
    if isinstance(value, list):
        return [str(c) for c in value]
    raise FieldTypeMismatchError(key.display_name, "a list of commit ids", value)


class DirectFieldMapper(FieldMapper):
    """Stores each logical field in its own custom field."""

    name = "direct"
    required_fields = (
        FieldKey.SOURCE_ID,
        FieldKey.SOURCE_NUMBER,
        FieldKey.SOURCE_STATUS,
        FieldKey.SOURCE_REPORTER,
        FieldKey.SOURCE_LABELS,
        FieldKey.SOURCE_COMMITS,
        FieldKey.LAST_SYNC,
    )

    @property
    def supports_jql_filter(self) -> bool:
        return True

    def map_fields(self, issue: SourceIssue) -> dict[str, Any]:
        fields = self.base_fields(issue)
        key = self.mapping.complete_key
        fields[key(FieldKey.SOURCE_ID)] = issue.id
        fields[key(FieldKey.SOURCE_NUMBER)] = issue.number
        fields[key(FieldKey.SOURCE_STATUS)] = issue.state
        fields[key(FieldKey.SOURCE_REPORTER)] = issue.reporter
        fields[key(FieldKey.SOURCE_LABELS)] = issue.label_string
        fields[key(FieldKey.SOURCE_COMMITS)] = ",".join(issue.commit_ids)
        fields[key(FieldKey.LAST_SYNC)] = sync_timestamp()
        return fields

    def get_field_value(self, ticket: TargetTicket, key: FieldKey) -> Any:
        if key is FieldKey.SOURCE_DATA:
            raise FieldNotFoundError(key.display_name)
        complete_key = self.mapping.complete_key(key)
        if complete_key not in ticket.custom_fields:
            raise FieldNotFoundError(key.display_name)
        value = ticket.custom_fields[complete_key]

        if key in (FieldKey.SOURCE_ID, FieldKey.SOURCE_NUMBER):
            if value is None:
                raise FieldNotFoundError(key.display_name)
            return _as_int(key, value)
        if key is FieldKey.SOURCE_COMMITS:
            return _as_commit_list(key, value)
        if value is not None and not isinstance(value, str):
            raise FieldTypeMismatchError(key.display_name, "a string", value)
        return value


class BlobFieldMapper(FieldMapper):
    """Stores all logical fields as JSON inside the "GitHub Data" field."""

    name = "blob"
    required_fields = (FieldKey.SOURCE_DATA,)

    BLOB_KEYS = {
        FieldKey.SOURCE_ID: "githubId",
        FieldKey.SOURCE_NUMBER: "githubNumber",
        FieldKey.SOURCE_STATUS: "githubStatus",
        FieldKey.SOURCE_REPORTER: "githubReporter",
        FieldKey.SOURCE_LABELS: "githubLabels",
        FieldKey.SOURCE_COMMITS: "githubCommits",
        FieldKey.LAST_SYNC: "lastIssueSyncUpdate",
    }

    def map_fields(self, issue: SourceIssue) -> dict[str, Any]:
        fields = self.base_fields(issue)
        data = {
            "githubId": issue.id,
            "githubNumber": issue.number,
            "githubStatus": issue.state,
            "githubReporter": issue.reporter,
            "githubLabels": issue.label_string,
            "githubCommits": list(issue.commit_ids),
            "lastIssueSyncUpdate": sync_timestamp(),
        }
        try:
            blob = json.dumps(data)
        except (TypeError, ValueError) as exc:
            raise IssueSyncError(f"Could not serialize GitHub data for issue #{issue.number}: {exc}") from exc
        fields[self.mapping.complete_key(FieldKey.SOURCE_DATA)] = blob
        return fields

    def _load_blob(self, ticket: TargetTicket) -> dict[str, Any]:
        data_key = FieldKey.SOURCE_DATA
        raw = ticket.custom_fields.get(self.mapping.complete_key(data_key))
        if raw is None:
            raise FieldNotFoundError(data_key.display_name)
        if not isinstance(raw, str):
            raise FieldTypeMismatchError(data_key.display_name, "a JSON string", raw)
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise FieldTypeMismatchError(data_key.display_name, "valid JSON", raw) from exc
        if not isinstance(parsed, dict):
            raise FieldTypeMismatchError(data_key.display_name, "a JSON object", parsed)
        return parsed

    def get_field_value(self, ticket: TargetTicket, key: FieldKey) -> Any:
        data = self._load_blob(ticket)
        if key is FieldKey.SOURCE_DATA:
            return data

        value = data.get(self.BLOB_KEYS[key])
        if key in (FieldKey.SOURCE_ID, FieldKey.SOURCE_NUMBER):
            if value is None:
                raise FieldNotFoundError(key.display_name)
            return _as_int(key, value)
        if key is FieldKey.SOURCE_COMMITS:
            return _as_commit_list(key, value)
        if key is FieldKey.SOURCE_LABELS and isinstance(value, list):
            # older blobs stored the label list itself
            return ",".join(str(v) for v in value)
        if value is not None and not isinstance(value, str):
            raise FieldTypeMismatchError(key.display_name, "a string", value)
        return value


FIELD_MAPPER_CLASSES: dict[str, type[FieldMapper]] = {
    DirectFieldMapper.name: DirectFieldMapper,
    BlobFieldMapper.name: BlobFieldMapper,
}


def field_mapper_class(strategy: str) -> type[FieldMapper]:
    try:
        return FIELD_MAPPER_CLASSES[strategy]
    except KeyError:
        raise ConfigurationError(f"Unknown field mapper strategy: {strategy!r}") from None


def create_field_mapper(
    strategy: str,
    list_fields: Callable[[], Iterable[FieldMetadata]],
    project: str,
    issue_type: str = "Task",
) -> FieldMapper:
    """Resolve the field ids for ``strategy`` and return the mapper.

    Raises ConfigurationError before any write can happen if a required
    field is missing.
    """
    mapper_cls = field_mapper_class(strategy)
    mapping = mapper_cls.resolve_field_ids(list_fields)
    return mapper_cls(mapping, project, issue_type)
