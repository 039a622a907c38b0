"""Configuration management for issuesync."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import toml

from issuesync.errors import ConfigurationError

CONFIG_FILENAME = "issuesync.toml"

# Format of the `since` watermark stored in the config file
SINCE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
DEFAULT_SINCE = "1970-01-01T00:00:00+0000"
DEFAULT_TIMEOUT = 60.0

FIELD_MAPPERS = ("direct", "blob")


def parse_since(value: str) -> datetime:
    """Parse a watermark string; naive values are taken as UTC."""
    try:
        parsed = datetime.strptime(value, SINCE_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid 'since' timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_since(value: datetime) -> str:
    return value.strftime(SINCE_FORMAT)


@dataclass
class GitHubConfig:
    """Source repository settings."""

    repo: str = ""
    token: str = ""

    @property
    def owner_and_name(self) -> tuple[str, str]:
        owner, _, name = self.repo.partition("/")
        return owner, name


@dataclass
class JiraConfig:
    """Target project settings."""

    uri: str = ""
    project: str = ""
    issue_type: str = "Task"
    field_mapper: str = "direct"
    user: str = ""
    token: str = ""


@dataclass
class Config:
    """issuesync configuration stored in issuesync.toml.

    Credentials are never written to the file; they are read from the
    environment by :meth:`apply_environment`.
    """

    github: GitHubConfig = field(default_factory=GitHubConfig)
    jira: JiraConfig = field(default_factory=JiraConfig)
    since: str = DEFAULT_SINCE
    timeout: float = DEFAULT_TIMEOUT
    log_level: str = "info"
    dry_run: bool = False
    path: Path | None = None

    @property
    def since_datetime(self) -> datetime:
        return parse_since(self.since)

    def to_dict(self) -> dict[str, Any]:
        return {
            "github": {"repo": self.github.repo},
            "jira": {
                "uri": self.jira.uri,
                "project": self.jira.project,
                "issue_type": self.jira.issue_type,
                "field_mapper": self.jira.field_mapper,
            },
            "sync": {
                "since": self.since,
                "timeout": self.timeout,
                "log_level": self.log_level,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        github = data.get("github", {})
        jira = data.get("jira", {})
        sync = data.get("sync", {})
        return cls(
            github=GitHubConfig(repo=github.get("repo", "")),
            jira=JiraConfig(
                uri=jira.get("uri", ""),
                project=jira.get("project", ""),
                issue_type=jira.get("issue_type", "Task"),
                field_mapper=jira.get("field_mapper", "direct"),
            ),
            since=str(sync.get("since", DEFAULT_SINCE)),
            timeout=float(sync.get("timeout", DEFAULT_TIMEOUT)),
            log_level=sync.get("log_level", "info"),
        )

    def apply_environment(self, environ: Mapping[str, str] | None = None) -> None:
        """Read credentials from GITHUB_TOKEN, JIRA_USER and JIRA_TOKEN."""
        env = os.environ if environ is None else environ
        self.github.token = env.get("GITHUB_TOKEN", self.github.token)
        self.jira.user = env.get("JIRA_USER", self.jira.user)
        self.jira.token = env.get("JIRA_TOKEN", self.jira.token)

    def validate(self) -> None:
        """Raise ConfigurationError naming the first missing or invalid setting."""
        owner, name = self.github.owner_and_name
        if not owner or not name:
            raise ConfigurationError("github.repo must be given as 'owner/name'")
        if not self.jira.uri:
            raise ConfigurationError("jira.uri is not set")
        if not self.jira.project:
            raise ConfigurationError("jira.project is not set")
        if self.jira.field_mapper not in FIELD_MAPPERS:
            raise ConfigurationError(
                f"Unknown jira.field_mapper {self.jira.field_mapper!r}; expected one of {', '.join(FIELD_MAPPERS)}"
            )
        if self.timeout <= 0:
            raise ConfigurationError("sync.timeout must be positive")
        parse_since(self.since)

    def save(self, config_path: Path | None = None) -> Path:
        """Save configuration to ``config_path`` (defaults to where it was loaded from)."""
        target = config_path or self.path or Path.cwd() / CONFIG_FILENAME
        with open(target, "w") as f:
            toml.dump(self.to_dict(), f)
        self.path = target
        return target

    @classmethod
    def load(cls, path: Path | None = None) -> Config:
        """Load configuration from issuesync.toml, searching upward from path."""
        if path is None:
            path = Path.cwd()

        config_path = find_config(path)
        if config_path is None:
            raise ConfigurationError(
                f"No {CONFIG_FILENAME} found in {path} or any parent directory. "
                "Run 'issuesync init' to create one."
            )
        return cls.load_from(config_path)

    @classmethod
    def load_from(cls, config_path: Path) -> Config:
        """Load configuration from a specific file."""
        try:
            with open(config_path) as f:
                data = toml.load(f)
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Config file {config_path} does not exist") from exc
        except toml.TomlDecodeError as exc:
            raise ConfigurationError(f"Config file {config_path} is not valid TOML: {exc}") from exc
        config = cls.from_dict(data)
        config.path = config_path
        return config


def find_config(start: Path | None = None) -> Path | None:
    """Find issuesync.toml by searching upward from start directory."""
    if start is None:
        start = Path.cwd()

    current = start.resolve()
    while True:
        config_path = current / CONFIG_FILENAME
        if config_path.exists():
            return config_path
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(config_path: Path | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """Load the config file (given or found upward) and apply credentials from the environment."""
    config = Config.load_from(config_path) if config_path is not None else Config.load()
    config.apply_environment(environ)
    return config
