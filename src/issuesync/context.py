"""Run context passed explicitly through every component."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from issuesync.config import Config
from issuesync.fields import FieldMapper


@dataclass(frozen=True)
class SyncContext:
    """Everything a component needs to know about the current run.

    Built once per run after the field mapping has been resolved.
    """

    config: Config
    log: logging.Logger
    field_mapper: FieldMapper

    @property
    def timeout(self) -> float:
        return self.config.timeout

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    @property
    def project_key(self) -> str:
        return self.config.jira.project
