"""issuesync sync - Reconcile GitHub issues into the JIRA project."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import partial
from pathlib import Path

from rich.console import Console
from rich.table import Table

from issuesync.config import Config, format_since, load_config, parse_since
from issuesync.context import SyncContext
from issuesync.engine import Reconciler
from issuesync.errors import ConfigurationError
from issuesync.fields import create_field_mapper
from issuesync.logging import get_logger, setup_logging
from issuesync.models import SyncReport
from issuesync.retry import retry
from issuesync.sources.base import SourceClient
from issuesync.sources.github_source import GitHubClient, GitHubCollector
from issuesync.targets.base import TargetClient
from issuesync.targets.jira_target import JiraClient, SimulatedTicketRepository, TicketRepository

console = Console()


def create_clients(config: Config) -> tuple[SourceClient, TargetClient]:
    """Create the GitHub and JIRA clients from configuration."""
    source = GitHubClient(config.github.repo, token=config.github.token)
    target = JiraClient(config.jira.uri, user=config.jira.user, token=config.jira.token)
    return source, target


def connect(
    config: Config, log: logging.Logger
) -> tuple[SyncContext, GitHubCollector, TicketRepository]:
    """Connect both trackers and resolve the field mapping.

    Raises ConfigurationError if a required JIRA field is missing; nothing
    has been written at that point.
    """
    source, target = create_clients(config)

    retry(source.connect, config.timeout, log)
    log.debug("Connected to GitHub repository %s", source.get_source_name())
    retry(target.connect, config.timeout, log)
    log.debug("JIRA client initialized")

    mapper = create_field_mapper(
        config.jira.field_mapper,
        partial(retry, target.list_fields, config.timeout, log),
        config.jira.project,
        config.jira.issue_type,
    )
    log.debug("Resolved %d field(s) for the %s field mapper", len(mapper.mapping.ids), mapper.name)

    ctx = SyncContext(config=config, log=log, field_mapper=mapper)
    repository_cls = SimulatedTicketRepository if config.dry_run else TicketRepository
    return ctx, GitHubCollector(ctx, source), repository_cls(ctx, target)


def print_report(report: SyncReport, dry_run: bool) -> None:
    table = Table(title="Dry run (nothing written)" if dry_run else "Sync summary")
    table.add_column("Result", style="cyan")
    table.add_column("Issues", justify="right")
    table.add_row("Created", str(report.created))
    table.add_row("Updated", str(report.updated))
    table.add_row("Unchanged", str(report.unchanged))
    table.add_row("Failed", str(report.failed), style="red" if report.failed else None)
    if report.transition_failures:
        table.add_row("Transitions not applied", str(report.transition_failures), style="yellow")
    console.print(table)

    for failure in report.failures:
        console.print(f"  [red]✗[/red] {failure}")


def run_sync(config: Config, log: logging.Logger) -> SyncReport:
    """Run one reconciliation pass and advance the `since` watermark."""
    run_start = datetime.now(timezone.utc)
    ctx, collector, repository = connect(config, log)

    report = Reconciler(ctx, collector, repository).run(config.since_datetime)

    if config.dry_run:
        log.debug("Dry run; keeping since=%s", config.since)
    elif report.failed:
        log.warning("%d issue(s) failed; keeping since=%s so they are retried", report.failed, config.since)
    else:
        config.since = format_since(run_start)
        path = config.save()
        log.debug("Saved since=%s to %s", config.since, path)
    return report


def cmd_sync(
    config_path: Path | None = None,
    dry_run: bool = False,
    since: str | None = None,
    timeout: float | None = None,
    log_level: str | None = None,
) -> None:
    """Sync issues from GitHub into JIRA."""
    try:
        config = load_config(config_path)
        if since is not None:
            parse_since(since)
            config.since = since
        if timeout is not None:
            config.timeout = timeout
        config.dry_run = dry_run
        config.validate()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise SystemExit(1) from e

    setup_logging(log_level or config.log_level)
    log = get_logger("sync")

    try:
        report = run_sync(config, log)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise SystemExit(1) from e
    except Exception as e:
        log.error("Sync aborted: %s", e)
        console.print(f"[red]✗[/red] Sync aborted: {e}")
        raise SystemExit(1) from e

    print_report(report, dry_run)
