"""issuesync CLI - Reconcile GitHub issues into JIRA tickets."""

from __future__ import annotations

from pathlib import Path

import click

from issuesync import __version__

LOG_LEVELS = ["debug", "info", "warning", "error"]


@click.group()
@click.version_option(version=__version__, prog_name="issuesync")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the config file (default: search upward for issuesync.toml)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level (default: from the config file)",
)
def main(config_path: Path | None = None, log_level: str | None = None) -> None:
    """issuesync - Mirror GitHub issues into a JIRA project.

    Every run creates missing tickets, updates stale ones, mirrors comments
    and moves tickets to the status matching the issue's project column.
    """
    click.get_current_context().obj = {"config_path": config_path, "log_level": log_level}


@main.command()
def init() -> None:
    """Create an issuesync.toml in the current directory."""
    from issuesync.commands.init import cmd_init

    cmd_init()


@main.command()
@click.option("--dry-run", is_flag=True, default=False, help="Read everything but only log the writes")
@click.option("--since", default=None, help="Only sync issues updated since this ISO timestamp")
@click.option("--timeout", type=float, default=None, help="Seconds to keep retrying a failing remote call")
@click.pass_obj
def sync(obj: dict, dry_run: bool, since: str | None, timeout: float | None) -> None:
    """Create and update JIRA tickets for GitHub issues."""
    from issuesync.commands.sync import cmd_sync

    cmd_sync(
        config_path=obj.get("config_path"),
        dry_run=dry_run,
        since=since,
        timeout=timeout,
        log_level=obj.get("log_level"),
    )


@main.command()
@click.pass_obj
def fields(obj: dict) -> None:
    """Check that the JIRA custom fields used for syncing exist."""
    from issuesync.commands.fields import cmd_fields

    cmd_fields(config_path=obj.get("config_path"), log_level=obj.get("log_level"))


if __name__ == "__main__":
    main()
