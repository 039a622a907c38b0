"""issuesync fields - Check that the JIRA custom fields can be resolved."""

from __future__ import annotations

from functools import partial
from pathlib import Path

from rich.console import Console
from rich.table import Table

from issuesync.config import load_config
from issuesync.errors import ConfigurationError
from issuesync.fields import create_field_mapper
from issuesync.logging import get_logger, setup_logging
from issuesync.retry import retry
from issuesync.targets.jira_target import JiraClient

console = Console()


def cmd_fields(config_path: Path | None = None, log_level: str | None = None) -> None:
    """Resolve the configured field mapper against JIRA and print the mapping."""
    try:
        config = load_config(config_path)
        config.validate()
        setup_logging(log_level or config.log_level)
        log = get_logger("fields")

        client = JiraClient(config.jira.uri, user=config.jira.user, token=config.jira.token)
        retry(client.connect, config.timeout, log)
        mapper = create_field_mapper(
            config.jira.field_mapper,
            partial(retry, client.list_fields, config.timeout, log),
            config.jira.project,
            config.jira.issue_type,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise SystemExit(1) from e
    except Exception as e:
        console.print(f"[red]✗[/red] Could not read JIRA fields: {e}")
        raise SystemExit(1) from e

    table = Table(title=f"{mapper.name} field mapping for {config.jira.project}")
    table.add_column("Field", style="cyan")
    table.add_column("JIRA field")
    for key in mapper.required_fields:
        table.add_row(key.display_name, mapper.mapping.complete_key(key))
    console.print(table)
    console.print("[green]All fields have been checked.[/green]")
