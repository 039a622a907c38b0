"""issuesync init - Create an issuesync.toml in the current directory."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

import click
from rich.console import Console

from issuesync.config import CONFIG_FILENAME, FIELD_MAPPERS, Config, GitHubConfig, JiraConfig

console = Console()


def parse_repo(value: str) -> str:
    """Accept either owner/name or a GitHub URL and return owner/name."""
    value = value.strip()
    if "://" in value:
        value = urlparse(value).path
    parts = [p for p in value.strip("/").removesuffix(".git").split("/") if p]
    if len(parts) >= 2:
        return f"{parts[0]}/{parts[1]}"
    return value


def cmd_init() -> None:
    """Interactively write issuesync.toml."""
    cwd = Path.cwd()
    config_path = cwd / CONFIG_FILENAME

    if config_path.exists():
        console.print(f"[yellow]Already initialized ({CONFIG_FILENAME} exists).[/yellow]")
        if not click.confirm("Overwrite?", default=False):
            return

    repo = parse_repo(click.prompt("GitHub repository (owner/name or URL)"))
    uri = click.prompt("JIRA server URL").rstrip("/")
    project = click.prompt("JIRA project key (e.g., PROJ)").strip().upper()
    issue_type = click.prompt("JIRA issue type for new tickets", default="Task")
    field_mapper = click.prompt(
        "Field mapper",
        type=click.Choice(FIELD_MAPPERS),
        default="direct",
    )

    config = Config(
        github=GitHubConfig(repo=repo),
        jira=JiraConfig(uri=uri, project=project, issue_type=issue_type, field_mapper=field_mapper),
    )
    config.save(config_path)
    console.print(f"  [green]Created[/green] {CONFIG_FILENAME}")

    console.print("\nNext steps:")
    console.print("  1. Export credentials: [cyan]GITHUB_TOKEN[/cyan], [cyan]JIRA_USER[/cyan], [cyan]JIRA_TOKEN[/cyan]")
    console.print("  2. Check the JIRA custom fields: [cyan]issuesync fields[/cyan]")
    console.print("  3. Preview a run: [cyan]issuesync sync --dry-run[/cyan]")
