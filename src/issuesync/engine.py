"""Reconciliation of GitHub issues into JIRA tickets."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum

from issuesync.comments import reconcile_comments
from issuesync.context import SyncContext
from issuesync.errors import ConfigurationError, FieldValueError, NoSuchTransitionError
from issuesync.models import FieldKey, SourceIssue, SyncReport, TargetTicket
from issuesync.sources.github_source import GitHubCollector
from issuesync.targets.jira_target import TicketRepository


class Outcome(Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def custom_field_needs_update(ctx: SyncContext, ticket: TargetTicket, key: FieldKey, source_value: str) -> bool:
    """Compare a string field; a missing value and an empty string are equal."""
    try:
        value = ctx.field_mapper.get_field_value(ticket, key)
    except FieldValueError as exc:
        # Update if there was an error retrieving the value
        ctx.log.debug("Could not read %s of %s: %s", key.display_name, ticket.key, exc)
        return True

    if value is None:
        return len(source_value) != 0
    return value != source_value


def commits_need_update(ctx: SyncContext, ticket: TargetTicket, commit_ids: Iterable[str]) -> bool:
    try:
        value = ctx.field_mapper.get_field_value(ticket, FieldKey.SOURCE_COMMITS)
    except FieldValueError as exc:
        ctx.log.debug("Could not read commits of %s: %s", ticket.key, exc)
        return True
    return list(value or []) != list(commit_ids)


def did_issue_change(ctx: SyncContext, issue: SourceIssue, ticket: TargetTicket) -> bool:
    """Return whether any synced field of ``ticket`` differs from ``issue``."""
    ctx.log.debug("Comparing GitHub issue #%d and JIRA issue %s", issue.number, ticket.key)

    checks: list[tuple[str, Callable[[], bool]]] = [
        ("title", lambda: issue.title != ticket.summary),
        ("body", lambda: issue.body != ticket.description),
        ("status", lambda: custom_field_needs_update(ctx, ticket, FieldKey.SOURCE_STATUS, issue.state)),
        ("reporter", lambda: custom_field_needs_update(ctx, ticket, FieldKey.SOURCE_REPORTER, issue.reporter)),
        ("commits", lambda: commits_need_update(ctx, ticket, issue.commit_ids)),
        ("labels", lambda: custom_field_needs_update(ctx, ticket, FieldKey.SOURCE_LABELS, issue.label_string)),
        (
            "project column",
            lambda: issue.board_column is not None and issue.board_column.lower() != ticket.status.lower(),
        ),
    ]
    for name, differs in checks:
        if differs():
            ctx.log.debug("Issues differ in %s", name)
            return True

    ctx.log.debug("Issues have no differences")
    return False


def find_ticket(ctx: SyncContext, issue: SourceIssue, tickets: Iterable[TargetTicket]) -> TargetTicket | None:
    """Return the first ticket whose GitHub ID equals the issue's id."""
    for ticket in tickets:
        try:
            source_id = ctx.field_mapper.get_field_value(ticket, FieldKey.SOURCE_ID)
        except FieldValueError as exc:
            ctx.log.error("Could not read GitHub ID of %s: %s", ticket.key, exc)
            continue
        if source_id == issue.id:
            return ticket
    return None


class Reconciler:
    """Runs one reconciliation pass from GitHub into JIRA."""

    def __init__(self, ctx: SyncContext, collector: GitHubCollector, repository: TicketRepository) -> None:
        self.ctx = ctx
        self.collector = collector
        self.repository = repository
        self.log = ctx.log
        self.report = SyncReport()

    def run(self, since: datetime) -> SyncReport:
        """Create or update a ticket for every issue updated since ``since``.

        A failure on one issue is logged and the next issue is processed.
        """
        self.report = SyncReport()
        self.log.debug("Collecting issues")

        issues = self.collector.list_issues(since)
        if not issues:
            self.log.info("There are no GitHub issues; exiting")
            return self.report

        tickets = self.repository.list_tickets([issue.id for issue in issues])
        self.log.debug("Collected %d matching JIRA issue(s)", len(tickets))

        for issue in issues:
            ticket = find_ticket(self.ctx, issue, tickets)
            try:
                if ticket is None:
                    outcome = self.create(issue)
                else:
                    outcome = self.update(issue, ticket)
            except ConfigurationError:
                raise
            except Exception as exc:
                if ticket is None:
                    self.log.error("Error creating issue for #%d. Error: %s", issue.number, exc)
                else:
                    self.log.error("Error updating issue %s. Error: %s", ticket.key, exc)
                self.report.failed += 1
                self.report.failures.append(f"#{issue.number}: {exc}")
                continue

            if outcome is Outcome.CREATED:
                self.report.created += 1
            elif outcome is Outcome.UPDATED:
                self.report.updated += 1
            else:
                self.report.unchanged += 1

        return self.report

    def _transition(self, issue: SourceIssue, ticket: TargetTicket) -> bool:
        if issue.board_column is None:
            return False
        try:
            return self.repository.apply_transition(ticket, issue.board_column)
        except NoSuchTransitionError as exc:
            # The ticket's fields are still synced
            self.log.error("Issue #%d: %s", issue.number, exc)
            self.report.transition_failures += 1
            return False

    def create(self, issue: SourceIssue) -> Outcome:
        """Create a ticket for ``issue``, move it to its column and mirror comments."""
        self.log.debug("Creating JIRA issue based on GitHub issue #%d", issue.number)

        fields = self.ctx.field_mapper.map_fields(issue)
        created = self.repository.create_ticket(fields)

        # The creation response may be partial
        ticket = self.repository.fetch_ticket(created.key)
        if self._transition(issue, ticket):
            ticket = self.repository.fetch_ticket(ticket.key)
        self.log.info("Created JIRA issue %s for GitHub issue #%d", ticket.key, issue.number)

        reconcile_comments(self.ctx, self.collector, self.repository, issue, ticket)
        return Outcome.CREATED

    def update(self, issue: SourceIssue, ticket: TargetTicket) -> Outcome:
        """Bring ``ticket`` in line with ``issue`` if anything changed.

        Comments are reconciled even when no field changed.
        """
        self.log.debug("Updating JIRA %s with GitHub #%d", ticket.key, issue.number)

        outcome = Outcome.UNCHANGED
        if did_issue_change(self.ctx, issue, ticket):
            fields = self.ctx.field_mapper.map_fields(issue)
            self.repository.update_ticket(ticket, fields)
            self._transition(issue, ticket)
            self.log.info("Updated JIRA issue %s from GitHub issue #%d", ticket.key, issue.number)
            outcome = Outcome.UPDATED
        else:
            self.log.debug("JIRA issue %s is already up to date", ticket.key)

        refreshed = self.repository.fetch_ticket(ticket.key)
        reconcile_comments(self.ctx, self.collector, self.repository, issue, refreshed)
        return outcome
