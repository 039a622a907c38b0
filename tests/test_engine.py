"""Tests for the reconciliation engine."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import pytest

from issuesync.context import SyncContext
from issuesync.engine import Outcome, Reconciler, did_issue_change, find_ticket
from issuesync.models import EventKind, FieldKey, IssueEvent, SourceComment, SourceIssue, TargetTicket, Transition
from issuesync.sources.github_source import GitHubCollector
from issuesync.targets.jira_target import SimulatedTicketRepository, TicketRepository
from tests.fakes import FakeClock, FakeHTTPError, FakeSourceClient, FakeTargetClient, make_ctx, make_issue

START = Transition(id="11", name="Start", to_status="In Progress")


def ticket_for(ctx: SyncContext, issue: SourceIssue, key: str = "TPK-1", **overrides: Any) -> TargetTicket:
    """Build a ticket that is in sync with ``issue``."""
    ticket = TargetTicket.from_field_set(ctx.field_mapper.map_fields(issue), key=key)
    ticket.status = "To Do"
    for name, value in overrides.items():
        setattr(ticket, name, value)
    return ticket


def make_reconciler(
    ctx: SyncContext, source: FakeSourceClient, target: FakeTargetClient, dry_run: bool = False
) -> Reconciler:
    repository_cls = SimulatedTicketRepository if dry_run else TicketRepository
    return Reconciler(ctx, GitHubCollector(ctx, source), repository_cls(ctx, target))


def write_calls(target: FakeTargetClient) -> list[str]:
    writes = ("create_issue", "update_issue", "apply_transition", "add_comment", "update_comment")
    return [name for name, _ in target.calls if name in writes]


def test_no_issues(fake_clock: FakeClock, since: datetime) -> None:
    """Verify an empty repository makes no JIRA calls."""
    target = FakeTargetClient()
    report = make_reconciler(make_ctx(), FakeSourceClient(), target).run(since)
    assert report.total == 0
    assert target.calls == []


def test_unmatched_issue_creates_one_ticket(fake_clock: FakeClock, since: datetime, strategy: str) -> None:
    """Verify an issue without a ticket gets exactly one new ticket."""
    ctx = make_ctx(strategy)
    target = FakeTargetClient()
    source = FakeSourceClient([make_issue(1, title="Crash on start")])

    report = make_reconciler(ctx, source, target).run(since)

    assert report.created == 1
    assert len(target.calls_to("create_issue")) == 1
    # The partial creation response is fetched back by key
    assert target.calls_to("get_issue") == [("TPK-1",)]
    assert target.tickets["TPK-1"].summary == "Crash on start"


def test_second_run_finds_created_ticket(fake_clock: FakeClock, since: datetime, strategy: str) -> None:
    """Verify a ticket created by one run is matched by the next."""
    ctx = make_ctx(strategy)
    target = FakeTargetClient()
    source = FakeSourceClient([make_issue(1)])

    make_reconciler(ctx, source, target).run(since)
    report = make_reconciler(ctx, source, target).run(since)

    assert report.unchanged == 1
    assert len(target.calls_to("create_issue")) == 1


def test_unchanged_issue_writes_nothing(fake_clock: FakeClock, since: datetime, strategy: str) -> None:
    """Verify an issue in sync with its ticket causes no writes."""
    ctx = make_ctx(strategy)
    issue = make_issue(1, labels=("bug", "ui"))
    target = FakeTargetClient()
    target.add_ticket(ticket_for(ctx, issue))

    report = make_reconciler(ctx, FakeSourceClient([issue]), target).run(since)

    assert report.unchanged == 1
    assert write_calls(target) == []


def test_null_fields_equal_empty_values(fake_clock: FakeClock, since: datetime) -> None:
    """Verify null string fields match empty values and null commits match no commits."""
    ctx = make_ctx()
    issue = make_issue(1, state="", reporter="", labels=())
    ticket = ticket_for(ctx, issue)
    for field_id in ("customfield_10003", "customfield_10004", "customfield_10005", "customfield_10006"):
        ticket.custom_fields[field_id] = None

    assert not did_issue_change(ctx, issue, ticket)


@pytest.mark.parametrize(
    "change",
    [
        {"title": "New title"},
        {"body": "New body"},
        {"state": "closed"},
        {"reporter": "frodo"},
        {"labels": ("ui", "bug")},
        {"commit_ids": ("abc",)},
        {"board_column": "Done"},
    ],
)
def test_did_issue_change(change: dict[str, Any]) -> None:
    """Verify a difference in any synced field is detected."""
    ctx = make_ctx()
    original = make_issue(1, labels=("bug", "ui"))
    ticket = ticket_for(ctx, original)
    changed = make_issue(1, **{"labels": ("bug", "ui"), **change})
    assert did_issue_change(ctx, changed, ticket)


def test_project_column_compared_ignoring_case() -> None:
    ctx = make_ctx()
    issue = make_issue(1, board_column="in progress")
    ticket = ticket_for(ctx, issue, status="In Progress")
    assert not did_issue_change(ctx, issue, ticket)


def test_unreadable_field_counts_as_changed() -> None:
    """Verify a field that cannot be read triggers an update."""
    ctx = make_ctx()
    issue = make_issue(1)
    ticket = ticket_for(ctx, issue)
    ticket.custom_fields["customfield_10003"] = {"value": "open"}
    assert did_issue_change(ctx, issue, ticket)


def test_unreadable_commits_logged_at_debug(caplog: pytest.LogCaptureFixture) -> None:
    """Verify an unreadable commit list is treated like any unreadable field."""
    ctx = make_ctx()
    issue = make_issue(1)
    ticket = ticket_for(ctx, issue)
    ticket.custom_fields["customfield_10006"] = 42

    with caplog.at_level(logging.DEBUG, logger="issuesync"):
        assert did_issue_change(ctx, issue, ticket)

    levels = [r.levelno for r in caplog.records if "Could not read" in r.getMessage()]
    assert levels == [logging.DEBUG]


def test_find_ticket_skips_unreadable(caplog: pytest.LogCaptureFixture) -> None:
    """Verify tickets without a readable GitHub ID are skipped."""
    ctx = make_ctx()
    issue = make_issue(1)
    broken = TargetTicket(key="TPK-9", custom_fields={"customfield_10001": "abc"})
    good = ticket_for(ctx, issue, key="TPK-2")

    with caplog.at_level(logging.ERROR, logger="issuesync"):
        assert find_ticket(ctx, issue, [broken, good]) is good
    assert "TPK-9" in caplog.text
    assert find_ticket(ctx, make_issue(2), [good]) is None


def test_unreadable_ticket_logged_once_per_run(
    fake_clock: FakeClock, since: datetime, caplog: pytest.LogCaptureFixture
) -> None:
    """Verify a search result without a readable GitHub ID is reported once, not once per issue."""
    target = FakeTargetClient()
    target.extra_results.append(TargetTicket(key="TPK-9", custom_fields={"customfield_10001": "abc"}))
    source = FakeSourceClient([make_issue(1), make_issue(2), make_issue(3)])

    with caplog.at_level(logging.ERROR, logger="issuesync"):
        report = make_reconciler(make_ctx(), source, target).run(since)

    assert report.created == 3
    assert caplog.text.count("Could not read GitHub ID of TPK-9") == 1


def fix_crash_setup(ctx: SyncContext) -> tuple[FakeSourceClient, FakeTargetClient]:
    issue = make_issue(42, title="Fix crash")
    source = FakeSourceClient([issue])
    source.events[42] = [
        IssueEvent(EventKind.ADDED, column_name="To Do"),
        IssueEvent(EventKind.MOVED, column_name="In Progress"),
    ]
    target = FakeTargetClient()
    target.add_ticket(ticket_for(ctx, make_issue(42, title="Crash"), key="TPK-7"))
    return source, target


def test_update_and_transition(fake_clock: FakeClock, since: datetime) -> None:
    """Verify a renamed issue moved to In Progress updates the ticket then transitions it."""
    ctx = make_ctx()
    source, target = fix_crash_setup(ctx)
    target.workflow["to do"] = [START]

    report = make_reconciler(ctx, source, target).run(since)

    assert report.updated == 1
    assert write_calls(target) == ["update_issue", "apply_transition"]
    assert target.calls_to("apply_transition") == [("TPK-7", "11")]
    ticket = target.tickets["TPK-7"]
    assert ticket.summary == "Fix crash"
    assert ticket.status == "In Progress"


def test_update_without_matching_transition(
    fake_clock: FakeClock, since: datetime, caplog: pytest.LogCaptureFixture
) -> None:
    """Verify fields are still synced when no transition leads to the column."""
    ctx = make_ctx()
    source, target = fix_crash_setup(ctx)

    with caplog.at_level(logging.ERROR, logger="issuesync"):
        report = make_reconciler(ctx, source, target).run(since)

    assert report.updated == 1
    assert report.failed == 0
    assert report.transition_failures == 1
    assert target.tickets["TPK-7"].summary == "Fix crash"
    assert target.tickets["TPK-7"].status == "To Do"
    assert "No transition from 'To Do' to 'In Progress'" in caplog.text
    # The ticket is still re-fetched for comment mirroring
    assert target.calls_to("get_issue") == [("TPK-7",)]


def test_new_ticket_is_transitioned(fake_clock: FakeClock, since: datetime) -> None:
    """Verify a created ticket is moved to the issue's column."""
    ctx = make_ctx()
    source = FakeSourceClient([make_issue(1)])
    source.events[1] = [IssueEvent(EventKind.ADDED, column_name="In Progress")]
    target = FakeTargetClient()
    target.workflow["to do"] = [START]

    make_reconciler(ctx, source, target).run(since)

    assert target.tickets["TPK-1"].status == "In Progress"
    # Fetched once before the transition and once after it
    assert target.calls_to("get_issue") == [("TPK-1",), ("TPK-1",)]


def test_new_ticket_already_in_column(fake_clock: FakeClock, since: datetime) -> None:
    """Verify the status of the stored ticket, not the creation response, decides the transition."""
    ctx = make_ctx()
    source = FakeSourceClient([make_issue(1)])
    source.events[1] = [IssueEvent(EventKind.ADDED, column_name="To Do")]
    target = FakeTargetClient()
    target.workflow["to do"] = [START]

    report = make_reconciler(ctx, source, target).run(since)

    assert report.created == 1
    assert report.transition_failures == 0
    assert target.calls_to("get_transitions") == []
    assert target.calls_to("get_issue") == [("TPK-1",)]
    assert target.tickets["TPK-1"].status == "To Do"


def test_new_ticket_without_matching_transition(
    fake_clock: FakeClock, since: datetime, caplog: pytest.LogCaptureFixture
) -> None:
    """Verify a new ticket keeps its fields when no transition leads to the column."""
    ctx = make_ctx()
    source = FakeSourceClient([make_issue(42, title="Fix crash")])
    source.events[42] = [
        IssueEvent(EventKind.ADDED, column_name="To Do"),
        IssueEvent(EventKind.MOVED, column_name="In Progress"),
    ]
    target = FakeTargetClient()

    with caplog.at_level(logging.ERROR, logger="issuesync"):
        report = make_reconciler(ctx, source, target).run(since)

    assert report.created == 1
    assert report.failed == 0
    assert report.transition_failures == 1
    ticket = target.tickets["TPK-1"]
    assert ticket.summary == "Fix crash"
    assert ticket.status == "To Do"
    assert ctx.field_mapper.get_field_value(ticket, FieldKey.SOURCE_NUMBER) == 42
    assert "No transition from 'To Do' to 'In Progress'" in caplog.text


def test_transient_errors_are_retried(fake_clock: FakeClock, since: datetime) -> None:
    """Verify three 503 responses followed by success still create the ticket."""
    target = FakeTargetClient()
    target.failures.fail("create_issue", FakeHTTPError(503), FakeHTTPError(503), FakeHTTPError(503))

    report = make_reconciler(make_ctx(), FakeSourceClient([make_issue(1)]), target).run(since)

    assert report.created == 1
    assert report.failed == 0
    assert len(target.calls_to("create_issue")) == 4


def test_failed_create_is_logged(fake_clock: FakeClock, since: datetime, caplog: pytest.LogCaptureFixture) -> None:
    """Verify a creation failing past the timeout is logged and counted."""
    target = FakeTargetClient()
    target.failures.fail_always("create_issue")

    with caplog.at_level(logging.ERROR, logger="issuesync"):
        report = make_reconciler(make_ctx(timeout=5.0), FakeSourceClient([make_issue(3)]), target).run(since)

    assert report.failed == 1
    assert report.failures[0].startswith("#3: ")
    assert "Error creating issue for #3" in caplog.text


def test_failure_does_not_stop_the_run(
    fake_clock: FakeClock, since: datetime, caplog: pytest.LogCaptureFixture
) -> None:
    """Verify the next issue is processed after one keeps failing."""
    ctx = make_ctx(timeout=5.0)
    stale = make_issue(1, title="Renamed")
    target = FakeTargetClient()
    target.add_ticket(ticket_for(ctx, make_issue(1), key="TPK-1"))
    target.failures.fail_always("update_issue")

    with caplog.at_level(logging.ERROR, logger="issuesync"):
        report = make_reconciler(ctx, FakeSourceClient([stale, make_issue(2)]), target).run(since)

    assert report.failed == 1
    assert report.created == 1
    assert "Error updating issue TPK-1" in caplog.text
    assert any(t.summary == "Issue 2" for t in target.tickets.values())


def test_comments_mirrored_on_unchanged_ticket(fake_clock: FakeClock, since: datetime) -> None:
    """Verify comments are reconciled even when no field changed."""
    ctx = make_ctx()
    issue = make_issue(1, comment_count=1)
    source = FakeSourceClient([issue])
    source.comments[1] = [SourceComment(id=9, body="hello", author="bilbo", created_at=since)]
    target = FakeTargetClient()
    target.add_ticket(ticket_for(ctx, issue))

    report = make_reconciler(ctx, source, target).run(since)

    assert report.unchanged == 1
    assert write_calls(target) == ["add_comment"]


def test_dry_run_writes_nothing(fake_clock: FakeClock, since: datetime) -> None:
    """Verify a dry run reads everything and writes nothing."""
    ctx = make_ctx(dry_run=True)
    source, target = fix_crash_setup(ctx)
    target.workflow["to do"] = [START]
    source.issues.append(make_issue(43, comment_count=1))
    source.comments[43] = [SourceComment(id=5, body="hi", author="bilbo", created_at=since)]

    report = make_reconciler(ctx, source, target, dry_run=True).run(since)

    assert report.updated == 1
    assert report.created == 1
    assert write_calls(target) == []
    assert target.tickets["TPK-7"].summary == "Crash"


def test_outcome_values() -> None:
    assert {o.value for o in Outcome} == {"created", "updated", "unchanged"}
