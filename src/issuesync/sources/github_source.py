"""GitHub issue source: client and collector."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from functools import partial
from typing import Any

from github import Auth, Github

from issuesync.context import SyncContext
from issuesync.models import EventKind, IssueEvent, Page, SourceComment, SourceIssue, SourceUser
from issuesync.retry import retry
from issuesync.sources.base import SourceClient

PER_PAGE = 100

PROJECT_EVENTS = {kind.value: kind for kind in (EventKind.ADDED, EventKind.MOVED, EventKind.REMOVED)}


def issue_from_github(issue: Any) -> SourceIssue:
    """Convert a PyGithub Issue into a SourceIssue without derived attributes."""
    return SourceIssue(
        id=issue.id,
        number=issue.number,
        title=issue.title or "",
        body=issue.body or "",
        state=issue.state or "",
        reporter=issue.user.login if issue.user else "",
        labels=tuple(label.name for label in issue.labels),
        comment_count=issue.comments or 0,
        # If pull_request is set, it's a Pull Request
        is_pull_request=issue.pull_request is not None,
        html_url=issue.html_url or "",
    )


def event_from_github(event: Any) -> IssueEvent:
    """Convert a PyGithub IssueEvent into an IssueEvent."""
    kind = PROJECT_EVENTS.get(event.event)
    if kind is not None:
        # The project card is only present in the raw payload
        card = event.raw_data.get("project_card") or {}
        return IssueEvent(kind=kind, column_name=card.get("column_name"), commit_id=event.commit_id)
    if event.commit_id:
        return IssueEvent(kind=EventKind.COMMIT_LINKED, commit_id=event.commit_id)
    return IssueEvent(kind=EventKind.OTHER)


class GitHubClient(SourceClient):
    """GitHub source client backed by PyGithub."""

    def __init__(self, repo_name: str, token: str = "") -> None:
        self.repo_name = repo_name
        self.token = token
        self.client: Github | None = None
        self._repo: Any = None
        # Issues seen on listing pages, so their events can be listed without a refetch
        self._issues: dict[int, Any] = {}

    def connect(self) -> None:
        """Connect to GitHub and check that the API is reachable."""
        if self.token:
            self.client = Github(auth=Auth.Token(self.token), per_page=PER_PAGE)
        else:
            self.client = Github(per_page=PER_PAGE)
        # Make a request so we can check that we can connect fine
        self.client.get_rate_limit()
        self._repo = self.client.get_repo(self.repo_name)

    @property
    def repo(self) -> Any:
        if self._repo is None:
            self.connect()
        return self._repo

    def has_projects(self) -> bool:
        return bool(self.repo.has_projects)

    def list_issues_page(self, since: datetime, page: int) -> Page[SourceIssue]:
        listing = self.repo.get_issues(state="all", sort="created", direction="asc", since=since)
        raw = listing.get_page(page)
        for issue in raw:
            self._issues[issue.number] = issue
        return Page([issue_from_github(issue) for issue in raw], is_last=len(raw) < PER_PAGE)

    def _issue(self, number: int) -> Any:
        if number not in self._issues:
            self._issues[number] = self.repo.get_issue(number)
        return self._issues[number]

    def list_events_page(self, number: int, page: int) -> Page[IssueEvent]:
        raw = self._issue(number).get_events().get_page(page)
        return Page([event_from_github(event) for event in raw], is_last=len(raw) < PER_PAGE)

    def list_comments(self, number: int) -> list[SourceComment]:
        return [
            SourceComment(
                id=comment.id,
                body=comment.body or "",
                author=comment.user.login if comment.user else "",
                created_at=comment.created_at,
                html_url=comment.html_url or "",
            )
            for comment in self._issue(number).get_comments()
        ]

    def get_user(self, login: str) -> SourceUser:
        if self.client is None:
            self.connect()
        assert self.client is not None
        user = self.client.get_user(login)
        return SourceUser(login=user.login, name=user.name or "", html_url=user.html_url or "")

    def get_source_name(self) -> str:
        return self.repo_name


def replay_events(events: Iterable[IssueEvent]) -> tuple[str | None, list[str]]:
    """Fold an event history into the current board column and commit ids.

    Added/moved events set the column, a removed event clears it. Every
    commit id is kept, in event order, duplicates included.
    """
    column: str | None = None
    commit_ids: list[str] = []
    for event in events:
        if event.kind in (EventKind.ADDED, EventKind.MOVED):
            if event.column_name is not None:
                column = event.column_name
        elif event.kind is EventKind.REMOVED:
            column = None
        if event.commit_id:
            commit_ids.append(event.commit_id)
    return column, commit_ids


class GitHubCollector:
    """Collects issues, their derived board state and their comments."""

    def __init__(self, ctx: SyncContext, client: SourceClient) -> None:
        self.ctx = ctx
        self.client = client
        self.log = ctx.log.getChild("github")

    def list_issues(self, since: datetime) -> list[SourceIssue]:
        """Return every issue (not pull request) updated since ``since``, oldest first."""
        has_projects = retry(self.client.has_projects, self.ctx.timeout, self.log)

        issues: list[SourceIssue] = []
        page = 0
        while True:
            result = retry(partial(self.client.list_issues_page, since, page), self.ctx.timeout, self.log)
            for issue in result.items:
                if issue.is_pull_request:
                    continue
                if has_projects:
                    issue = self._with_event_history(issue)
                issues.append(issue)
            if result.is_last:
                break
            page += 1

        self.log.debug("Collected %d GitHub issue(s)", len(issues))
        return issues

    def list_events(self, number: int) -> list[IssueEvent]:
        events: list[IssueEvent] = []
        page = 0
        while True:
            result = retry(partial(self.client.list_events_page, number, page), self.ctx.timeout, self.log)
            events.extend(result.items)
            if result.is_last:
                return events
            page += 1

    def _with_event_history(self, issue: SourceIssue) -> SourceIssue:
        try:
            events = self.list_events(issue.number)
        except Exception as exc:
            self.log.error("Could not read event history of issue #%d: %s", issue.number, exc)
            return issue

        column, commit_ids = replay_events(events)
        if column is not None:
            self.log.debug("Issue #%d is in project column '%s'", issue.number, column)
        return replace(issue, board_column=column, commit_ids=tuple(commit_ids))

    def list_comments(self, issue: SourceIssue) -> list[SourceComment]:
        try:
            return retry(partial(self.client.list_comments, issue.number), self.ctx.timeout, self.log)
        except Exception as exc:
            self.log.error("Error retrieving GitHub comments for issue #%d: %s", issue.number, exc)
            raise

    def get_user(self, login: str) -> SourceUser:
        try:
            return retry(partial(self.client.get_user, login), self.ctx.timeout, self.log)
        except Exception as exc:
            self.log.error("Error retrieving GitHub user %s: %s", login, exc)
            raise
