"""Mirror GitHub issue comments onto JIRA tickets.

Each mirrored comment starts with a header naming the GitHub comment id, so
later runs can find it again and update it when the GitHub body changes::

    Comment [(ID 484163403)|<url>] from GitHub user [bilbo|<url>] (Bilbo Baggins) at 16:27 PM, April 17 2019:

    <body>
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from issuesync.context import SyncContext
from issuesync.models import SourceComment, SourceIssue, SourceUser, TargetComment, TargetTicket

if TYPE_CHECKING:
    from issuesync.sources.github_source import GitHubCollector
    from issuesync.targets.jira_target import TicketRepository

# Maximum length of a JIRA comment body
MAX_BODY_LENGTH = 1 << 15

COMMENT_RE = re.compile(
    r"^Comment \[\(ID (\d+)\)\|.*?\] from GitHub user \[(.+?)\|.*?\](?: \((.+?)\))? at (.+?):\n\n(.*)$",
    re.DOTALL,
)
COMMENT_ID_RE = re.compile(r"^Comment \[\(ID (\d+)\)\|")


@dataclass(frozen=True)
class MirroredComment:
    """The parts of a mirrored comment's body."""

    source_id: int
    login: str
    name: str
    posted_at: str
    body: str


MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def format_comment_date(value: datetime) -> str:
    """Render ``value`` like "16:27 PM, April 17 2019" whatever the locale."""
    meridian = "AM" if value.hour < 12 else "PM"
    return f"{value:%H:%M} {meridian}, {MONTHS[value.month - 1]} {value.day} {value.year}"


def format_comment(comment: SourceComment, user: SourceUser) -> str:
    """Render the JIRA body of a mirrored GitHub comment."""
    body = f"Comment [(ID {comment.id})|{comment.html_url}]"
    body = f"{body} from GitHub user [{user.login}|{user.html_url}]"
    if user.name:
        body = f"{body} ({user.name})"
    body = f"{body} at {format_comment_date(comment.created_at)}:\n\n{comment.body}"
    return body[:MAX_BODY_LENGTH]


def parse_comment(body: str) -> MirroredComment | None:
    """Split a mirrored comment body into its parts; None if it isn't one."""
    match = COMMENT_RE.match(body)
    if match is None:
        return None
    source_id, login, name, posted_at, text = match.groups()
    return MirroredComment(int(source_id), login, name or "", posted_at, text)


def source_comment_id(body: str) -> int | None:
    match = COMMENT_ID_RE.match(body)
    return int(match.group(1)) if match else None


def comment_in_sync(existing: str, comment: SourceComment) -> bool:
    """Whether a mirrored body still carries the GitHub comment's text."""
    parsed = parse_comment(existing)
    if parsed is None:
        return False
    if parsed.body == comment.body:
        return True
    # Bodies cut at the length limit only keep a prefix
    return len(existing) >= MAX_BODY_LENGTH and comment.body.startswith(parsed.body)


def reconcile_comments(
    ctx: SyncContext,
    collector: GitHubCollector,
    repository: TicketRepository,
    issue: SourceIssue,
    ticket: TargetTicket,
) -> None:
    """Create missing mirrored comments on ``ticket`` and update stale ones."""
    log = ctx.log.getChild("comments")
    if issue.comment_count == 0:
        return

    comments = collector.list_comments(issue)

    mirrored: dict[int, TargetComment] = {}
    for target_comment in ticket.comments:
        source_id = source_comment_id(target_comment.body)
        if source_id is not None:
            mirrored.setdefault(source_id, target_comment)

    users: dict[str, SourceUser] = {}

    def user_for(login: str) -> SourceUser:
        if login not in users:
            users[login] = collector.get_user(login)
        return users[login]

    for comment in comments:
        existing = mirrored.get(comment.id)
        if existing is None:
            log.debug("Creating comment %d on %s", comment.id, ticket.key)
            repository.create_comment(ticket, format_comment(comment, user_for(comment.author)))
        elif comment_in_sync(existing.body, comment):
            log.debug("Comment %d on %s is up to date", comment.id, ticket.key)
        else:
            log.debug("Updating comment %d on %s", comment.id, ticket.key)
            repository.update_comment(ticket, existing.id, format_comment(comment, user_for(comment.author)))
