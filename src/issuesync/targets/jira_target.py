"""JIRA target: client, ticket repository and its simulation variant."""

from __future__ import annotations

from collections.abc import Callable, Collection
from functools import partial
from typing import Any, TypeVar

from jira import JIRA

from issuesync.context import SyncContext
from issuesync.errors import FieldValueError, NoSuchTransitionError, RemoteCallError
from issuesync.fields import FieldMapper, FieldMetadata
from issuesync.logging import truncate
from issuesync.models import FieldKey, TargetComment, TargetTicket, Transition
from issuesync.retry import retry
from issuesync.targets.base import TargetClient

T = TypeVar("T")

# Above this many ids the JQL query gets too long (414 Request-URI Too Large),
# so tickets are filtered client-side instead.
MAX_JQL_ISSUE_LENGTH = 100

# Fields that are only sent on creation
CREATE_ONLY_FIELDS = ("project", "issuetype")


def ticket_from_jira(issue: Any) -> TargetTicket:
    """Convert a jira Issue resource into a TargetTicket."""
    fields = (issue.raw or {}).get("fields") or {}
    status = fields.get("status") or {}
    comment_page = fields.get("comment") or {}
    return TargetTicket(
        key=issue.key,
        id=str(issue.id),
        summary=fields.get("summary") or "",
        description=fields.get("description") or "",
        status=status.get("name") or "",
        custom_fields={k: v for k, v in fields.items() if k.startswith("customfield_")},
        comments=[
            TargetComment(id=str(c.get("id")), body=c.get("body") or "") for c in comment_page.get("comments", [])
        ],
    )


def error_body(exc: BaseException) -> str:
    """Return the HTTP response body carried by a client error, if any."""
    text = getattr(exc, "text", None)
    if text:
        return str(text)
    response = getattr(exc, "response", None)
    if response is not None:
        return getattr(response, "text", "") or ""
    return ""


class JiraClient(TargetClient):
    """JIRA target client backed by the ``jira`` library."""

    def __init__(self, server: str, user: str = "", token: str = "") -> None:
        self.server = server
        self.user = user
        self.token = token
        self.client: JIRA | None = None

    def connect(self) -> None:
        """Connect using basic auth (user + token), token auth, or anonymously."""
        if self.user and self.token:
            self.client = JIRA(server=self.server, basic_auth=(self.user, self.token))
        elif self.token:
            self.client = JIRA(server=self.server, token_auth=self.token)
        else:
            # Try without auth (for public instances)
            self.client = JIRA(server=self.server)

    @property
    def jira(self) -> JIRA:
        if self.client is None:
            self.connect()
        assert self.client is not None
        return self.client

    def list_fields(self) -> list[FieldMetadata]:
        return self.jira.fields()

    def search(self, query: str) -> list[TargetTicket]:
        return [ticket_from_jira(issue) for issue in self.jira.search_issues(query, maxResults=False)]

    def get_issue(self, key: str) -> TargetTicket:
        return ticket_from_jira(self.jira.issue(key))

    def create_issue(self, fields: dict[str, Any]) -> TargetTicket:
        return ticket_from_jira(self.jira.create_issue(fields=fields))

    def update_issue(self, key: str, fields: dict[str, Any]) -> TargetTicket:
        issue = self.jira.issue(key, fields="summary")
        issue.update(fields=fields)
        return ticket_from_jira(issue)

    def get_transitions(self, key: str) -> list[Transition]:
        return [
            Transition(id=str(t["id"]), name=t.get("name", ""), to_status=(t.get("to") or {}).get("name", ""))
            for t in self.jira.transitions(key)
        ]

    def apply_transition(self, key: str, transition_id: str) -> None:
        self.jira.transition_issue(key, transition_id)

    def add_comment(self, key: str, body: str) -> TargetComment:
        comment = self.jira.add_comment(key, body)
        return TargetComment(id=str(comment.id), body=comment.body)

    def update_comment(self, key: str, comment_id: str, body: str) -> TargetComment:
        comment = self.jira.comment(key, comment_id)
        comment.update(body=body)
        return TargetComment(id=str(comment_id), body=body)


def use_jql_filter(mapper: FieldMapper, id_count: int) -> bool:
    """Whether source ids can be filtered server-side in a single JQL query."""
    return mapper.supports_jql_filter and id_count < MAX_JQL_ISSUE_LENGTH


def build_jql(project_key: str, source_id_field: str | None = None, source_ids: Collection[int] = ()) -> str:
    """Build the ticket search query, filtered by source ids when a field is given."""
    jql = f"project='{project_key}'"
    if source_id_field is not None:
        jql += f" AND cf[{source_id_field}] in ({','.join(str(i) for i in source_ids)})"
    return jql


class TicketRepository:
    """Reads and writes JIRA tickets, retrying every remote call."""

    def __init__(self, ctx: SyncContext, client: TargetClient) -> None:
        self.ctx = ctx
        self.client = client
        self.mapper = ctx.field_mapper
        self.log = ctx.log.getChild("jira")

    def _call(self, description: str, operation: Callable[[], T]) -> T:
        try:
            return retry(operation, self.ctx.timeout, self.log)
        except Exception as exc:
            self.log.error("Error %s: %s", description, exc)
            body = error_body(exc)
            if body:
                self.log.debug("Error body: %s", body)
            raise RemoteCallError(f"Error {description}", body) from exc

    def list_tickets(self, source_ids: Collection[int]) -> list[TargetTicket]:
        """Return the project's tickets whose SourceID is in ``source_ids``."""
        if not source_ids:
            return []

        filter_with_jql = use_jql_filter(self.mapper, len(source_ids))
        if filter_with_jql:
            field_id = self.mapper.mapping.field_id(FieldKey.SOURCE_ID)
            jql = build_jql(self.ctx.project_key, field_id, source_ids)
        else:
            jql = build_jql(self.ctx.project_key)

        tickets = self._call("retrieving JIRA issues", partial(self.client.search, jql))
        wanted = set(source_ids)
        matched: list[TargetTicket] = []
        for ticket in tickets:
            try:
                source_id = self.mapper.get_field_value(ticket, FieldKey.SOURCE_ID)
            except FieldValueError as exc:
                self.log.error("Could not read GitHub ID of %s: %s", ticket.key, exc)
                continue
            # The query already filtered by id
            if filter_with_jql or source_id in wanted:
                matched.append(ticket)
        self.log.debug("Kept %d of %d JIRA issue(s) by GitHub ID", len(matched), len(tickets))
        return matched

    def fetch_ticket(self, key: str) -> TargetTicket:
        return self._call(f"retrieving JIRA issue {key}", partial(self.client.get_issue, key))

    def create_ticket(self, fields: dict[str, Any]) -> TargetTicket:
        return self._call("creating JIRA issue", partial(self.client.create_issue, fields))

    def update_ticket(self, ticket: TargetTicket, fields: dict[str, Any]) -> TargetTicket:
        """Send the mapped fields of ``ticket``; the result only signals success."""
        update_fields = {k: v for k, v in fields.items() if k not in CREATE_ONLY_FIELDS}
        return self._call(
            f"updating JIRA issue {ticket.key}", partial(self.client.update_issue, ticket.key, update_fields)
        )

    def apply_transition(self, ticket: TargetTicket, status_name: str) -> bool:
        """Move ``ticket`` to ``status_name`` with a single transition.

        Returns whether a transition was applied. Raises NoSuchTransitionError
        when no available transition ends in the desired status.
        """
        current = ticket.status or ""
        desired = status_name.lower()
        if current.lower() == desired:
            self.log.debug("Issue %s status is already in sync", ticket.key)
            return False

        transitions = self._call(
            f"retrieving JIRA transitions for {ticket.key}", partial(self.client.get_transitions, ticket.key)
        )
        for transition in transitions:
            if transition.to_status.lower() == desired:
                self._apply_transition(ticket, transition)
                return True
        raise NoSuchTransitionError(ticket.key, current, status_name)

    def _apply_transition(self, ticket: TargetTicket, transition: Transition) -> None:
        self.log.info("Applying transition %s -> %s on issue %s", ticket.status, transition.to_status, ticket.key)
        self._call(
            f"applying JIRA transition on {ticket.key}",
            partial(self.client.apply_transition, ticket.key, transition.id),
        )

    def create_comment(self, ticket: TargetTicket, body: str) -> TargetComment:
        return self._call(f"creating comment on {ticket.key}", partial(self.client.add_comment, ticket.key, body))

    def update_comment(self, ticket: TargetTicket, comment_id: str, body: str) -> TargetComment:
        return self._call(
            f"updating comment {comment_id} on {ticket.key}",
            partial(self.client.update_comment, ticket.key, comment_id, body),
        )


class SimulatedTicketRepository(TicketRepository):
    """Performs every read like TicketRepository but only logs writes.

    Tickets "created" during the run are kept in memory so that they can be
    fetched back by key.
    """

    def __init__(self, ctx: SyncContext, client: TargetClient) -> None:
        super().__init__(ctx, client)
        self._simulated: dict[str, TargetTicket] = {}

    def _value(self, ticket: TargetTicket, key: FieldKey, default: Any = "") -> Any:
        try:
            return self.mapper.get_field_value(ticket, key)
        except FieldValueError:
            return default

    def fetch_ticket(self, key: str) -> TargetTicket:
        if key in self._simulated:
            return self._simulated[key]
        return super().fetch_ticket(key)

    def create_ticket(self, fields: dict[str, Any]) -> TargetTicket:
        key = f"{self.ctx.project_key}-DRYRUN-{len(self._simulated) + 1}"
        ticket = TargetTicket.from_field_set(fields, key=key)
        self._simulated[key] = ticket

        self.log.info("Create new JIRA issue:")
        self.log.info("  Summary: %s", ticket.summary)
        self.log.info("  Description: %s", truncate(ticket.description, 50))
        self.log.info("  GitHub ID: %s", self._value(ticket, FieldKey.SOURCE_ID))
        self.log.info("  GitHub Number: %s", self._value(ticket, FieldKey.SOURCE_NUMBER, -1))
        self.log.info("  GitHub Labels: %s", self._value(ticket, FieldKey.SOURCE_LABELS))
        self.log.info("  GitHub Status: %s", self._value(ticket, FieldKey.SOURCE_STATUS))
        self.log.info("  GitHub Reporter: %s", self._value(ticket, FieldKey.SOURCE_REPORTER))
        self.log.info("  GitHub Commits: %s", ",".join(self._value(ticket, FieldKey.SOURCE_COMMITS, [])))
        return ticket

    def update_ticket(self, ticket: TargetTicket, fields: dict[str, Any]) -> TargetTicket:
        updated = TargetTicket.from_field_set(fields, key=ticket.key, id=ticket.id)
        self.log.info("Update JIRA issue %s:", ticket.key)
        self.log.info("  Summary: %s", updated.summary)
        self.log.info("  Description: %s", truncate(updated.description, 50))
        self.log.info("  Labels: %s", self._value(updated, FieldKey.SOURCE_LABELS))
        self.log.info("  State: %s", self._value(updated, FieldKey.SOURCE_STATUS))
        return updated

    def apply_transition(self, ticket: TargetTicket, status_name: str) -> bool:
        if ticket.key in self._simulated:
            self.log.info("Applying transition on new issue %s:", ticket.key)
            self.log.info("  New Status: %s", status_name)
            return False
        return super().apply_transition(ticket, status_name)

    def _apply_transition(self, ticket: TargetTicket, transition: Transition) -> None:
        self.log.info("Applying transition on issue %s:", ticket.key)
        self.log.info("  Transition Id: %s", transition.id)
        self.log.info("  Old Status: %s", ticket.status)
        self.log.info("  New Status: %s", transition.to_status)

    def create_comment(self, ticket: TargetTicket, body: str) -> TargetComment:
        self.log.info("Create comment on JIRA issue %s:", ticket.key)
        self.log.info("  Body: %s", truncate(body, 100))
        return TargetComment(id="", body=body)

    def update_comment(self, ticket: TargetTicket, comment_id: str, body: str) -> TargetComment:
        self.log.info("Update comment %s on JIRA issue %s:", comment_id, ticket.key)
        self.log.info("  Body: %s", truncate(body, 100))
        return TargetComment(id=comment_id, body=body)
