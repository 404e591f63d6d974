"""Ticket resolution with per-report caching and epic chain lookup."""

import logging
import threading
from collections.abc import Iterable

from changelog_builder.exceptions import ReportCancelledError, UpstreamError
from changelog_builder.jira_client import JiraClient
from changelog_builder.models import RelatedEpic, Ticket

logger = logging.getLogger(__name__)

# Relationship label for each epic level, nearest first. Its length is the
# maximum depth of the epic chain that is ever followed.
EPIC_RELATIONSHIPS = ("required by", "related")
MAX_EPIC_DEPTH = len(EPIC_RELATIONSHIPS)


class TicketCache:
    """Tickets and epic lookups resolved during one report generation.

    A new instance is created for every report; nothing is evicted and
    nothing is shared between reports.
    """

    def __init__(self) -> None:
        self._tickets: dict[str, Ticket] = {}
        self._epics: dict[tuple[str, tuple[str, ...]], dict] = {}

    def get(self, key: str) -> Ticket | None:
        return self._tickets.get(key)

    def set(self, key: str, ticket: Ticket) -> None:
        self._tickets[key] = ticket

    def __contains__(self, key: str) -> bool:
        return key in self._tickets

    def __len__(self) -> int:
        return len(self._tickets)

    def get_epic(self, key: str, fields: tuple[str, ...]) -> dict | None:
        return self._epics.get((key, fields))

    def set_epic(self, key: str, fields: tuple[str, ...], epic_fields: dict) -> None:
        self._epics[(key, fields)] = epic_fields


def _linked_key(value) -> str | None:
    """Read an issue key out of an epic link style custom field."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        return _linked_key(value.get("key") or value.get("value"))
    return None


class TicketResolver:
    """Resolves ticket keys to tickets, including their epic chain."""

    def __init__(
        self,
        client: JiraClient,
        cache: TicketCache,
        epic_link_field: str,
        pm_epic_field: str,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.epic_link_field = epic_link_field
        self.pm_epic_field = pm_epic_field
        self.cancel_event = cancel_event

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ReportCancelledError("Ticket resolution cancelled")

    def resolve(self, keys: Iterable[str]) -> dict[str, Ticket]:
        """Resolve ticket keys to tickets.

        Keys already in the cache are served from it; all others are looked
        up with one batch search. Keys that match no ticket are absent from
        the result.

        Raises:
            UpstreamError: If the batch search fails
            ReportCancelledError: If cancelled while resolving
        """
        requested = sorted(set(keys))
        result: dict[str, Ticket] = {}
        uncached: list[str] = []

        for key in requested:
            cached = self.cache.get(key)
            if cached is not None:
                result[key] = cached
            else:
                uncached.append(key)

        if uncached:
            self._check_cancelled()
            logger.debug("Fetching %d uncached tickets from JIRA: %s", len(uncached), ", ".join(uncached))
            fields = ["summary", "status", "assignee", "description", self.epic_link_field]
            raw_issues = self.client.search_issues_by_keys(uncached, fields)

            for raw in raw_issues:
                ticket = self._build_ticket(raw)
                self.cache.set(ticket.key, ticket)
                result[ticket.key] = ticket

        missing = [key for key in requested if key not in result]
        if missing:
            logger.warning("No JIRA ticket found for: %s", ", ".join(missing))

        logger.info(
            "Resolved %d tickets (%d from cache, %d requested from JIRA)",
            len(result), len(requested) - len(uncached), len(uncached),
        )
        return result

    def _build_ticket(self, raw: dict) -> Ticket:
        try:
            key = raw["key"].upper()
            fields = raw.get("fields") or {}
            status = (fields.get("status") or {}).get("name", "")
            assignee = (fields.get("assignee") or {}).get("displayName")
        except (KeyError, AttributeError, TypeError) as e:
            raise UpstreamError(
                f"JIRA returned a malformed issue: {e}", stage="jira-search"
            ) from e

        return Ticket(
            key=key,
            summary=fields.get("summary") or "",
            status=status,
            assignee=assignee,
            url=self.client.browse_url(key),
            related_epics=tuple(self._resolve_epics(_linked_key(fields.get(self.epic_link_field)))),
        )

    def _fetch_epic_fields(self, key: str, fields: tuple[str, ...]) -> dict | None:
        cached = self.cache.get_epic(key, fields)
        if cached is not None:
            return cached
        self._check_cancelled()
        try:
            raw = self.client.get_issue(key, list(fields))
        except UpstreamError as e:
            logger.warning("Could not fetch epic %s: %s", key, e)
            return None
        epic_fields = raw.get("fields") or {}
        self.cache.set_epic(key, fields, epic_fields)
        return epic_fields

    def _resolve_epics(self, epic_key: str | None) -> list[RelatedEpic]:
        """Walk the epic chain upwards from a ticket's direct epic.

        The direct epic is recorded as "required by" and its own PM epic as
        "related". The walk stops at MAX_EPIC_DEPTH or at the first epic
        that cannot be fetched.
        """
        related: list[RelatedEpic] = []
        next_key = epic_key

        for depth, relationship in enumerate(EPIC_RELATIONSHIPS, start=1):
            if not next_key:
                break
            if depth < MAX_EPIC_DEPTH:
                fields = ("summary", self.pm_epic_field)
            else:
                fields = ("summary",)

            epic_fields = self._fetch_epic_fields(next_key, fields)
            if epic_fields is None:
                break

            related.append(RelatedEpic(
                key=next_key,
                summary=epic_fields.get("summary"),
                url=self.client.browse_url(next_key),
                relationship=relationship,
            ))
            next_key = _linked_key(epic_fields.get(self.pm_epic_field))

        return related
