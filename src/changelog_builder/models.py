"""Data models for the changelog builder."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class RepoRef:
    """A Bitbucket repository, identified by project key and slug."""

    project_key: str
    slug: str

    @property
    def identifier(self) -> str:
        return f"{self.project_key}/{self.slug}"


@dataclass(frozen=True)
class Change:
    """A merged pull request."""

    id: int
    title: str
    source_branch: str
    target_branch: str
    merged_at: datetime
    merged_by: str | None
    url: str


@dataclass(frozen=True)
class RelatedEpic:
    """An epic above a ticket in the epic chain."""

    key: str
    summary: str | None
    url: str | None
    relationship: str  # "required by" | "related"


@dataclass(frozen=True)
class Ticket:
    """A Jira ticket referenced from one or more branch names."""

    key: str
    summary: str
    status: str
    assignee: str | None
    url: str
    related_epics: tuple[RelatedEpic, ...] = ()


@dataclass(frozen=True)
class Story:
    """One resolved ticket together with the changes in a repo that reference it."""

    ticket: Ticket
    repo: RepoRef
    source_branches: frozenset[str]
    changes: tuple[Change, ...]


@dataclass(frozen=True)
class ReportSummary:
    """Story counts for a report."""

    total_stories: int
    repo_breakdown: dict[str, int]  # "PROJECT/slug" -> stories
    status_breakdown: dict[str, int]


@dataclass
class ReportRequest:
    """Parameters of a single report generation."""

    repos: list[RepoRef]
    release_branch: str
    from_date: datetime
    to_date: datetime


@dataclass(frozen=True)
class Report:
    """Complete changelog report for a release window."""

    release_branch: str
    from_date: datetime
    to_date: datetime
    generated_at: datetime
    stories: tuple[Story, ...]
    summary: ReportSummary
