"""Story assembly, summary counts and report serialization."""

import logging
from datetime import datetime

from changelog_builder.keys import extract_ticket_keys
from changelog_builder.models import (
    Change,
    RelatedEpic,
    RepoRef,
    Report,
    ReportSummary,
    Story,
    Ticket,
)

logger = logging.getLogger(__name__)


def assemble_stories(
    repo: RepoRef, changes: list[Change], tickets: dict[str, Ticket]
) -> list[Story]:
    """Group a repository's changes into one story per referenced ticket.

    A change whose branch references several tickets appears in each of
    their stories. Keys with no resolved ticket produce no story.
    """
    key_changes: dict[str, list[Change]] = {}
    key_branches: dict[str, set[str]] = {}

    for change in changes:
        for key in sorted(extract_ticket_keys(change.source_branch)):
            key_changes.setdefault(key, []).append(change)
            key_branches.setdefault(key, set()).add(change.source_branch)

    stories: list[Story] = []
    for key, grouped in key_changes.items():
        ticket = tickets.get(key)
        if ticket is None:
            logger.warning(
                "JIRA ticket %s not found for repo %s; %d change(s) left out",
                key, repo.identifier, len(grouped),
            )
            continue
        stories.append(Story(
            ticket=ticket,
            repo=repo,
            source_branches=frozenset(key_branches[key]),
            changes=tuple(grouped),
        ))
    return stories


def build_summary(stories: list[Story], repos: list[RepoRef]) -> ReportSummary:
    """Count stories per repository and per ticket status.

    Every requested repository gets an entry, zero when it has no stories.
    """
    repo_breakdown = {repo.identifier: 0 for repo in repos}
    status_breakdown: dict[str, int] = {}

    for story in stories:
        repo_id = story.repo.identifier
        repo_breakdown[repo_id] = repo_breakdown.get(repo_id, 0) + 1
        status = story.ticket.status
        status_breakdown[status] = status_breakdown.get(status, 0) + 1

    return ReportSummary(
        total_stories=len(stories),
        repo_breakdown=repo_breakdown,
        status_breakdown=status_breakdown,
    )


def report_to_dict(report: Report) -> dict:
    """Convert a Report to a JSON-serializable dict."""

    def _dt_str(d: datetime) -> str:
        return d.isoformat()

    def _repo_dict(r: RepoRef) -> dict:
        return {"projectKey": r.project_key, "slug": r.slug}

    def _epic_dict(e: RelatedEpic) -> dict:
        return {
            "key": e.key,
            "summary": e.summary,
            "url": e.url,
            "relationship": e.relationship,
        }

    def _ticket_dict(t: Ticket) -> dict:
        return {
            "key": t.key,
            "summary": t.summary,
            "status": t.status,
            "assignee": t.assignee,
            "url": t.url,
            "relatedEpics": [_epic_dict(e) for e in t.related_epics],
        }

    def _change_dict(c: Change) -> dict:
        return {
            "id": c.id,
            "title": c.title,
            "sourceBranch": c.source_branch,
            "targetBranch": c.target_branch,
            "mergedAt": _dt_str(c.merged_at),
            "mergedBy": c.merged_by,
            "url": c.url,
        }

    stories = []
    for story in report.stories:
        stories.append({
            "ticket": _ticket_dict(story.ticket),
            "repo": _repo_dict(story.repo),
            "sourceBranches": sorted(story.source_branches),
            "changes": [_change_dict(c) for c in story.changes],
        })

    return {
        "releaseBranch": report.release_branch,
        "from": _dt_str(report.from_date),
        "to": _dt_str(report.to_date),
        "generatedAt": _dt_str(report.generated_at),
        "stories": stories,
        "summary": {
            "totalStories": report.summary.total_stories,
            "repoBreakdown": report.summary.repo_breakdown,
            "statusBreakdown": report.summary.status_breakdown,
        },
    }
