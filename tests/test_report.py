"""Tests for story assembly, summaries and report serialization."""

from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timezone

import pytest

from changelog_builder.models import RelatedEpic, RepoRef, Report, Story, Ticket
from changelog_builder.report import assemble_stories, build_summary, report_to_dict
from tests.helpers import make_change

REPO_A = RepoRef(project_key="MBSS", slug="core-api")
REPO_B = RepoRef(project_key="MBCS", slug="web-app")


def _ticket(key, status="Done"):
    return Ticket(
        key=key,
        summary=f"Ticket {key}",
        status=status,
        assignee=None,
        url=f"https://jira.example.com/browse/{key}",
    )


def _story(repo, key, status="Done"):
    return Story(
        ticket=_ticket(key, status),
        repo=repo,
        source_branches=frozenset({f"feature/{key}"}),
        changes=(make_change(1, f"feature/{key}"),),
    )


class TestAssembleStories:
    """Tests for assemble_stories."""

    def test_one_story_per_ticket(self):
        changes = [
            make_change(1, "feature/MBSS-1-login"),
            make_change(2, "bugfix/MBSS-2-crash"),
        ]
        tickets = {"MBSS-1": _ticket("MBSS-1"), "MBSS-2": _ticket("MBSS-2")}

        stories = assemble_stories(REPO_A, changes, tickets)

        assert [s.ticket.key for s in stories] == ["MBSS-1", "MBSS-2"]
        assert all(s.repo == REPO_A for s in stories)

    def test_collapses_changes_sharing_a_ticket(self):
        changes = [
            make_change(1, "feature/MBSS-1-login"),
            make_change(2, "bugfix/MBSS-1-login-fix"),
        ]

        stories = assemble_stories(REPO_A, changes, {"MBSS-1": _ticket("MBSS-1")})

        assert len(stories) == 1
        story = stories[0]
        assert [c.id for c in story.changes] == [1, 2]
        assert story.source_branches == {"feature/MBSS-1-login", "bugfix/MBSS-1-login-fix"}

    def test_same_branch_listed_once(self):
        changes = [
            make_change(1, "feature/MBSS-1-login"),
            make_change(2, "feature/MBSS-1-login"),
        ]

        story = assemble_stories(REPO_A, changes, {"MBSS-1": _ticket("MBSS-1")})[0]

        assert len(story.changes) == 2
        assert story.source_branches == {"feature/MBSS-1-login"}

    def test_change_with_two_keys_joins_both_stories(self):
        changes = [make_change(1, "feature/MBSS-1-MBSS-2-shared")]
        tickets = {"MBSS-1": _ticket("MBSS-1"), "MBSS-2": _ticket("MBSS-2")}

        stories = assemble_stories(REPO_A, changes, tickets)

        assert {s.ticket.key for s in stories} == {"MBSS-1", "MBSS-2"}
        assert all([c.id for c in s.changes] == [1] for s in stories)

    def test_skips_unresolved_keys(self, caplog):
        changes = [
            make_change(1, "feature/MBSS-1-login"),
            make_change(2, "feature/MBSS-404-ghost"),
        ]

        stories = assemble_stories(REPO_A, changes, {"MBSS-1": _ticket("MBSS-1")})

        assert [s.ticket.key for s in stories] == ["MBSS-1"]
        assert "MBSS-404" in caplog.text

    def test_ignores_branches_without_keys(self):
        changes = [
            make_change(1, "develop"),
            make_change(2, "feature/refactor"),
        ]
        assert assemble_stories(REPO_A, changes, {}) == []

    def test_no_changes(self):
        assert assemble_stories(REPO_A, [], {"MBSS-1": _ticket("MBSS-1")}) == []

    def test_stories_are_immutable(self):
        story = assemble_stories(
            REPO_A, [make_change(1, "feature/MBSS-1-login")], {"MBSS-1": _ticket("MBSS-1")}
        )[0]

        assert isinstance(story.source_branches, frozenset)
        assert isinstance(story.changes, tuple)
        with pytest.raises(FrozenInstanceError):
            story.changes = ()
        with pytest.raises(FrozenInstanceError):
            story.ticket.status = "Reopened"


class TestBuildSummary:
    """Tests for build_summary."""

    def test_counts_per_repo_and_status(self):
        stories = [
            _story(REPO_A, "MBSS-1", "Done"),
            _story(REPO_A, "MBSS-2", "In Review"),
            _story(REPO_B, "MBCS-1", "Done"),
        ]

        summary = build_summary(stories, [REPO_A, REPO_B])

        assert summary.total_stories == 3
        assert summary.repo_breakdown == {"MBSS/core-api": 2, "MBCS/web-app": 1}
        assert summary.status_breakdown == {"Done": 2, "In Review": 1}

    def test_zero_fills_repos_without_stories(self):
        summary = build_summary([_story(REPO_A, "MBSS-1")], [REPO_A, REPO_B])

        assert summary.repo_breakdown == {"MBSS/core-api": 1, "MBCS/web-app": 0}
        assert sum(summary.repo_breakdown.values()) == summary.total_stories

    def test_empty_report(self):
        summary = build_summary([], [REPO_A])

        assert summary.total_stories == 0
        assert summary.repo_breakdown == {"MBSS/core-api": 0}
        assert summary.status_breakdown == {}


class TestReportToDict:
    """Tests for report_to_dict serializer."""

    def test_serializes_report(self):
        ticket = replace(
            _ticket("MBSS-1"),
            related_epics=(
                RelatedEpic("MBSS-0", "Epic", "https://jira.example.com/browse/MBSS-0", "required by"),
            ),
        )
        story = Story(
            ticket=ticket,
            repo=REPO_A,
            source_branches=frozenset({"feature/MBSS-1-b", "feature/MBSS-1-a"}),
            changes=(make_change(7, "feature/MBSS-1-a"),),
        )
        report = Report(
            release_branch="release/2025-09",
            from_date=datetime(2025, 9, 1, tzinfo=timezone.utc),
            to_date=datetime(2025, 9, 30, tzinfo=timezone.utc),
            generated_at=datetime(2025, 10, 1, 9, 0, tzinfo=timezone.utc),
            stories=(story,),
            summary=build_summary([story], [REPO_A, REPO_B]),
        )

        d = report_to_dict(report)

        assert d["releaseBranch"] == "release/2025-09"
        assert d["from"] == "2025-09-01T00:00:00+00:00"
        assert d["generatedAt"] == "2025-10-01T09:00:00+00:00"
        assert d["summary"] == {
            "totalStories": 1,
            "repoBreakdown": {"MBSS/core-api": 1, "MBCS/web-app": 0},
            "statusBreakdown": {"Done": 1},
        }
        s = d["stories"][0]
        assert s["repo"] == {"projectKey": "MBSS", "slug": "core-api"}
        assert s["sourceBranches"] == ["feature/MBSS-1-a", "feature/MBSS-1-b"]
        assert s["ticket"]["key"] == "MBSS-1"
        assert s["ticket"]["relatedEpics"] == [{
            "key": "MBSS-0",
            "summary": "Epic",
            "url": "https://jira.example.com/browse/MBSS-0",
            "relationship": "required by",
        }]
        change = s["changes"][0]
        assert change["id"] == 7
        assert change["sourceBranch"] == "feature/MBSS-1-a"
        assert change["mergedAt"] == "2025-09-10T12:00:00+00:00"
        assert change["mergedBy"] == "dev@example.com"
