"""Shared test helpers."""

from datetime import datetime, timezone

from changelog_builder.config import Config
from changelog_builder.models import Change


def make_config(**overrides) -> Config:
    """Build a valid Config pointing at example upstreams."""
    values = {
        "jira_url": "https://jira.example.com",
        "jira_api_token": "jira-token",
        "bitbucket_url": "https://bitbucket.example.com",
        "bitbucket_access_token": "bb-token",
    }
    values.update(overrides)
    return Config(**values)


def make_change(pr_id, source_branch, merged_at=None, target_branch="release/2025-09"):
    """Build a merged Change."""
    return Change(
        id=pr_id,
        title=f"PR {pr_id}",
        source_branch=source_branch,
        target_branch=target_branch,
        merged_at=merged_at or datetime(2025, 9, 10, 12, 0, tzinfo=timezone.utc),
        merged_by="dev@example.com",
        url=f"https://bitbucket.example.com/pr/{pr_id}",
    )
