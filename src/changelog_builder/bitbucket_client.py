"""Bitbucket Server client for merged pull requests."""

import logging
import threading
from datetime import datetime, timezone

import requests

from changelog_builder.config import Config
from changelog_builder.exceptions import ReportCancelledError, UpstreamError
from changelog_builder.models import Change, RepoRef

logger = logging.getLogger(__name__)

PAGE_SIZE = 50


def _parse_timestamp(value) -> datetime | None:
    """Parse a Bitbucket timestamp (epoch milliseconds or ISO-8601) as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Unexpected timestamp value: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BitbucketClient:
    """Client for the Bitbucket Server pull request API."""

    def __init__(self, config: Config) -> None:
        self.base_url = config.bitbucket_url.rstrip("/")
        self.timeout = config.timeout_seconds
        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Authorization": f"Bearer {config.bitbucket_access_token}",
        })

    def _get_page(self, repo: RepoRef, start: int) -> dict:
        url = (
            f"{self.base_url}/rest/api/1.0/projects/{repo.project_key}"
            f"/repos/{repo.slug}/pull-requests"
        )
        params = {"state": "MERGED", "start": start, "limit": PAGE_SIZE}
        logger.debug("GET %s start=%d", url, start)

        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamError(
                f"Cannot reach Bitbucket for {repo.identifier}: {e}",
                stage="bitbucket",
                repo=repo.identifier,
            ) from e

        if not resp.ok:
            raise UpstreamError(
                f"Bitbucket returned HTTP {resp.status_code} for {repo.identifier}",
                stage="bitbucket",
                repo=repo.identifier,
            )

        try:
            page = resp.json()
        except ValueError as e:
            raise UpstreamError(
                f"Bitbucket returned a malformed page for {repo.identifier}",
                stage="bitbucket",
                repo=repo.identifier,
            ) from e

        if not isinstance(page, dict) or not isinstance(page.get("values", []), list):
            raise UpstreamError(
                f"Bitbucket returned a malformed page for {repo.identifier}",
                stage="bitbucket",
                repo=repo.identifier,
            )
        return page

    def _to_change(self, repo: RepoRef, pr: dict, merged_at: datetime) -> Change:
        pr_id = pr["id"]
        self_links = pr.get("links", {}).get("self") or []
        url = self_links[0].get("href") if self_links else None
        if not url:
            url = (
                f"{self.base_url}/projects/{repo.project_key}"
                f"/repos/{repo.slug}/pull-requests/{pr_id}"
            )
        author = pr.get("author") or {}
        return Change(
            id=int(pr_id),
            title=pr.get("title", ""),
            source_branch=pr["fromRef"]["displayId"],
            target_branch=pr["toRef"]["displayId"],
            merged_at=merged_at,
            merged_by=(author.get("user") or {}).get("emailAddress"),
            url=url,
        )

    def fetch_merged_changes(
        self,
        repo: RepoRef,
        target_branch: str,
        from_date: datetime,
        to_date: datetime,
        cancel_event: threading.Event | None = None,
    ) -> list[Change]:
        """Fetch merged pull requests into a branch within a time window.

        Pages through every merged pull request of the repository and keeps
        those whose target branch is ``target_branch`` or ends with
        ``/<target_branch>`` and whose
        merge timestamp lies in ``[from_date, to_date]``. Pull requests with
        no merge timestamp are skipped.

        Raises:
            UpstreamError: On any transport failure, non-success status or
                unreadable payload
            ReportCancelledError: If ``cancel_event`` is set between pages
        """
        logger.info(
            "Fetching merged PRs for %s into %s between %s and %s",
            repo.identifier, target_branch, from_date.isoformat(), to_date.isoformat(),
        )
        suffix = f"/{target_branch}"
        changes: list[Change] = []
        start = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise ReportCancelledError(f"Fetch for {repo.identifier} cancelled")

            page = self._get_page(repo, start)
            values = page.get("values", [])

            for pr in values:
                try:
                    target = pr["toRef"]["displayId"]
                    merged_at = _parse_timestamp(pr.get("closedDate") or pr.get("updatedDate"))
                    if merged_at is None:
                        continue
                    if target != target_branch and not target.endswith(suffix):
                        continue
                    if not from_date <= merged_at <= to_date:
                        continue
                    changes.append(self._to_change(repo, pr, merged_at))
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    raise UpstreamError(
                        f"Bitbucket returned a malformed pull request for {repo.identifier}: {e}",
                        stage="bitbucket",
                        repo=repo.identifier,
                    ) from e

            if page.get("isLastPage", True) or not values:
                break
            start = page.get("nextPageStart") or start + PAGE_SIZE

        logger.info("Found %d merged PRs for %s", len(changes), repo.identifier)
        return changes
