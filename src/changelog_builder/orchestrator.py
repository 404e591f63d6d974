"""Changelog report generation across repositories."""

import logging
import re
import threading
import time
from dataclasses import replace
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone

from changelog_builder.bitbucket_client import BitbucketClient
from changelog_builder.config import Config
from changelog_builder.exceptions import (
    ReportCancelledError,
    UpstreamError,
    ValidationError,
)
from changelog_builder.jira_client import JiraClient
from changelog_builder.keys import extract_ticket_keys
from changelog_builder.models import Change, RepoRef, Report, ReportRequest, Story
from changelog_builder.report import assemble_stories, build_summary
from changelog_builder.tickets import TicketCache, TicketResolver

logger = logging.getLogger(__name__)

MAX_REPOS = 10
MAX_RANGE = timedelta(days=90)
RELEASE_BRANCH_RE = re.compile(r"release/[0-9]{4}-[0-9]{2}")


def _parse_datetime(value, name: str, errors: list[str]) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        errors.append(f"'{name}' must be an ISO-8601 timestamp")
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        errors.append(f"'{name}' is not a valid ISO-8601 timestamp: {value}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _unique_repos(repos: list[RepoRef]) -> list[RepoRef]:
    """Drop repeated repositories, keeping first-seen order."""
    return list(dict.fromkeys(repos))


def parse_report_request(payload) -> ReportRequest:
    """Build a ReportRequest from a decoded JSON body.

    Only checks shape and types; policy rules are applied by
    validate_request.

    Raises:
        ValidationError: If the body is missing fields or has the wrong types
    """
    if not isinstance(payload, dict):
        raise ValidationError(["Request body must be a JSON object"])

    errors: list[str] = []

    repos: list[RepoRef] = []
    raw_repos = payload.get("repos")
    if not isinstance(raw_repos, list):
        errors.append("'repos' must be a list of {projectKey, slug} objects")
    else:
        for i, entry in enumerate(raw_repos):
            project_key = entry.get("projectKey") if isinstance(entry, dict) else None
            slug = entry.get("slug") if isinstance(entry, dict) else None
            if not isinstance(project_key, str) or not project_key or not isinstance(slug, str) or not slug:
                errors.append(f"Repository #{i + 1} needs a projectKey and a slug")
                continue
            repos.append(RepoRef(project_key=project_key, slug=slug))
    repos = _unique_repos(repos)

    release_branch = payload.get("releaseBranch")
    if release_branch is not None and not isinstance(release_branch, str):
        errors.append("'releaseBranch' must be a string")
        release_branch = None

    from_date = _parse_datetime(payload.get("from"), "from", errors)
    to_date = _parse_datetime(payload.get("to"), "to", errors)

    if errors:
        raise ValidationError(errors)

    return ReportRequest(
        repos=repos,
        release_branch=(release_branch or "").strip(),
        from_date=from_date,
        to_date=to_date,
    )


def validate_request(request: ReportRequest) -> None:
    """Check a request against report policy before touching any upstream.

    Raises:
        ValidationError: Listing every rule the request breaks
    """
    errors: list[str] = []

    if not request.repos:
        errors.append("At least one repository must be specified")
    elif len(request.repos) > MAX_REPOS:
        errors.append(f"Maximum {MAX_REPOS} repositories allowed")

    if not request.release_branch:
        errors.append("Release branch is required")
    elif not RELEASE_BRANCH_RE.fullmatch(request.release_branch):
        errors.append("Release branch must match format 'release/YYYY-MM'")

    if request.from_date >= request.to_date:
        errors.append("From date must be before To date")
    elif request.to_date - request.from_date > MAX_RANGE:
        errors.append(f"Date range cannot exceed {MAX_RANGE.days} days")

    if errors:
        raise ValidationError(errors)


def _fetch_all_changes(
    bitbucket: BitbucketClient,
    request: ReportRequest,
    cancel_event: threading.Event,
) -> list[list[Change]]:
    """Fetch every repository's changes concurrently.

    The first failure sets ``cancel_event`` so the remaining fetches stop at
    their next page, drops fetches that have not started, and is re-raised.

    Returns:
        One change list per repository, in request order.
    """
    results: list[list[Change] | None] = [None] * len(request.repos)
    executor = ThreadPoolExecutor(
        max_workers=len(request.repos), thread_name_prefix="bitbucket-fetch"
    )
    try:
        futures = {
            executor.submit(
                bitbucket.fetch_merged_changes,
                repo,
                request.release_branch,
                request.from_date,
                request.to_date,
                cancel_event,
            ): i
            for i, repo in enumerate(request.repos)
        }
        for future in as_completed(futures):
            results[futures[future]] = future.result()
    except BaseException:
        cancel_event.set()
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown()
    return results


def generate_report(
    request: ReportRequest,
    config: Config,
    cancel_event: threading.Event | None = None,
) -> Report:
    """Generate a changelog report.

    Args:
        request: Repositories, release branch and time window
        config: Upstream connection settings
        cancel_event: Optional signal; once set, the report is abandoned

    Returns:
        Report with one story per (repository, resolved ticket)

    Raises:
        ValidationError: If the request breaks report policy
        UpstreamError: If Bitbucket or the JIRA batch search fails
        ReportCancelledError: If cancelled before completion
    """
    request = replace(request, repos=_unique_repos(request.repos))
    validate_request(request)

    if cancel_event is None:
        cancel_event = threading.Event()

    logger.info(
        "Starting changelog generation for %s (%d repos, %s to %s)",
        request.release_branch, len(request.repos),
        request.from_date.isoformat(), request.to_date.isoformat(),
    )
    started = time.perf_counter()
    stage = "bitbucket"

    try:
        changes_per_repo = _fetch_all_changes(BitbucketClient(config), request, cancel_event)

        keys: set[str] = set()
        for changes in changes_per_repo:
            for change in changes:
                keys.update(extract_ticket_keys(change.source_branch))
        logger.debug("Found %d unique ticket keys", len(keys))

        stage = "jira"
        resolver = TicketResolver(
            JiraClient(config),
            TicketCache(),
            epic_link_field=config.epic_link_field,
            pm_epic_field=config.pm_epic_field,
            cancel_event=cancel_event,
        )
        tickets = resolver.resolve(keys)

        stage = "assembly"
        stories: list[Story] = []
        for repo, changes in zip(request.repos, changes_per_repo):
            stories.extend(assemble_stories(repo, changes, tickets))

        summary = build_summary(stories, request.repos)
    except ReportCancelledError:
        logger.info(
            "Changelog generation cancelled after %dms at stage %s",
            (time.perf_counter() - started) * 1000, stage,
        )
        raise
    except UpstreamError as e:
        logger.error(
            "Changelog generation failed after %dms at stage %s (repo %s)",
            (time.perf_counter() - started) * 1000, e.stage, e.repo or "-",
            exc_info=True,
        )
        raise
    except Exception:
        logger.error(
            "Changelog generation failed after %dms at stage %s",
            (time.perf_counter() - started) * 1000, stage,
            exc_info=True,
        )
        raise

    report = Report(
        release_branch=request.release_branch,
        from_date=request.from_date,
        to_date=request.to_date,
        generated_at=datetime.now(timezone.utc),
        stories=tuple(stories),
        summary=summary,
    )
    logger.info(
        "Changelog generation completed in %dms. Found %d stories",
        (time.perf_counter() - started) * 1000, len(stories),
    )
    return report
