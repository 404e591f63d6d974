"""JIRA API client for ticket and epic lookups."""

import logging

import requests
from jira import JIRA, JIRAError

from changelog_builder.config import Config
from changelog_builder.exceptions import UpstreamError

logger = logging.getLogger(__name__)


def _jira_error_message(e: JIRAError) -> str:
    if e.status_code == 401:
        return "JIRA authentication failed. Check the API token."
    return f"JIRA returned HTTP {e.status_code}: {e.text}"


class JiraClient:
    """Client for interacting with the JIRA REST API."""

    def __init__(self, config: Config) -> None:
        """Initialize JIRA client with configuration."""
        self.config = config
        self.base_url = config.jira_url.rstrip("/")
        self._client: JIRA | None = None

    def _get_client(self) -> JIRA:
        """Get or create JIRA client instance."""
        if self._client is None:
            auth: dict = {}
            if self.config.jira_email:
                auth["basic_auth"] = (self.config.jira_email, self.config.jira_api_token)
            else:
                auth["token_auth"] = self.config.jira_api_token
            try:
                # max_retries=0: failures surface immediately
                self._client = JIRA(
                    server=self.base_url,
                    timeout=self.config.timeout_seconds,
                    max_retries=0,
                    **auth,
                )
            except JIRAError as e:
                raise UpstreamError(_jira_error_message(e), stage="jira-search") from e
            except requests.RequestException as e:
                raise UpstreamError(
                    f"Cannot connect to JIRA server at {self.base_url}: {e}",
                    stage="jira-search",
                ) from e
        return self._client

    def browse_url(self, key: str) -> str:
        return f"{self.base_url}/browse/{key}"

    def search_issues_by_keys(self, keys: list[str], fields: list[str]) -> list[dict]:
        """Fetch many issues in a single search call.

        Keys that match no issue are left out of the result instead of
        failing the query.

        Returns:
            List of raw issue dicts

        Raises:
            UpstreamError: If the search cannot be performed
        """
        if not keys:
            return []
        client = self._get_client()
        jql = "key IN (" + ",".join(f"'{k}'" for k in keys) + ")"

        try:
            if self.config.jira_cloud:
                result = client.enhanced_search_issues(
                    jql,
                    maxResults=len(keys),
                    fields=fields,
                )
            else:
                result = client.search_issues(
                    jql,
                    maxResults=len(keys),
                    fields=fields,
                    validate_query=False,
                )
            return [self._issue_to_dict(issue) for issue in result]
        except JIRAError as e:
            raise UpstreamError(_jira_error_message(e), stage="jira-search") from e
        except requests.RequestException as e:
            raise UpstreamError(f"JIRA search failed: {e}", stage="jira-search") from e

    def get_issue(self, key: str, fields: list[str]) -> dict:
        """Fetch a single issue with only the requested fields.

        Raises:
            UpstreamError: If the issue cannot be fetched
        """
        client = self._get_client()
        try:
            issue = client.issue(key, fields=",".join(fields))
        except JIRAError as e:
            raise UpstreamError(_jira_error_message(e), stage="jira-issue") from e
        except requests.RequestException as e:
            raise UpstreamError(f"JIRA issue fetch failed: {e}", stage="jira-issue") from e
        return self._issue_to_dict(issue)

    def _issue_to_dict(self, issue) -> dict:
        """Convert JIRA issue object to dictionary."""
        return {
            "key": issue.key,
            "fields": issue.raw.get("fields", {}),
        }
