"""Configuration management for the changelog builder."""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from changelog_builder.models import RepoRef

CONFIG_ENV_VAR = "CHANGELOG_BUILDER_CONFIG"

DEFAULT_EPIC_LINK_FIELD = "customfield_10371"
DEFAULT_PM_EPIC_FIELD = "customfield_12272"
DEFAULT_RELEASE_BRANCH = "release/2025-09"


def _url_errors(label: str, url: str) -> list[str]:
    if not url:
        return [f"{label} URL is required"]
    errors: list[str] = []
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        errors.append(f"{label} URL must start with http:// or https://")
    if not parsed.netloc:
        errors.append(f"{label} URL must include a domain")
    return errors


@dataclass
class Config:
    """Configuration for the Jira and Bitbucket connections and report defaults."""

    jira_url: str
    jira_api_token: str
    bitbucket_url: str
    bitbucket_access_token: str
    jira_email: str | None = None
    jira_cloud: bool = False
    epic_link_field: str = DEFAULT_EPIC_LINK_FIELD
    pm_epic_field: str = DEFAULT_PM_EPIC_FIELD
    timeout_seconds: int = 30
    repositories: list[RepoRef] = field(default_factory=list)
    default_release_branch: str = DEFAULT_RELEASE_BRANCH
    log_level: str = "INFO"

    def validate(self) -> list[str]:
        """Validate configuration values. Returns list of error messages."""
        errors: list[str] = []

        errors.extend(_url_errors("JIRA", self.jira_url))
        if not self.jira_api_token:
            errors.append("JIRA API token is required")
        if self.jira_email is not None and "@" not in self.jira_email:
            errors.append("JIRA email must be a valid email address")
        if not self.epic_link_field or not self.pm_epic_field:
            errors.append("JIRA epic field names must not be empty")

        errors.extend(_url_errors("Bitbucket", self.bitbucket_url))
        if not self.bitbucket_access_token:
            errors.append("Bitbucket access token is required")

        if not isinstance(self.timeout_seconds, int) or self.timeout_seconds <= 0:
            errors.append("HTTP timeout_seconds must be a positive integer")

        for i, repo in enumerate(self.repositories):
            if not repo.project_key or not repo.slug:
                errors.append(f"Repository #{i + 1} needs both project_key and slug")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            errors.append(f"Unknown log level: {self.log_level}")

        return errors


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    return Path.home() / ".changelog-builder"


def get_config_path() -> Path:
    """Get the configuration file path, honouring the environment override."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return get_config_dir() / "config.toml"


def config_exists() -> bool:
    """Check if configuration file exists."""
    return get_config_path().exists()


def load_config() -> Config:
    """Load configuration from TOML file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration not found at {config_path}. "
            "Create ~/.changelog-builder/config.toml to set up."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid configuration: {e}") from e

    jira_section = data.get("jira", {})
    bitbucket_section = data.get("bitbucket", {})
    http_section = data.get("http", {})
    validation_section = data.get("validation", {})
    logging_section = data.get("logging", {})

    repositories = [
        RepoRef(
            project_key=str(entry.get("project_key", "")),
            slug=str(entry.get("slug", "")),
        )
        for entry in data.get("repositories", [])
    ]

    config = Config(
        jira_url=jira_section.get("url", ""),
        jira_api_token=jira_section.get("api_token", ""),
        jira_email=jira_section.get("email"),
        jira_cloud=bool(jira_section.get("cloud", False)),
        epic_link_field=jira_section.get("epic_link_field", DEFAULT_EPIC_LINK_FIELD),
        pm_epic_field=jira_section.get("pm_epic_field", DEFAULT_PM_EPIC_FIELD),
        bitbucket_url=bitbucket_section.get("url", ""),
        bitbucket_access_token=bitbucket_section.get("access_token", ""),
        timeout_seconds=http_section.get("timeout_seconds", 30),
        repositories=repositories,
        default_release_branch=validation_section.get(
            "default_release_branch", DEFAULT_RELEASE_BRANCH
        ),
        log_level=str(logging_section.get("level", "INFO")),
    )

    errors = config.validate()
    if errors:
        raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

    return config
