"""Exception hierarchy for the changelog builder."""


class ChangelogError(Exception):
    """Base exception for changelog errors."""

    pass


class ConfigNotFoundError(ChangelogError):
    """Configuration file not found."""

    pass


class InvalidConfigError(ChangelogError):
    """Configuration is invalid."""

    pass


class ValidationError(ChangelogError):
    """Report request is malformed or outside policy.

    Carries every problem found so the caller can report them together.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class UpstreamError(ChangelogError):
    """Bitbucket or Jira failed, timed out or returned something unreadable."""

    def __init__(self, message: str, stage: str, repo: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.repo = repo


class ReportCancelledError(ChangelogError):
    """Report generation was cancelled before it completed."""

    pass
