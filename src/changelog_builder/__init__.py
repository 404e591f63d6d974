"""Release changelog builder: merged pull requests grouped by Jira ticket."""

__version__ = "1.0.0"
