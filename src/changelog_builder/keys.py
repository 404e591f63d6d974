"""Ticket key extraction from branch names."""

import re

TICKET_PROJECTS = ("MBCS", "MBBO", "MBOS", "MBSS")
BRANCH_PREFIXES = ("feature/", "bugfix/")

TICKET_KEY_RE = re.compile(
    r"\b(?:" + "|".join(TICKET_PROJECTS) + r")-\d+\b",
    re.IGNORECASE,
)


def _scan(text: str) -> set[str]:
    return {match.upper() for match in TICKET_KEY_RE.findall(text)}


def extract_ticket_keys(branch_name: str) -> set[str]:
    """Find the Jira ticket keys referenced by a branch name.

    Only ``feature/`` and ``bugfix/`` branches are considered. The segment
    right after the prefix is scanned first; if it holds no key the whole
    branch name is scanned instead, so ``bugfix/misc-cleanup-MBSS-77`` and
    ``feature/payments/MBSS-12-retry`` both still yield a key.

    Returns:
        Upper-cased ticket keys; empty when the branch is not eligible
        or references nothing.
    """
    if not branch_name.startswith(BRANCH_PREFIXES):
        return set()

    parts = branch_name.split("/")
    keys = _scan(parts[1]) if len(parts) >= 2 else set()
    if not keys:
        keys = _scan(branch_name)
    return keys
