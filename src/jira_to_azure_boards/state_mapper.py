"""
Static mapping rules from Jira vocabulary to Azure Boards vocabulary.

All functions are pure lookups. Missing entries raise a record-scoped error
instead of falling back to a default: a gap in a table is a configuration
problem that a human has to fix.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Final

from .exceptions import UnmappedPriorityError, UnmappedStatusError, UnsupportedTypeError
from .models import Category

FEATURE_STATES: Final[Mapping[str, str]] = {
    "Needs Approval": "New",
    "Ready for Review": "In Progress",
    "Closed": "Done",
    "Resolved": "Done",
    "Reopened": "New",
    "In Progress": "In Progress",
    "Backlog": "New",
    "Selected for Development": "New",
    "Open": "New",
    "To Do": "New",
    "DONE": "Done",
    "Done": "Done",
}

BACKLOG_ITEM_STATES: Final[Mapping[str, str]] = {
    "Needs Approval": "New",
    "Ready for Review": "Committed",
    "Closed": "Done",
    "Resolved": "Done",
    "Reopened": "New",
    "In Progress": "Committed",
    "In Development": "Committed",
    "In Testing": "Committed",
    "3 Amigos": "Committed",
    "Backlog": "New",
    "Selected for Development": "Approved",
    "Open": "Approved",
    "User Acceptance": "Approved",
    "To Do": "New",
    "DONE": "Done",
    "Done": "Done",
    "Rejected": "Removed",
}

# Bugs go through the same Scrum workflow as backlog items.
BUG_STATES: Final[Mapping[str, str]] = dict(BACKLOG_ITEM_STATES)

TASK_STATES: Final[Mapping[str, str]] = {
    "Needs Approval": "To Do",
    "Ready for Review": "In Progress",
    "In Development": "In Progress",
    "Closed": "Done",
    "Resolved": "Done",
    "Reopened": "To Do",
    "In Progress": "In Progress",
    "Backlog": "To Do",
    "Selected for Development": "To Do",
    "Open": "To Do",
    "To Do": "To Do",
    "DONE": "Done",
    "Done": "Done",
    "Rejected": "Removed",
}

STATE_TABLES: Final[Mapping[Category, Mapping[str, str]]] = {
    Category.FEATURE: FEATURE_STATES,
    Category.BUG: BUG_STATES,
    Category.BACKLOG_ITEM: BACKLOG_ITEM_STATES,
    Category.TASK: TASK_STATES,
}

# Smaller is more urgent
PRIORITIES: Final[Mapping[str, int]] = {
    "Lowest": 4,
    "Low": 4,
    "Medium": 3,
    "High": 2,
    "Highest": 2,
    "Blocker": 1,
}

ISSUE_TYPES: Final[Mapping[str, Category]] = {
    "Epic": Category.FEATURE,
    "Bug": Category.BUG,
    "Improvement": Category.BACKLOG_ITEM,
    "Story": Category.BACKLOG_ITEM,
    "Spike": Category.BACKLOG_ITEM,
    "Knowledge Transfer": Category.BACKLOG_ITEM,
    "Support Incident": Category.BACKLOG_ITEM,
    "Task": Category.TASK,
    "Sub-task": Category.TASK,
}


def resolve_state(category: Category, status: str) -> str:
    """Translate a Jira status name into the category's work item state."""
    try:
        return STATE_TABLES[category][status]
    except KeyError:
        raise UnmappedStatusError(category.name, status) from None


def resolve_priority(priority: str | None) -> int | None:
    """Translate a Jira priority name into an Azure Boards priority rank."""
    if priority is None:
        return None
    try:
        return PRIORITIES[priority]
    except KeyError:
        raise UnmappedPriorityError(priority) from None


def resolve_category(issue_type: str, extra_types: Mapping[str, Category] | None = None) -> Category:
    """Select the work item category for a Jira issue type name.

    Args:
        issue_type: Jira issue type name (e.g. "Story")
        extra_types: Additional type names configured for this deployment;
            they take precedence over the built-in table.

    Raises:
        UnsupportedTypeError: If the type name is in neither table
    """
    if extra_types and issue_type in extra_types:
        return extra_types[issue_type]
    try:
        return ISSUE_TYPES[issue_type]
    except KeyError:
        raise UnsupportedTypeError(issue_type) from None


def resolve_area_path(team: str | None, project: str) -> str | None:
    if not team:
        return None
    return f"{project}\\{team}"


def resolve_iteration(sprints: Sequence[str] | None, project: str) -> str | None:
    """Return the iteration path of the first sprint, if any."""
    if not sprints:
        return None
    return f"{project}\\{sprints[0]}"


class UserMapper:
    """Maps Jira user names to Azure DevOps identities.

    Without a table every user passes through unchanged. Deployments supply
    a table either as a mapping or as "source:target" patterns.
    """

    def __init__(self, mapping: Mapping[str, str] | None = None) -> None:
        self.mapping: dict[str, str] = dict(mapping or {})

    @classmethod
    def from_patterns(cls, patterns: Sequence[str] | None) -> UserMapper:
        mapping: dict[str, str] = {}
        for pattern in patterns or []:
            if ":" not in pattern:
                msg = f"Invalid user mapping format: {pattern}"
                raise ValueError(msg)
            source, target = pattern.split(":", 1)
            mapping[source.strip()] = target.strip()
        return cls(mapping)

    def resolve(self, username: str | None) -> str | None:
        if username is None:
            return None
        return self.mapping.get(username, username)
