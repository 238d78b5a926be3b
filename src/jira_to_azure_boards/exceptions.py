"""
Custom exception classes for the Jira to Azure Boards migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class ConfigurationError(MigrationError):
    """Raised when a required setting is missing or invalid."""


class CheckpointError(MigrationError):
    """Raised when the checkpoint file cannot be loaded or persisted.

    This is the only fatal error class; the run stops immediately.
    """


class RecordError(MigrationError):
    """Base exception for failures scoped to a single source record."""


class UnmappedStatusError(RecordError):
    """Raised when a status has no entry in the category's state table."""

    def __init__(self, category: str, status: str) -> None:
        self.category = category
        self.status = status
        super().__init__(f"Could not find state for status '{status}' ({category})")


class UnmappedPriorityError(RecordError):
    """Raised when a priority name has no entry in the priority table."""

    def __init__(self, priority: str) -> None:
        self.priority = priority
        super().__init__(f"Could not find priority '{priority}'")


class UnsupportedTypeError(RecordError):
    """Raised when an issue type does not map to any work item category."""

    def __init__(self, issue_type: str) -> None:
        self.issue_type = issue_type
        super().__init__(f"Not supporting issue type '{issue_type}'")


class ParentNotMigratedError(RecordError):
    """Raised when a record's parent has no checkpoint entry yet."""

    def __init__(self, key: str, parent_key: str) -> None:
        self.key = key
        self.parent_key = parent_key
        super().__init__(f"Parent {parent_key} of {key} has not been migrated")


class TransferError(RecordError):
    """Raised when the source or destination API call fails."""
