"""Protocols defining the contracts for the source and target systems.

The migration core depends only on these two interfaces:

1. SourceSystem: Reads issues, comments and attachments (Jira)
2. TargetSystem: Creates work items, uploads attachments, appends history
   entries (Azure Boards)

Implementations must translate their library or HTTP errors into
TransferError so the Migrator can isolate the failure to one record.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    import datetime as dt

    from .models import Category, SourceAttachment, SourceComment, SourceRecord

JsonPatch = list[dict[str, Any]]


class SourceSystem(Protocol):
    """Protocol for reading records from the source tracker."""

    def query_records(
        self, created_from: dt.datetime, exclude: Collection[str] = frozenset()
    ) -> Sequence[SourceRecord]:
        """Return the next page of records created at or after created_from.

        Records whose key is in exclude are left out. Records are ordered by
        creation time, oldest first. The page size is up to the
        implementation; an empty result means there is nothing left.
        """
        ...

    def get_comments(self, key: str) -> Sequence[SourceComment]:
        """Return all comments of a record in chronological order."""
        ...

    def get_attachments(self, key: str) -> Sequence[SourceAttachment]:
        """Return all attachments of a record with their content downloaded."""
        ...


class TargetSystem(Protocol):
    """Protocol for writing work items to the destination system.

    All writes bypass workflow rules: migrated items carry historical dates,
    authors and states that the destination workflow would otherwise reject.
    """

    def create_work_item(self, category: Category, payload: JsonPatch) -> int:
        """Create a work item and return its id."""
        ...

    def upload_attachment(self, filename: str, content: bytes) -> str:
        """Upload an attachment and return the URL used to relate it."""
        ...

    def append_comment(self, work_item_id: int, payload: JsonPatch) -> None:
        """Append a history entry to an existing work item."""
        ...

    def work_item_url(self, work_item_id: int) -> str:
        """Return the API URL of a work item, as used in relations."""
        ...
