"""Data models exchanged between the source, the target and the Migrator.

SourceRecord is the normalized view of one Jira issue. Comments and
attachments are fetched separately through the SourceSystem protocol so
that skipped records never download them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import datetime as dt


class Category(enum.Enum):
    """Destination work item category.

    The value is the Azure Boards work item type name used on creation.
    """

    FEATURE = "Feature"
    BUG = "Bug"
    BACKLOG_ITEM = "Product Backlog Item"
    TASK = "Task"

    @property
    def work_item_type(self) -> str:
        return self.value


@dataclass(frozen=True)
class SourceComment:
    """A comment on a source record."""

    body: str
    author: str | None = None
    created: dt.datetime | None = None


@dataclass(frozen=True)
class SourceAttachment:
    """An attachment downloaded from the source system."""

    filename: str
    content: bytes


@dataclass
class SourceRecord:
    """An issue from the source tracker.

    `created` must be timezone-aware; it orders pagination and becomes the
    destination creation date.
    """

    key: str
    issue_type: str
    status: str
    summary: str
    created: dt.datetime
    priority: str | None = None
    description: str | None = None
    reporter: str | None = None
    assignee: str | None = None
    resolution_date: dt.datetime | None = None
    resolution: str | None = None
    parent_key: str | None = None
    epic_link: str | None = None
    epic_name: str | None = None
    sprints: list[str] = field(default_factory=list)
    story_points: float | None = None
    team: str | None = None
    labels: list[str] = field(default_factory=list)


class RecordStatus(enum.Enum):
    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RecordOutcome:
    """Result of processing one source record.

    A FAILED outcome may still carry a destination_id when the work item was
    created but a later step (comment transfer) failed.
    """

    key: str
    status: RecordStatus
    category: Category | None = None
    destination_id: int | None = None
    message: str = ""
    comments_created: int = 0
    attachments_uploaded: int = 0

    @property
    def failed(self) -> bool:
        return self.status is RecordStatus.FAILED


@dataclass
class MigrationStats:
    """Statistics collected during migration."""

    records_created: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    comments_created: int = 0
    attachments_uploaded: int = 0
    errors: list[str] = field(default_factory=list)

    def add(self, outcome: RecordOutcome) -> None:
        self.comments_created += outcome.comments_created
        self.attachments_uploaded += outcome.attachments_uploaded
        if outcome.status is RecordStatus.CREATED:
            self.records_created += 1
        elif outcome.status is RecordStatus.SKIPPED:
            self.records_skipped += 1
        else:
            self.records_failed += 1
            self.errors.append(f"{outcome.key}: {outcome.message}")


@dataclass
class MigrationResult:
    """Result of a migration run."""

    success: bool
    stats: MigrationStats
    outcomes: list[RecordOutcome] = field(default_factory=list)
