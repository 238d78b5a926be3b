"""Build Azure Boards work item payloads from Jira records."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, Final, NamedTuple

from . import state_mapper as sm
from .exceptions import ParentNotMigratedError
from .models import Category

if TYPE_CHECKING:
    from .checkpoint import CheckpointStore
    from .models import SourceComment, SourceRecord
    from .protocols import JsonPatch, SourceSystem, TargetSystem

logger: logging.Logger = logging.getLogger(__name__)

HIERARCHY_REVERSE: Final[str] = "System.LinkTypes.Hierarchy-Reverse"
ATTACHED_FILE: Final[str] = "AttachedFile"
TAG_SEPARATOR: Final[str] = ";"


def format_timestamp(value: dt.datetime | None) -> str | None:
    """Format a timestamp as canonical UTC ISO 8601 (e.g. "2024-01-15T10:30:45.123Z").

    Naive datetimes are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def join_tags(labels: Iterable[str]) -> str | None:
    """Join labels into an Azure Boards tag string; no labels gives None."""
    tags = TAG_SEPARATOR.join(labels).strip(f"{TAG_SEPARATOR} ")
    return tags or None


def field_op(name: str, value: Any) -> dict[str, Any]:  # noqa: ANN401 - payload values are free-form JSON
    return {"op": "add", "path": f"/fields/{name}", "value": value}


def relation_op(rel: str, url: str) -> dict[str, Any]:
    return {"op": "add", "path": "/relations/-", "value": {"rel": rel, "url": url}}


def _has_value(op: dict[str, Any]) -> bool:
    value = op["value"]
    return value is not None and value != ""


def sparse(ops: Iterable[dict[str, Any]]) -> JsonPatch:
    """Drop operations whose value is absent so nothing is written as null."""
    return [op for op in ops if _has_value(op)]


class CoreFields(NamedTuple):
    """Title, description and parent key chosen for a category."""

    title: str
    description: str | None
    parent_key: str | None


def _feature_core(record: SourceRecord) -> CoreFields:
    # Epics carry their short name in a dedicated field
    return CoreFields(
        title=record.epic_name or record.summary,
        description=record.description or record.summary,
        parent_key=record.parent_key,
    )


def _linked_core(record: SourceRecord) -> CoreFields:
    return CoreFields(
        title=record.summary,
        description=record.description,
        parent_key=record.epic_link or record.parent_key,
    )


def _task_core(record: SourceRecord) -> CoreFields:
    return CoreFields(title=record.summary, description=record.description, parent_key=record.parent_key)


CORE_FIELDS: Final[dict[Category, Callable[[SourceRecord], CoreFields]]] = {
    Category.FEATURE: _feature_core,
    Category.BUG: _linked_core,
    Category.BACKLOG_ITEM: _linked_core,
    Category.TASK: _task_core,
}


class BuiltRecord(NamedTuple):
    """Creation payload plus what it took to build it."""

    title: str
    payload: JsonPatch
    attachment_count: int


class RecordBuilder:
    """Turns one SourceRecord into a sparse JSON-Patch creation payload.

    Parent links are resolved through the checkpoint store, so the parent
    must have been migrated earlier in the run (or in a previous run).
    Attachments are uploaded while building; any upload failure aborts the
    whole record.
    """

    def __init__(
        self,
        source: SourceSystem,
        target: TargetSystem,
        checkpoints: CheckpointStore,
        *,
        project: str,
        users: sm.UserMapper | None = None,
    ) -> None:
        self._source = source
        self._target = target
        self._checkpoints = checkpoints
        self.project = project
        self.users = users or sm.UserMapper()

    def build(self, record: SourceRecord, category: Category) -> BuiltRecord:
        """Build the creation payload for a record.

        Raises:
            UnmappedStatusError: If the status is not in the category's table
            UnmappedPriorityError: If the priority is not in the priority table
            ParentNotMigratedError: If the parent has no checkpoint entry
            TransferError: If an attachment cannot be downloaded or uploaded
        """
        state = sm.resolve_state(category, record.status)
        priority = sm.resolve_priority(record.priority)
        core = CORE_FIELDS[category](record)
        parent_id = self._resolve_parent(record.key, core.parent_key)

        created = format_timestamp(record.created)
        resolved = format_timestamp(record.resolution_date)
        reporter = self.users.resolve(record.reporter)

        ops: JsonPatch = [
            field_op("System.State", state),
            field_op("System.CreatedBy", reporter),
            field_op("System.CreatedDate", created),
            field_op("System.ChangedBy", reporter),
            field_op("System.ChangedDate", created),
            field_op("System.Title", core.title),
            field_op("System.Description", core.description),
            field_op("Microsoft.VSTS.Common.Priority", priority),
            field_op("Microsoft.VSTS.Common.ClosedDate", resolved),
            field_op("Microsoft.VSTS.Scheduling.FinishDate", resolved),
            field_op("Microsoft.VSTS.Common.ResolvedDate", resolved),
            field_op("Microsoft.VSTS.Common.ResolvedReason", record.resolution),
            field_op("System.IterationPath", sm.resolve_iteration(record.sprints, self.project)),
            field_op("Microsoft.VSTS.Scheduling.StoryPoints", record.story_points),
            field_op("Microsoft.VSTS.Scheduling.Effort", record.story_points),
            field_op("System.AreaPath", sm.resolve_area_path(record.team, self.project)),
            field_op("System.AssignedTo", self.users.resolve(record.assignee)),
            field_op("System.Tags", join_tags(record.labels)),
        ]

        if parent_id is not None:
            ops.append(relation_op(HIERARCHY_REVERSE, self._target.work_item_url(parent_id)))

        attachment_ops = self._upload_attachments(record.key)
        ops.extend(attachment_ops)

        return BuiltRecord(title=core.title, payload=sparse(ops), attachment_count=len(attachment_ops))

    def build_comment(self, comment: SourceComment) -> JsonPatch:
        """Build a history entry attributed to the comment's author and time."""
        return sparse(
            [
                field_op("System.History", comment.body),
                field_op("System.ChangedBy", self.users.resolve(comment.author)),
                field_op("System.ChangedDate", format_timestamp(comment.created)),
            ]
        )

    def _resolve_parent(self, key: str, parent_key: str | None) -> int | None:
        if parent_key is None:
            return None
        parent_id = self._checkpoints.lookup(parent_key)
        if parent_id is None:
            raise ParentNotMigratedError(key, parent_key)
        return parent_id

    def _upload_attachments(self, key: str) -> JsonPatch:
        ops: JsonPatch = []
        for attachment in self._source.get_attachments(key):
            url = self._target.upload_attachment(attachment.filename, attachment.content)
            ops.append(relation_op(ATTACHED_FILE, url))
            logger.debug(f"Uploaded {attachment.filename} for {key}: {url}")
        return ops
