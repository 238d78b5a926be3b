"""Migration driver that moves Jira issues into Azure Boards work items.

Migration Flow
--------------
Records are processed strictly one at a time, oldest first:

    query page (created >= cursor, minus keys seen at cursor)
           │
           ▼
    checkpoint hit? ──yes──► SKIPPED
           │ no
           ▼
    resolve category ─► build payload ─► create work item
           │                (state, priority, parent, attachments)
           ▼
    record checkpoint (flushed to disk)
           │
           ▼
    append comments + provenance entry ──► CREATED

The cursor is the creation time of the last processed record together with
the keys already processed at exactly that time. Several records may share
one creation time (bulk imports), so the next query starts at the cursor
inclusively and leaves those keys out. The source is queried again until a
page holds nothing new.

Ordering
--------
Parents are created before their children because Jira creation order is
followed. A child whose parent has no checkpoint entry fails with
ParentNotMigratedError instead of being created without a link.

Error Handling
--------------
Every failure while processing a record is confined to that record: it
becomes a FAILED outcome, gets logged, and the run moves on. RecordErrors
are expected failures and are logged as one line; anything else is logged
with its traceback. Nothing is retried; fixing a mapping table and
re-running is safe because of the checkpoint. CheckpointError is fatal and
propagates, as does a failure to query the source.

A record whose work item was created but whose comment transfer failed
keeps its checkpoint entry. Re-runs skip it, so its outcome message names
the work item id for manual follow-up.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Final

from . import state_mapper as sm
from .exceptions import CheckpointError, RecordError
from .models import MigrationResult, MigrationStats, RecordOutcome, RecordStatus, SourceComment

if TYPE_CHECKING:
    from .checkpoint import CheckpointStore
    from .models import Category, SourceRecord
    from .protocols import SourceSystem, TargetSystem
    from .record_builder import RecordBuilder

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_CREATED_AFTER: Final[dt.datetime] = dt.datetime(2010, 1, 1, tzinfo=dt.UTC)


def provenance_comment(key: str) -> SourceComment:
    return SourceComment(body=f"Migrated from {key}")


class Migrator:
    """Orchestrates migration from a SourceSystem to a TargetSystem.

    Usage:
        checkpoints = CheckpointStore.load("migrated.json")
        builder = RecordBuilder(source, target, checkpoints, project="Boards")
        result = Migrator(source, target, checkpoints, builder).migrate()
    """

    _source: SourceSystem
    _target: TargetSystem
    _checkpoints: CheckpointStore
    _builder: RecordBuilder

    def __init__(
        self,
        source: SourceSystem,
        target: TargetSystem,
        checkpoints: CheckpointStore,
        builder: RecordBuilder,
        *,
        extra_types: Mapping[str, Category] | None = None,
    ) -> None:
        self._source = source
        self._target = target
        self._checkpoints = checkpoints
        self._builder = builder
        self._extra_types: dict[str, Category] = dict(extra_types or {})

    def migrate(self, start: dt.datetime | None = None) -> MigrationResult:
        """Migrate every record created at or after the given time.

        Args:
            start: Lower bound for the first query (inclusive)

        Returns:
            MigrationResult with statistics and per-record outcomes

        Raises:
            CheckpointError: If the checkpoint file cannot be written
            TransferError: If the source cannot be queried for a page
        """
        cursor = start or DEFAULT_CREATED_AFTER
        # Keys already processed whose creation time equals the cursor
        seen_at_cursor: set[str] = set()
        stats = MigrationStats()
        outcomes: list[RecordOutcome] = []

        while True:
            page = [
                record
                for record in self._source.query_records(cursor, frozenset(seen_at_cursor))
                if record.created > cursor or (record.created == cursor and record.key not in seen_at_cursor)
            ]
            logger.debug(f"Fetched {len(page)} records created at or after {cursor.isoformat()}")
            if not page:
                break

            for record in page:
                if record.created > cursor:
                    cursor = record.created
                    seen_at_cursor.clear()
                elif record.created < cursor or record.key in seen_at_cursor:
                    continue
                seen_at_cursor.add(record.key)
                outcome = self.migrate_record(record)
                stats.add(outcome)
                outcomes.append(outcome)

        logger.info(
            f"Migration finished: {stats.records_created} created, {stats.records_skipped} skipped, "
            f"{stats.records_failed} failed"
        )
        return MigrationResult(success=stats.records_failed == 0, stats=stats, outcomes=outcomes)

    def migrate_record(self, record: SourceRecord) -> RecordOutcome:
        """Migrate a single record with its attachments and comments."""
        context = f"{record.key} - {record.issue_type}"

        existing = self._checkpoints.lookup(record.key)
        if existing is not None:
            logger.info(f"{context}: skipped, already migrated as #{existing}")
            return RecordOutcome(
                key=record.key,
                status=RecordStatus.SKIPPED,
                destination_id=existing,
                message=f"already migrated as #{existing}",
            )

        category: Category | None = None
        destination_id: int | None = None
        attachments = 0
        comments = 0
        try:
            category = sm.resolve_category(record.issue_type, self._extra_types)
            built = self._builder.build(record, category)
            destination_id = self._target.create_work_item(category, built.payload)
            attachments = built.attachment_count
            self._checkpoints.record(record.key, destination_id)

            for comment in [*self._source.get_comments(record.key), provenance_comment(record.key)]:
                self._target.append_comment(destination_id, self._builder.build_comment(comment))
                comments += 1
        except RecordError as e:
            message = self._failure_message(destination_id, str(e))
            logger.error(f"{context}: {message}")
        except CheckpointError:
            raise
        except Exception as e:
            message = self._failure_message(destination_id, f"{type(e).__name__}: {e}")
            logger.exception(f"{context}: {message}")
        else:
            message = f"Added {category.work_item_type} #{destination_id}: {record.key} {built.title}"
            logger.info(f"{context}: {message}")
            return RecordOutcome(
                key=record.key,
                status=RecordStatus.CREATED,
                category=category,
                destination_id=destination_id,
                message=message,
                comments_created=comments,
                attachments_uploaded=attachments,
            )

        return RecordOutcome(
            key=record.key,
            status=RecordStatus.FAILED,
            category=category,
            destination_id=destination_id,
            message=message,
            comments_created=comments,
            attachments_uploaded=attachments,
        )

    @staticmethod
    def _failure_message(destination_id: int | None, error: str) -> str:
        if destination_id is None:
            return error
        return f"created as #{destination_id} but comments are incomplete: {error}"
