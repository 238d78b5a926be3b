"""
Pytest configuration and fixtures.

Provides in-memory implementations of the source and target protocols so
the migration core can be tested without Jira or Azure DevOps.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest

from jira_to_azure_boards.checkpoint import CheckpointStore
from jira_to_azure_boards.exceptions import TransferError
from jira_to_azure_boards.migrator import Migrator
from jira_to_azure_boards.models import Category, SourceAttachment, SourceComment, SourceRecord
from jira_to_azure_boards.record_builder import RecordBuilder

if TYPE_CHECKING:
    from collections.abc import Callable, Collection
    from pathlib import Path

BASE_TIME = dt.datetime(2021, 3, 1, 9, 0, 0, tzinfo=dt.UTC)


def make_record(key: str, issue_type: str = "Story", status: str = "To Do", **kwargs: Any) -> SourceRecord:  # noqa: ANN401
    """Create a SourceRecord whose creation time follows its key number."""
    number = int(key.rsplit("-", 1)[1])
    defaults: dict[str, Any] = {
        "summary": f"Summary of {key}",
        "created": BASE_TIME + dt.timedelta(minutes=number),
        "priority": "Medium",
        "reporter": "jdoe",
    }
    defaults.update(kwargs)
    return SourceRecord(key=key, issue_type=issue_type, status=status, **defaults)


@dataclass
class FakeSource:
    """SourceSystem returning records in creation order, page by page."""

    records: list[SourceRecord] = field(default_factory=list)
    comments: dict[str, list[SourceComment]] = field(default_factory=dict)
    attachments: dict[str, list[SourceAttachment]] = field(default_factory=dict)
    page_size: int = 2
    queries: list[dt.datetime] = field(default_factory=list)
    attachment_requests: list[str] = field(default_factory=list)

    def query_records(self, created_from: dt.datetime, exclude: Collection[str] = frozenset()) -> list[SourceRecord]:
        self.queries.append(created_from)
        pending = sorted(
            (r for r in self.records if r.created >= created_from and r.key not in exclude),
            key=lambda r: (r.created, r.key),
        )
        return pending[: self.page_size]

    def get_comments(self, key: str) -> list[SourceComment]:
        return list(self.comments.get(key, []))

    def get_attachments(self, key: str) -> list[SourceAttachment]:
        self.attachment_requests.append(key)
        return list(self.attachments.get(key, []))


@dataclass
class FakeTarget:
    """TargetSystem assigning sequential ids starting at 101."""

    next_id: int = 101
    created: dict[int, tuple[Category, list[dict[str, Any]]]] = field(default_factory=dict)
    uploads: list[tuple[str, bytes]] = field(default_factory=list)
    history: dict[int, list[list[dict[str, Any]]]] = field(default_factory=dict)
    fail_upload: bool = False
    fail_comment_for: set[int] = field(default_factory=set)

    def create_work_item(self, category: Category, payload: list[dict[str, Any]]) -> int:
        work_item_id = self.next_id
        self.next_id += 1
        self.created[work_item_id] = (category, payload)
        return work_item_id

    def upload_attachment(self, filename: str, content: bytes) -> str:
        if self.fail_upload:
            msg = f"upload of {filename} failed"
            raise TransferError(msg)
        self.uploads.append((filename, content))
        return f"https://dev.azure.com/org/_apis/wit/attachments/{len(self.uploads)}"

    def append_comment(self, work_item_id: int, payload: list[dict[str, Any]]) -> None:
        if work_item_id in self.fail_comment_for:
            msg = f"comment on #{work_item_id} failed"
            raise TransferError(msg)
        self.history.setdefault(work_item_id, []).append(payload)

    def work_item_url(self, work_item_id: int) -> str:
        return f"https://dev.azure.com/org/_apis/wit/workItems/{work_item_id}"


def fields_of(payload: list[dict[str, Any]]) -> dict[str, Any]:
    """Collect "/fields/<name>" operations into a name -> value dict."""
    return {op["path"].removeprefix("/fields/"): op["value"] for op in payload if op["path"].startswith("/fields/")}


def relations_of(payload: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [op["value"] for op in payload if op["path"] == "/relations/-"]


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def target() -> FakeTarget:
    return FakeTarget()


@pytest.fixture
def checkpoint_path(tmp_path: Path) -> Path:
    return tmp_path / "migrated.json"


@pytest.fixture
def checkpoints(checkpoint_path: Path) -> CheckpointStore:
    return CheckpointStore.load(checkpoint_path)


@pytest.fixture
def builder(source: FakeSource, target: FakeTarget, checkpoints: CheckpointStore) -> RecordBuilder:
    return RecordBuilder(source, target, checkpoints, project="Boards")


@pytest.fixture
def make_migrator(
    source: FakeSource, target: FakeTarget, checkpoint_path: Path
) -> Callable[[], tuple[Migrator, CheckpointStore]]:
    """Build a migrator that reloads the checkpoint file, as a fresh run would."""

    def factory() -> tuple[Migrator, CheckpointStore]:
        store = CheckpointStore.load(checkpoint_path)
        builder = RecordBuilder(source, target, store, project="Boards")
        return Migrator(source, target, store, builder), store

    return factory
