"""Durable mapping from Jira issue keys to Azure Boards work item ids.

The store is loaded once at startup and rewritten in full after every new
entry. A key that is present means the record is migrated; the Migrator
never creates it again.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from .exceptions import CheckpointError

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_PATH = "migrated.json"


class CheckpointStore:
    """Append-only source key -> destination id map backed by a JSON file."""

    path: Path
    _entries: dict[str, int]

    def __init__(self, path: str | Path, entries: dict[str, int] | None = None) -> None:
        self.path = Path(path)
        self._entries = dict(entries or {})

    @classmethod
    def load(cls, path: str | Path) -> CheckpointStore:
        """Load the store from disk; a missing file yields an empty store.

        Raises:
            CheckpointError: If the file exists but cannot be read or parsed
        """
        checkpoint_path = Path(path)
        if not checkpoint_path.exists():
            logger.info(f"No checkpoint file at {checkpoint_path}, starting fresh")
            return cls(checkpoint_path)

        try:
            data = json.loads(checkpoint_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            msg = f"Failed to load checkpoint file {checkpoint_path}: {e}"
            raise CheckpointError(msg) from e

        if not isinstance(data, dict):
            msg = f"Checkpoint file {checkpoint_path} must contain a JSON object"
            raise CheckpointError(msg)

        entries: dict[str, int] = {}
        for key, value in data.items():
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"Invalid work item id for {key} in {checkpoint_path}: {value!r}"
                raise CheckpointError(msg)
            entries[key] = value

        logger.info(f"Loaded {len(entries)} checkpoint entries from {checkpoint_path}")
        return cls(checkpoint_path, entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, key: str) -> int | None:
        return self._entries.get(key)

    def record(self, key: str, destination_id: int) -> None:
        """Add an entry and persist it before returning.

        The first id recorded for a key wins; later calls for the same key
        do not touch the file.

        Raises:
            CheckpointError: If the file cannot be written
        """
        existing = self._entries.get(key)
        if existing is not None:
            if existing != destination_id:
                logger.warning(
                    f"Ignoring checkpoint {key} -> {destination_id}, already recorded as {existing}"
                )
            return

        self._entries[key] = destination_id
        try:
            self._save()
        except OSError as e:
            del self._entries[key]
            msg = f"Failed to write checkpoint file {self.path}: {e}"
            raise CheckpointError(msg) from e
        logger.debug(f"Checkpoint {key} -> {destination_id}")

    def _save(self) -> None:
        """Atomically rewrite the file to avoid partial writes."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=self.path.parent,
            delete=False,
            suffix=".tmp",
            encoding="utf-8",
        ) as temp_file:
            temp_path = Path(temp_file.name)
            try:
                json.dump(self._entries, temp_file, indent=2)
                temp_file.flush()
                os.fsync(temp_file.fileno())
            except BaseException:
                temp_file.close()
                temp_path.unlink(missing_ok=True)
                raise

        try:
            temp_path.replace(self.path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
        _fsync_directory(self.path.parent)


def _fsync_directory(directory: Path) -> None:
    """Flush a directory entry so a completed rename survives a crash."""
    if os.name == "nt":
        # Directories cannot be opened for fsync on Windows
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
