"""
Jira to Azure Boards Migration Tool

Migrates Jira issues to Azure Boards work items, resumably and exactly once
per issue, keeping hierarchy, history, attachments and comments.
"""

from __future__ import annotations

from .checkpoint import CheckpointStore
from .cli import main
from .exceptions import (
    CheckpointError,
    ConfigurationError,
    MigrationError,
    ParentNotMigratedError,
    RecordError,
    TransferError,
    UnmappedPriorityError,
    UnmappedStatusError,
    UnsupportedTypeError,
)
from .migrator import Migrator
from .record_builder import RecordBuilder
from .state_mapper import UserMapper
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "CheckpointError",
    "CheckpointStore",
    "ConfigurationError",
    "MigrationError",
    "Migrator",
    "ParentNotMigratedError",
    "RecordBuilder",
    "RecordError",
    "TransferError",
    "UnmappedPriorityError",
    "UnmappedStatusError",
    "UnsupportedTypeError",
    "UserMapper",
    "main",
    "setup_logging",
]
