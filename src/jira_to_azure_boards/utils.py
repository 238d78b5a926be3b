"""
Utility functions for the Jira to Azure Boards migration tool.
"""

from __future__ import annotations

import logging
import re
import subprocess
from subprocess import CompletedProcess

DEFAULT_LOG_FILE = "migration.log"


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path format is invalid or not in the store."""


def setup_logging(*, verbose: bool = False, log_file: str | None = DEFAULT_LOG_FILE) -> None:
    """Configure logging for the migration process."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def _validate_pass_path(pass_path: str) -> None:
    """Validate the pass path format."""
    if not re.fullmatch(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise InvalidPassPathError(msg)


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path."""
    _validate_pass_path(pass_path)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", pass_path], capture_output=True, text=True, check=True  # noqa: S607
        )
    except FileNotFoundError as e:
        msg = "The pass utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        if e.returncode == 1 and "not in the password store" in e.stderr.lower():
            msg = f"Pass path '{pass_path}' not found or invalid."
            raise InvalidPassPathError(msg) from e
        msg = (
            f"Failed to get value from pass at '{pass_path}'.\n"
            f"Error: {e.stderr.strip()}\n"
            f"Return code: {e.returncode}"
        )
        raise PassError(msg) from e

    return result.stdout.strip()
