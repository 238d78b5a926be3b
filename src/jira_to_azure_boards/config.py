"""
Configuration loading for the Jira to Azure Boards migration tool.

Settings are merged from, lowest to highest precedence:

1. A JSON settings file with "Jira", "AzureDevOps" and "Migration" sections
   plus optional "UserMap" and "TypeMap" tables
2. Environment variables (JIRA_URL, AZURE_DEVOPS_PAT, ...)
3. Command-line overrides
"""

from __future__ import annotations

import datetime as dt
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from .checkpoint import DEFAULT_CHECKPOINT_PATH
from .exceptions import ConfigurationError
from .jira_utils import DEFAULT_PAGE_SIZE, DEFAULT_TEAM_FIELD
from .migrator import DEFAULT_CREATED_AFTER
from .models import Category

# Settings file location (section, key) for each config attribute
_FILE_KEYS: Final[dict[str, tuple[str, str]]] = {
    "jira_url": ("Jira", "Url"),
    "jira_user": ("Jira", "UserId"),
    "jira_token": ("Jira", "Password"),
    "jira_project": ("Jira", "Project"),
    "team_field": ("Jira", "TeamField"),
    "azure_url": ("AzureDevOps", "Url"),
    "azure_token": ("AzureDevOps", "PersonalAccessToken"),
    "azure_project": ("AzureDevOps", "Project"),
    "checkpoint_path": ("Migration", "CheckpointPath"),
    "created_after": ("Migration", "CreatedAfter"),
    "page_size": ("Migration", "PageSize"),
}

_ENV_VARS: Final[dict[str, str]] = {
    "jira_url": "JIRA_URL",
    "jira_user": "JIRA_USER",
    "jira_token": "JIRA_TOKEN",
    "jira_project": "JIRA_PROJECT",
    "azure_url": "AZURE_DEVOPS_URL",
    "azure_token": "AZURE_DEVOPS_PAT",
    "azure_project": "AZURE_DEVOPS_PROJECT",
}

_REQUIRED: Final[tuple[str, ...]] = ("jira_url", "jira_project", "azure_url", "azure_project")


@dataclass
class MigrationConfig:
    """Resolved settings for one migration run."""

    jira_url: str
    jira_project: str
    azure_url: str
    azure_project: str
    jira_user: str | None = None
    jira_token: str | None = None
    azure_token: str | None = None
    checkpoint_path: str = DEFAULT_CHECKPOINT_PATH
    created_after: dt.datetime = DEFAULT_CREATED_AFTER
    page_size: int = DEFAULT_PAGE_SIZE
    team_field: str = DEFAULT_TEAM_FIELD
    user_map: dict[str, str] = field(default_factory=dict)
    type_map: dict[str, Category] = field(default_factory=dict)


def parse_date(value: str | dt.datetime) -> dt.datetime:
    """Parse "2010-01-01" or a full ISO timestamp; naive values are UTC."""
    if isinstance(value, dt.datetime):
        parsed = value
    else:
        try:
            parsed = dt.datetime.fromisoformat(value)
        except ValueError as e:
            msg = f"Invalid date: {value}"
            raise ConfigurationError(msg) from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.UTC)


def parse_category(value: str) -> Category:
    """Accept a category name ("BacklogItem", "TASK") or a work item type name."""
    normalized = value.replace(" ", "").replace("_", "").upper()
    for category in Category:
        if normalized in (category.name.replace("_", ""), category.value.replace(" ", "").upper()):
            return category
    msg = f"Unknown work item category: {value}"
    raise ConfigurationError(msg)


def read_settings_file(path: str | Path) -> dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        msg = f"Failed to read settings file {path}: {e}"
        raise ConfigurationError(msg) from e
    if not isinstance(data, dict):
        msg = f"Settings file {path} must contain a JSON object"
        raise ConfigurationError(msg)
    return data


def load_config(
    settings_path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> MigrationConfig:
    """Merge settings file, environment and overrides into a MigrationConfig.

    Args:
        settings_path: Optional JSON settings file
        overrides: Values from the command line; None values are ignored
        environ: Environment to read (defaults to os.environ)

    Raises:
        ConfigurationError: If a required setting is missing or a value is invalid
    """
    environ = os.environ if environ is None else environ
    settings = read_settings_file(settings_path) if settings_path else {}

    values: dict[str, Any] = {}
    for name, (section, key) in _FILE_KEYS.items():
        value = settings.get(section, {}).get(key)
        if value is not None:
            values[name] = value
    for name, var in _ENV_VARS.items():
        if environ.get(var):
            values[name] = environ[var]
    for name, value in (overrides or {}).items():
        if value is not None:
            values[name] = value

    missing = [name for name in _REQUIRED if not values.get(name)]
    if missing:
        msg = f"Missing required settings: {', '.join(missing)}"
        raise ConfigurationError(msg)

    if "created_after" in values:
        values["created_after"] = parse_date(values["created_after"])
    if "page_size" in values:
        try:
            values["page_size"] = int(values["page_size"])
        except (TypeError, ValueError) as e:
            msg = f"Invalid page size: {values['page_size']}"
            raise ConfigurationError(msg) from e
        if values["page_size"] < 1:
            msg = f"Invalid page size: {values['page_size']}"
            raise ConfigurationError(msg)

    user_map = {str(k): str(v) for k, v in settings.get("UserMap", {}).items()}
    user_map.update(values.pop("user_map", {}) or {})
    type_map = {str(k): parse_category(str(v)) for k, v in settings.get("TypeMap", {}).items()}

    return MigrationConfig(**values, user_map=user_map, type_map=type_map)
