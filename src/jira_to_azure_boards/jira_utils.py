"""Jira source client built on the `jira` library."""

from __future__ import annotations

import datetime as dt
import logging
import os
import re
from typing import TYPE_CHECKING, Any, Final
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from jira import JIRA
from jira.exceptions import JIRAError
from requests import RequestException

from . import utils
from .exceptions import TransferError
from .models import SourceAttachment, SourceComment, SourceRecord

if TYPE_CHECKING:
    from collections.abc import Collection

    from jira.resources import Issue

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "JIRA_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "jira/cli/token"  # noqa: S105

DEFAULT_PAGE_SIZE: Final[int] = 100
DEFAULT_TEAM_FIELD: Final[str] = "DC Team"

EPIC_NAME_FIELD: Final[str] = "Epic Name"
EPIC_LINK_FIELD: Final[str] = "Epic Link"
SPRINT_FIELD: Final[str] = "Sprint"
STORY_POINTS_FIELD: Final[str] = "Story Points"

# Jira Server serializes sprints as "com.atlassian.greenhopper...Sprint@1a2b[id=1,name=Sprint 1,...]"
_SPRINT_NAME_PATTERN = re.compile(r"\bname=([^,\]]+)")


def get_token(pass_path: str | None = None) -> str | None:
    """Get Jira token from pass path, env var JIRA_TOKEN, or default pass location."""
    if pass_path:
        return utils.get_pass_value(pass_path)

    token: str | None = os.environ.get(_TOKEN_ENV_VAR)
    if token:
        return token

    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATH)
    except utils.PassError:
        logger.warning("No Jira token specified nor found")
        return None


def get_client(url: str, *, user: str | None = None, token: str | None = None) -> JIRA:
    """Get a Jira client; basic auth when a user is given, bearer token otherwise."""
    if user:
        return JIRA(server=url, basic_auth=(user, token or ""))
    return JIRA(server=url, token_auth=token)


def parse_timestamp(value: str | None) -> dt.datetime | None:
    """Parse a Jira timestamp such as "2024-01-15T10:30:45.123+0000"."""
    if not value:
        return None
    try:
        return dt.datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%f%z")
    except ValueError:
        pass
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError:
        logger.debug(f"Unparseable Jira timestamp: {value}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.UTC)


def user_name(user: Any) -> str | None:  # noqa: ANN401 - jira User resource
    """Pick the most stable identifier Jira exposes for a user."""
    if user is None:
        return None
    for attr in ("emailAddress", "name", "displayName"):
        value = getattr(user, attr, None)
        if value:
            return str(value)
    return None


def scalar_value(value: Any) -> str | None:  # noqa: ANN401 - custom field values are untyped
    """Reduce a custom field value (option, list, plain) to a single string."""
    if value is None:
        return None
    if isinstance(value, list):
        return scalar_value(value[0]) if value else None
    for attr in ("value", "name", "key"):
        inner = getattr(value, attr, None)
        if isinstance(inner, str):
            return inner
    text = str(value).strip()
    return text or None


def sprint_names(value: Any) -> list[str]:  # noqa: ANN401 - sprint field format varies by deployment
    if not value:
        return []
    names: list[str] = []
    for sprint in value if isinstance(value, list) else [value]:
        name = getattr(sprint, "name", None)
        if name is None and isinstance(sprint, str):
            match = _SPRINT_NAME_PATTERN.search(sprint)
            name = match.group(1) if match else sprint
        if name:
            names.append(str(name))
    return names


def story_points(value: Any) -> float | None:  # noqa: ANN401
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric story points: {value!r}")
        return None


class JiraSource:
    """SourceSystem implementation reading one Jira project.

    JQL date literals only have minute precision and are interpreted in the
    API user's time zone, so queries start at the cursor's minute in that
    zone; records older than the cursor or listed in exclude are dropped here.
    Ties on the creation time are ordered by key.
    """

    def __init__(
        self,
        client: JIRA,
        project: str,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        team_field: str = DEFAULT_TEAM_FIELD,
    ) -> None:
        self._client = client
        self.project = project
        self.page_size = page_size
        self.team_field = team_field
        self._field_ids: dict[str, str] | None = None
        self._timezone: dt.tzinfo | None = None

    @property
    def field_ids(self) -> dict[str, str]:
        """Custom field name -> field id (e.g. "Story Points" -> "customfield_10002")."""
        if self._field_ids is None:
            try:
                fields = self._client.fields()
            except (JIRAError, RequestException) as e:
                msg = f"Failed to list Jira fields: {e}"
                raise TransferError(msg) from e
            self._field_ids = {f["name"]: f["id"] for f in fields}
        return self._field_ids

    @property
    def timezone(self) -> dt.tzinfo:
        if self._timezone is None:
            try:
                name = self._client.myself().get("timeZone") or "UTC"
            except (JIRAError, RequestException) as e:
                msg = f"Failed to read Jira user profile: {e}"
                raise TransferError(msg) from e
            try:
                self._timezone = ZoneInfo(name)
            except ZoneInfoNotFoundError:
                logger.warning(f"Unknown Jira time zone {name}, assuming UTC")
                self._timezone = dt.UTC
        return self._timezone

    def build_jql(self, created_from: dt.datetime) -> str:
        stamp = created_from.astimezone(self.timezone).strftime("%Y/%m/%d %H:%M")
        return f'project = "{self.project}" AND created >= "{stamp}" ORDER BY created ASC, key ASC'

    def query_records(
        self, created_from: dt.datetime, exclude: Collection[str] = frozenset()
    ) -> list[SourceRecord]:
        """Return the next page of records created at or after created_from, minus excluded keys."""
        jql = self.build_jql(created_from)
        records: list[SourceRecord] = []
        start_at = 0

        while len(records) < self.page_size:
            try:
                issues = self._client.search_issues(jql, startAt=start_at, maxResults=self.page_size)
            except (JIRAError, RequestException) as e:
                msg = f"Failed to query Jira issues ({jql}) at startAt={start_at}: {e}"
                raise TransferError(msg) from e

            logger.debug(f"Jira returned {len(issues)} issues for startAt={start_at}")
            records.extend(
                r for r in map(self.to_record, issues) if r.created >= created_from and r.key not in exclude
            )

            if len(issues) < self.page_size:
                break
            start_at += len(issues)

        return records

    def _custom(self, issue: Issue, name: str) -> Any:  # noqa: ANN401
        field_id = self.field_ids.get(name)
        if field_id is None:
            return None
        return getattr(issue.fields, field_id, None)

    def to_record(self, issue: Issue) -> SourceRecord:
        fields = issue.fields
        created = parse_timestamp(fields.created)
        if created is None:
            msg = f"Issue {issue.key} has no creation time"
            raise TransferError(msg)

        priority = getattr(fields, "priority", None)
        resolution = getattr(fields, "resolution", None)
        parent = getattr(fields, "parent", None)

        return SourceRecord(
            key=issue.key,
            issue_type=fields.issuetype.name,
            status=fields.status.name,
            summary=fields.summary,
            created=created,
            priority=priority.name if priority else None,
            description=getattr(fields, "description", None),
            reporter=user_name(getattr(fields, "reporter", None)),
            assignee=user_name(getattr(fields, "assignee", None)),
            resolution_date=parse_timestamp(getattr(fields, "resolutiondate", None)),
            resolution=resolution.name if resolution else None,
            parent_key=parent.key if parent else None,
            epic_link=scalar_value(self._custom(issue, EPIC_LINK_FIELD)),
            epic_name=scalar_value(self._custom(issue, EPIC_NAME_FIELD)),
            sprints=sprint_names(self._custom(issue, SPRINT_FIELD)),
            story_points=story_points(self._custom(issue, STORY_POINTS_FIELD)),
            team=scalar_value(self._custom(issue, self.team_field)),
            labels=list(getattr(fields, "labels", None) or []),
        )

    def get_comments(self, key: str) -> list[SourceComment]:
        try:
            comments = self._client.comments(key)
        except (JIRAError, RequestException) as e:
            msg = f"Failed to get comments for {key}: {e}"
            raise TransferError(msg) from e

        return [
            SourceComment(
                body=comment.body,
                author=user_name(getattr(comment, "author", None)),
                created=parse_timestamp(getattr(comment, "created", None)),
            )
            for comment in comments
        ]

    def get_attachments(self, key: str) -> list[SourceAttachment]:
        try:
            issue = self._client.issue(key, fields="attachment")
            return [
                SourceAttachment(filename=attachment.filename, content=attachment.get())
                for attachment in getattr(issue.fields, "attachment", None) or []
            ]
        except (JIRAError, RequestException) as e:
            msg = f"Failed to download attachments for {key}: {e}"
            raise TransferError(msg) from e
