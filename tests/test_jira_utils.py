"""
Tests for the Jira source client.
"""

from __future__ import annotations

import datetime as dt
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any
from unittest.mock import Mock, patch

import pytest
from conftest import FakeTarget
from jira.exceptions import JIRAError

from jira_to_azure_boards import utils
from jira_to_azure_boards.checkpoint import CheckpointStore
from jira_to_azure_boards.exceptions import TransferError
from jira_to_azure_boards.jira_utils import (
    JiraSource,
    get_client,
    get_token,
    parse_timestamp,
    scalar_value,
    sprint_names,
    story_points,
    user_name,
)
from jira_to_azure_boards.migrator import Migrator
from jira_to_azure_boards.record_builder import RecordBuilder

if TYPE_CHECKING:
    from pathlib import Path

FIELDS = [
    {"name": "Epic Link", "id": "customfield_10001"},
    {"name": "Epic Name", "id": "customfield_10002"},
    {"name": "Sprint", "id": "customfield_10003"},
    {"name": "Story Points", "id": "customfield_10004"},
    {"name": "DC Team", "id": "customfield_10005"},
    {"name": "Summary", "id": "summary"},
]


def make_issue(key: str, created: str, **extra: Any) -> SimpleNamespace:  # noqa: ANN401
    fields = SimpleNamespace(
        issuetype=SimpleNamespace(name="Story"),
        status=SimpleNamespace(name="Open"),
        summary=f"Summary of {key}",
        created=created,
        priority=SimpleNamespace(name="High"),
        description=None,
        reporter=SimpleNamespace(emailAddress="jdoe@example.com", name="jdoe"),
        assignee=None,
        resolutiondate=None,
        resolution=None,
        labels=[],
    )
    for name, value in extra.items():
        setattr(fields, name, value)
    return SimpleNamespace(key=key, fields=fields)


@pytest.fixture
def client() -> Mock:
    mock_client = Mock()
    mock_client.myself.return_value = {"timeZone": "UTC"}
    mock_client.fields.return_value = FIELDS
    return mock_client


@pytest.mark.unit
class TestParsing:
    def test_parse_jira_timestamp(self) -> None:
        parsed = parse_timestamp("2024-01-15T10:30:45.123+0000")
        assert parsed == dt.datetime(2024, 1, 15, 10, 30, 45, 123000, tzinfo=dt.UTC)

    def test_parse_timestamp_with_offset(self) -> None:
        parsed = parse_timestamp("2024-01-15T10:30:45.000+0100")
        assert parsed == dt.datetime(2024, 1, 15, 9, 30, 45, tzinfo=dt.UTC)

    def test_parse_iso_timestamp_without_zone_is_utc(self) -> None:
        assert parse_timestamp("2024-01-15T10:30:45") == dt.datetime(2024, 1, 15, 10, 30, 45, tzinfo=dt.UTC)

    def test_parse_invalid_timestamp(self) -> None:
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_user_name_prefers_email(self) -> None:
        user = SimpleNamespace(emailAddress="jdoe@example.com", name="jdoe", displayName="John Doe")
        assert user_name(user) == "jdoe@example.com"

    def test_user_name_falls_back(self) -> None:
        assert user_name(SimpleNamespace(emailAddress=None, name=None, displayName="John Doe")) == "John Doe"
        assert user_name(None) is None

    def test_scalar_value(self) -> None:
        assert scalar_value(SimpleNamespace(value="Platform")) == "Platform"
        assert scalar_value([SimpleNamespace(value="Platform"), SimpleNamespace(value="Web")]) == "Platform"
        assert scalar_value("PROJ-1") == "PROJ-1"
        assert scalar_value([]) is None
        assert scalar_value(None) is None

    def test_sprint_names_server_format(self) -> None:
        value = [
            "com.atlassian.greenhopper.service.sprint.Sprint@1a2b[id=1,rapidViewId=2,state=CLOSED,name=Sprint 1,goal=]",
        ]
        assert sprint_names(value) == ["Sprint 1"]

    def test_sprint_names_cloud_format(self) -> None:
        assert sprint_names([SimpleNamespace(name="Sprint 2"), SimpleNamespace(name="Sprint 3")]) == [
            "Sprint 2",
            "Sprint 3",
        ]
        assert sprint_names(None) == []

    def test_story_points(self) -> None:
        assert story_points(5) == 5.0
        assert story_points("3.5") == 3.5
        assert story_points("many") is None
        assert story_points(None) is None


@pytest.mark.unit
class TestGetClient:
    def test_basic_auth_with_user(self) -> None:
        with patch("jira_to_azure_boards.jira_utils.JIRA") as mock_jira:
            get_client("https://jira.example.com", user="jdoe", token="secret")
        mock_jira.assert_called_once_with(server="https://jira.example.com", basic_auth=("jdoe", "secret"))

    def test_token_auth_without_user(self) -> None:
        with patch("jira_to_azure_boards.jira_utils.JIRA") as mock_jira:
            get_client("https://jira.example.com", token="secret")
        mock_jira.assert_called_once_with(server="https://jira.example.com", token_auth="secret")


@pytest.mark.unit
class TestGetToken:
    def test_explicit_pass_path(self) -> None:
        with patch("jira_to_azure_boards.utils.get_pass_value", return_value="from-pass") as mock_pass:
            assert get_token("jira/token") == "from-pass"
        mock_pass.assert_called_once_with("jira/token")

    def test_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JIRA_TOKEN", "from-env")
        with patch("jira_to_azure_boards.utils.get_pass_value") as mock_pass:
            assert get_token() == "from-env"
        mock_pass.assert_not_called()

    def test_nothing_found(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("JIRA_TOKEN", raising=False)
        with patch("jira_to_azure_boards.utils.get_pass_value", side_effect=utils.PassError("missing")):
            assert get_token() is None


@pytest.mark.unit
class TestBuildJql:
    def test_uses_user_time_zone(self, client: Mock) -> None:
        client.myself.return_value = {"timeZone": "Europe/Berlin"}
        source = JiraSource(client, "PROJ")

        jql = source.build_jql(dt.datetime(2021, 3, 1, 9, 0, 30, tzinfo=dt.UTC))

        assert jql == 'project = "PROJ" AND created >= "2021/03/01 10:00" ORDER BY created ASC, key ASC'

    def test_unknown_time_zone_falls_back_to_utc(self, client: Mock) -> None:
        client.myself.return_value = {"timeZone": "Mars/Olympus_Mons"}
        source = JiraSource(client, "PROJ")

        assert source.timezone is dt.UTC


@pytest.mark.unit
class TestQueryRecords:
    def test_drops_records_older_than_cursor(self, client: Mock) -> None:
        client.search_issues.side_effect = [
            [
                make_issue("PROJ-1", "2021-03-01T09:00:10.000+0000"),
                make_issue("PROJ-2", "2021-03-01T09:05:00.000+0000"),
            ],
            [make_issue("PROJ-3", "2021-03-01T09:10:00.000+0000")],
        ]
        source = JiraSource(client, "PROJ", page_size=2)

        records = source.query_records(dt.datetime(2021, 3, 1, 9, 0, 30, tzinfo=dt.UTC))

        assert [r.key for r in records] == ["PROJ-2", "PROJ-3"]
        starts = [call.kwargs["startAt"] for call in client.search_issues.call_args_list]
        assert starts == [0, 2]

    def test_keeps_records_at_cursor_unless_excluded(self, client: Mock) -> None:
        client.search_issues.side_effect = [
            [
                make_issue("PROJ-1", "2021-03-01T09:00:00.000+0000"),
                make_issue("PROJ-2", "2021-03-01T09:00:00.000+0000"),
            ],
            [make_issue("PROJ-3", "2021-03-01T09:00:00.000+0000")],
        ]
        source = JiraSource(client, "PROJ", page_size=2)

        records = source.query_records(dt.datetime(2021, 3, 1, 9, 0, tzinfo=dt.UTC), frozenset({"PROJ-1"}))

        assert [r.key for r in records] == ["PROJ-2", "PROJ-3"]

    def test_stops_at_page_size(self, client: Mock) -> None:
        client.search_issues.return_value = [
            make_issue("PROJ-1", "2021-03-01T09:01:00.000+0000"),
            make_issue("PROJ-2", "2021-03-01T09:02:00.000+0000"),
        ]
        source = JiraSource(client, "PROJ", page_size=2)

        records = source.query_records(dt.datetime(2021, 3, 1, 9, 0, tzinfo=dt.UTC))

        assert len(records) == 2
        client.search_issues.assert_called_once()

    def test_search_error_raises_transfer_error(self, client: Mock) -> None:
        client.search_issues.side_effect = JIRAError(status_code=500, text="Internal error")
        source = JiraSource(client, "PROJ")

        with pytest.raises(TransferError, match="Failed to query Jira issues"):
            source.query_records(dt.datetime(2021, 3, 1, tzinfo=dt.UTC))


@pytest.mark.unit
class TestToRecord:
    def test_maps_standard_and_custom_fields(self, client: Mock) -> None:
        issue = make_issue(
            "PROJ-2",
            "2021-03-01T09:05:00.000+0000",
            description="Details",
            assignee=SimpleNamespace(emailAddress="asmith@example.com"),
            resolutiondate="2021-04-01T12:00:00.000+0000",
            resolution=SimpleNamespace(name="Fixed"),
            labels=["backend", "urgent"],
            customfield_10001="PROJ-1",
            customfield_10003=[SimpleNamespace(name="Sprint 4")],
            customfield_10004=8.0,
            customfield_10005=SimpleNamespace(value="Platform"),
        )
        source = JiraSource(client, "PROJ")

        record = source.to_record(issue)

        assert record.key == "PROJ-2"
        assert record.issue_type == "Story"
        assert record.status == "Open"
        assert record.priority == "High"
        assert record.reporter == "jdoe@example.com"
        assert record.assignee == "asmith@example.com"
        assert record.resolution == "Fixed"
        assert record.resolution_date == dt.datetime(2021, 4, 1, 12, 0, tzinfo=dt.UTC)
        assert record.epic_link == "PROJ-1"
        assert record.epic_name is None
        assert record.sprints == ["Sprint 4"]
        assert record.story_points == 8.0
        assert record.team == "Platform"
        assert record.labels == ["backend", "urgent"]
        assert record.parent_key is None

    def test_parent_and_missing_custom_fields(self, client: Mock) -> None:
        client.fields.return_value = []
        issue = make_issue("PROJ-3", "2021-03-01T09:05:00.000+0000", parent=SimpleNamespace(key="PROJ-2"))
        source = JiraSource(client, "PROJ")

        record = source.to_record(issue)

        assert record.parent_key == "PROJ-2"
        assert record.epic_link is None
        assert record.sprints == []
        assert record.team is None

    def test_custom_team_field(self, client: Mock) -> None:
        client.fields.return_value = [*FIELDS, {"name": "Squad", "id": "customfield_20000"}]
        issue = make_issue("PROJ-1", "2021-03-01T09:05:00.000+0000", customfield_20000="Mobile")
        source = JiraSource(client, "PROJ", team_field="Squad")

        assert source.to_record(issue).team == "Mobile"

    def test_missing_creation_time(self, client: Mock) -> None:
        source = JiraSource(client, "PROJ")
        with pytest.raises(TransferError, match="PROJ-1 has no creation time"):
            source.to_record(make_issue("PROJ-1", ""))


@pytest.mark.unit
class TestCommentsAndAttachments:
    def test_get_comments(self, client: Mock) -> None:
        client.comments.return_value = [
            SimpleNamespace(
                body="Looks good",
                author=SimpleNamespace(emailAddress="asmith@example.com"),
                created="2021-03-02T08:00:00.000+0000",
            ),
        ]
        source = JiraSource(client, "PROJ")

        comments = source.get_comments("PROJ-1")

        assert len(comments) == 1
        assert comments[0].body == "Looks good"
        assert comments[0].author == "asmith@example.com"
        assert comments[0].created == dt.datetime(2021, 3, 2, 8, 0, tzinfo=dt.UTC)
        client.comments.assert_called_once_with("PROJ-1")

    def test_get_comments_error(self, client: Mock) -> None:
        client.comments.side_effect = JIRAError(status_code=404, text="Issue does not exist")
        source = JiraSource(client, "PROJ")

        with pytest.raises(TransferError, match="Failed to get comments for PROJ-1"):
            source.get_comments("PROJ-1")

    def test_get_attachments(self, client: Mock) -> None:
        attachment = Mock(filename="screenshot.png")
        attachment.get.return_value = b"\x89PNG"
        client.issue.return_value = SimpleNamespace(fields=SimpleNamespace(attachment=[attachment]))
        source = JiraSource(client, "PROJ")

        attachments = source.get_attachments("PROJ-1")

        assert [(a.filename, a.content) for a in attachments] == [("screenshot.png", b"\x89PNG")]
        client.issue.assert_called_once_with("PROJ-1", fields="attachment")

    def test_get_attachments_none(self, client: Mock) -> None:
        client.issue.return_value = SimpleNamespace(fields=SimpleNamespace(attachment=None))
        assert JiraSource(client, "PROJ").get_attachments("PROJ-1") == []

    def test_download_error(self, client: Mock) -> None:
        attachment = Mock(filename="big.zip")
        attachment.get.side_effect = JIRAError(status_code=500, text="boom")
        client.issue.return_value = SimpleNamespace(fields=SimpleNamespace(attachment=[attachment]))

        with pytest.raises(TransferError, match="Failed to download attachments for PROJ-1"):
            JiraSource(client, "PROJ").get_attachments("PROJ-1")


@pytest.mark.unit
class TestMigrationThroughJiraSource:
    def test_issues_sharing_creation_time_are_all_migrated(self, client: Mock, tmp_path: Path) -> None:
        issues = [make_issue(f"PROJ-{n}", "2021-03-01T09:00:00.000+0000") for n in range(1, 4)]

        def search(jql: str, startAt: int, maxResults: int) -> list[SimpleNamespace]:  # noqa: N803
            return issues[startAt : startAt + maxResults]

        client.search_issues.side_effect = search
        client.comments.return_value = []
        client.issue.return_value = SimpleNamespace(fields=SimpleNamespace(attachment=None))
        source = JiraSource(client, "PROJ", page_size=2)
        target = FakeTarget()
        store = CheckpointStore.load(tmp_path / "migrated.json")
        migrator = Migrator(source, target, store, RecordBuilder(source, target, store, project="Boards"))

        result = migrator.migrate()

        assert [o.key for o in result.outcomes] == ["PROJ-1", "PROJ-2", "PROJ-3"]
        assert len(target.created) == 3
        assert len(store) == 3
