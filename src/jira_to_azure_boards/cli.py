"""
Command-line interface for the Jira to Azure Boards migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable, Sequence

from . import azure_utils, jira_utils
from .checkpoint import CheckpointStore
from .config import MigrationConfig, load_config
from .exceptions import MigrationError
from .migrator import Migrator
from .models import MigrationResult
from .record_builder import RecordBuilder
from .state_mapper import UserMapper
from .utils import PassError, setup_logging

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Migrate Jira issues to Azure Boards work items")

    _ = parser.add_argument("--config", "-c", help="JSON settings file (Jira, AzureDevOps and Migration sections)")
    _ = parser.add_argument("--jira-url", help="Jira server URL")
    _ = parser.add_argument("--jira-user", help="Jira user for basic authentication")
    _ = parser.add_argument("--jira-project", help="Jira project key to migrate")
    _ = parser.add_argument("--azure-url", help="Azure DevOps organization URL (https://dev.azure.com/org)")
    _ = parser.add_argument("--azure-project", help="Azure DevOps project name")
    _ = parser.add_argument(
        "--checkpoint", dest="checkpoint_path", help="Checkpoint file path (default: migrated.json)"
    )
    _ = parser.add_argument("--created-after", help="Only migrate issues created on or after this date (YYYY-MM-DD)")
    _ = parser.add_argument(
        "--user-map",
        "-u",
        action="append",
        help='User mapping (format: "jira_user:azure_identity"). Can be specified multiple times.',
    )
    _ = parser.add_argument("--jira-pass-token", help="Path for Jira token in pass utility (default: jira/cli/token)")
    _ = parser.add_argument(
        "--azure-pass-token", help="Path for Azure DevOps PAT in pass utility (default: azure-devops/cli/pat)"
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def _resolve_token(
    pass_path: str | None, configured: str | None, getter: Callable[[str | None], str | None]
) -> str | None:
    """An explicit pass path wins over configured tokens, which win over defaults."""
    if pass_path:
        return getter(pass_path)
    return configured or getter(None)


def build_config(args: argparse.Namespace) -> MigrationConfig:
    user_map = UserMapper.from_patterns(args.user_map).mapping
    overrides = {
        "jira_url": args.jira_url,
        "jira_user": args.jira_user,
        "jira_project": args.jira_project,
        "azure_url": args.azure_url,
        "azure_project": args.azure_project,
        "checkpoint_path": args.checkpoint_path,
        "created_after": args.created_after,
        "user_map": user_map or None,
    }
    config = load_config(args.config, overrides)
    config.jira_token = _resolve_token(args.jira_pass_token, config.jira_token, jira_utils.get_token)
    config.azure_token = _resolve_token(args.azure_pass_token, config.azure_token, azure_utils.get_token)
    return config


def run(config: MigrationConfig) -> MigrationResult:
    """Wire up clients, checkpoint store and migrator, then migrate."""
    checkpoints = CheckpointStore.load(config.checkpoint_path)

    jira_client = jira_utils.get_client(config.jira_url, user=config.jira_user, token=config.jira_token)
    source = jira_utils.JiraSource(
        jira_client, config.jira_project, page_size=config.page_size, team_field=config.team_field
    )

    target = azure_utils.AzureBoardsTarget(
        azure_utils.get_session(config.azure_token), config.azure_url, config.azure_project
    )
    target.validate_access()

    builder = RecordBuilder(
        source, target, checkpoints, project=config.azure_project, users=UserMapper(config.user_map)
    )
    migrator = Migrator(source, target, checkpoints, builder, extra_types=config.type_map)
    return migrator.migrate(config.created_after)


def _print_report(result: MigrationResult) -> None:
    stats = result.stats
    print(f"Created: {stats.records_created}")
    print(f"Skipped: {stats.records_skipped}")
    print(f"Failed: {stats.records_failed}")
    print(f"Comments: {stats.comments_created}")
    print(f"Attachments: {stats.attachments_uploaded}")
    for error in stats.errors:
        print(f"  - {error}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = build_config(args)
        result = run(config)
    except (MigrationError, PassError, ValueError):
        logger.exception("Migration failed")
        sys.exit(1)

    _print_report(result)
    sys.exit(0 if result.success else 1)
