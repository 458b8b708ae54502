"""Defines the Command Line Interface (CLI) using Typer."""

import asyncio
import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Coroutine

import typer
from dotenv import load_dotenv
from typer import Argument, Option
from typing_extensions import Annotated

from gitea_workflow.configuration.exceptions import GiteaConnectionConfigurationUndefinedError, RequiredConfigurationElementError
from gitea_workflow.configuration.models import ConnectionConfig
from gitea_workflow.configuration.reconcile import reconcile_connection_configuration
from gitea_workflow.report.generator import TimeRange
from gitea_workflow.schemas.workflow import ProjectType
from gitea_workflow.synchronize import driver
from gitea_workflow.synchronize.models import OperationResult, SyncDirection
from gitea_workflow.utils.constants import DEFAULT_GITEA_API_URL
from gitea_workflow.utils.gitea import split_repository_in_configuration
from gitea_workflow.utils.log_config import configure_logging

load_dotenv()

typer_app = typer.Typer(pretty_exceptions_show_locals=False, help="Keep Gitea issue labels and project boards in line with a workflow policy.")


class ReportFormat(str, Enum):
    """Output formats of the report command."""

    JSON = "json"
    MARKDOWN = "markdown"


def echo_result(result: OperationResult) -> None:
    """Print an operation result as JSON and exit with 1 when it failed."""
    typer.echo(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    if not result.success:
        raise typer.Exit(1)


def parse_time_range(value: str | None) -> TimeRange | None:
    """Parse 'day', 'week', 'month' or an explicit 'START..END' range of ISO 8601 timestamps."""
    if value is None:
        return None
    if ".." in value:
        start, end = value.split("..", 1)
        try:
            return datetime.fromisoformat(start), datetime.fromisoformat(end)
        except ValueError as exc:
            raise typer.BadParameter(f"invalid time range '{value}': {exc}") from exc
    if value not in ("day", "week", "month"):
        raise typer.BadParameter(f"invalid time range '{value}', expected day, week, month or START..END")
    return value  # type: ignore[return-value]


@typer_app.command(name="init")
def init_cli(
    project_type: Annotated[ProjectType, Option(help="Kind of project the default policy is generated for.")] = ProjectType.BACKEND,
    repo: Annotated[str, Option(envvar="REPO", help="Repository name (owner/repo) the policy is for.")] = "owner/repo",
    board_name: Annotated[str | None, Option(help="Project board name.")] = None,
    output: Annotated[Path | None, Option(help="Write the policy to this file instead of printing it only.")] = None,
    dry_run: Annotated[bool, Option(help="Print the policy without writing any file.")] = False,
    debug: Annotated[bool, Option(envvar="DEBUG", help="Enable debug mode.")] = False,
) -> None:
    """Generate a default workflow policy (.gitea/issue-workflow.yaml)."""
    configure_logging(debug)
    owner, repo_name = asyncio.run(split_repository_in_configuration(repo))
    result = asyncio.run(driver.init(owner, repo_name, dry_run=dry_run, project_type=project_type, board_name=board_name, output_path=output))
    if result.success and output is None:
        typer.echo(result.data["content"])
        return
    echo_result(result)


# --- Add a new Typer group for repo commands ---
repo_app = typer.Typer(help="Repository-related commands")


def repo_callback(
    ctx: typer.Context,
    repo: Annotated[str, Argument(help="Repository name (owner/repo).")],
    gitea_api_url: Annotated[str, Option(envvar="GITEA_API_URL", help="Gitea API URL.")] = DEFAULT_GITEA_API_URL,
    gitea_token: Annotated[str | None, Option(envvar="GITEA_TOKEN", help="Gitea access token.")] = None,
    config_path: Annotated[str | None, Option(envvar="WORKFLOW_CONFIG_PATH", help="Path of the workflow policy in the repository.")] = None,
    max_concurrency: Annotated[int | None, Option(envvar="WORKFLOW_MAX_CONCURRENCY", min=1, help="Maximum concurrent Gitea calls.")] = None,
    debug: Annotated[bool, Option(envvar="DEBUG", help="Enable debug mode.")] = False,
) -> None:
    """Set the repository and Gitea connection for the current context."""
    configure_logging(debug)
    try:
        connection = asyncio.run(
            reconcile_connection_configuration(
                cli_repo=repo,
                cli_debug=debug,
                cli_gitea_api_url=gitea_api_url,
                cli_gitea_token=gitea_token,
                cli_workflow_config_path=config_path,
                cli_max_concurrency=max_concurrency,
            )
        )
        owner, repo_name = asyncio.run(split_repository_in_configuration(connection.repo))
    except (GiteaConnectionConfigurationUndefinedError, RequiredConfigurationElementError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc
    ctx.ensure_object(dict)
    ctx.obj["connection"] = connection
    ctx.obj["owner"] = owner
    ctx.obj["repo_name"] = repo_name


repo_app.callback()(repo_callback)


def run_repo_operation(ctx: typer.Context, operation: Any, **kwargs: Any) -> OperationResult:
    """Run a driver operation against the repository stored in the context."""
    connection: ConnectionConfig = ctx.obj["connection"]
    coroutine: Coroutine[Any, Any, OperationResult] = operation(ctx.obj["owner"], ctx.obj["repo_name"], connection=connection, **kwargs)
    return asyncio.run(coroutine)


@repo_app.command(name="load-config")
def load_config_cli(ctx: typer.Context) -> None:
    """Load and validate the workflow policy stored in the repository."""
    echo_result(run_repo_operation(ctx, driver.load_config))


@repo_app.command(name="sync-labels")
def sync_labels_cli(
    ctx: typer.Context,
    dry_run: Annotated[bool, Option(help="Show the plan without changing any label.")] = False,
    enforce: Annotated[bool, Option(help="Also update labels whose color or description drifted.")] = False,
) -> None:
    """Create the labels of the taxonomy that are missing in the repository."""
    echo_result(run_repo_operation(ctx, driver.sync_labels, dry_run=dry_run, enforce=enforce))


@repo_app.command(name="sync-board")
def sync_board_cli(
    ctx: typer.Context,
    dry_run: Annotated[bool, Option(help="Show what would be created without creating it.")] = False,
    board_name: Annotated[str | None, Option(help="Board name overriding the one in the policy.")] = None,
) -> None:
    """Ensure the project board exists with every declared column."""
    echo_result(run_repo_operation(ctx, driver.sync_board, dry_run=dry_run, board_name=board_name))


@repo_app.command(name="reorder-board")
def reorder_board_cli(
    ctx: typer.Context,
    dry_run: Annotated[bool, Option(help="Show the new positions without moving columns.")] = False,
    board_name: Annotated[str | None, Option(help="Board name overriding the one in the policy.")] = None,
) -> None:
    """Reorder existing board columns into declared order."""
    echo_result(run_repo_operation(ctx, driver.reorder_board, dry_run=dry_run, board_name=board_name))


@repo_app.command(name="check-issues")
def check_issues_cli(
    ctx: typer.Context,
    issue_number: Annotated[int | None, Option("--issue", help="Check a single issue.")] = None,
) -> None:
    """Report open issues with missing or conflicting labels."""
    echo_result(run_repo_operation(ctx, driver.check_issues, issue_number=issue_number))


@repo_app.command(name="infer-labels")
def infer_labels_cli(
    ctx: typer.Context,
    issue_number: Annotated[int | None, Option("--issue", help="Infer labels for a single issue.")] = None,
    auto_apply: Annotated[bool, Option(help="Add the inferred labels to the issues.")] = False,
    dry_run: Annotated[bool, Option(help="Never change labels, even with --auto-apply.")] = False,
) -> None:
    """Infer type, priority and area labels from issue text."""
    echo_result(run_repo_operation(ctx, driver.infer_labels, issue_number=issue_number, auto_apply=auto_apply, dry_run=dry_run))


@repo_app.command(name="check-blocked")
def check_blocked_cli(
    ctx: typer.Context,
    threshold_hours: Annotated[float | None, Option(min=0, help="Threshold overriding the per-priority blocked threshold.")] = None,
    dry_run: Annotated[bool, Option(help="Report blocked issues without labeling them.")] = False,
) -> None:
    """Find issues past their blocked threshold and mark them blocked."""
    echo_result(run_repo_operation(ctx, driver.check_blocked, threshold_hours=threshold_hours, dry_run=dry_run))


@repo_app.command(name="escalate-priority")
def escalate_priority_cli(
    ctx: typer.Context,
    dry_run: Annotated[bool, Option(help="Show escalation decisions without changing priorities.")] = False,
) -> None:
    """Raise the priority of aged issues by one tier and pin security issues to the top tier."""
    echo_result(run_repo_operation(ctx, driver.escalate_priority, dry_run=dry_run))


@repo_app.command(name="sync-status")
def sync_status_cli(
    ctx: typer.Context,
    direction: Annotated[SyncDirection, Option(help="Which side is authoritative.")] = SyncDirection.BOTH,
    dry_run: Annotated[bool, Option(help="Show the plan without moving issues or changing labels.")] = False,
    board_name: Annotated[str | None, Option(help="Board name overriding the one in the policy.")] = None,
) -> None:
    """Make status labels and board columns agree."""
    echo_result(run_repo_operation(ctx, driver.sync_status, direction=direction, dry_run=dry_run, board_name=board_name))


@repo_app.command(name="report")
def report_cli(
    ctx: typer.Context,
    time_range: Annotated[str | None, Option(help="day, week, month or START..END (ISO 8601).")] = None,
    output_format: Annotated[ReportFormat, Option("--format", help="Output format.")] = ReportFormat.JSON,
) -> None:
    """Generate a workflow health report."""
    result = run_repo_operation(ctx, driver.generate_report, time_range=parse_time_range(time_range))
    if result.success and output_format == ReportFormat.MARKDOWN:
        typer.echo(result.data["markdown"])
        return
    echo_result(result)


# --- Register the repo_app as a sub-app of the main Typer app ---
typer_app.add_typer(repo_app, name="repo")


if __name__ == "__main__":
    typer_app()
