"""Orchestrates the workflow operations exposed to the CLI.

Every operation is one fetch-plan-apply cycle: the policy and the repository
state are read fresh, a plan is computed, and unless ``dry_run`` is set the plan
is applied through the issue tracker. Each operation returns an
OperationResult envelope instead of raising.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Literal, TypeVar

import structlog

from gitea_workflow.classify.inference import check_issue, classify_issue, explain_inference, plan_label_application
from gitea_workflow.configuration.env import settings
from gitea_workflow.configuration.exceptions import WorkflowConfigInvalidError
from gitea_workflow.configuration.models import ConnectionConfig
from gitea_workflow.configuration.reconcile import reconcile_connection_configuration
from gitea_workflow.processing.config_loader import WorkflowConfigLoader
from gitea_workflow.processing.defaults import dump_workflow_config, generate_default_config, workflow_config_to_document
from gitea_workflow.report.generator import TimeRange, generate_report as build_report, render_markdown
from gitea_workflow.schemas.workflow import AgeReference, ProjectType, WorkflowConfig
from gitea_workflow.sla.monitor import apply_escalations, check_blocked as find_blocked, decide_escalations, mark_blocked
from gitea_workflow.synchronize.board import require_board, reorder_board_columns, sync_board as synchronize_board
from gitea_workflow.synchronize.labels import apply_label_plan, plan_label_sync
from gitea_workflow.synchronize.models import ItemResult, ItemStatus, LabelChange, OperationResult, SyncDirection
from gitea_workflow.synchronize.status import apply_status_plan, latest_status_change, plan_status_sync
from gitea_workflow.synchronize.utils import any_failed, apply_label_change, issue_key, run_bounded, summarize_results
from gitea_workflow.tracker.abc import IssueTrackerClientBase
from gitea_workflow.tracker.adapter import GiteaAdapter
from gitea_workflow.tracker.models import Board, TrackedIssue
from gitea_workflow.utils.constants import DEFAULT_MAX_CONCURRENCY, DEFAULT_WORKFLOW_CONFIG_PATH
from gitea_workflow.utils.yaml import dump_yaml_to_file

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[OperationResult]])


def workflow_operation(name: str) -> Callable[[F], F]:
    """Decorator turning errors raised by an operation into a failed OperationResult.

    An invalid policy is reported with its individual errors; anything else is
    wrapped with the operation name so it is never dropped.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> OperationResult:
            start_time = time.time()
            try:
                result = await func(*args, **kwargs)
            except WorkflowConfigInvalidError as exc:
                logger.error("Workflow config is invalid", operation=name, reason=exc.reason)
                return OperationResult.fail(f"invalid workflow configuration: {exc.reason}", data={"errors": exc.errors})
            except Exception as exc:
                logger.exception("Operation failed", operation=name, error=str(exc), error_type=type(exc).__name__)
                return OperationResult.fail(f"{name}: {exc}")
            logger.info("Operation finished", operation=name, success=result.success, duration=round(time.time() - start_time, 2))
            return result

        return wrapper  # type: ignore

    return decorator


@asynccontextmanager
async def open_tracker(
    owner: str,
    repo: str,
    client: IssueTrackerClientBase | None = None,
    connection: ConnectionConfig | None = None,
) -> AsyncIterator[IssueTrackerClientBase]:
    """Yield the given tracker client, or a Gitea adapter that is closed on exit."""
    if client is not None:
        yield client
        return
    if connection is None:
        connection = await reconcile_connection_configuration(cli_repo=f"{owner}/{repo}")
    adapter = await GiteaAdapter.create(
        repo=f"{owner}/{repo}",
        gitea_token=connection.gitea_token,
        gitea_api_url=connection.gitea_api_url,
        request_timeout=connection.request_timeout,
        max_retries=connection.max_retries,
    )
    try:
        yield adapter
    finally:
        await adapter.aclose()


def _concurrency(connection: ConnectionConfig | None) -> int:
    return connection.max_concurrency if connection else settings.WORKFLOW_MAX_CONCURRENCY


def _config_path(connection: ConnectionConfig | None) -> str:
    return connection.workflow_config_path if connection else settings.WORKFLOW_CONFIG_PATH


async def _resolve_config(tracker: IssueTrackerClientBase, config: WorkflowConfig | None, connection: ConnectionConfig | None) -> WorkflowConfig:
    if config is not None:
        return config
    return await WorkflowConfigLoader().load_from_repository(tracker, path=_config_path(connection))


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def _tracks_status_age(config: WorkflowConfig) -> bool:
    return config.age_reference == AgeReference.LAST_STATUS_CHANGE


def _dump(models: list[Any]) -> list[dict[str, Any]]:
    return [model.model_dump(mode="json") for model in models]


def _result(data: dict[str, Any], results: list[ItemResult], operation: str) -> OperationResult:
    data["results"] = _dump(results)
    data["summary"] = summarize_results(results)
    if any_failed(results):
        failed = data["summary"]["failure"]
        return OperationResult.fail(f"{operation}: {failed} of {len(results)} item(s) failed", data=data)
    return OperationResult.ok(data)


async def collect_issues(
    tracker: IssueTrackerClientBase,
    config: WorkflowConfig,
    state: Literal["open", "closed", "all"] = "open",
    board: Board | None = None,
    with_status_history: bool = False,
    concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> tuple[list[TrackedIssue], list[ItemResult]]:
    """Read issues with their board column and, optionally, their last status change.

    Returns:
        The issues, and the per-issue results of reading status history
        (empty when history was not requested). Issues whose history could not be
        read keep no status change time.
    """
    issues = await tracker.list_issues(state=state)
    if board is not None:
        column_of: dict[int, str] = {}
        for column in await tracker.list_board_columns(board.id):
            for number in await tracker.list_column_issue_numbers(board.id, column.id):
                column_of[number] = column.name
        issues = [issue.model_copy(update={"board_column": column_of.get(issue.number)}) for issue in issues]

    if not with_status_history:
        return issues, []

    changed_at: dict[int, datetime] = {}

    async def read_history(issue: TrackedIssue) -> None:
        timestamp = latest_status_change(await tracker.list_label_events(issue.number), config)
        if timestamp is not None:
            changed_at[issue.number] = timestamp

    history = await run_bounded(issues, read_history, lambda issue: issue_key(issue.number), "read_status_history", concurrency)
    for result in history:
        if result.failed:
            logger.warning("Could not read status history", item=result.item, reason=result.reason)
    issues = [issue.model_copy(update={"last_status_change_at": changed_at.get(issue.number)}) for issue in issues]
    return issues, history


def _skip_unreadable_history(issues: list[TrackedIssue], history: list[ItemResult]) -> tuple[list[TrackedIssue], list[ItemResult]]:
    """Split off issues whose status history could not be read; their age is unknown."""
    failures = [result for result in history if result.failed]
    failed = {result.item for result in failures}
    return [issue for issue in issues if issue_key(issue.number) not in failed], failures


async def _select_issues(tracker: IssueTrackerClientBase, issue_number: int | None) -> list[TrackedIssue]:
    if issue_number is not None:
        return [await tracker.get_issue(issue_number)]
    return await tracker.list_issues(state="open")


@workflow_operation("init")
async def init(
    owner: str,
    repo: str,
    dry_run: bool = False,
    project_type: ProjectType = ProjectType.BACKEND,
    board_name: str | None = None,
    output_path: Path | None = None,
) -> OperationResult:
    """Generate the default workflow policy, optionally writing it to a local file."""
    config = generate_default_config(project_type, board_name=board_name)
    written = False
    if output_path is not None and not dry_run:
        dump_yaml_to_file(workflow_config_to_document(config), output_path)
        written = True
        logger.info("Wrote default workflow config", owner=owner, repo=repo, path=str(output_path))
    return OperationResult.ok(
        {
            "config_path": DEFAULT_WORKFLOW_CONFIG_PATH,
            "content": dump_workflow_config(config),
            "written_to": str(output_path) if written else None,
        }
    )


@workflow_operation("load_config")
async def load_config(
    owner: str,
    repo: str,
    dry_run: bool = False,
    *,
    client: IssueTrackerClientBase | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Load and validate the workflow policy stored in the repository."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, None, connection)
    return OperationResult.ok(
        {
            "config_path": _config_path(connection),
            "config": workflow_config_to_document(config),
            "priority_tiers": config.priority_tiers,
            "status_labels": config.status_labels,
        }
    )


@workflow_operation("sync_labels")
async def sync_labels(
    owner: str,
    repo: str,
    dry_run: bool = False,
    enforce: bool = False,
    *,
    client: IssueTrackerClientBase | None = None,
    config: WorkflowConfig | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Create missing taxonomy labels and, with enforce, update drifted metadata."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, config, connection)
        plan = plan_label_sync(config, await tracker.list_labels(), enforce=enforce)
        data: dict[str, Any] = {"dry_run": dry_run, "plan": plan.model_dump(mode="json")}
        if dry_run:
            return OperationResult.ok(data)
        results = await apply_label_plan(plan, tracker, _concurrency(connection))
    return _result(data, results, "sync_labels")


@workflow_operation("sync_board")
async def sync_board(
    owner: str,
    repo: str,
    dry_run: bool = False,
    board_name: str | None = None,
    *,
    client: IssueTrackerClientBase | None = None,
    config: WorkflowConfig | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Ensure the project board and its declared columns exist."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, config, connection)
        result = await synchronize_board(config, tracker, board_name=board_name, dry_run=dry_run)
    return _result(result.model_dump(mode="json", exclude={"results"}), result.results, "sync_board")


@workflow_operation("reorder_board")
async def reorder_board(
    owner: str,
    repo: str,
    dry_run: bool = False,
    board_name: str | None = None,
    *,
    client: IssueTrackerClientBase | None = None,
    config: WorkflowConfig | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Reorder the existing board columns into declared order."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, config, connection)
        result = await reorder_board_columns(config, tracker, board_name=board_name, dry_run=dry_run)
    return _result(result.model_dump(mode="json", exclude={"results"}), result.results, "reorder_board")


@workflow_operation("check_issues")
async def check_issues(
    owner: str,
    repo: str,
    dry_run: bool = False,
    issue_number: int | None = None,
    *,
    client: IssueTrackerClientBase | None = None,
    config: WorkflowConfig | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Report open issues with taxonomy problems and the labels that would fix them."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, config, connection)
        issues = await _select_issues(tracker, issue_number)
    checks = [check_issue(issue, config) for issue in issues]
    with_problems = [check for check in checks if not check.ok]
    logger.info("Checked issues", owner=owner, repo=repo, checked=len(checks), problems=len(with_problems))
    return OperationResult.ok({"checked": len(checks), "issues_with_problems": _dump(with_problems)})


@workflow_operation("infer_labels")
async def infer_labels(
    owner: str,
    repo: str,
    dry_run: bool = False,
    issue_number: int | None = None,
    auto_apply: bool = False,
    *,
    client: IssueTrackerClientBase | None = None,
    config: WorkflowConfig | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Infer labels from issue text; with auto_apply, add them without breaking exclusivity."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, config, connection)
        issues = await _select_issues(tracker, issue_number)
        suggestions: list[dict[str, Any]] = []
        changes: list[LabelChange] = []
        for issue in issues:
            inferred = classify_issue(issue, config)
            matched = explain_inference(issue.text, config.classifier_rules)
            change = plan_label_application(issue, inferred, config)
            suggestions.append(
                {
                    "issue_number": issue.number,
                    "inferred": {category.value: label for category, label in inferred.items()},
                    "matched": {category.value: patterns for category, patterns in matched.items()},
                    "to_add": change.add if change else [],
                }
            )
            if change is not None:
                changes.append(change)
        data: dict[str, Any] = {"dry_run": dry_run, "auto_apply": auto_apply, "issues": suggestions}
        if dry_run or not auto_apply:
            return OperationResult.ok(data)

        async def apply(change: LabelChange) -> ItemResult | None:
            if await apply_label_change(change, tracker, config=config) is None:
                return ItemResult(
                    item=issue_key(change.issue_number),
                    status=ItemStatus.SKIPPED,
                    reason="inferred labels conflict with labels added since planning",
                )
            return None

        results = await run_bounded(changes, apply, lambda change: issue_key(change.issue_number), "infer_labels", _concurrency(connection))
    return _result(data, results, "infer_labels")


@workflow_operation("check_blocked")
async def check_blocked(
    owner: str,
    repo: str,
    dry_run: bool = False,
    threshold_hours: float | None = None,
    *,
    now: datetime | None = None,
    client: IssueTrackerClientBase | None = None,
    config: WorkflowConfig | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Find open issues past their blocked threshold and mark them blocked."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, config, connection)
        issues, history = await collect_issues(tracker, config, with_status_history=_tracks_status_age(config), concurrency=_concurrency(connection))
        issues, results = _skip_unreadable_history(issues, history)
        blocked = find_blocked(issues, config, _now(now), threshold_hours=threshold_hours)
        data: dict[str, Any] = {"dry_run": dry_run, "checked": len(issues), "blocked_issues": _dump(blocked)}
        if not dry_run:
            results.extend(await mark_blocked(blocked, config, tracker, _concurrency(connection)))
    return _result(data, results, "check_blocked")


@workflow_operation("escalate_priority")
async def escalate_priority(
    owner: str,
    repo: str,
    dry_run: bool = False,
    *,
    now: datetime | None = None,
    client: IssueTrackerClientBase | None = None,
    config: WorkflowConfig | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Raise the priority of aged and security issues by one tier (security straight to the top)."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, config, connection)
        issues, history = await collect_issues(tracker, config, with_status_history=_tracks_status_age(config), concurrency=_concurrency(connection))
        issues, results = _skip_unreadable_history(issues, history)
        decisions = decide_escalations(issues, config, _now(now))
        data: dict[str, Any] = {"dry_run": dry_run, "checked": len(issues), "decisions": _dump(decisions)}
        if not dry_run:
            results.extend(await apply_escalations(decisions, config, tracker, _concurrency(connection)))
    return _result(data, results, "escalate_priority")


@workflow_operation("sync_status")
async def sync_status(
    owner: str,
    repo: str,
    dry_run: bool = False,
    direction: SyncDirection = SyncDirection.BOTH,
    board_name: str | None = None,
    *,
    client: IssueTrackerClientBase | None = None,
    config: WorkflowConfig | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Make the status label and board column of every open issue agree."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, config, connection)
        board = await require_board(tracker, board_name or config.board.name)
        issues, history = await collect_issues(
            tracker,
            config,
            board=board,
            with_status_history=direction == SyncDirection.BOTH,
            concurrency=_concurrency(connection),
        )
        issues, results = _skip_unreadable_history(issues, history)
        plan = plan_status_sync(issues, config, direction)
        data: dict[str, Any] = {"dry_run": dry_run, "direction": direction.value, "checked": len(issues), "plan": plan.model_dump(mode="json")}
        if not dry_run:
            columns = await tracker.list_board_columns(board.id)
            results.extend(await apply_status_plan(plan, board, columns, tracker, _concurrency(connection)))
    return _result(data, results, "sync_status")


@workflow_operation("generate_report")
async def generate_report(
    owner: str,
    repo: str,
    dry_run: bool = False,
    time_range: TimeRange | None = None,
    *,
    now: datetime | None = None,
    client: IssueTrackerClientBase | None = None,
    config: WorkflowConfig | None = None,
    connection: ConnectionConfig | None = None,
) -> OperationResult:
    """Aggregate workflow statistics and a health score, rendered as JSON and Markdown."""
    async with open_tracker(owner, repo, client, connection) as tracker:
        config = await _resolve_config(tracker, config, connection)
        issues, history = await collect_issues(
            tracker, config, state="all", with_status_history=_tracks_status_age(config), concurrency=_concurrency(connection)
        )
    # Issues with unreadable history stay in the aggregate, aged from their creation time.
    report = build_report(issues, config, _now(now), time_range=time_range, repository=f"{owner}/{repo}")
    data = {"report": report.model_dump(mode="json"), "markdown": render_markdown(report)}
    return _result(data, [result for result in history if result.failed], "generate_report")
