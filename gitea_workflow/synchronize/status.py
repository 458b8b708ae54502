"""Reconciles the status label of an issue with its position on the project board.

The status label and the board column are two views of the same lifecycle
stage, related by the column/status mapping validated when the policy loads.
Each pass emits at most one corrective action per issue, and a second pass
over the corrected state emits none.
"""

from datetime import datetime

import structlog

from gitea_workflow.schemas.workflow import WorkflowConfig
from gitea_workflow.synchronize.models import ColumnMove, ItemResult, ItemStatus, LabelChange, SyncDirection, SyncPlan
from gitea_workflow.synchronize.utils import apply_label_change, issue_key, run_bounded
from gitea_workflow.tracker.abc import IssueTrackerClientBase
from gitea_workflow.tracker.models import Board, BoardColumnState, LabelEvent, TrackedIssue
from gitea_workflow.utils.constants import DEFAULT_MAX_CONCURRENCY

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

StatusAction = ColumnMove | LabelChange


def status_labels_of(issue: TrackedIssue, config: WorkflowConfig) -> list[str]:
    """Status labels held by the issue."""
    statuses = set(config.status_labels)
    return [label for label in issue.labels if label in statuses]


def latest_status_change(events: list[LabelEvent], config: WorkflowConfig) -> datetime | None:
    """Time of the most recent status label being added to or removed from an issue."""
    statuses = set(config.status_labels)
    times = [event.created_at for event in events if event.label in statuses]
    return max(times) if times else None


def _label_to_board(issue: TrackedIssue, config: WorkflowConfig, statuses: list[str]) -> ColumnMove | None:
    if len(statuses) != 1:
        # No single authoritative status; check_issues reports these.
        return None
    target = config.column_for_status(statuses[0])
    if target is None or issue.board_column == target:
        return None
    return ColumnMove(
        issue_number=issue.number,
        from_column=issue.board_column,
        to_column=target,
        reason=f"status label '{statuses[0]}' maps to column '{target}'",
    )


def _board_to_label(issue: TrackedIssue, config: WorkflowConfig, statuses: list[str]) -> LabelChange | None:
    if issue.board_column is None:
        return None
    target = config.status_for_column(issue.board_column)
    if target is None or statuses == [target]:
        return None
    return LabelChange(
        issue_number=issue.number,
        remove=[status for status in statuses if status != target],
        add=[] if target in statuses else [target],
        reason=f"column '{issue.board_column}' maps to status label '{target}'",
    )


def reconcile(issue: TrackedIssue, config: WorkflowConfig, direction: SyncDirection) -> StatusAction | None:
    """Compute the single corrective action that makes the status label and board column agree.

    Args:
        issue: The issue with its labels, board column and change timestamps.
        config: The workflow policy.
        direction: Which side is authoritative. With ``both`` the side changed
            most recently wins; when either timestamp is unknown the label side
            wins, unless the issue has no status label but sits on the board.

    Returns:
        A column move, a label change, or None when both views already agree.
    """
    statuses = status_labels_of(issue, config)
    if direction == SyncDirection.LABEL_TO_BOARD:
        return _label_to_board(issue, config, statuses)
    if direction == SyncDirection.BOARD_TO_LABEL:
        return _board_to_label(issue, config, statuses)

    on_board = issue.board_column is not None and config.status_for_column(issue.board_column) is not None
    if not statuses:
        return _board_to_label(issue, config, statuses) if on_board else None
    if not on_board:
        return _label_to_board(issue, config, statuses)
    if len(statuses) > 1:
        return _board_to_label(issue, config, statuses)
    label_changed_at = issue.last_status_change_at
    column_moved_at = issue.column_moved_at
    if label_changed_at is not None and column_moved_at is not None and column_moved_at > label_changed_at:
        return _board_to_label(issue, config, statuses)
    return _label_to_board(issue, config, statuses)


def plan_status_sync(issues: list[TrackedIssue], config: WorkflowConfig, direction: SyncDirection) -> SyncPlan:
    """Reconcile every issue and collect the actions into a plan."""
    plan = SyncPlan()
    for issue in issues:
        action = reconcile(issue, config, direction)
        if isinstance(action, ColumnMove):
            plan.column_moves.append(action)
        elif isinstance(action, LabelChange):
            plan.label_changes.append(action)
    logger.info(
        "Planned status synchronization",
        direction=direction.value,
        issues=len(issues),
        column_moves=len(plan.column_moves),
        label_changes=len(plan.label_changes),
    )
    return plan


async def apply_status_plan(
    plan: SyncPlan,
    board: Board,
    columns: list[BoardColumnState],
    client: IssueTrackerClientBase,
    concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[ItemResult]:
    """Apply the column moves and label changes of a plan, one result per issue."""
    column_ids = {column.name: column.id for column in columns}

    async def move(column_move: ColumnMove) -> ItemResult | None:
        column_id = column_ids.get(column_move.to_column)
        if column_id is None:
            return ItemResult(
                item=issue_key(column_move.issue_number),
                status=ItemStatus.FAILURE,
                reason=f"column '{column_move.to_column}' does not exist on board '{board.name}'",
            )
        await client.move_issue_to_column(column_move.issue_number, board.id, column_id)
        logger.info("Moved issue to column", issue_number=column_move.issue_number, from_column=column_move.from_column, to_column=column_move.to_column)
        return None

    async def relabel(label_change: LabelChange) -> None:
        await apply_label_change(label_change, client)

    results = await run_bounded(plan.column_moves, move, lambda item: issue_key(item.issue_number), "sync_status", concurrency)
    results.extend(await run_bounded(plan.label_changes, relabel, lambda item: issue_key(item.issue_number), "sync_status", concurrency))
    return results
