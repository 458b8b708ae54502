"""Contains synchronization logic for the project board and its columns."""

import structlog

from gitea_workflow.schemas.workflow import WorkflowConfig
from gitea_workflow.synchronize.exceptions import BoardNotFoundError, DuplicateBoardError
from gitea_workflow.synchronize.results import BoardReorderResult, BoardSynchronizationResult, ColumnReorder
from gitea_workflow.synchronize.utils import run_bounded
from gitea_workflow.tracker.abc import IssueTrackerClientBase
from gitea_workflow.tracker.models import Board, BoardColumnState

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


async def find_board(client: IssueTrackerClientBase, board_name: str) -> Board | None:
    """Find the single board with the given name.

    Raises:
        DuplicateBoardError: If more than one board carries the name.
    """
    matches = [board for board in await client.list_boards() if board.name == board_name]
    if len(matches) > 1:
        logger.error("Multiple boards share the configured name", board_name=board_name, board_ids=[board.id for board in matches])
        raise DuplicateBoardError(board_name, [board.id for board in matches])
    return matches[0] if matches else None


async def require_board(client: IssueTrackerClientBase, board_name: str) -> Board:
    """Find the board with the given name, raising when it does not exist."""
    board = await find_board(client, board_name)
    if board is None:
        raise BoardNotFoundError(board_name)
    return board


def declared_columns_out_of_order(config: WorkflowConfig, columns: list[BoardColumnState]) -> bool:
    """Return True when existing declared columns are not in their declared relative order."""
    declared = [column.name for column in config.board.columns]
    present = [column.name for column in columns if column.name in declared]
    return present != [name for name in declared if name in present]


async def sync_board(
    config: WorkflowConfig,
    client: IssueTrackerClientBase,
    board_name: str | None = None,
    dry_run: bool = False,
) -> BoardSynchronizationResult:
    """Ensure the project board exists and carries every declared column.

    Missing columns are appended in declared order. Existing columns are never
    reordered or removed; see reorder_board_columns for explicit reordering.

    Args:
        config: The workflow policy.
        client: Issue tracker client.
        board_name: Board name overriding the one in the policy.
        dry_run: Report the changes without creating anything.

    Returns:
        The board synchronization result with one item result per created column.
    """
    board_name = board_name or config.board.name
    board = await find_board(client, board_name)
    existing: list[BoardColumnState] = []
    board_created = False
    if board is None:
        logger.info("Board not found in repository", board_name=board_name, dry_run=dry_run)
        if not dry_run:
            board = await client.create_board(board_name)
            board_created = True
            logger.info("Created board", board_name=board_name, board_id=board.id)
    else:
        existing = await client.list_board_columns(board.id)

    existing_names = {column.name for column in existing}
    declared_names = [column.name for column in config.board.columns]
    missing = [name for name in declared_names if name not in existing_names]
    result = BoardSynchronizationResult(
        board_name=board_name,
        board_id=board.id if board else None,
        board_existed=not board_created and board is not None,
        board_created=board_created,
        existing_columns=[column.name for column in existing],
        columns_to_create=missing,
        undeclared_columns=[column.name for column in existing if column.name not in declared_names],
        out_of_order=declared_columns_out_of_order(config, existing),
        dry_run=dry_run,
    )
    if result.undeclared_columns:
        logger.warning("Board has columns that are not declared", board_name=board_name, columns=result.undeclared_columns)
    if dry_run or board is None or not missing:
        return result

    target_board = board

    async def create_column(name: str) -> None:
        await client.create_board_column(target_board.id, name)
        logger.info("Created board column", board_name=board_name, column=name)

    # Columns are appended one at a time so they land in declared order.
    result.results = await run_bounded(missing, create_column, lambda name: name, "sync_board", concurrency=1)
    return result


def plan_column_reorder(config: WorkflowConfig, columns: list[BoardColumnState]) -> list[ColumnReorder]:
    """Compute the positions that put existing columns in declared order.

    Declared columns come first in declared order; undeclared columns follow in
    their current order. Only columns whose position changes are returned.
    """
    by_name = {column.name: column for column in columns}
    ordered = [by_name[column.name] for column in config.board.columns if column.name in by_name]
    ordered.extend(column for column in columns if column not in ordered)
    return [
        ColumnReorder(column=column.name, column_id=column.id, from_position=column.position, to_position=position)
        for position, column in enumerate(ordered)
        if column.position != position
    ]


async def reorder_board_columns(
    config: WorkflowConfig,
    client: IssueTrackerClientBase,
    board_name: str | None = None,
    dry_run: bool = False,
) -> BoardReorderResult:
    """Reorder the existing columns of the board into declared order.

    Raises:
        BoardNotFoundError: If the board does not exist.
        DuplicateBoardError: If more than one board carries the name.
    """
    board_name = board_name or config.board.name
    board = await require_board(client, board_name)
    columns = await client.list_board_columns(board.id)
    existing_names = {column.name for column in columns}
    result = BoardReorderResult(
        board_name=board_name,
        board_id=board.id,
        reorders=plan_column_reorder(config, columns),
        missing_columns=[column.name for column in config.board.columns if column.name not in existing_names],
        dry_run=dry_run,
    )
    logger.info("Planned board column reorder", board_name=board_name, reorders=len(result.reorders), dry_run=dry_run)
    if dry_run or not result.reorders:
        return result

    async def move_column(reorder: ColumnReorder) -> None:
        await client.reorder_board_column(board.id, reorder.column_id, reorder.to_position)
        logger.info("Moved board column", column=reorder.column, from_position=reorder.from_position, to_position=reorder.to_position)

    result.results = await run_bounded(result.reorders, move_column, lambda reorder: reorder.column, "reorder_board", concurrency=1)
    return result
