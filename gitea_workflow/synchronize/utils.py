"""Contains utility functions for synchronization actions."""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

import structlog

from gitea_workflow.schemas.workflow import WorkflowConfig
from gitea_workflow.synchronize.models import ItemResult, ItemStatus, LabelChange
from gitea_workflow.tracker.abc import IssueTrackerClientBase
from gitea_workflow.utils.constants import DEFAULT_MAX_CONCURRENCY

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")


def issue_key(issue_number: int) -> str:
    """Key identifying an issue in per-item results."""
    return f"#{issue_number}"


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[ItemResult | None]],
    key: Callable[[T], str],
    operation: str,
    concurrency: int = DEFAULT_MAX_CONCURRENCY,
    timeout: float | None = None,
) -> list[ItemResult]:
    """Run a worker over items with bounded concurrency, returning one result per item in input order.

    A worker returns None on success or an ItemResult of its own (for example a
    skip). Exceptions are never propagated: they are recorded as failures
    carrying the operation name and item key. When the overall timeout expires
    or the calling task is cancelled, the unfinished items are cancelled and
    recorded as failures while the results already obtained are kept.

    Args:
        items: Items to process.
        worker: Coroutine function processing one item.
        key: Function returning the key used to identify an item in results.
        operation: Operation name used as context in failure reasons.
        concurrency: Maximum number of workers running at once.
        timeout: Optional overall timeout in seconds.

    Returns:
        One ItemResult per item, in the order of ``items``.
    """
    if not items:
        return []
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run_one(item: T) -> ItemResult | None:
        async with semaphore:
            return await worker(item)

    tasks = [asyncio.create_task(run_one(item)) for item in items]
    try:
        _, pending = await asyncio.wait(tasks, timeout=timeout)
    except asyncio.CancelledError:
        # Return what finished instead of propagating the cancellation.
        pending = {task for task in tasks if not task.done()}
        current = asyncio.current_task()
        if current is not None:
            current.uncancel()
        logger.warning("Batch cancelled, keeping finished items", operation=operation, pending=len(pending))
    if pending:
        logger.warning("Cancelling unfinished items", operation=operation, pending=len(pending), timeout=timeout)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    results: list[ItemResult] = []
    for item, task in zip(items, tasks):
        name = key(item)
        if task.cancelled():
            results.append(ItemResult(item=name, status=ItemStatus.FAILURE, reason=f"{operation} {name}: cancelled"))
            continue
        exc = task.exception()
        if exc is not None:
            logger.error("Item failed", operation=operation, item=name, error=str(exc), error_type=type(exc).__name__)
            results.append(ItemResult(item=name, status=ItemStatus.FAILURE, reason=f"{operation} {name}: {exc}"))
            continue
        results.append(task.result() or ItemResult(item=name, status=ItemStatus.SUCCESS))
    return results


def any_failed(results: Sequence[ItemResult]) -> bool:
    """Return True when at least one item failed."""
    return any(result.failed for result in results)


def summarize_results(results: Sequence[ItemResult]) -> dict[str, int]:
    """Count results per status."""
    summary = {status.value: 0 for status in ItemStatus}
    for result in results:
        summary[result.status.value] += 1
    return summary


def drop_exclusive_conflicts(change: LabelChange, labels: list[str], config: WorkflowConfig) -> LabelChange:
    """Drop added labels whose exclusive category is already covered by the labels that remain."""
    remaining = [label for label in labels if label not in change.remove]
    add: list[str] = []
    for label in change.add:
        category = config.category_of(label)
        if label not in remaining and category is not None and config.is_exclusive(category):
            holders = [other for other in remaining if config.category_of(other) == category]
            if holders:
                logger.info("Dropping label that would break exclusivity", issue_number=change.issue_number, label=label, held=holders)
                continue
        add.append(label)
    return change.model_copy(update={"add": add})


async def apply_label_change(change: LabelChange, client: IssueTrackerClientBase, config: WorkflowConfig | None = None) -> list[str] | None:
    """Apply a label change to the current labels of an issue with a single update.

    The labels are read again right before the update so that changes made since
    planning are preserved. With a config, added labels that would now give the
    issue a second label of an exclusive category are dropped, and None is
    returned without updating when nothing is left to change.
    """
    issue = await client.get_issue(change.issue_number)
    if config is not None:
        change = drop_exclusive_conflicts(change, issue.labels, config)
        if change.apply_to(issue.labels) == issue.labels:
            logger.info("Issue labels already satisfy the change", issue_number=change.issue_number, reason=change.reason)
            return None
    labels = change.apply_to(issue.labels)
    logger.info("Updating issue labels", issue_number=change.issue_number, remove=change.remove, add=change.add, reason=change.reason)
    await client.set_issue_labels(change.issue_number, labels)
    return labels
