"""Contains synchronization logic for the repository label taxonomy."""

import structlog

from gitea_workflow.schemas.workflow import LabelDefinition, WorkflowConfig
from gitea_workflow.synchronize.models import ItemResult, ItemStatus, LabelUpdate, SyncDecision, SyncPlan
from gitea_workflow.synchronize.utils import run_bounded
from gitea_workflow.tracker.abc import IssueTrackerClientBase
from gitea_workflow.tracker.models import RepositoryLabel
from gitea_workflow.utils.constants import DEFAULT_MAX_CONCURRENCY
from gitea_workflow.utils.gitea import normalize_color

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def label_metadata_drifted(desired_label: LabelDefinition, repository_label: RepositoryLabel) -> bool:
    """Return True when the color or description of a repository label differs from its declaration.

    Colors compare case-insensitively without '#'. A declaration without a
    description never reports description drift.
    """
    if normalize_color(repository_label.color) != desired_label.color:
        return True
    if desired_label.description is not None and (repository_label.description or "") != desired_label.description:
        return True
    return False


def decide_label_sync_action(desired_label: LabelDefinition, repository_label: RepositoryLabel | None = None, enforce: bool = False) -> SyncDecision:
    """Compare a declared label and a repository label, and decide whether to create, update, or no-op.

    Key is label name.
    """
    if repository_label is None:
        logger.info("Label not found in repository", label_name=desired_label.name)
        return SyncDecision.CREATE

    if label_metadata_drifted(desired_label, repository_label):
        if enforce:
            logger.info(
                "Label metadata needs to be updated",
                label_name=desired_label.name,
                current_color=repository_label.color,
                new_color=desired_label.color,
            )
            return SyncDecision.UPDATE
        logger.info("Label metadata drifted, leaving it alone", label_name=desired_label.name)
        return SyncDecision.NOOP

    logger.debug("Label is up to date", label_name=desired_label.name)
    return SyncDecision.NOOP


def plan_label_sync(config: WorkflowConfig, existing_labels: list[RepositoryLabel], enforce: bool = False) -> SyncPlan:
    """Compute the label changes needed for the repository to carry the declared taxonomy.

    Labels that exist in the repository but are not declared are never scheduled
    for deletion.

    Args:
        config: The workflow policy.
        existing_labels: Labels currently in the repository.
        enforce: Schedule drifted color/description for update. Also enabled by
            ``enforce_label_metadata`` in the policy.

    Returns:
        A plan holding only label creations and updates.
    """
    enforce = enforce or config.enforce_label_metadata
    existing_by_name = {label.name: label for label in existing_labels}
    plan = SyncPlan()
    for desired_label in config.labels:
        repository_label = existing_by_name.get(desired_label.name)
        decision = decide_label_sync_action(desired_label, repository_label, enforce=enforce)
        if decision == SyncDecision.CREATE:
            plan.labels_to_create.append(desired_label)
        elif decision == SyncDecision.UPDATE and repository_label is not None:
            plan.labels_to_update.append(
                LabelUpdate(
                    definition=desired_label,
                    label_id=repository_label.id,
                    current_color=repository_label.color,
                    current_description=repository_label.description,
                )
            )
    logger.info(
        "Planned label synchronization",
        to_create=len(plan.labels_to_create),
        to_update=len(plan.labels_to_update),
        existing=len(existing_labels),
        enforce=enforce,
    )
    return plan


async def apply_label_plan(plan: SyncPlan, client: IssueTrackerClientBase, concurrency: int = DEFAULT_MAX_CONCURRENCY) -> list[ItemResult]:
    """Create and update labels as planned, returning one result per label."""

    async def create(desired_label: LabelDefinition) -> ItemResult | None:
        await client.create_label(desired_label.name, desired_label.color, desired_label.description)
        logger.info("Created label", label_name=desired_label.name)
        return None

    async def update(label_update: LabelUpdate) -> ItemResult | None:
        if label_update.label_id is None:
            return ItemResult(item=label_update.definition.name, status=ItemStatus.FAILURE, reason="repository label has no id")
        await client.update_label(label_update.label_id, label_update.definition.color, label_update.definition.description)
        logger.info("Updated label", label_name=label_update.definition.name)
        return None

    results = await run_bounded(plan.labels_to_create, create, lambda label: label.name, "sync_labels", concurrency)
    results.extend(await run_bounded(plan.labels_to_update, update, lambda label_update: label_update.definition.name, "sync_labels", concurrency))
    return results
