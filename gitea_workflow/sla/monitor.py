"""Detects blocked issues and escalates priority based on issue age.

Both checks share compute_age. Escalation moves an issue exactly one priority
tier per invocation so that every transition is a discrete, logged step;
priority never moves downward here.
"""

from datetime import datetime, timedelta

import structlog

from gitea_workflow.classify.inference import is_security_issue
from gitea_workflow.schemas.workflow import AgeReference, WorkflowConfig
from gitea_workflow.synchronize.models import BlockedIssue, EscalationDecision, ItemResult, ItemStatus, LabelChange
from gitea_workflow.synchronize.utils import apply_label_change, issue_key, run_bounded
from gitea_workflow.tracker.abc import IssueTrackerClientBase
from gitea_workflow.tracker.models import TrackedIssue
from gitea_workflow.utils.constants import DEFAULT_MAX_CONCURRENCY
from gitea_workflow.utils.templates import construct_jinja2_template_from_string, render_template_with_context

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

HOURS_PER_DAY = 24


def compute_age(issue: TrackedIssue, config: WorkflowConfig, now: datetime) -> timedelta:
    """Age of an issue measured from the reference point configured by ``age_reference``.

    ``last_status_change`` falls back to the creation time when no status
    change is tracked for the issue.
    """
    reference = issue.created_at
    if config.age_reference == AgeReference.LAST_STATUS_CHANGE and issue.last_status_change_at is not None:
        reference = issue.last_status_change_at
    return now - reference


def current_priority(issue: TrackedIssue, config: WorkflowConfig) -> str | None:
    """Highest priority label held by the issue, or None."""
    for tier in config.priority_tiers:
        if issue.has_label(tier):
            return tier
    return None


def describe_age(age: timedelta, threshold_hours: float) -> str:
    """Render an age against its threshold, in days when the threshold is a whole number of days.

    Leftover hours are shown when the age falls on the same day count as the threshold.
    """
    if threshold_hours % HOURS_PER_DAY == 0:
        age_days, extra_hours = divmod(int(age.total_seconds() // 3600), HOURS_PER_DAY)
        threshold_days = int(threshold_hours // HOURS_PER_DAY)
        if age_days == threshold_days and extra_hours:
            return f"age {age_days}d {extra_hours}h > {threshold_days}d threshold"
        return f"age {age_days}d > {threshold_days}d threshold"
    age_hours = int(age.total_seconds() // 3600)
    return f"age {age_hours}h > {threshold_hours:g}h threshold"


def _short(config: WorkflowConfig, label_name: str) -> str:
    label = config.label(label_name)
    return label.short_name if label else label_name


def compute_idle_time(issue: TrackedIssue, now: datetime) -> timedelta:
    """Time since the issue was last updated, or since it was created when never updated."""
    return now - (issue.updated_at or issue.created_at)


def _idle_label_block(issue: TrackedIssue, config: WorkflowConfig, now: datetime) -> tuple[timedelta, float, str] | None:
    idle = compute_idle_time(issue, now)
    for label, hours in config.idle_label_thresholds.items():
        if issue.has_label(label) and idle > timedelta(hours=hours):
            return idle, hours, f"{label} for {int(idle.total_seconds() // 3600)}h without update > {hours:g}h threshold"
    return None


def check_blocked(
    issues: list[TrackedIssue],
    config: WorkflowConfig,
    now: datetime,
    threshold_hours: float | None = None,
) -> list[BlockedIssue]:
    """Find open issues whose age exceeds their blocked threshold.

    An issue is blocked when its age exceeds ``threshold_hours`` or, without
    it, the ``blocked_after_hours`` of its priority tier. Failing that, an issue
    holding a label of ``idle_label_thresholds`` (such as ``workflow/needs-info``)
    is blocked once it has gone without an update for longer than that label's
    threshold.

    Args:
        issues: Issues to check; closed issues are ignored.
        config: The workflow policy.
        now: Reference time.
        threshold_hours: Threshold applied to every issue instead of the
            ``blocked_after_hours`` of its priority tier.

    Returns:
        The blocked issues, those already carrying the blocked label included.
    """
    blocked: list[BlockedIssue] = []
    for issue in issues:
        if not issue.is_open:
            continue
        priority = current_priority(issue, config)
        threshold = threshold_hours
        if threshold is None and priority is not None:
            rule = config.sla_rule_for(priority)
            threshold = rule.blocked_after_hours if rule else None
        age = compute_age(issue, config, now)
        if threshold is not None and age > timedelta(hours=threshold):
            found: tuple[timedelta, float, str] | None = (age, threshold, describe_age(age, threshold))
        else:
            found = _idle_label_block(issue, config, now)
        if found is None:
            logger.debug("Issue is within its blocked thresholds", issue_number=issue.number, priority=priority, threshold_hours=threshold)
            continue
        age, threshold, reason = found
        blocked.append(
            BlockedIssue(
                issue_number=issue.number,
                title=issue.title,
                priority=priority,
                age=age,
                threshold_hours=threshold,
                reason=reason,
                already_blocked=config.blocked_label is not None and issue.has_label(config.blocked_label),
            )
        )
    logger.info("Checked for blocked issues", checked=len(issues), blocked=len(blocked), threshold_hours=threshold_hours)
    return blocked


async def mark_blocked(
    blocked: list[BlockedIssue],
    config: WorkflowConfig,
    client: IssueTrackerClientBase,
    concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[ItemResult]:
    """Add the blocked label to blocked issues without touching their priority."""
    blocked_label = config.blocked_label
    template = construct_jinja2_template_from_string(config.notifications.blocked_comment) if config.notifications.blocked_comment else None

    async def mark(item: BlockedIssue) -> ItemResult | None:
        if item.already_blocked:
            return ItemResult(item=issue_key(item.issue_number), status=ItemStatus.SKIPPED, reason="already blocked")
        if blocked_label is None:
            return ItemResult(item=issue_key(item.issue_number), status=ItemStatus.SKIPPED, reason="no blocked label declared")
        await apply_label_change(
            LabelChange(issue_number=item.issue_number, add=[blocked_label], reason=item.reason),
            client,
        )
        if template is not None:
            context = {
                "issue_number": item.issue_number,
                "title": item.title,
                "priority": item.priority,
                "age_hours": round(item.age.total_seconds() / 3600, 1),
                "threshold_hours": item.threshold_hours,
            }
            await client.create_issue_comment(item.issue_number, render_template_with_context(template, context))
        logger.info("Marked issue as blocked", issue_number=item.issue_number, blocked_label=blocked_label)
        return None

    return await run_bounded(blocked, mark, lambda item: issue_key(item.issue_number), "check_blocked", concurrency)


def decide_escalation(issue: TrackedIssue, config: WorkflowConfig, now: datetime) -> EscalationDecision | None:
    """Decide whether one open issue moves up a priority tier."""
    tiers = config.priority_tiers
    top = tiers[0]
    priority = current_priority(issue, config)
    age = compute_age(issue, config, now)

    if is_security_issue(issue, config):
        if priority == top:
            return None
        return EscalationDecision(
            issue_number=issue.number,
            from_priority=priority,
            to_priority=top,
            reason=f"security issue pinned to {_short(config, top)}",
            age_at_decision=age,
        )

    if priority is None or priority == top:
        return None
    rule = config.sla_rule_for(priority)
    if rule is None or rule.escalate_after_hours is None:
        return None
    if age <= timedelta(hours=rule.escalate_after_hours):
        return None
    target = tiers[tiers.index(priority) - 1]
    return EscalationDecision(
        issue_number=issue.number,
        from_priority=priority,
        to_priority=target,
        reason=describe_age(age, rule.escalate_after_hours),
        age_at_decision=age,
    )


def decide_escalations(issues: list[TrackedIssue], config: WorkflowConfig, now: datetime) -> list[EscalationDecision]:
    """Decide the priority escalations of all open issues."""
    decisions: list[EscalationDecision] = []
    for issue in issues:
        if not issue.is_open:
            continue
        decision = decide_escalation(issue, config, now)
        if decision is not None:
            logger.info(
                "Escalation decided",
                issue_number=decision.issue_number,
                from_priority=decision.from_priority,
                to_priority=decision.to_priority,
                reason=decision.reason,
            )
            decisions.append(decision)
    return decisions


async def apply_escalations(
    decisions: list[EscalationDecision],
    config: WorkflowConfig,
    client: IssueTrackerClientBase,
    concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[ItemResult]:
    """Swap the priority label of each escalated issue with a single label update.

    When an escalation comment template is configured it is rendered with the
    decision and posted on the issue.
    """
    template = (
        construct_jinja2_template_from_string(config.notifications.escalation_comment) if config.notifications.escalation_comment else None
    )

    async def escalate(decision: EscalationDecision) -> None:
        change = LabelChange(
            issue_number=decision.issue_number,
            remove=[tier for tier in config.priority_tiers if tier != decision.to_priority],
            add=[decision.to_priority],
            reason=decision.reason,
        )
        await apply_label_change(change, client)
        if template is not None:
            context = {
                "issue_number": decision.issue_number,
                "from_priority": decision.from_priority,
                "to_priority": decision.to_priority,
                "reason": decision.reason,
                "age_days": round(decision.age_at_decision.total_seconds() / 86400, 1),
            }
            await client.create_issue_comment(decision.issue_number, render_template_with_context(template, context))

    return await run_bounded(decisions, escalate, lambda decision: issue_key(decision.issue_number), "escalate_priority", concurrency)
