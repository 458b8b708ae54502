"""Aggregates workflow statistics and a health score from the current issue set.

JSON and Markdown are two renderings of one computed WorkflowReport; neither
recomputes anything.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Literal

import structlog
from pydantic import BaseModel, Field

from gitea_workflow.schemas.workflow import LabelCategory, WorkflowConfig
from gitea_workflow.sla.monitor import compute_age, current_priority
from gitea_workflow.tracker.models import TrackedIssue
from gitea_workflow.utils.constants import (
    HEALTH_WEIGHT_BLOCKED,
    HEALTH_WEIGHT_OVER_SLA,
    HEALTH_WEIGHT_UNLABELED,
    UNLABELED_BUCKET,
)
from gitea_workflow.utils.templates import TEMPLATES_DIRECTORY, construct_jinja2_template_from_file, render_template_with_model

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

TimeRangeName = Literal["day", "week", "month"]
TimeRange = TimeRangeName | tuple[datetime, datetime]

TIME_RANGE_SPANS: dict[str, timedelta] = {
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}

REPORT_TEMPLATE_PATH = TEMPLATES_DIRECTORY / "workflow_report.md.j2"


class WorkflowReport(BaseModel):
    """Workflow health aggregate computed from one read of the issue set."""

    repository: str | None = None
    generated_at: datetime
    period_start: datetime | None = None
    period_end: datetime | None = None
    total_open: int = 0
    total_closed: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)
    average_age_days: float = 0.0
    average_age_days_by_priority: dict[str, float] = Field(default_factory=dict)
    over_sla_count: int = 0
    unlabeled_count: int = 0
    blocked_count: int = 0
    pct_over_sla: float = 0.0
    pct_unlabeled: float = 0.0
    pct_blocked: float = 0.0
    health_score: int = 100
    recommendations: list[str] = Field(default_factory=list)


def _as_utc(moment: datetime) -> datetime:
    return moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment


def resolve_time_range(time_range: TimeRange | None, now: datetime) -> tuple[datetime, datetime] | None:
    """Turn a named or explicit time range into a (start, end) window.

    Explicit bounds without a timezone are taken as UTC.
    """
    if time_range is None:
        return None
    if isinstance(time_range, tuple):
        start, end = (_as_utc(bound) for bound in time_range)
        if start > end:
            raise ValueError(f"time range start {start.isoformat()} is after its end {end.isoformat()}")
        return start, end
    if time_range not in TIME_RANGE_SPANS:
        raise ValueError(f"unknown time range '{time_range}', expected one of {', '.join(TIME_RANGE_SPANS)}")
    return now - TIME_RANGE_SPANS[time_range], now


def filter_issues(issues: list[TrackedIssue], window: tuple[datetime, datetime] | None) -> list[TrackedIssue]:
    """Keep issues created or updated within the window."""
    if window is None:
        return list(issues)
    start, end = window
    return [
        issue
        for issue in issues
        if start <= issue.created_at <= end or (issue.updated_at is not None and start <= issue.updated_at <= end)
    ]


def _percent(count: int, total: int) -> float:
    return round(100.0 * count / total, 1) if total else 0.0


def compute_health_score(pct_over_sla: float, pct_unlabeled: float, pct_blocked: float) -> int:
    """Weighted health score in 0..100; higher is healthier."""
    penalty = HEALTH_WEIGHT_OVER_SLA * pct_over_sla + HEALTH_WEIGHT_UNLABELED * pct_unlabeled + HEALTH_WEIGHT_BLOCKED * pct_blocked
    return max(0, min(100, round(100 - penalty)))


def _bucket(issue: TrackedIssue, config: WorkflowConfig, category: LabelCategory) -> str:
    for label in config.labels_in(category):
        if issue.has_label(label.name):
            return label.name
    return UNLABELED_BUCKET


def _is_unlabeled(issue: TrackedIssue, config: WorkflowConfig) -> bool:
    return any(_bucket(issue, config, category) == UNLABELED_BUCKET for category in config.required_categories)


def _is_over_sla(issue: TrackedIssue, config: WorkflowConfig, now: datetime) -> bool:
    priority = current_priority(issue, config)
    if priority is None:
        return False
    rule = config.sla_rule_for(priority)
    if rule is None or rule.blocked_after_hours is None:
        return False
    return compute_age(issue, config, now) > timedelta(hours=rule.blocked_after_hours)


def _recommendations(report: WorkflowReport, config: WorkflowConfig) -> list[str]:
    recommendations: list[str] = []
    if report.blocked_count:
        recommendations.append(f"{report.blocked_count} open issue(s) are blocked; unblock or re-plan them.")
    if report.over_sla_count:
        recommendations.append(f"{report.over_sla_count} open issue(s) exceed their SLA; run escalate-priority or triage them.")
    top = config.priority_tiers[0]
    if report.by_priority.get(top):
        recommendations.append(f"{report.by_priority[top]} open issue(s) have top priority '{top}' and need immediate attention.")
    if report.unlabeled_count:
        recommendations.append(f"{report.unlabeled_count} open issue(s) miss a required label; run check-issues or infer-labels.")
    if report.by_status.get(UNLABELED_BUCKET):
        recommendations.append(f"{report.by_status[UNLABELED_BUCKET]} open issue(s) have no status label; run sync-status.")
    return recommendations


def generate_report(
    issues: list[TrackedIssue],
    config: WorkflowConfig,
    now: datetime,
    time_range: TimeRange | None = None,
    repository: str | None = None,
) -> WorkflowReport:
    """Aggregate counts, ages, SLA compliance and a health score for the issue set.

    Breakdowns, ages and percentages cover the open issues of the set after the
    time range filter is applied.

    Args:
        issues: Open and closed issues of the repository.
        config: The workflow policy.
        now: Reference time for ages and named time ranges.
        time_range: ``day``, ``week``, ``month`` or an explicit (start, end) window.
        repository: Repository name shown in the rendered report.

    Returns:
        The computed report.
    """
    window = resolve_time_range(time_range, now)
    selected = filter_issues(issues, window)
    open_issues = [issue for issue in selected if issue.is_open]

    by_status: Counter[str] = Counter(_bucket(issue, config, LabelCategory.STATUS) for issue in open_issues)
    by_priority: Counter[str] = Counter(_bucket(issue, config, LabelCategory.PRIORITY) for issue in open_issues)
    by_type: Counter[str] = Counter(_bucket(issue, config, LabelCategory.TYPE) for issue in open_issues)

    ages: dict[str, list[float]] = {}
    for issue in open_issues:
        ages.setdefault(_bucket(issue, config, LabelCategory.PRIORITY), []).append(compute_age(issue, config, now).total_seconds() / 86400)
    all_ages = [age for bucket in ages.values() for age in bucket]

    over_sla = sum(1 for issue in open_issues if _is_over_sla(issue, config, now))
    unlabeled = sum(1 for issue in open_issues if _is_unlabeled(issue, config))
    blocked = sum(1 for issue in open_issues if config.blocked_label is not None and issue.has_label(config.blocked_label))
    total = len(open_issues)

    report = WorkflowReport(
        repository=repository,
        generated_at=now,
        period_start=window[0] if window else None,
        period_end=window[1] if window else None,
        total_open=total,
        total_closed=len(selected) - total,
        by_status=dict(by_status),
        by_priority=dict(by_priority),
        by_type=dict(by_type),
        average_age_days=round(sum(all_ages) / len(all_ages), 1) if all_ages else 0.0,
        average_age_days_by_priority={priority: round(sum(values) / len(values), 1) for priority, values in ages.items()},
        over_sla_count=over_sla,
        unlabeled_count=unlabeled,
        blocked_count=blocked,
        pct_over_sla=_percent(over_sla, total),
        pct_unlabeled=_percent(unlabeled, total),
        pct_blocked=_percent(blocked, total),
    )
    report.health_score = compute_health_score(report.pct_over_sla, report.pct_unlabeled, report.pct_blocked)
    report.recommendations = _recommendations(report, config)
    logger.info("Generated workflow report", open=total, closed=report.total_closed, health_score=report.health_score)
    return report


def render_json(report: WorkflowReport) -> str:
    """Render the report as JSON."""
    return report.model_dump_json(indent=2)


def render_markdown(report: WorkflowReport) -> str:
    """Render the report as Markdown."""
    template = construct_jinja2_template_from_file(REPORT_TEMPLATE_PATH)
    return render_template_with_model(report, template)
