"""Generates the default workflow policy written by `init`."""

from typing import Any

import structlog

from gitea_workflow.schemas.workflow import LabelCategory, ProjectType, WorkflowConfig
from gitea_workflow.utils.constants import DEFAULT_BOARD_NAME, DEFAULT_CONFIG_VERSION
from gitea_workflow.utils.yaml import dump_yaml_to_string

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# (name, color, description) per category, in declared order. Priority labels
# are declared highest first.
STATUS_LABELS = [
    ("status/backlog", "ededed", "Waiting to be picked up"),
    ("status/in-progress", "0e8a16", "Being worked on"),
    ("status/review", "fbca04", "In review"),
    ("status/testing", "1d76db", "Being tested"),
    ("status/done", "0e8a16", "Completed"),
]

PRIORITY_LABELS = [
    ("priority/P0", "d93f0b", "Critical"),
    ("priority/P1", "e99695", "High"),
    ("priority/P2", "fbca04", "Medium"),
    ("priority/P3", "c5def5", "Low"),
]

TYPE_LABELS = [
    ("type/bug", "d73a4a", "Something is not working"),
    ("type/feature", "0e8a16", "New functionality"),
    ("type/docs", "0075ca", "Documentation"),
    ("type/refactor", "fbca04", "Code restructuring"),
    ("type/test", "1d76db", "Tests"),
    ("type/security", "d93f0b", "Security problem"),
]

WORKFLOW_LABELS = [
    ("workflow/blocked", "d93f0b", "Blocked"),
    ("workflow/needs-info", "fbca04", "More information needed"),
    ("workflow/needs-review", "0075ca", "Code review needed"),
    ("workflow/duplicate", "cccccc", "Duplicate issue"),
]

SPECIAL_LABELS = [
    ("special/good-first-issue", "7057ff", "Good for newcomers"),
    ("special/help-wanted", "008672", "Extra attention is needed"),
    ("special/breaking-change", "d93f0b", "Breaks backward compatibility"),
]

AREA_LABELS_BY_PROJECT_TYPE: dict[ProjectType, list[tuple[str, str, str]]] = {
    ProjectType.BACKEND: [
        ("area/api", "c2e0c6", "API"),
        ("area/database", "f9d0c4", "Database"),
        ("area/auth", "fef2c0", "Authentication and authorization"),
        ("area/performance", "e99695", "Performance"),
    ],
    ProjectType.FRONTEND: [
        ("area/ui", "d4c5f9", "User interface"),
        ("area/ux", "bfdadc", "User experience"),
        ("area/performance", "e99695", "Performance"),
        ("area/responsive", "c2e0c6", "Responsive layout"),
    ],
    ProjectType.FULLSTACK: [
        ("area/api", "c2e0c6", "API"),
        ("area/ui", "d4c5f9", "User interface"),
        ("area/database", "f9d0c4", "Database"),
        ("area/auth", "fef2c0", "Authentication and authorization"),
    ],
    ProjectType.LIBRARY: [
        ("area/api", "c2e0c6", "Public API"),
        ("area/docs", "0075ca", "Documentation"),
        ("area/examples", "1d76db", "Example code"),
        ("area/compatibility", "fbca04", "Compatibility"),
    ],
}

BOARD_COLUMNS = [
    ("Backlog", "status/backlog"),
    ("In Progress", "status/in-progress"),
    ("Review", "status/review"),
    ("Testing", "status/testing"),
    ("Done", "status/done"),
]

SLA_TIERS: dict[str, dict[str, float]] = {
    "P0": {"blocked_after_hours": 4},
    "P1": {"escalate_after_hours": 72, "blocked_after_hours": 24},
    "P2": {"escalate_after_hours": 336, "blocked_after_hours": 168},
    "P3": {"escalate_after_hours": 720, "blocked_after_hours": 336},
}

TYPE_KEYWORDS: dict[str, list[str]] = {
    "type/bug": ["bug", "error", "crash", "fix", "exception", "broken"],
    "type/feature": ["feature", r"re:\badd\b", "implement", "support"],
    "type/security": ["security", "vulnerability", "cve", "xss", "sql injection"],
    "type/docs": ["documentation", "docs", "readme"],
    "type/refactor": ["refactor", "optimize", "cleanup"],
    "type/test": ["test", "spec", "coverage"],
}

PRIORITY_KEYWORDS: dict[str, list[str]] = {
    "priority/P0": ["urgent", "critical", "emergency", "outage"],
    "priority/P1": ["important", "blocker", "high priority"],
}

AREA_KEYWORDS: dict[str, list[str]] = {
    "area/api": [r"re:\bapi\b", "endpoint", "rest"],
    "area/database": ["database", "sql", "migration", "query"],
    "area/auth": ["auth", "login", "token", "permission"],
    "area/performance": ["slow", "performance", "latency", "memory"],
    "area/ui": [r"re:\bui\b", "button", "layout", "css"],
    "area/ux": [r"re:\bux\b", "usability", "confusing"],
    "area/responsive": ["responsive", "mobile", "viewport"],
    "area/docs": ["docs", "documentation"],
    "area/examples": ["example", "sample"],
    "area/compatibility": ["compatibility", "deprecat", "python version"],
}

ESCALATION_COMMENT = "Priority escalated from {{ from_priority or 'none' }} to {{ to_priority }} ({{ reason }})."
BLOCKED_COMMENT = "This issue has not changed status for {{ age_hours }} hours (threshold {{ threshold_hours }}h) and is now marked as blocked."


def _labels(category: LabelCategory, labels: list[tuple[str, str, str]]) -> list[dict[str, Any]]:
    return [{"category": category.value, "name": name, "color": color, "description": description} for name, color, description in labels]


def _rules(category: LabelCategory, keywords: dict[str, list[str]], declared: set[str]) -> list[dict[str, Any]]:
    return [{"category": category.value, "label": label, "patterns": patterns} for label, patterns in keywords.items() if label in declared]


def generate_default_config(project_type: ProjectType = ProjectType.BACKEND, board_name: str | None = None) -> WorkflowConfig:
    """Build the default policy for a project type.

    The area labels and their classifier keywords depend on the project type;
    everything else is shared.
    """
    area_labels = AREA_LABELS_BY_PROJECT_TYPE[project_type]
    labels = [
        *_labels(LabelCategory.STATUS, STATUS_LABELS),
        *_labels(LabelCategory.PRIORITY, PRIORITY_LABELS),
        *_labels(LabelCategory.TYPE, TYPE_LABELS),
        *_labels(LabelCategory.AREA, area_labels),
        *_labels(LabelCategory.WORKFLOW, WORKFLOW_LABELS),
        *_labels(LabelCategory.SPECIAL, SPECIAL_LABELS),
    ]
    declared = {label["name"] for label in labels}
    document = {
        "version": DEFAULT_CONFIG_VERSION,
        "project_type": project_type.value,
        "labels": labels,
        "board": {
            "name": board_name or DEFAULT_BOARD_NAME,
            "columns": [{"name": name, "status_label": status_label} for name, status_label in BOARD_COLUMNS],
        },
        "sla": SLA_TIERS,
        "classifier_rules": [
            *_rules(LabelCategory.TYPE, TYPE_KEYWORDS, declared),
            *_rules(LabelCategory.PRIORITY, PRIORITY_KEYWORDS, declared),
            *_rules(LabelCategory.AREA, AREA_KEYWORDS, declared),
        ],
        "security_labels": ["type/security"],
        "blocked_label": "workflow/blocked",
        "notifications": {
            "escalation_comment": ESCALATION_COMMENT,
            "blocked_comment": BLOCKED_COMMENT,
        },
    }
    config = WorkflowConfig.model_validate(document)
    logger.info("Generated default workflow config", project_type=project_type.value, labels=len(config.labels))
    return config


def workflow_config_to_document(config: WorkflowConfig) -> dict[str, Any]:
    """Convert a policy into the plain mapping stored in the repository."""
    return config.model_dump(mode="json", exclude_none=True)


def dump_workflow_config(config: WorkflowConfig) -> str:
    """Render a policy as YAML text."""
    return dump_yaml_to_string(workflow_config_to_document(config))
