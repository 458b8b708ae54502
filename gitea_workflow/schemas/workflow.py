"""Pydantic schema for the issue workflow policy document (.gitea/issue-workflow.yaml)."""

import re
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PositiveFloat, field_validator, model_validator

from gitea_workflow.utils.constants import DEFAULT_BOARD_NAME, DEFAULT_IDLE_LABEL_THRESHOLDS, REGEX_PATTERN_PREFIX
from gitea_workflow.utils.gitea import normalize_color

HEX_COLOR_PATTERN = re.compile(r"[0-9a-f]{6}")


class LabelCategory(str, Enum):
    """Categories of the label taxonomy."""

    STATUS = "status"
    PRIORITY = "priority"
    TYPE = "type"
    AREA = "area"
    WORKFLOW = "workflow"
    SPECIAL = "special"


DEFAULT_EXCLUSIVE_CATEGORIES = frozenset({LabelCategory.STATUS, LabelCategory.PRIORITY, LabelCategory.TYPE})
REQUIRED_EXCLUSIVE_CATEGORIES = frozenset({LabelCategory.STATUS, LabelCategory.PRIORITY})


class ProjectType(str, Enum):
    """Kinds of project a workflow policy can be generated for."""

    BACKEND = "backend"
    FRONTEND = "frontend"
    FULLSTACK = "fullstack"
    LIBRARY = "library"


class AgeReference(str, Enum):
    """Reference point used when computing the age of an issue for SLA checks."""

    CREATED = "created"
    LAST_STATUS_CHANGE = "last_status_change"


class LabelDefinition(BaseModel):
    """A label declared in the taxonomy."""

    model_config = ConfigDict(frozen=True)

    category: LabelCategory
    name: str = Field(min_length=1)
    color: str
    description: str | None = None
    exclusive: bool = False

    @model_validator(mode="before")
    @classmethod
    def default_exclusivity_from_category(cls, data: Any) -> Any:
        """Status, priority and type labels are exclusive unless declared otherwise."""
        if isinstance(data, dict) and "exclusive" not in data:
            try:
                category = LabelCategory(data.get("category"))
            except ValueError:
                return data
            return {**data, "exclusive": category in DEFAULT_EXCLUSIVE_CATEGORIES}
        return data

    @field_validator("color")
    @classmethod
    def validate_color(cls, value: str) -> str:
        """Normalize the color and ensure it is a six digit hex value."""
        normalized = normalize_color(value)
        if not HEX_COLOR_PATTERN.fullmatch(normalized):
            raise ValueError(f"invalid label color '{value}', expected six hex digits")
        return normalized

    @property
    def short_name(self) -> str:
        """Last '/'-separated segment of the label name (e.g. 'P2' for 'priority/P2')."""
        return self.name.rsplit("/", 1)[-1]


class BoardColumnDefinition(BaseModel):
    """A board column and the status label it represents."""

    name: str = Field(min_length=1)
    status_label: str = Field(min_length=1, validation_alias=AliasChoices("status_label", "maps_to"))


class BoardDefinition(BaseModel):
    """The project board the workflow keeps in sync."""

    name: str = DEFAULT_BOARD_NAME
    columns: list[BoardColumnDefinition] = Field(min_length=1)


class SlaRule(BaseModel):
    """Age thresholds (in hours) for one priority tier."""

    escalate_after_hours: float | None = Field(default=None, gt=0)
    blocked_after_hours: float | None = Field(default=None, gt=0)


class ClassifierRule(BaseModel):
    """Keyword/regex rule inferring one label of a category from issue text."""

    category: LabelCategory
    label: str = Field(min_length=1)
    patterns: list[str] = Field(min_length=1)

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, patterns: list[str]) -> list[str]:
        """Reject empty patterns and regular expressions that do not compile."""
        for pattern in patterns:
            if not pattern or pattern == REGEX_PATTERN_PREFIX:
                raise ValueError("classifier patterns must not be empty")
            if pattern.startswith(REGEX_PATTERN_PREFIX):
                try:
                    re.compile(pattern[len(REGEX_PATTERN_PREFIX) :])
                except re.error as exc:
                    raise ValueError(f"invalid regular expression '{pattern}': {exc}") from exc
        return patterns


class NotificationSettings(BaseModel):
    """Optional Jinja2 comment templates posted when the engine mutates an issue."""

    escalation_comment: str | None = None
    blocked_comment: str | None = None


class WorkflowConfig(BaseModel):
    """Validated workflow policy.

    Priority labels are declared highest priority first; that declaration order
    defines the escalation ladder.
    """

    version: str
    project_type: ProjectType = ProjectType.BACKEND
    labels: list[LabelDefinition] = Field(min_length=1)
    board: BoardDefinition
    sla: dict[str, SlaRule]
    classifier_rules: list[ClassifierRule] = Field(default_factory=list)
    age_reference: AgeReference = AgeReference.LAST_STATUS_CHANGE
    security_labels: list[str] = Field(default_factory=lambda: ["type/security"])
    blocked_label: str | None = "workflow/blocked"
    idle_label_thresholds: dict[str, PositiveFloat] = Field(default_factory=lambda: dict(DEFAULT_IDLE_LABEL_THRESHOLDS))
    enforce_label_metadata: bool = False
    required_categories: list[LabelCategory] = Field(default_factory=lambda: [LabelCategory.TYPE, LabelCategory.STATUS])
    default_status_label: str | None = None
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, value: Any) -> Any:
        """Allow numeric versions such as `version: 1`."""
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @model_validator(mode="after")
    def validate_invariants(self) -> "WorkflowConfig":
        """Check the cross-section invariants of the policy."""
        errors: list[str] = []
        declared = {label.name for label in self.labels}

        # Labels that come from defaults are dropped when the taxonomy does not declare them.
        if "security_labels" not in self.model_fields_set:
            self.security_labels = [name for name in self.security_labels if name in declared]
        if "blocked_label" not in self.model_fields_set and self.blocked_label not in declared:
            self.blocked_label = None
        if "idle_label_thresholds" not in self.model_fields_set:
            self.idle_label_thresholds = {name: hours for name, hours in self.idle_label_thresholds.items() if name in declared}

        errors.extend(self._label_errors())
        errors.extend(self._sla_errors())
        errors.extend(self._board_errors())
        errors.extend(self._classifier_errors())
        for name in self.security_labels:
            if name not in declared:
                errors.append(f"security label '{name}' is not declared in labels")
        if self.blocked_label is not None and self.blocked_label not in declared:
            errors.append(f"blocked label '{self.blocked_label}' is not declared in labels")
        for name in self.idle_label_thresholds:
            if name not in declared:
                errors.append(f"idle threshold label '{name}' is not declared in labels")
        if self.default_status_label is not None and self.default_status_label not in self.status_labels:
            errors.append(f"default status label '{self.default_status_label}' is not a declared status label")
        if errors:
            raise ValueError("; ".join(errors))
        return self

    def _label_errors(self) -> list[str]:
        errors: list[str] = []
        seen: dict[str, LabelCategory] = {}
        exclusivity: dict[LabelCategory, bool] = {}
        for label in self.labels:
            if label.name in seen:
                if seen[label.name] == label.category and label.exclusive:
                    errors.append(f"duplicate label '{label.name}' in exclusive category '{label.category.value}'")
                else:
                    errors.append(f"duplicate label name '{label.name}'")
            seen[label.name] = label.category
            previous = exclusivity.setdefault(label.category, label.exclusive)
            if previous != label.exclusive:
                errors.append(f"labels in category '{label.category.value}' disagree on exclusivity")
        for category in REQUIRED_EXCLUSIVE_CATEGORIES:
            if category not in exclusivity:
                errors.append(f"no labels declared for category '{category.value}'")
            elif not exclusivity[category]:
                errors.append(f"category '{category.value}' must be exclusive")
        return errors

    def _sla_errors(self) -> list[str]:
        errors: list[str] = []
        resolved: dict[str, str] = {}
        for key in self.sla:
            label = self._resolve_priority_label(key)
            if label is None:
                errors.append(f"sla tier '{key}' does not match a declared priority label")
            elif label in resolved:
                errors.append(f"sla tiers '{resolved[label]}' and '{key}' both refer to '{label}'")
            else:
                resolved[label] = key
        if errors:
            return errors
        for field in ("escalate_after_hours", "blocked_after_hours"):
            previous: tuple[str, float] | None = None
            for tier in self.priority_tiers:
                rule = self.sla_rule_for(tier)
                value = getattr(rule, field) if rule else None
                if value is None:
                    continue
                if previous is not None and value <= previous[1]:
                    errors.append(
                        f"sla {field} must strictly decrease as priority increases: "
                        f"'{previous[0]}' ({previous[1]:g}h) is not below '{tier}' ({value:g}h)"
                    )
                previous = (tier, value)
        return errors

    def _board_errors(self) -> list[str]:
        errors: list[str] = []
        statuses = set(self.status_labels)
        column_names: set[str] = set()
        mapped: dict[str, str] = {}
        for column in self.board.columns:
            if column.name in column_names:
                errors.append(f"duplicate board column '{column.name}'")
            column_names.add(column.name)
            if column.status_label not in statuses:
                errors.append(f"board column '{column.name}' maps to undeclared status label '{column.status_label}'")
            elif column.status_label in mapped:
                errors.append(f"board columns '{mapped[column.status_label]}' and '{column.name}' both map to '{column.status_label}'")
            else:
                mapped[column.status_label] = column.name
        for status in self.status_labels:
            if status not in mapped:
                errors.append(f"status label '{status}' has no board column")
        return errors

    def _classifier_errors(self) -> list[str]:
        errors: list[str] = []
        for rule in self.classifier_rules:
            category = self.category_of(rule.label)
            if category is None:
                errors.append(f"classifier rule label '{rule.label}' is not declared in labels")
            elif category != rule.category:
                errors.append(f"classifier rule label '{rule.label}' belongs to '{category.value}', not '{rule.category.value}'")
        return errors

    def _resolve_priority_label(self, key: str) -> str | None:
        priorities = self.labels_in(LabelCategory.PRIORITY)
        for label in priorities:
            if label.name == key:
                return label.name
        for label in priorities:
            if label.short_name == key:
                return label.name
        return None

    # Derived views
    def labels_in(self, category: LabelCategory) -> list[LabelDefinition]:
        """Return the labels of a category in declared order."""
        return [label for label in self.labels if label.category == category]

    def label(self, name: str) -> LabelDefinition | None:
        """Return the declared label with the given name."""
        for label in self.labels:
            if label.name == name:
                return label
        return None

    def category_of(self, name: str) -> LabelCategory | None:
        """Return the category of a declared label, or None for undeclared labels."""
        label = self.label(name)
        return label.category if label else None

    def is_exclusive(self, category: LabelCategory) -> bool:
        """Return True when an issue may hold at most one label of the category."""
        return any(label.exclusive for label in self.labels_in(category))

    @property
    def status_labels(self) -> list[str]:
        """Status label names in declared order."""
        return [label.name for label in self.labels_in(LabelCategory.STATUS)]

    @property
    def priority_tiers(self) -> list[str]:
        """Priority label names, highest priority first."""
        return [label.name for label in self.labels_in(LabelCategory.PRIORITY)]

    @property
    def effective_default_status(self) -> str:
        """Status label suggested for issues without one."""
        return self.default_status_label or self.board.columns[0].status_label

    def column_for_status(self, status_label: str) -> str | None:
        """Return the board column mapped to a status label."""
        for column in self.board.columns:
            if column.status_label == status_label:
                return column.name
        return None

    def status_for_column(self, column_name: str) -> str | None:
        """Return the status label mapped to a board column."""
        for column in self.board.columns:
            if column.name == column_name:
                return column.status_label
        return None

    def sla_rule_for(self, priority_label: str) -> SlaRule | None:
        """Return the SLA rule of a priority label, matched by full or short name."""
        if priority_label in self.sla:
            return self.sla[priority_label]
        label = self.label(priority_label)
        if label is not None and label.short_name in self.sla:
            return self.sla[label.short_name]
        return None
