"""Contains models for synchronization decisions, plans and results."""

from datetime import timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from gitea_workflow.schemas.workflow import LabelDefinition


class SyncDecision(str, Enum):
    """Decision taken for one declared object when compared against the tracker."""

    CREATE = "create"
    UPDATE = "update"
    NOOP = "noop"


class SyncDirection(str, Enum):
    """Which side of the label/board pair is authoritative during status sync."""

    LABEL_TO_BOARD = "label-to-board"
    BOARD_TO_LABEL = "board-to-label"
    BOTH = "both"


class ItemStatus(str, Enum):
    """Outcome of one item of a batch operation."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class ItemResult(BaseModel):
    """Result of one item of a batch operation."""

    item: str
    status: ItemStatus
    reason: str | None = None

    @property
    def failed(self) -> bool:
        """Return True when the item failed."""
        return self.status == ItemStatus.FAILURE


class LabelUpdate(BaseModel):
    """A repository label whose metadata drifted from its declaration."""

    definition: LabelDefinition
    label_id: int | None = None
    current_color: str = ""
    current_description: str | None = None


class ColumnMove(BaseModel):
    """Move an issue into the board column mapped to its status label."""

    issue_number: int
    from_column: str | None = None
    to_column: str
    reason: str


class LabelChange(BaseModel):
    """Remove and add labels on one issue in a single update."""

    issue_number: int
    remove: list[str] = Field(default_factory=list)
    add: list[str] = Field(default_factory=list)
    reason: str

    def apply_to(self, labels: list[str]) -> list[str]:
        """Return the label list that results from applying this change, preserving order."""
        result = [label for label in labels if label not in self.remove]
        for label in self.add:
            if label not in result:
                result.append(label)
        return result


class SyncPlan(BaseModel):
    """Change set computed from a fresh read; returned on dry run or applied immediately."""

    labels_to_create: list[LabelDefinition] = Field(default_factory=list)
    labels_to_update: list[LabelUpdate] = Field(default_factory=list)
    column_moves: list[ColumnMove] = Field(default_factory=list)
    label_changes: list[LabelChange] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """Return True when the plan contains no change."""
        return not (self.labels_to_create or self.labels_to_update or self.column_moves or self.label_changes)


class EscalationDecision(BaseModel):
    """One-tier priority increase decided for an issue."""

    issue_number: int
    from_priority: str | None
    to_priority: str
    reason: str
    age_at_decision: timedelta


class BlockedIssue(BaseModel):
    """An open issue whose age exceeds its blocked threshold."""

    issue_number: int
    title: str
    priority: str | None
    age: timedelta
    threshold_hours: float
    reason: str = ""
    already_blocked: bool = False


class OperationResult(BaseModel):
    """Envelope returned by every operation of the workflow engine."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        """Build a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "OperationResult":
        """Build a failed result, keeping any partial data."""
        return cls(success=False, error=error, data=data)
