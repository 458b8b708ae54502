"""Read models exchanged with the issue tracker collaborator."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class TrackedIssue(BaseModel):
    """An issue as read from the tracker at the start of an operation.

    The engine never owns issues; instances live for a single operation only.
    """

    id: int
    number: int
    title: str
    body: str = ""
    labels: list[str] = Field(default_factory=list)
    state: Literal["open", "closed"] = "open"
    created_at: datetime
    updated_at: datetime | None = None
    last_status_change_at: datetime | None = None
    board_column: str | None = None
    column_moved_at: datetime | None = None

    @field_validator("body", mode="before")
    @classmethod
    def empty_body(cls, value: Any) -> Any:
        """Gitea returns null bodies for issues created without a description."""
        return "" if value is None else value

    @property
    def text(self) -> str:
        """Title and body joined, as seen by the classifier."""
        return f"{self.title}\n{self.body}"

    @property
    def is_open(self) -> bool:
        """Return True for open issues."""
        return self.state == "open"

    def has_label(self, name: str) -> bool:
        """Return True if the issue holds the label."""
        return name in self.labels


class RepositoryLabel(BaseModel):
    """A label that exists in the repository."""

    id: int | None = None
    name: str
    color: str = ""
    description: str | None = None


class Board(BaseModel):
    """A project board of the repository."""

    id: int
    name: str


class BoardColumnState(BaseModel):
    """A column of a project board as it currently exists."""

    id: int
    name: str
    position: int = 0


class LabelEvent(BaseModel):
    """A label being added to or removed from an issue."""

    label: str
    added: bool
    created_at: datetime
