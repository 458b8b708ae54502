"""Base ABC for issue tracker clients."""

from abc import ABC, abstractmethod
from typing import Literal

from gitea_workflow.tracker.models import Board, BoardColumnState, LabelEvent, RepositoryLabel, TrackedIssue


class IssueTrackerClientBase(ABC):
    """Base ABC for issue tracker clients.

    This is the only surface through which the workflow engine reads or mutates
    repository state. Mutating methods are: create_label, update_label,
    create_board, create_board_column, reorder_board_column,
    move_issue_to_column, set_issue_labels and create_issue_comment.
    """

    # Repository contents
    @abstractmethod
    async def get_file_content(self, file_path: str, ref: str | None = None) -> str:
        """Get the decoded content of a file in the repository."""
        pass

    # Issue reads
    @abstractmethod
    async def list_issues(self, state: Literal["open", "closed", "all"] = "open", labels: list[str] | None = None) -> list[TrackedIssue]:
        """List issues for a repository."""
        pass

    @abstractmethod
    async def get_issue(self, issue_number: int) -> TrackedIssue:
        """Get a single issue by number."""
        pass

    @abstractmethod
    async def list_label_events(self, issue_number: int) -> list[LabelEvent]:
        """List the label add/remove events of an issue, oldest first."""
        pass

    # Issue mutations
    @abstractmethod
    async def set_issue_labels(self, issue_number: int, labels: list[str]) -> None:
        """Replace the labels of an issue."""
        pass

    @abstractmethod
    async def create_issue_comment(self, issue_number: int, body: str) -> None:
        """Post a comment on an issue."""
        pass

    # Label CRUD
    @abstractmethod
    async def list_labels(self) -> list[RepositoryLabel]:
        """List labels for a repository."""
        pass

    @abstractmethod
    async def create_label(self, name: str, color: str, description: str | None = None) -> RepositoryLabel:
        """Create a label for a repository."""
        pass

    @abstractmethod
    async def update_label(self, label_id: int, color: str | None = None, description: str | None = None) -> RepositoryLabel:
        """Update the metadata of a label."""
        pass

    # Project boards
    @abstractmethod
    async def list_boards(self) -> list[Board]:
        """List project boards for a repository."""
        pass

    @abstractmethod
    async def create_board(self, name: str) -> Board:
        """Create a project board."""
        pass

    @abstractmethod
    async def list_board_columns(self, board_id: int) -> list[BoardColumnState]:
        """List the columns of a board in their current order."""
        pass

    @abstractmethod
    async def create_board_column(self, board_id: int, name: str) -> BoardColumnState:
        """Append a column to a board."""
        pass

    @abstractmethod
    async def reorder_board_column(self, board_id: int, column_id: int, position: int) -> None:
        """Move a column to a position on a board."""
        pass

    @abstractmethod
    async def list_column_issue_numbers(self, board_id: int, column_id: int) -> list[int]:
        """List the numbers of the issues in a board column."""
        pass

    @abstractmethod
    async def move_issue_to_column(self, issue_number: int, board_id: int, column_id: int) -> None:
        """Place an issue in a board column, removing it from any other column."""
        pass
