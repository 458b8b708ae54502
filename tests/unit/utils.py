"""Shared helpers for unit tests: an in-memory issue tracker and policy builders."""

from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from gitea_workflow.tracker.abc import IssueTrackerClientBase
from gitea_workflow.tracker.exceptions import TrackerRequestError
from gitea_workflow.tracker.models import Board, BoardColumnState, LabelEvent, RepositoryLabel, TrackedIssue

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_issue(
    number: int,
    labels: list[str] | None = None,
    title: str = "An issue",
    body: str = "",
    age: timedelta = timedelta(hours=1),
    state: Literal["open", "closed"] = "open",
    **kwargs: Any,
) -> TrackedIssue:
    """Create an issue created ``age`` before NOW."""
    kwargs.setdefault("updated_at", NOW - age)
    return TrackedIssue(
        id=1000 + number,
        number=number,
        title=title,
        body=body,
        labels=labels or [],
        state=state,
        created_at=NOW - age,
        **kwargs,
    )


class FakeTracker(IssueTrackerClientBase):
    """In-memory issue tracker recording every mutating call."""

    def __init__(
        self,
        issues: list[TrackedIssue] | None = None,
        labels: list[RepositoryLabel] | None = None,
        files: dict[str, str] | None = None,
    ) -> None:
        """Initialize the fake with issues, repository labels and files."""
        self.issues: dict[int, TrackedIssue] = {issue.number: issue for issue in issues or []}
        self.labels: list[RepositoryLabel] = list(labels or [])
        self.files: dict[str, str] = dict(files or {})
        self.boards: list[Board] = []
        self.columns: dict[int, list[BoardColumnState]] = {}
        self.column_issues: dict[int, list[int]] = {}
        self.label_events: dict[int, list[LabelEvent]] = {}
        self.comments: list[tuple[int, str]] = []
        self.calls: list[tuple[Any, ...]] = []
        self.fail_on: dict[str, set[Any]] = {}
        self._next_id = 1

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _maybe_fail(self, method: str, key: Any) -> None:
        if key in self.fail_on.get(method, set()):
            raise TrackerRequestError("POST", f"/{method}/{key}", 500, "internal error")

    def add_board(self, name: str, columns: list[str]) -> Board:
        """Create a board with columns in the given order, without recording calls."""
        board = Board(id=self._id(), name=name)
        self.boards.append(board)
        self.columns[board.id] = [BoardColumnState(id=self._id(), name=column, position=index) for index, column in enumerate(columns)]
        return board

    def place_issue(self, board: Board, column_name: str, issue_number: int) -> None:
        """Put an issue in a board column, without recording calls."""
        column = next(column for column in self.columns[board.id] if column.name == column_name)
        self.column_issues.setdefault(column.id, []).append(issue_number)

    def column_of(self, board: Board, issue_number: int) -> str | None:
        """Return the column an issue currently sits in."""
        for column in self.columns[board.id]:
            if issue_number in self.column_issues.get(column.id, []):
                return column.name
        return None

    @property
    def mutations(self) -> list[tuple[Any, ...]]:
        """Recorded mutating calls."""
        return self.calls

    async def get_file_content(self, file_path: str, ref: str | None = None) -> str:
        """Return a stored file or raise a 404."""
        if file_path not in self.files:
            raise TrackerRequestError("GET", f"/contents/{file_path}", 404, "The target couldn't be found.")
        return self.files[file_path]

    async def list_issues(self, state: Literal["open", "closed", "all"] = "open", labels: list[str] | None = None) -> list[TrackedIssue]:
        """List stored issues by state."""
        return [issue for issue in self.issues.values() if state == "all" or issue.state == state]

    async def get_issue(self, issue_number: int) -> TrackedIssue:
        """Return a stored issue or raise a 404."""
        self._maybe_fail("get_issue", issue_number)
        if issue_number not in self.issues:
            raise TrackerRequestError("GET", f"/issues/{issue_number}", 404, "issue does not exist")
        return self.issues[issue_number]

    async def list_label_events(self, issue_number: int) -> list[LabelEvent]:
        """Return the stored label events of an issue."""
        self._maybe_fail("list_label_events", issue_number)
        return self.label_events.get(issue_number, [])

    async def set_issue_labels(self, issue_number: int, labels: list[str]) -> None:
        """Replace the labels of a stored issue."""
        self._maybe_fail("set_issue_labels", issue_number)
        self.calls.append(("set_issue_labels", issue_number, list(labels)))
        self.issues[issue_number] = self.issues[issue_number].model_copy(update={"labels": list(labels)})

    async def create_issue_comment(self, issue_number: int, body: str) -> None:
        """Store a comment."""
        self.calls.append(("create_issue_comment", issue_number, body))
        self.comments.append((issue_number, body))

    async def list_labels(self) -> list[RepositoryLabel]:
        """List repository labels."""
        return list(self.labels)

    async def create_label(self, name: str, color: str, description: str | None = None) -> RepositoryLabel:
        """Create a repository label."""
        self._maybe_fail("create_label", name)
        self.calls.append(("create_label", name, color, description))
        label = RepositoryLabel(id=self._id(), name=name, color=color, description=description)
        self.labels.append(label)
        return label

    async def update_label(self, label_id: int, color: str | None = None, description: str | None = None) -> RepositoryLabel:
        """Update a repository label by id."""
        self.calls.append(("update_label", label_id, color, description))
        for index, label in enumerate(self.labels):
            if label.id == label_id:
                updated = label.model_copy(update={"color": color or label.color, "description": description or label.description})
                self.labels[index] = updated
                return updated
        raise TrackerRequestError("PATCH", f"/labels/{label_id}", 404, "label does not exist")

    async def list_boards(self) -> list[Board]:
        """List boards."""
        return list(self.boards)

    async def create_board(self, name: str) -> Board:
        """Create an empty board."""
        self.calls.append(("create_board", name))
        board = Board(id=self._id(), name=name)
        self.boards.append(board)
        self.columns[board.id] = []
        return board

    async def list_board_columns(self, board_id: int) -> list[BoardColumnState]:
        """List board columns by position."""
        return sorted(self.columns[board_id], key=lambda column: column.position)

    async def create_board_column(self, board_id: int, name: str) -> BoardColumnState:
        """Append a column to a board."""
        self._maybe_fail("create_board_column", name)
        self.calls.append(("create_board_column", board_id, name))
        column = BoardColumnState(id=self._id(), name=name, position=len(self.columns[board_id]))
        self.columns[board_id].append(column)
        return column

    async def reorder_board_column(self, board_id: int, column_id: int, position: int) -> None:
        """Set the sorting position of a column."""
        self.calls.append(("reorder_board_column", board_id, column_id, position))
        self.columns[board_id] = [
            column.model_copy(update={"position": position}) if column.id == column_id else column for column in self.columns[board_id]
        ]

    async def list_column_issue_numbers(self, board_id: int, column_id: int) -> list[int]:
        """List the issues of a column."""
        return list(self.column_issues.get(column_id, []))

    async def move_issue_to_column(self, issue_number: int, board_id: int, column_id: int) -> None:
        """Move an issue into a column, removing it from the other columns of the board."""
        self._maybe_fail("move_issue_to_column", issue_number)
        self.calls.append(("move_issue_to_column", issue_number, board_id, column_id))
        for column in self.columns[board_id]:
            numbers = self.column_issues.get(column.id, [])
            if issue_number in numbers:
                numbers.remove(issue_number)
        self.column_issues.setdefault(column_id, []).append(issue_number)


def minimal_config_document() -> dict[str, Any]:
    """Return a small, valid workflow policy document."""
    return {
        "version": "1",
        "labels": [
            {"category": "status", "name": "status/todo", "color": "ededed"},
            {"category": "status", "name": "status/doing", "color": "0e8a16"},
            {"category": "status", "name": "status/done", "color": "5319e7"},
            {"category": "priority", "name": "priority/P0", "color": "d93f0b"},
            {"category": "priority", "name": "priority/P1", "color": "e99695"},
            {"category": "priority", "name": "priority/P2", "color": "fbca04"},
            {"category": "type", "name": "type/bug", "color": "d73a4a", "description": "Something is not working"},
            {"category": "type", "name": "type/feature", "color": "a2eeef"},
            {"category": "type", "name": "type/security", "color": "b60205"},
            {"category": "workflow", "name": "workflow/blocked", "color": "000000"},
        ],
        "board": {
            "name": "Workflow",
            "columns": [
                {"name": "To Do", "status_label": "status/todo"},
                {"name": "Doing", "status_label": "status/doing"},
                {"name": "Done", "status_label": "status/done"},
            ],
        },
        "sla": {
            "P0": {"blocked_after_hours": 4},
            "P1": {"escalate_after_hours": 72, "blocked_after_hours": 24},
            "P2": {"escalate_after_hours": 720, "blocked_after_hours": 168},
        },
        "classifier_rules": [
            {"category": "type", "label": "type/bug", "patterns": ["crash", "error"]},
            {"category": "type", "label": "type/feature", "patterns": ["feature"]},
            {"category": "type", "label": "type/security", "patterns": ["vulnerability"]},
        ],
    }
