"""Custom exceptions for the synchronize module."""


class DuplicateBoardError(Exception):
    """Raised when more than one project board carries the configured name."""

    def __init__(self, board_name: str, board_ids: list[int]) -> None:
        ids = ", ".join(str(board_id) for board_id in board_ids)
        super().__init__(f"Found {len(board_ids)} boards named '{board_name}' (ids: {ids}); rename or remove the duplicates.")
        self.board_name = board_name
        self.board_ids = board_ids


class BoardNotFoundError(Exception):
    """Raised when an operation requires the project board and it does not exist."""

    def __init__(self, board_name: str) -> None:
        super().__init__(f"Project board '{board_name}' does not exist; run sync-board first.")
        self.board_name = board_name
