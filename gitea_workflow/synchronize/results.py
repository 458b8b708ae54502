"""Contains results of board synchronization operations."""

from pydantic import BaseModel, Field

from gitea_workflow.synchronize.models import ItemResult


class ColumnReorder(BaseModel):
    """Move an existing board column to its declared position."""

    column: str
    column_id: int
    from_position: int
    to_position: int


class BoardSynchronizationResult(BaseModel):
    """Contains results of the board synchronization workflow."""

    board_name: str
    board_id: int | None = None
    board_existed: bool = True
    board_created: bool = False
    existing_columns: list[str] = Field(default_factory=list)
    columns_to_create: list[str] = Field(default_factory=list)
    undeclared_columns: list[str] = Field(default_factory=list)
    out_of_order: bool = False
    dry_run: bool = False
    results: list[ItemResult] = Field(default_factory=list)


class BoardReorderResult(BaseModel):
    """Contains results of the explicit board column reorder workflow."""

    board_name: str
    board_id: int
    reorders: list[ColumnReorder] = Field(default_factory=list)
    missing_columns: list[str] = Field(default_factory=list)
    dry_run: bool = False
    results: list[ItemResult] = Field(default_factory=list)
