"""Issue tracker adapter for the Gitea REST API."""

import base64
from typing import Any, Literal, Self

import httpx
import structlog

from gitea_workflow.utils.constants import DEFAULT_MAX_RETRIES, DEFAULT_PAGE_SIZE, DEFAULT_REQUEST_TIMEOUT
from gitea_workflow.utils.gitea import normalize_color, split_repository_in_configuration
from gitea_workflow.utils.retry import retry_on_transient_error

from .abc import IssueTrackerClientBase
from .client import get_gitea_client
from .exceptions import TrackerRequestError
from .models import Board, BoardColumnState, LabelEvent, RepositoryLabel, TrackedIssue

logger = structlog.get_logger(__name__)


def parse_issue(data: dict[str, Any]) -> TrackedIssue:
    """Convert a Gitea issue payload into a TrackedIssue."""
    return TrackedIssue(
        id=data["id"],
        number=data["number"],
        title=data.get("title", ""),
        body=data.get("body"),
        labels=[label["name"] for label in data.get("labels") or []],
        state=data.get("state", "open"),
        created_at=data["created_at"],
        updated_at=data.get("updated_at"),
    )


def parse_label(data: dict[str, Any]) -> RepositoryLabel:
    """Convert a Gitea label payload into a RepositoryLabel."""
    return RepositoryLabel(
        id=data.get("id"),
        name=data["name"],
        color=normalize_color(data.get("color") or ""),
        description=data.get("description") or None,
    )


class GiteaAdapter(IssueTrackerClientBase):
    """Issue tracker adapter for one Gitea repository."""

    def __init__(self, client: httpx.AsyncClient, owner: str, repo_name: str, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        """Initialize the adapter with an already-initialized HTTP client."""
        self.client = client
        self.owner = owner
        self.repo_name = repo_name
        self.max_retries = max_retries

    @classmethod
    async def create(
        cls,
        repo: str,
        gitea_token: str,
        gitea_api_url: str,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> Self:
        """Create a new Gitea adapter.

        Args:
            repo: Repository in 'owner/repo' format
            gitea_token: Gitea access token
            gitea_api_url: Gitea API base URL (e.g. https://gitea.example.com/api/v1)
            request_timeout: Timeout in seconds applied to every request
            max_retries: Retries for rate-limited or transient failures

        Returns:
            Configured GiteaAdapter instance
        """
        owner, repo_name = await split_repository_in_configuration(repo=repo)
        logger.info("Creating client for Gitea instance and repository", gitea_api_url=gitea_api_url, owner=owner, repo_name=repo_name)
        client = await get_gitea_client(gitea_token=gitea_token, gitea_api_url=gitea_api_url, request_timeout=request_timeout)
        return cls(client, owner, repo_name, max_retries=max_retries)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo_name}"

    @retry_on_transient_error()
    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self.client.request(method, path, **kwargs)
        response.raise_for_status()
        return response

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, converting HTTP errors that survived retries into TrackerRequestError."""
        try:
            return await self._send(method, path, **kwargs)
        except httpx.HTTPStatusError as exc:
            error = TrackerRequestError.from_response(exc.response)
            if exc.response.status_code == 422:
                logger.error("Gitea 422 Unprocessable Entity", method=method, path=path, message=error.message, status_code=422)
            raise error from exc

    async def _paginate(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            response = await self._request("GET", path, params={**(params or {}), "page": page, "limit": DEFAULT_PAGE_SIZE})
            batch: list[dict[str, Any]] = response.json() or []
            items.extend(batch)
            if len(batch) < DEFAULT_PAGE_SIZE:
                break
            page += 1
        return items

    # Repository contents
    async def get_file_content(self, file_path: str, ref: str | None = None) -> str:
        """Get the decoded content of a file in the repository."""
        params = {"ref": ref} if ref else None
        response = await self._request("GET", f"{self._repo_path}/contents/{file_path}", params=params)
        content: str = response.json().get("content") or ""
        return base64.b64decode(content).decode("utf-8")

    # Issue reads
    async def list_issues(self, state: Literal["open", "closed", "all"] = "open", labels: list[str] | None = None) -> list[TrackedIssue]:
        """List issues (not pull requests) for a repository, handling pagination."""
        params: dict[str, Any] = {"state": state, "type": "issues"}
        if labels:
            params["labels"] = ",".join(labels)
        return [parse_issue(item) for item in await self._paginate(f"{self._repo_path}/issues", params)]

    async def get_issue(self, issue_number: int) -> TrackedIssue:
        """Get a single issue by number."""
        response = await self._request("GET", f"{self._repo_path}/issues/{issue_number}")
        return parse_issue(response.json())

    async def list_label_events(self, issue_number: int) -> list[LabelEvent]:
        """List label events from the issue timeline, oldest first."""
        events: list[LabelEvent] = []
        for item in await self._paginate(f"{self._repo_path}/issues/{issue_number}/timeline"):
            if item.get("type") != "label" or not item.get("label"):
                continue
            events.append(
                LabelEvent(
                    label=item["label"]["name"],
                    added=item.get("body") == "1",
                    created_at=item["created_at"],
                )
            )
        events.sort(key=lambda event: event.created_at)
        return events

    # Issue mutations
    async def set_issue_labels(self, issue_number: int, labels: list[str]) -> None:
        """Replace the labels of an issue."""
        await self._request("PUT", f"{self._repo_path}/issues/{issue_number}/labels", json={"labels": labels})

    async def create_issue_comment(self, issue_number: int, body: str) -> None:
        """Post a comment on an issue."""
        await self._request("POST", f"{self._repo_path}/issues/{issue_number}/comments", json={"body": body})

    # Label CRUD
    async def list_labels(self) -> list[RepositoryLabel]:
        """List all labels for a repository, handling pagination."""
        return [parse_label(item) for item in await self._paginate(f"{self._repo_path}/labels")]

    async def create_label(self, name: str, color: str, description: str | None = None) -> RepositoryLabel:
        """Create a label for a repository."""
        payload: dict[str, Any] = {"name": name, "color": f"#{normalize_color(color)}"}
        if description is not None:
            payload["description"] = description
        response = await self._request("POST", f"{self._repo_path}/labels", json=payload)
        return parse_label(response.json())

    async def update_label(self, label_id: int, color: str | None = None, description: str | None = None) -> RepositoryLabel:
        """Update the color and/or description of a label."""
        payload: dict[str, Any] = {}
        if color is not None:
            payload["color"] = f"#{normalize_color(color)}"
        if description is not None:
            payload["description"] = description
        response = await self._request("PATCH", f"{self._repo_path}/labels/{label_id}", json=payload)
        return parse_label(response.json())

    # Project boards
    async def list_boards(self) -> list[Board]:
        """List project boards for a repository."""
        return [Board(id=item["id"], name=item["title"]) for item in await self._paginate(f"{self._repo_path}/projects")]

    async def create_board(self, name: str) -> Board:
        """Create a project board."""
        response = await self._request("POST", f"{self._repo_path}/projects", json={"title": name})
        data = response.json()
        return Board(id=data["id"], name=data["title"])

    async def list_board_columns(self, board_id: int) -> list[BoardColumnState]:
        """List the columns of a board ordered by their sorting position."""
        response = await self._request("GET", f"{self._repo_path}/projects/{board_id}/columns")
        columns = [
            BoardColumnState(id=item["id"], name=item["title"], position=item.get("sorting", index)) for index, item in enumerate(response.json() or [])
        ]
        return sorted(columns, key=lambda column: column.position)

    async def create_board_column(self, board_id: int, name: str) -> BoardColumnState:
        """Append a column to a board."""
        response = await self._request("POST", f"{self._repo_path}/projects/{board_id}/columns", json={"title": name})
        data = response.json()
        return BoardColumnState(id=data["id"], name=data["title"], position=data.get("sorting", 0))

    async def reorder_board_column(self, board_id: int, column_id: int, position: int) -> None:
        """Move a column to a position on a board."""
        await self._request("PATCH", f"{self._repo_path}/projects/columns/{column_id}", json={"sorting": position})

    async def list_column_issue_numbers(self, board_id: int, column_id: int) -> list[int]:
        """List the numbers of the issues in a board column."""
        items = await self._paginate(f"{self._repo_path}/projects/columns/{column_id}/issues")
        return [item["number"] for item in items]

    async def move_issue_to_column(self, issue_number: int, board_id: int, column_id: int) -> None:
        """Place an issue in a board column.

        The column endpoint expects the issue ID rather than its number.
        """
        issue = await self.get_issue(issue_number)
        await self._request("POST", f"{self._repo_path}/projects/columns/{column_id}/issues", json={"issue_id": issue.id})
