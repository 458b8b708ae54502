"""Sets up the authenticated httpx client for the Gitea API."""

import httpx

from gitea_workflow.utils.constants import DEFAULT_REQUEST_TIMEOUT


async def get_gitea_client(gitea_token: str, gitea_api_url: str, request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> httpx.AsyncClient:
    """Returns an authenticated async HTTP client for a Gitea instance.

    Every request made through the client carries its own timeout.
    """
    if not gitea_token:
        raise RuntimeError("Gitea authentication requires gitea_token in config.")
    return httpx.AsyncClient(
        base_url=gitea_api_url.rstrip("/"),
        headers={
            "Authorization": f"token {gitea_token}",
            "Accept": "application/json",
        },
        timeout=httpx.Timeout(request_timeout),
    )
