"""Unit tests for the transient error retry decorator."""

from typing import Any, Awaitable, Callable
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from gitea_workflow.utils.retry import retry_on_transient_error


def make_status_error(status_code: int, headers: dict[str, str] | None = None) -> httpx.HTTPStatusError:
    """Create an HTTPStatusError for a response with the given status."""
    request = httpx.Request("GET", "https://gitea.example.com/api/v1/repos/acme/widgets")
    response = httpx.Response(status_code, headers=headers, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


def wrap(call: AsyncMock) -> Callable[[], Awaitable[Any]]:
    """Wrap a mock in a named coroutine function."""

    async def fetch() -> Any:
        return await call()

    return fetch


@pytest.mark.asyncio
async def test_retries_rate_limit_then_succeeds() -> None:
    """Test that a 429 is retried, honouring retry-after."""
    call = AsyncMock(side_effect=[make_status_error(429, {"retry-after": "2"}), "ok"])
    decorated = retry_on_transient_error(max_retries=2)(wrap(call))

    with patch("gitea_workflow.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        assert await decorated() == "ok"
    sleep.assert_awaited_once_with(2.0)
    assert call.await_count == 2


@pytest.mark.asyncio
async def test_retries_are_bounded() -> None:
    """Test that the last transient error is raised once retries are exhausted."""
    call = AsyncMock(side_effect=make_status_error(503))
    decorated = retry_on_transient_error(max_retries=2, initial_delay=1.0)(wrap(call))

    with patch("gitea_workflow.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(httpx.HTTPStatusError):
            await decorated()
    assert call.await_count == 3
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_non_transient_errors_are_not_retried() -> None:
    """Test that client errors are raised immediately."""
    call = AsyncMock(side_effect=make_status_error(422))
    decorated = retry_on_transient_error(max_retries=3)(wrap(call))
    with pytest.raises(httpx.HTTPStatusError):
        await decorated()
    assert call.await_count == 1


@pytest.mark.asyncio
async def test_transport_errors_are_retried() -> None:
    """Test that timeouts are treated as transient."""
    call = AsyncMock(side_effect=[httpx.ReadTimeout("timed out"), "ok"])
    decorated = retry_on_transient_error(max_retries=1)(wrap(call))
    with patch("gitea_workflow.utils.retry.asyncio.sleep", new=AsyncMock()):
        assert await decorated() == "ok"


@pytest.mark.asyncio
async def test_max_retries_from_instance() -> None:
    """Test that the bound instance's max_retries is used when none is given."""

    class Client:
        max_retries = 0

        def __init__(self) -> None:
            self.calls = 0

        @retry_on_transient_error()
        async def send(self) -> None:
            self.calls += 1
            raise make_status_error(502)

    client = Client()
    with pytest.raises(httpx.HTTPStatusError):
        await client.send()
    assert client.calls == 1


def test_sync_function_rejected() -> None:
    """Test that decorating a synchronous function is refused."""

    def not_async() -> None:
        pass

    with pytest.raises(TypeError, match="must be async"):
        retry_on_transient_error()(not_async)
