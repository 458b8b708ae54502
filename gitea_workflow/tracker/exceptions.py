"""Custom exceptions for the tracker module."""

import httpx


class TrackerRequestError(Exception):
    """Raised when the issue tracker rejects a request with a non-retryable error."""

    def __init__(self, method: str, url: str, status_code: int, message: str) -> None:
        super().__init__(f"{method} {url} failed with HTTP {status_code}: {message}")
        self.method = method
        self.url = url
        self.status_code = status_code
        self.message = message

    @classmethod
    def from_response(cls, response: httpx.Response) -> "TrackerRequestError":
        """Build the error from a failed response, using the API's message when present."""
        try:
            message = response.json().get("message") or response.reason_phrase
        except (ValueError, AttributeError):
            message = response.text or response.reason_phrase
        return cls(response.request.method, str(response.request.url), response.status_code, message)
