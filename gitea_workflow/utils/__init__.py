"""Utility modules for shared functionality."""

from .constants import (
    DEFAULT_BOARD_NAME,
    DEFAULT_GITEA_API_URL,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_WORKFLOW_CONFIG_PATH,
    REGEX_PATTERN_PREFIX,
)
from .retry import retry_on_transient_error

__all__ = [
    "DEFAULT_WORKFLOW_CONFIG_PATH",
    "DEFAULT_BOARD_NAME",
    "DEFAULT_GITEA_API_URL",
    "DEFAULT_MAX_CONCURRENCY",
    "REGEX_PATTERN_PREFIX",
    "retry_on_transient_error",
]
