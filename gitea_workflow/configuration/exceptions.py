"""Contains exceptions raised when loading application and workflow configuration."""

from typing import Any


class GiteaConnectionConfigurationUndefinedError(Exception):
    """Raised when the Gitea connection configuration is undefined."""

    pass


class RequiredConfigurationElementError(Exception):
    """Raised when a required configuration element is missing."""

    def __init__(self, name: str, cli_name: str, env_name: str) -> None:
        """Initializes the exception with the name of the missing element."""
        super().__init__(f"Missing required configuration element: {name}")
        self.name = name
        self.cli_name = cli_name
        self.env_name = env_name


class WorkflowConfigInvalidError(Exception):
    """Raised when a workflow policy document is malformed or semantically inconsistent.

    No mutation is ever attempted with a policy that raised this error.
    """

    def __init__(self, reason: str, errors: list[dict[str, Any]] | None = None) -> None:
        """Initializes the exception with a summary reason and the individual errors."""
        super().__init__(f"Invalid workflow configuration: {reason}")
        self.reason = reason
        self.errors = errors or []


ConfigInvalid = WorkflowConfigInvalidError
