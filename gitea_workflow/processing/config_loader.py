"""Loads and validates the workflow policy document.

This module provides the WorkflowConfigLoader class, which parses the policy
document (YAML text, a parsed mapping, a local file or the file stored in the
repository) and validates it against the WorkflowConfig schema. Every problem
is collected and raised as a single WorkflowConfigInvalidError; a pydantic
ValidationError never escapes. All logging is performed using structlog.
"""

from pathlib import Path
from typing import Any, Mapping

import structlog
from pydantic import ValidationError
from ruamel.yaml.error import YAMLError

from gitea_workflow.configuration.exceptions import WorkflowConfigInvalidError
from gitea_workflow.schemas.workflow import WorkflowConfig
from gitea_workflow.tracker.abc import IssueTrackerClientBase
from gitea_workflow.tracker.exceptions import TrackerRequestError
from gitea_workflow.utils.constants import DEFAULT_WORKFLOW_CONFIG_PATH
from gitea_workflow.utils.yaml import load_yaml_file, load_yaml_string

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

REQUIRED_SECTIONS = ("version", "labels", "board", "sla")


def format_validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic validation errors into location/message entries."""
    errors: list[dict[str, Any]] = []
    for error in exc.errors():
        message = str(error["msg"])
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        errors.append({"loc": ".".join(str(part) for part in error["loc"]), "error": message})
    return errors


def summarize_errors(errors: list[dict[str, Any]]) -> str:
    """Join error entries into one human readable reason."""
    return "; ".join(f"{entry['loc']}: {entry['error']}" if entry.get("loc") else str(entry["error"]) for entry in errors)


class WorkflowConfigLoader:
    """Loads a workflow policy and validates it into a WorkflowConfig.

    The loader keeps no state between calls: the policy is read fresh every time
    so that one process may serve repositories with different policies.
    """

    def load(self, raw: str | Mapping[str, Any]) -> WorkflowConfig:
        """Validate a policy given as YAML text or as an already parsed mapping.

        Args:
            raw: The policy document.

        Returns:
            The validated policy.

        Raises:
            WorkflowConfigInvalidError: If the document is malformed or inconsistent.
        """
        data = self._parse(raw) if isinstance(raw, str) else raw
        if not isinstance(data, Mapping):
            logger.error("Workflow config is not a mapping", actual_type=type(data).__name__)
            raise WorkflowConfigInvalidError("document must be a mapping", [{"loc": "", "error": "document must be a mapping"}])

        missing = [section for section in REQUIRED_SECTIONS if data.get(section) is None]
        if missing:
            errors = [{"loc": section, "error": f"missing required section '{section}'"} for section in missing]
            logger.error("Workflow config is missing required sections", missing=missing)
            raise WorkflowConfigInvalidError(summarize_errors(errors), errors)

        try:
            config = WorkflowConfig.model_validate(dict(data))
        except ValidationError as exc:
            errors = format_validation_errors(exc)
            logger.error("Workflow config failed validation", errors=errors)
            raise WorkflowConfigInvalidError(summarize_errors(errors), errors) from exc

        logger.info(
            "Loaded workflow config",
            version=config.version,
            project_type=config.project_type.value,
            labels=len(config.labels),
            columns=len(config.board.columns),
        )
        return config

    def load_file(self, path: Path | str) -> WorkflowConfig:
        """Load and validate a policy from a local file."""
        path = Path(path)
        if not path.exists():
            raise WorkflowConfigInvalidError(f"workflow config file not found: {path}")
        try:
            data = load_yaml_file(path)
        except YAMLError as exc:
            logger.error("Failed to parse workflow config file", path=str(path), error=str(exc))
            raise WorkflowConfigInvalidError(f"malformed YAML in {path}: {exc}") from exc
        return self.load(data)

    async def load_from_repository(
        self,
        client: IssueTrackerClientBase,
        path: str = DEFAULT_WORKFLOW_CONFIG_PATH,
        ref: str | None = None,
    ) -> WorkflowConfig:
        """Load and validate the policy stored in the repository.

        Raises:
            WorkflowConfigInvalidError: If the file is absent, malformed or inconsistent.
            TrackerRequestError: If the tracker fails with anything other than 404.
        """
        try:
            content = await client.get_file_content(path, ref=ref)
        except TrackerRequestError as exc:
            if exc.status_code == 404:
                logger.error("Workflow config not found in repository", path=path)
                raise WorkflowConfigInvalidError(f"workflow config '{path}' not found in repository; run init to create one") from exc
            raise
        return self.load(content)

    def _parse(self, content: str) -> Any:
        try:
            return load_yaml_string(content)
        except YAMLError as exc:
            logger.error("Failed to parse workflow config", error=str(exc))
            raise WorkflowConfigInvalidError(f"malformed YAML: {exc}") from exc
