"""Unit tests for the workflow config loader."""

from pathlib import Path
from typing import Any

import pytest

from gitea_workflow.configuration.exceptions import ConfigInvalid, WorkflowConfigInvalidError
from gitea_workflow.processing.config_loader import WorkflowConfigLoader
from gitea_workflow.processing.defaults import dump_workflow_config, generate_default_config
from gitea_workflow.tracker.exceptions import TrackerRequestError
from gitea_workflow.utils.constants import DEFAULT_WORKFLOW_CONFIG_PATH
from gitea_workflow.utils.yaml import dump_yaml_to_string
from tests.unit.utils import FakeTracker

VALID_YAML = """
version: 1
labels:
  - {category: status, name: status/open, color: "#EDEDED"}
  - {category: status, name: status/closed, color: "0e8a16"}
  - {category: priority, name: priority/high, color: d93f0b}
  - {category: priority, name: priority/low, color: c5def5}
board:
  name: Board
  columns:
    - {name: Open, maps_to: status/open}
    - {name: Closed, maps_to: status/closed}
sla:
  high: {escalate_after_hours: 24, blocked_after_hours: 8}
  low: {escalate_after_hours: 48, blocked_after_hours: 72}
"""


def test_load_yaml_text() -> None:
    """Test loading a valid policy from YAML text."""
    config = WorkflowConfigLoader().load(VALID_YAML)
    assert config.version == "1"
    assert config.priority_tiers == ["priority/high", "priority/low"]
    assert config.label("status/open") is not None
    assert config.label("status/open").color == "ededed"  # type: ignore[union-attr]
    assert config.column_for_status("status/closed") == "Closed"


def test_load_mapping(config_document: dict[str, Any]) -> None:
    """Test loading a policy that is already parsed."""
    config = WorkflowConfigLoader().load(config_document)
    assert config.board.name == "Workflow"


@pytest.mark.parametrize(
    "section",
    [
        pytest.param("version", id="version"),
        pytest.param("labels", id="labels"),
        pytest.param("board", id="board"),
        pytest.param("sla", id="sla"),
    ],
)
def test_missing_required_section(config_document: dict[str, Any], section: str) -> None:
    """Test that a missing required section is reported by name."""
    del config_document[section]
    with pytest.raises(WorkflowConfigInvalidError) as exc_info:
        WorkflowConfigLoader().load(config_document)
    assert exc_info.value.errors == [{"loc": section, "error": f"missing required section '{section}'"}]
    assert f"missing required section '{section}'" in exc_info.value.reason


def test_malformed_yaml_raises_config_invalid() -> None:
    """Test that unparsable YAML never escapes as a parser error."""
    with pytest.raises(ConfigInvalid, match="malformed YAML"):
        WorkflowConfigLoader().load("labels: [unclosed\n  - x: {")


@pytest.mark.parametrize(
    "raw",
    [
        pytest.param("- just\n- a list\n", id="list"),
        pytest.param("plain scalar", id="scalar"),
        pytest.param("", id="empty"),
    ],
)
def test_non_mapping_document_rejected(raw: str) -> None:
    """Test that documents which are not mappings are rejected."""
    with pytest.raises(WorkflowConfigInvalidError, match="document must be a mapping"):
        WorkflowConfigLoader().load(raw)


def test_validation_errors_are_collected(config_document: dict[str, Any]) -> None:
    """Test that schema errors are wrapped with their location and without pydantic prefixes."""
    config_document["labels"][0]["color"] = "not-a-color"
    with pytest.raises(WorkflowConfigInvalidError) as exc_info:
        WorkflowConfigLoader().load(config_document)
    errors = exc_info.value.errors
    assert errors[0]["loc"] == "labels.0.color"
    assert errors[0]["error"].startswith("invalid label color 'not-a-color'")
    assert "labels.0.color" in exc_info.value.reason


def test_load_file(tmp_path: Path, config_document: dict[str, Any]) -> None:
    """Test loading a policy from a local file."""
    path = tmp_path / "issue-workflow.yaml"
    path.write_text(dump_yaml_to_string(config_document), encoding="utf-8")
    config = WorkflowConfigLoader().load_file(path)
    assert config.status_labels == ["status/todo", "status/doing", "status/done"]


def test_load_file_missing(tmp_path: Path) -> None:
    """Test that a missing local file is reported as an invalid configuration."""
    with pytest.raises(WorkflowConfigInvalidError, match="not found"):
        WorkflowConfigLoader().load_file(tmp_path / "missing.yaml")


def test_generated_default_round_trips_through_loader() -> None:
    """Test that the YAML written by init is accepted by the loader."""
    original = generate_default_config()
    loaded = WorkflowConfigLoader().load(dump_workflow_config(original))
    assert loaded == original


@pytest.mark.asyncio
async def test_load_from_repository() -> None:
    """Test loading the policy stored in the repository."""
    tracker = FakeTracker(files={DEFAULT_WORKFLOW_CONFIG_PATH: VALID_YAML})
    config = await WorkflowConfigLoader().load_from_repository(tracker)
    assert config.status_labels == ["status/open", "status/closed"]


@pytest.mark.asyncio
async def test_load_from_repository_not_found() -> None:
    """Test that an absent policy file is reported as an invalid configuration pointing at init."""
    with pytest.raises(WorkflowConfigInvalidError, match="run init"):
        await WorkflowConfigLoader().load_from_repository(FakeTracker())


@pytest.mark.asyncio
async def test_load_from_repository_other_errors_propagate() -> None:
    """Test that tracker errors other than 404 are not disguised as configuration errors."""
    tracker = FakeTracker()

    async def failing_get_file_content(file_path: str, ref: str | None = None) -> str:
        raise TrackerRequestError("GET", "/contents", 500, "boom")

    tracker.get_file_content = failing_get_file_content  # type: ignore[method-assign]
    with pytest.raises(TrackerRequestError):
        await WorkflowConfigLoader().load_from_repository(tracker)
