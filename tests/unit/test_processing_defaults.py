"""Unit tests for the default workflow policy generator."""

import pytest

from gitea_workflow.processing.defaults import (
    AREA_LABELS_BY_PROJECT_TYPE,
    dump_workflow_config,
    generate_default_config,
    workflow_config_to_document,
)
from gitea_workflow.schemas.workflow import LabelCategory, ProjectType
from gitea_workflow.utils.constants import DEFAULT_BOARD_NAME
from gitea_workflow.utils.yaml import load_yaml_string


@pytest.mark.parametrize(
    "project_type",
    [pytest.param(project_type, id=project_type.value) for project_type in ProjectType],
)
def test_default_config_is_valid_for_every_project_type(project_type: ProjectType) -> None:
    """Test that a valid policy is generated for every project type, with its own area labels."""
    config = generate_default_config(project_type)
    assert config.project_type == project_type
    assert [label.name for label in config.labels_in(LabelCategory.AREA)] == [name for name, _, _ in AREA_LABELS_BY_PROJECT_TYPE[project_type]]
    declared = {label.name for label in config.labels}
    assert all(rule.label in declared for rule in config.classifier_rules)


def test_default_config_priorities_and_sla() -> None:
    """Test that priority tiers are declared highest first and matched by SLA short names."""
    config = generate_default_config()
    assert config.priority_tiers == ["priority/P0", "priority/P1", "priority/P2", "priority/P3"]
    p3 = config.sla_rule_for("priority/P3")
    assert p3 is not None and p3.escalate_after_hours == 720
    p0 = config.sla_rule_for("priority/P0")
    assert p0 is not None and p0.escalate_after_hours is None


def test_default_config_board() -> None:
    """Test that the default board maps one column to each status label."""
    config = generate_default_config(board_name="Team Board")
    assert config.board.name == "Team Board"
    assert [column.status_label for column in config.board.columns] == config.status_labels
    assert generate_default_config().board.name == DEFAULT_BOARD_NAME


def test_default_config_special_labels() -> None:
    """Test that the blocked label and the security label are wired up."""
    config = generate_default_config()
    assert config.blocked_label == "workflow/blocked"
    assert config.security_labels == ["type/security"]
    assert config.notifications.escalation_comment is not None


def test_document_omits_unset_values() -> None:
    """Test that the stored document carries no null values."""
    document = workflow_config_to_document(generate_default_config())
    assert "default_status_label" not in document
    assert "escalate_after_hours" not in document["sla"]["P0"]


def test_dump_workflow_config_is_yaml() -> None:
    """Test that the dumped policy parses back to the same document."""
    config = generate_default_config(ProjectType.LIBRARY)
    assert load_yaml_string(dump_workflow_config(config)) == workflow_config_to_document(config)
