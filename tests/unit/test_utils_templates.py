"""Unit tests for the Jinja2 template and YAML utilities."""

from pathlib import Path

import jinja2
import pytest

from gitea_workflow.utils.templates import (
    TEMPLATES_DIRECTORY,
    construct_jinja2_template_from_file,
    construct_jinja2_template_from_string,
    render_template_with_context,
)
from gitea_workflow.utils.yaml import dump_yaml_to_file, dump_yaml_to_string, load_yaml_file, load_yaml_string


def test_render_template_with_context() -> None:
    """Test rendering a string template against a mapping."""
    template = construct_jinja2_template_from_string("Escalated from {{ old }} to {{ new }}.")
    assert render_template_with_context(template, {"old": "P2", "new": "P1"}) == "Escalated from P2 to P1."


def test_render_template_missing_variable() -> None:
    """Test that undefined variables are errors rather than empty strings."""
    template = construct_jinja2_template_from_string("Blocked for {{ age }}")
    with pytest.raises(jinja2.UndefinedError):
        render_template_with_context(template, {})


def test_report_template_ships_with_package() -> None:
    """Test that the report template is found next to the package."""
    template = construct_jinja2_template_from_file(TEMPLATES_DIRECTORY / "workflow_report.md.j2")
    assert isinstance(template, jinja2.Template)


def test_missing_template_file(tmp_path: Path) -> None:
    """Test that a missing template file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        construct_jinja2_template_from_file(tmp_path / "missing.j2")


def test_yaml_dump_uses_literal_blocks_for_multiline(tmp_path: Path) -> None:
    """Test that multiline strings survive a write and read through a file."""
    document = {"notifications": {"blocked_comment": "Line one\nLine two\n"}, "version": "1"}
    text = dump_yaml_to_string(document)
    assert text.startswith("---")
    assert "blocked_comment: |" in text
    assert load_yaml_string(text) == document

    path = tmp_path / "nested" / "issue-workflow.yaml"
    dump_yaml_to_file(document, path)
    assert load_yaml_file(path) == document
