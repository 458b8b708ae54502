"""Unit tests for label inference and issue checks."""

import pytest

from gitea_workflow.classify.inference import (
    check_issue,
    classify_issue,
    count_matches,
    explain_inference,
    infer_labels,
    is_security_issue,
    matched_patterns,
    plan_label_application,
)
from gitea_workflow.schemas.workflow import ClassifierRule, LabelCategory, WorkflowConfig
from tests.unit.utils import make_issue


def test_crash_title_infers_bug() -> None:
    """Test that a crash report is classified as a bug."""
    rules = [ClassifierRule(category=LabelCategory.TYPE, label="type/bug", patterns=["crash", "error", "bug"])]
    assert infer_labels("App crashes on startup", rules) == {LabelCategory.TYPE: "type/bug"}


@pytest.mark.parametrize(
    "pattern,text,expected",
    [
        pytest.param("crash", "CRASH and crash again", 2, id="substring case insensitive"),
        pytest.param("re:\\bui\\b", "The UI is broken, build fails", 1, id="regex word boundary"),
        pytest.param("re:\\bui\\b", "build guide", 0, id="regex no match inside words"),
        pytest.param("sql injection", "SQL Injection in login form", 1, id="multi word substring"),
    ],
)
def test_count_matches(pattern: str, text: str, expected: int) -> None:
    """Test substring and regular expression matching."""
    assert count_matches(pattern, text) == expected


def test_highest_score_wins() -> None:
    """Test that the rule with the most matches wins its category."""
    rules = [
        ClassifierRule(category=LabelCategory.TYPE, label="type/feature", patterns=["add"]),
        ClassifierRule(category=LabelCategory.TYPE, label="type/bug", patterns=["error", "fails"]),
    ]
    assert infer_labels("Add retry: upload fails with an error", rules) == {LabelCategory.TYPE: "type/bug"}


def test_tie_goes_to_earliest_rule() -> None:
    """Test that equal scores resolve to the first declared rule."""
    rules = [
        ClassifierRule(category=LabelCategory.TYPE, label="type/feature", patterns=["support"]),
        ClassifierRule(category=LabelCategory.TYPE, label="type/bug", patterns=["broken"]),
    ]
    assert infer_labels("broken support", rules) == {LabelCategory.TYPE: "type/feature"}


def test_one_label_per_category_and_no_match_omitted() -> None:
    """Test that each matched category yields one label and unmatched categories are omitted."""
    rules = [
        ClassifierRule(category=LabelCategory.TYPE, label="type/bug", patterns=["crash"]),
        ClassifierRule(category=LabelCategory.PRIORITY, label="priority/P0", patterns=["outage"]),
        ClassifierRule(category=LabelCategory.AREA, label="area/ui", patterns=["button"]),
    ]
    assert infer_labels("Crash during outage", rules) == {LabelCategory.TYPE: "type/bug", LabelCategory.PRIORITY: "priority/P0"}
    assert infer_labels("nothing relevant", rules) == {}


def test_explain_inference_lists_patterns_of_winning_rule() -> None:
    """Test that each inferred category reports the patterns of the rule that won it."""
    rules = [
        ClassifierRule(category=LabelCategory.TYPE, label="type/feature", patterns=["add"]),
        ClassifierRule(category=LabelCategory.TYPE, label="type/bug", patterns=["error", "crash", "re:\\bfails?\\b"]),
        ClassifierRule(category=LabelCategory.AREA, label="area/ui", patterns=["button"]),
    ]
    text = "Add retry: upload fails with an error"
    assert explain_inference(text, rules) == {LabelCategory.TYPE: ["error", "re:\\bfails?\\b"]}
    assert explain_inference(text, rules).keys() == infer_labels(text, rules).keys()
    assert explain_inference("nothing relevant", rules) == {}


def test_matched_patterns_keeps_declaration_order() -> None:
    """Test that matched patterns are listed once each, in the order the rule declares them."""
    rule = ClassifierRule(category=LabelCategory.TYPE, label="type/bug", patterns=["crash", "error", "bug"])
    assert matched_patterns(rule, "Error: bug causes crash, another crash") == ["crash", "error", "bug"]
    assert matched_patterns(rule, "all good") == []


def test_inference_is_deterministic(default_config: WorkflowConfig) -> None:
    """Test that identical inputs always produce identical output."""
    text = "Login API returns 500 error after token refresh"
    results = [infer_labels(text, default_config.classifier_rules) for _ in range(5)]
    assert all(result == results[0] for result in results)
    assert results[0][LabelCategory.TYPE] == "type/bug"
    assert results[0][LabelCategory.AREA] == "area/auth"


def test_classify_issue_uses_title_and_body(config: WorkflowConfig) -> None:
    """Test that the issue body participates in classification."""
    issue = make_issue(1, title="Question", body="There is a vulnerability in the parser")
    assert classify_issue(issue, config) == {LabelCategory.TYPE: "type/security"}


def test_plan_label_application_respects_exclusivity(config: WorkflowConfig) -> None:
    """Test that an inferred label never overwrites an existing label of an exclusive category."""
    issue = make_issue(1, labels=["type/feature"], title="crash")
    assert plan_label_application(issue, {LabelCategory.TYPE: "type/bug"}, config) is None


def test_plan_label_application_adds_missing(config: WorkflowConfig) -> None:
    """Test that inferred labels are added when the category is empty."""
    issue = make_issue(3, labels=["status/todo"], title="crash")
    change = plan_label_application(issue, {LabelCategory.TYPE: "type/bug"}, config)
    assert change is not None
    assert change.issue_number == 3
    assert change.add == ["type/bug"]
    assert change.remove == []
    assert change.apply_to(issue.labels) == ["status/todo", "type/bug"]


def test_plan_label_application_skips_labels_already_held(config: WorkflowConfig) -> None:
    """Test that nothing is planned when the inferred label is already present."""
    issue = make_issue(1, labels=["type/bug"])
    assert plan_label_application(issue, {LabelCategory.TYPE: "type/bug"}, config) is None


def test_is_security_issue(config: WorkflowConfig) -> None:
    """Test security detection by label and by inference."""
    assert is_security_issue(make_issue(1, labels=["type/security"]), config)
    assert is_security_issue(make_issue(2, title="Vulnerability in upload"), config)
    assert not is_security_issue(make_issue(3, title="Typo in footer"), config)


def test_check_issue_reports_missing_labels(config: WorkflowConfig) -> None:
    """Test that missing required labels are reported with suggestions."""
    check = check_issue(make_issue(7, title="App crash"), config)
    assert not check.ok
    assert check.problems == ["missing type label", "missing status label"]
    assert check.suggested_labels == ["type/bug", "status/todo"]


def test_check_issue_reports_conflicting_labels(config: WorkflowConfig) -> None:
    """Test that multiple labels of an exclusive category are reported."""
    check = check_issue(make_issue(8, labels=["type/bug", "status/todo", "status/done"]), config)
    assert check.problems == ["multiple status labels: status/todo, status/done"]


def test_check_issue_ok(config: WorkflowConfig) -> None:
    """Test that a well labeled issue has no problems."""
    check = check_issue(make_issue(9, labels=["type/bug", "status/doing", "workflow/blocked"]), config)
    assert check.ok
    assert check.suggested_labels == []
