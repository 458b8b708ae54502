"""Infers category labels from issue text and checks issues against the label taxonomy.

Inference is a pure function of the text and the classifier rules: identical
inputs always produce identical output and no collaborator is involved.
"""

import re
from functools import lru_cache

from pydantic import BaseModel, Field

from gitea_workflow.schemas.workflow import ClassifierRule, LabelCategory, WorkflowConfig
from gitea_workflow.synchronize.models import LabelChange
from gitea_workflow.tracker.models import TrackedIssue
from gitea_workflow.utils.constants import REGEX_PATTERN_PREFIX


class IssueCheck(BaseModel):
    """Problems found on one issue and the labels suggested to fix them."""

    issue_number: int
    title: str
    problems: list[str] = Field(default_factory=list)
    suggested_labels: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return True when the issue has no problem."""
        return not self.problems


@lru_cache(maxsize=256)
def _compile(expression: str) -> re.Pattern[str]:
    return re.compile(expression, re.IGNORECASE)


def count_matches(pattern: str, text: str) -> int:
    """Count case-insensitive occurrences of a substring pattern, or matches of a 're:' pattern."""
    if pattern.startswith(REGEX_PATTERN_PREFIX):
        return sum(1 for _ in _compile(pattern[len(REGEX_PATTERN_PREFIX) :]).finditer(text))
    return text.lower().count(pattern.lower())


def score_rule(rule: ClassifierRule, text: str) -> int:
    """Total number of pattern matches of a rule in the text."""
    return sum(count_matches(pattern, text) for pattern in rule.patterns)


def matched_patterns(rule: ClassifierRule, text: str) -> list[str]:
    """Patterns of a rule that occur in the text, in declaration order."""
    return [pattern for pattern in rule.patterns if count_matches(pattern, text)]


def _winning_rules(text: str, rules: list[ClassifierRule]) -> dict[LabelCategory, ClassifierRule]:
    best: dict[LabelCategory, tuple[int, ClassifierRule]] = {}
    for rule in rules:
        score = score_rule(rule, text)
        if score == 0:
            continue
        current = best.get(rule.category)
        if current is None or score > current[0]:
            best[rule.category] = (score, rule)
    return {category: rule for category, (_, rule) in best.items()}


def infer_labels(text: str, rules: list[ClassifierRule]) -> dict[LabelCategory, str]:
    """Infer at most one label per category from free text.

    Every rule of a category is scored by its total match count; the highest
    score wins and ties go to the earliest declared rule. Categories where no
    rule matches are omitted.
    """
    return {category: rule.label for category, rule in _winning_rules(text, rules).items()}


def explain_inference(text: str, rules: list[ClassifierRule]) -> dict[LabelCategory, list[str]]:
    """The patterns behind each label of :func:`infer_labels`, keyed by the same categories."""
    return {category: matched_patterns(rule, text) for category, rule in _winning_rules(text, rules).items()}


def classify_issue(issue: TrackedIssue, config: WorkflowConfig) -> dict[LabelCategory, str]:
    """Infer labels from the title and body of an issue."""
    return infer_labels(issue.text, config.classifier_rules)


def labels_in_category(issue: TrackedIssue, config: WorkflowConfig, category: LabelCategory) -> list[str]:
    """Labels of the issue that belong to a category, in the order the issue holds them."""
    return [label for label in issue.labels if config.category_of(label) == category]


def is_security_issue(issue: TrackedIssue, config: WorkflowConfig, inferred: dict[LabelCategory, str] | None = None) -> bool:
    """Return True when the issue carries a security label or the classifier infers one."""
    if any(issue.has_label(label) for label in config.security_labels):
        return True
    if inferred is None:
        inferred = classify_issue(issue, config)
    return any(label in config.security_labels for label in inferred.values())


def plan_label_application(issue: TrackedIssue, inferred: dict[LabelCategory, str], config: WorkflowConfig) -> LabelChange | None:
    """Merge inferred labels into an issue without breaking category exclusivity.

    An inferred label of an exclusive category is added only when the issue has
    no label of that category; existing labels are never overwritten.
    """
    add: list[str] = []
    for category, label in inferred.items():
        if issue.has_label(label):
            continue
        if config.is_exclusive(category) and labels_in_category(issue, config, category):
            continue
        add.append(label)
    if not add:
        return None
    return LabelChange(issue_number=issue.number, add=add, reason="inferred from issue text")


def check_issue(issue: TrackedIssue, config: WorkflowConfig) -> IssueCheck:
    """Report taxonomy problems of an issue and the labels that would fix them."""
    check = IssueCheck(issue_number=issue.number, title=issue.title)
    inferred = classify_issue(issue, config)
    categories = list(config.required_categories)
    if LabelCategory.STATUS not in categories:
        categories.append(LabelCategory.STATUS)

    for category in categories:
        if labels_in_category(issue, config, category):
            continue
        check.problems.append(f"missing {category.value} label")
        if category in inferred:
            check.suggested_labels.append(inferred[category])
        elif category == LabelCategory.STATUS:
            check.suggested_labels.append(config.effective_default_status)

    for category in LabelCategory:
        held = labels_in_category(issue, config, category)
        if len(held) > 1 and config.is_exclusive(category):
            check.problems.append(f"multiple {category.value} labels: {', '.join(held)}")
    return check
