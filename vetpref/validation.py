"""Cross-checks on the answers recorded so far.

Graph traversal alone cannot rule out incoherent combinations reachable by
direct links, so the controller runs these rules after every answer. An
issue of kind ``not_eligible`` ends the flow early.
"""

from __future__ import annotations

from dataclasses import dataclass

from vetpref.eligibility import (
    DISABILITY_STATUS,
    DISCHARGE_TYPE,
    RETIRED_OFFICER_DISABILITY,
    is_disqualifying_discharge,
    is_senior_retired_officer,
)
from vetpref.models import Question


NOT_ELIGIBLE = "not_eligible"
WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    kind: str
    reason: str
    message: str


def validate_answers(answers: dict) -> list[ValidationIssue]:
    """Return the issues found in an answers map, in rule order."""
    issues: list[ValidationIssue] = []

    if is_senior_retired_officer(answers) and (answers.get(RETIRED_OFFICER_DISABILITY) or "").strip() == "No":
        issues.append(ValidationIssue(
            kind=NOT_ELIGIBLE,
            reason="retired_officer_without_disability",
            message=(
                "Retired officers at O-4 or above are generally only eligible for "
                "Veterans' Preference if they are disabled veterans."
            ),
        ))

    if is_disqualifying_discharge(answers.get(DISCHARGE_TYPE)) and DISABILITY_STATUS in answers:
        issues.append(ValidationIssue(
            kind=NOT_ELIGIBLE,
            reason="disqualifying_discharge",
            message=(
                "A discharge that is not honorable or general (under honorable "
                "conditions) does not qualify for Veterans' Preference."
            ),
        ))

    return issues


def first_blocking_issue(issues: list[ValidationIssue]) -> ValidationIssue | None:
    for issue in issues:
        if issue.kind == NOT_ELIGIBLE:
            return issue
    return None


def should_show_question(question: Question, answers: dict) -> bool:
    """True when every display condition on ``question`` holds."""
    return all(condition.holds(answers) for condition in question.conditions)
