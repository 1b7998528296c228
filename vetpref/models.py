"""Data types for the decision graph.

Questions, options and results are immutable once loaded. An option's
outcome is one of three variants:

- Continue: move on to another question.
- Direct: the option points straight at a Result.
- Deferred: the Result is computed from the whole answer path by the
  eligibility evaluator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


RESULT_TYPES = (
    "eligible-5-point",
    "eligible-10-point",
    "eligible-10-point-cps",
    "eligible-10-point-derivative",
    "not-eligible",
    "info",
    "complex",
)

ELIGIBLE_TYPES = frozenset(t for t in RESULT_TYPES if t.startswith("eligible-"))


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Link:
    url: str
    text: str


def dedupe_links(links) -> tuple[Link, ...]:
    """Drop links whose url was already seen, keeping first-seen order."""
    seen: dict[str, Link] = {}
    for link in links:
        if link.url not in seen:
            seen[link.url] = link
    return tuple(seen.values())


@dataclass(frozen=True)
class Result:
    type: str
    title: str
    description: str
    required_documents: tuple[str, ...] = ()
    additional_info: tuple[str, ...] = ()
    links: tuple[Link, ...] = ()
    reasoning: tuple[str, ...] = ()
    confidence: str = "high"

    def __post_init__(self):
        if self.type not in RESULT_TYPES:
            raise ValueError(f"Unknown result type: {self.type!r}")
        # Lists from JSON become tuples
        object.__setattr__(self, "required_documents", tuple(self.required_documents))
        object.__setattr__(self, "additional_info", tuple(self.additional_info))
        object.__setattr__(self, "reasoning", tuple(self.reasoning))
        object.__setattr__(self, "links", dedupe_links(self.links))

    @property
    def is_eligible(self) -> bool:
        return self.type in ELIGIBLE_TYPES


# ---------------------------------------------------------------------------
# Option outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Continue:
    next_question_id: str


@dataclass(frozen=True)
class Direct:
    result: Result
    result_id: str | None = None


@dataclass(frozen=True)
class Deferred:
    pass


Outcome = Union[Continue, Direct, Deferred]


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Option:
    answer_text: str
    outcome: Outcome


@dataclass(frozen=True)
class Condition:
    """Display condition on an earlier answer.

    With ``negate=False`` the condition holds only when the answer to
    ``when`` is one of ``values``. With ``negate=True`` it holds when that
    answer is missing or not one of ``values``.
    """

    when: str
    values: tuple[str, ...]
    negate: bool = False

    def holds(self, answers: dict) -> bool:
        answer = answers.get(self.when)
        if self.negate:
            return answer not in self.values
        return answer in self.values


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    options: tuple[Option, ...]
    help_text: str | None = None
    conditions: tuple[Condition, ...] = field(default=())

    def option_for(self, answer_text: str) -> Option | None:
        """Return the option whose label is ``answer_text``, or None."""
        for option in self.options:
            if option.answer_text == answer_text:
                return option
        return None
