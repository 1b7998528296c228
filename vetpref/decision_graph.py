"""Immutable decision graph of questions and results.

The graph is checked once at construction: every successor reference must
resolve, every option must carry exactly one outcome, and the question
edges must not form a cycle. After that it is read-only and safe to share
between any number of sessions.
"""

from __future__ import annotations

import logging

from vetpref.models import Continue, Direct, Question, Result


logger = logging.getLogger(__name__)

DEFAULT_START_ID = "START"


class DataIntegrityError(Exception):
    """Raised when questionnaire data is inconsistent or cannot be used."""


class GraphConfigError(DataIntegrityError):
    """Raised when the decision graph is structurally invalid."""


class DecisionGraph:
    """Read-only store of questions keyed by id, entered at ``start_id``."""

    def __init__(
        self,
        questions: dict[str, Question],
        results: dict[str, Result] | None = None,
        start_id: str = DEFAULT_START_ID,
        version: str = "1",
    ):
        self._questions = dict(questions)
        self._results = dict(results or {})
        self._start_id = start_id
        self._version = version
        self._check_references()
        self._check_acyclic()

        unreachable = set(self._questions) - self.reachable_ids()
        for question_id in sorted(unreachable):
            logger.warning("Question %s is not reachable from %s", question_id, start_id)

    @property
    def start_id(self) -> str:
        return self._start_id

    @property
    def version(self) -> str:
        return self._version

    def lookup(self, question_id: str) -> Question | None:
        return self._questions.get(question_id)

    def result(self, result_id: str) -> Result | None:
        return self._results.get(result_id)

    def question_ids(self) -> list[str]:
        return list(self._questions)

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._questions

    def __len__(self) -> int:
        return len(self._questions)

    # -----------------------------------------------------------------------
    # Traversal helpers
    # -----------------------------------------------------------------------

    def successors(self, question_id: str) -> list[str]:
        """Question ids directly reachable from ``question_id``, in option order."""
        question = self._questions[question_id]
        seen: list[str] = []
        for option in question.options:
            if isinstance(option.outcome, Continue):
                nxt = option.outcome.next_question_id
                if nxt not in seen:
                    seen.append(nxt)
        return seen

    def reachable_ids(self) -> set[str]:
        reached: set[str] = set()
        stack = [self._start_id]
        while stack:
            current = stack.pop()
            if current in reached:
                continue
            reached.add(current)
            stack.extend(self.successors(current))
        return reached

    def longest_path_length(self) -> int:
        """Number of questions on the longest path starting at START.

        Used as the progress-bar estimate when the document does not set
        one explicitly.
        """
        memo: dict[str, int] = {}

        def depth(question_id: str) -> int:
            if question_id not in memo:
                children = self.successors(question_id)
                memo[question_id] = 1 + max((depth(c) for c in children), default=0)
            return memo[question_id]

        return depth(self._start_id)

    # -----------------------------------------------------------------------
    # Construction-time checks
    # -----------------------------------------------------------------------

    def _check_references(self) -> None:
        if self._start_id not in self._questions:
            raise GraphConfigError(f"Start question not found: {self._start_id}")

        for question_id, question in self._questions.items():
            if question.id != question_id:
                raise GraphConfigError(
                    f"Question keyed as {question_id!r} declares id {question.id!r}"
                )
            if not question.options:
                raise GraphConfigError(f"Question {question_id} has no options")
            for option in question.options:
                outcome = option.outcome
                if isinstance(outcome, Continue):
                    if outcome.next_question_id not in self._questions:
                        raise GraphConfigError(
                            f"Question {question_id} option {option.answer_text!r} "
                            f"points at unknown question {outcome.next_question_id!r}"
                        )
                elif isinstance(outcome, Direct):
                    if outcome.result_id is not None and outcome.result_id not in self._results:
                        raise GraphConfigError(
                            f"Question {question_id} option {option.answer_text!r} "
                            f"points at unknown result {outcome.result_id!r}"
                        )
            for condition in question.conditions:
                if condition.when not in self._questions:
                    raise GraphConfigError(
                        f"Question {question_id} has a condition on unknown "
                        f"question {condition.when!r}"
                    )

    def _check_acyclic(self) -> None:
        # Iterative three-colour DFS over question edges
        white, grey, black = 0, 1, 2
        colour = {qid: white for qid in self._questions}

        for root in self._questions:
            if colour[root] != white:
                continue
            stack = [(root, iter(self.successors(root)))]
            colour[root] = grey
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    colour[node] = black
                    stack.pop()
                elif colour[child] == grey:
                    path = [n for n, _ in stack]
                    cycle = path[path.index(child):] + [child]
                    raise GraphConfigError(
                        "Decision graph contains a cycle: " + " -> ".join(cycle)
                    )
                elif colour[child] == white:
                    colour[child] = grey
                    stack.append((child, iter(self.successors(child))))
