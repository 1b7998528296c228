"""Routing for answered questions.

route_option() resolves a selected option to the next step for the
controller. The route_after_question() functions serve the same purpose as
conditional edges in the compiled LangGraph.
"""

from __future__ import annotations

from dataclasses import dataclass

from langgraph.graph import END

from vetpref.decision_graph import DataIntegrityError, DecisionGraph
from vetpref.models import Continue, Deferred, Direct, Option, Question, Result


EVALUATE_NODE = "evaluate"


@dataclass(frozen=True)
class Step:
    """Where an answer leads: another question, or a final result."""

    question_id: str | None = None
    result: Result | None = None

    @property
    def is_result(self) -> bool:
        return self.result is not None


def route_option(graph: DecisionGraph, option: Option, answer_path, evaluator) -> Step:
    """Resolve ``option`` to the next step.

    ``answer_path`` must already include the answer for ``option`` so that
    deferred outcomes see it.

    Raises:
        DataIntegrityError: If the option points at a question that does
                            not exist, or carries no usable outcome.
    """
    outcome = option.outcome
    if isinstance(outcome, Continue):
        if graph.lookup(outcome.next_question_id) is None:
            raise DataIntegrityError(f"Question not found: {outcome.next_question_id}")
        return Step(question_id=outcome.next_question_id)
    if isinstance(outcome, Direct):
        return Step(result=outcome.result)
    if isinstance(outcome, Deferred):
        return Step(result=evaluator(answer_path))
    raise DataIntegrityError(f"Option {option.answer_text!r} has no outcome")


# ---------------------------------------------------------------------------
# LangGraph conditional edges
# ---------------------------------------------------------------------------

def result_node_name(question: Question, index: int) -> str:
    """Graph node name for the terminal outcome of an option."""
    outcome = question.options[index].outcome
    if isinstance(outcome, Deferred):
        return EVALUATE_NODE
    if isinstance(outcome, Direct) and outcome.result_id:
        return f"result.{outcome.result_id}"
    return f"result.{question.id}.{index}"


def option_target(question: Question, index: int) -> str:
    outcome = question.options[index].outcome
    if isinstance(outcome, Continue):
        return outcome.next_question_id
    return result_node_name(question, index)


def route_after_question(question: Question):
    """Build the conditional-edge function for ``question``.

    Routes on the recorded answer; an unanswered question ends the replay.
    """
    def route(state: dict) -> str:
        answer = (state.get("answers") or {}).get(question.id)
        for index, option in enumerate(question.options):
            if option.answer_text == answer:
                return option_target(question, index)
        return END

    route.__name__ = f"route_after_{question.id.lower()}"
    return route
