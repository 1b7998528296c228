"""LangGraph view of the decision graph.

build_graph() compiles a DecisionGraph into a LangGraph StateGraph: one
node per question, one terminal node per distinct result, and a shared
"evaluate" node for deferred outcomes. Compilation checks every edge target
exists, and the compiled graph is useful for visualization.

replay() runs a finished answers map through the compiled graph and reports
the questions visited and the outcome reached.
"""

from __future__ import annotations

from langgraph.graph import StateGraph, START, END

from vetpref.decision_graph import DecisionGraph
from vetpref.eligibility import evaluate
from vetpref.models import Continue, Direct
from vetpref.routing import EVALUATE_NODE, option_target, result_node_name, route_after_question
from vetpref.state import AnswerRecord, ToolState


def _visit(question_id: str):
    def node(state: dict) -> dict:
        return {"visited": list(state.get("visited") or []) + [question_id]}
    node.__name__ = f"visit_{question_id.lower()}"
    return node


def _finish(name: str, result_type):
    def node(state: dict) -> dict:
        outcome = result_type(state) if callable(result_type) else result_type
        return {"outcome": outcome, "result_id": name}
    node.__name__ = f"finish_{name.lower().replace('.', '_')}"
    return node


def _evaluated_type(state: dict) -> str:
    path = [
        AnswerRecord(question_id, answer_text, 0.0)
        for question_id, answer_text in (state.get("answers") or {}).items()
    ]
    return evaluate(path).type


def build_graph(decision_graph: DecisionGraph):
    """Build and compile the LangGraph StateGraph for a decision graph."""
    builder = StateGraph(ToolState)

    terminals: dict[str, object] = {}
    for question_id in decision_graph.question_ids():
        question = decision_graph.lookup(question_id)
        builder.add_node(question_id, _visit(question_id))
        for index, option in enumerate(question.options):
            if isinstance(option.outcome, Continue):
                continue
            name = result_node_name(question, index)
            if isinstance(option.outcome, Direct):
                terminals[name] = option.outcome.result.type
            else:
                terminals[EVALUATE_NODE] = _evaluated_type

    for name, result_type in terminals.items():
        builder.add_node(name, _finish(name, result_type))
        builder.add_edge(name, END)

    builder.add_edge(START, decision_graph.start_id)
    for question_id in decision_graph.question_ids():
        question = decision_graph.lookup(question_id)
        targets = [option_target(question, i) for i in range(len(question.options))]
        path_map = list(dict.fromkeys(targets + [END]))
        builder.add_conditional_edges(question_id, route_after_question(question), path_map)

    return builder.compile()


def replay(compiled, answers: dict) -> dict:
    """Run an answers map through a compiled graph.

    Returns the final state: ``visited`` lists the questions passed through
    in order, ``outcome`` is the result type reached (None when the answers
    stop before a result) and ``result_id`` names the terminal node.
    """
    initial: ToolState = {
        "answers": dict(answers),
        "visited": [],
        "outcome": None,
        "result_id": None,
    }
    return compiled.invoke(initial)
