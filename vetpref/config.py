"""Tool configuration loader.

Loads questionnaire JSON documents from disk and turns them into a
DecisionGraph. Each tool has a directory under tools/<tool_id>/config.json.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from vetpref.decision_graph import (
    DEFAULT_START_ID,
    DataIntegrityError,
    DecisionGraph,
    GraphConfigError,
)
from vetpref.models import (
    Condition,
    Continue,
    Deferred,
    Direct,
    Link,
    Option,
    Question,
    Result,
)


logger = logging.getLogger(__name__)


class ToolConfigError(DataIntegrityError):
    """Raised when a tool configuration cannot be loaded or is invalid."""


_REQUIRED_SECTIONS = ("tool", "settings", "questions", "results")

DEFAULT_STORAGE_KEY = "tool-state"

# Default base path: <project_root>/tools/
_DEFAULT_BASE_PATH = str(
    Path(__file__).resolve().parent.parent / "tools"
)


def load_tool_config(
    tool_id: str,
    base_path: str | None = None,
) -> dict:
    """Load a tool configuration from a JSON file.

    Args:
        tool_id: Directory name under the tools folder
                 (e.g. "veterans_preference").
        base_path: Root directory containing tool folders. Defaults to the
                   VETPREF_TOOLS_PATH env var, then <project_root>/tools/.

    Returns:
        Parsed tool configuration dict.

    Raises:
        ToolConfigError: If the config file is missing, invalid, or
                         lacks required sections.
    """
    if base_path is None:
        base_path = os.environ.get("VETPREF_TOOLS_PATH", _DEFAULT_BASE_PATH)

    config_path = os.path.join(base_path, tool_id, "config.json")

    if not os.path.isfile(config_path):
        raise ToolConfigError(
            f"Tool configuration not found: {config_path}"
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ToolConfigError(
            f"Tool configuration has invalid JSON: {config_path}: {e}"
        ) from e

    # Validate required sections
    for section in _REQUIRED_SECTIONS:
        if section not in config:
            raise ToolConfigError(
                f"Tool configuration missing required section '{section}': "
                f"{config_path}"
            )

    return config


def load_decision_graph(
    tool_id: str,
    base_path: str | None = None,
) -> DecisionGraph:
    """Load a tool configuration and build its DecisionGraph."""
    config = load_tool_config(tool_id, base_path=base_path)
    graph = build_decision_graph(config)
    logger.info(
        "Loaded tool %s: %d questions, version %s", tool_id, len(graph), graph.version
    )
    return graph


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def tool_settings(config: dict) -> dict:
    """Return the settings section with defaults filled in."""
    settings = dict(config.get("settings") or {})
    settings.setdefault("startQuestionId", DEFAULT_START_ID)
    settings.setdefault("storageKey", DEFAULT_STORAGE_KEY)
    settings.setdefault("version", "1")
    settings.setdefault("totalSteps", None)
    return settings


def total_steps_for(config: dict, graph: DecisionGraph) -> int:
    """Configured total-steps estimate, or the graph's longest path."""
    configured = tool_settings(config)["totalSteps"]
    if configured is None:
        return graph.longest_path_length()
    return int(configured)


# ---------------------------------------------------------------------------
# Document parsing
# ---------------------------------------------------------------------------

def parse_result(data: dict) -> Result:
    """Build a Result from its JSON representation."""
    try:
        return Result(
            type=data["type"],
            title=data["title"],
            description=data["description"],
            required_documents=data.get("requiredDocuments") or (),
            additional_info=data.get("additionalInfo") or (),
            links=[Link(url=link["url"], text=link["text"]) for link in data.get("links") or ()],
            reasoning=data.get("reasoning") or (),
            confidence=data.get("confidence", "high"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise GraphConfigError(f"Invalid result definition: {e}") from e


def _parse_condition(data: dict) -> Condition:
    if "equals" in data:
        values, negate = data["equals"], False
    elif "notEquals" in data:
        values, negate = data["notEquals"], True
    else:
        raise GraphConfigError(f"Condition on {data.get('when')!r} has no operator")
    if isinstance(values, str):
        values = [values]
    return Condition(when=data["when"], values=tuple(values), negate=negate)


def _parse_option(question_id: str, data: dict, results: dict[str, Result]) -> Option:
    text = data.get("answerText")
    if not text:
        raise GraphConfigError(f"Question {question_id} has an option without answerText")

    present = [k for k in ("nextQuestionId", "resultId", "resultOutcome") if k in data]
    if len(present) != 1:
        raise GraphConfigError(
            f"Question {question_id} option {text!r} must define exactly one of "
            f"nextQuestionId, resultId or resultOutcome (found {present or 'none'})"
        )

    key = present[0]
    if key == "nextQuestionId":
        return Option(answer_text=text, outcome=Continue(data["nextQuestionId"]))
    if key == "resultId":
        result_id = data["resultId"]
        if result_id not in results:
            raise GraphConfigError(
                f"Question {question_id} option {text!r} points at unknown result {result_id!r}"
            )
        return Option(answer_text=text, outcome=Direct(results[result_id], result_id=result_id))

    outcome = data["resultOutcome"]
    if outcome == "evaluate":
        return Option(answer_text=text, outcome=Deferred())
    if isinstance(outcome, dict):
        return Option(answer_text=text, outcome=Direct(parse_result(outcome)))
    raise GraphConfigError(
        f"Question {question_id} option {text!r} has an invalid resultOutcome: {outcome!r}"
    )


def _parse_question(question_id: str, data: dict, results: dict[str, Result]) -> Question:
    if "questionText" not in data:
        raise GraphConfigError(f"Question {question_id} has no questionText")
    return Question(
        id=data.get("id", question_id),
        text=data["questionText"],
        help_text=data.get("helpText"),
        options=tuple(_parse_option(question_id, o, results) for o in data.get("answers", [])),
        conditions=tuple(_parse_condition(c) for c in data.get("conditions", [])),
    )


def build_decision_graph(config: dict) -> DecisionGraph:
    """Build a validated DecisionGraph from a parsed tool configuration.

    Raises:
        GraphConfigError: If the document's graph is structurally invalid.
    """
    settings = tool_settings(config)
    results = {rid: parse_result(r) for rid, r in config["results"].items()}
    questions = {
        qid: _parse_question(qid, q, results)
        for qid, q in config["questions"].items()
    }
    return DecisionGraph(
        questions,
        results,
        start_id=settings["startQuestionId"],
        version=str(settings["version"]),
    )
