"""Shared fixtures for vetpref tests."""

from __future__ import annotations

import pytest

from vetpref.config import build_decision_graph, load_tool_config
from vetpref.decision_graph import DecisionGraph
from vetpref.models import Continue, Deferred, Direct, Option, Question, Result
from vetpref.state import AnswerRecord


HONORABLE = "Honorable"
BAD_CONDUCT = "Bad Conduct or Dishonorable"
WARTIME = "Wartime service (WWII, Korea, Vietnam, Gulf War, Iraq/Afghanistan)"
RATED_30 = "Yes, rated 30% or more"
NO_DISABILITY = "No VA-rated service-connected disability and no Purple Heart"
MYSELF = "For myself (I am a veteran or current service member)"
FAMILY = "For a family member"
HR = "I am an HR professional seeking general information"
DISCHARGED = "Discharged/Separated veteran"
RETIRED = "Retired military"
SENIOR_RANK = "Major/Lt. Commander (O-4) or above"
SPOUSE = "Spouse or Unremarried Widow(er)"
SPOUSE_LIVING_PT = (
    "The veteran is living and has a VA-certified service-connected disability "
    "that permanently and totally disqualifies them for employment along the "
    "general lines of their usual occupation (e.g., 100% P&T or IU)."
)
SPOUSE_LIVING_PARTIAL = (
    "The veteran is living, but their disability is less than 100% P&T or does "
    "not prevent them from working."
)


class RecordingRenderer:
    """Renderer that records every callback in order."""

    def __init__(self, fail_on: str | None = None):
        self.events: list[tuple[str, object]] = []
        self.fail_on = fail_on

    def _record(self, kind: str, payload) -> None:
        self.events.append((kind, payload))
        if kind == self.fail_on:
            raise RuntimeError(f"renderer failed on {kind}")

    def on_question_change(self, view: dict) -> None:
        self._record("question", view)

    def on_result(self, view: dict) -> None:
        self._record("result", view)

    def on_progress(self, progress: dict) -> None:
        self._record("progress", progress)

    def on_error(self, message: str) -> None:
        self._record("error", message)

    def last(self, kind: str):
        for event_kind, payload in reversed(self.events):
            if event_kind == kind:
                return payload
        return None

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]


@pytest.fixture(scope="session")
def tool_config() -> dict:
    return load_tool_config("veterans_preference")


@pytest.fixture(scope="session")
def decision_graph(tool_config) -> DecisionGraph:
    return build_decision_graph(tool_config)


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def make_path():
    """Build an answer path from (question_id, answer_text) pairs."""
    def _make(*pairs):
        return [
            AnswerRecord(question_id, answer_text, float(i))
            for i, (question_id, answer_text) in enumerate(pairs)
        ]
    return _make


@pytest.fixture
def small_graph() -> DecisionGraph:
    """Three-question graph mixing direct and deferred outcomes."""
    done = Result(type="info", title="Done", description="All done.")
    questions = {
        "START": Question("START", "First?", (
            Option("Go on", Continue("SECOND")),
            Option("Stop", Direct(done)),
        )),
        "SECOND": Question("SECOND", "Second?", (
            Option("Next", Continue("THIRD")),
            Option("Evaluate", Deferred()),
        ), help_text="Pick one."),
        "THIRD": Question("THIRD", "Third?", (
            Option("Finish", Direct(done)),
        )),
    }
    return DecisionGraph(questions, start_id="START", version="test")
