"""Tests for ToolController: transitions, locking, persistence and keyboard."""

import json

import pytest

from conftest import (
    DISCHARGED,
    HONORABLE,
    HR,
    MYSELF,
    RATED_30,
    RETIRED,
    SENIOR_RANK,
    WARTIME,
    RecordingRenderer,
)
from vetpref.controller import ToolController
from vetpref.decision_graph import DataIntegrityError, DecisionGraph
from vetpref.models import Condition, Continue, Deferred, Option, Question
from vetpref.storage import InMemoryProgressStore, storage_key
from vetpref.views import CONFIG_ERROR_MESSAGE


@pytest.fixture
def controller(decision_graph, renderer):
    return ToolController(decision_graph, renderer)


def _answer_all(controller, *pairs):
    for question_id, answer in pairs:
        assert controller.select_answer(question_id, answer), (question_id, answer)


# ---------------------------------------------------------------------------
# Basic flow
# ---------------------------------------------------------------------------

def test_start_displays_first_question(controller, renderer):
    assert controller.start() is False
    assert renderer.kinds() == ["progress", "question"]
    view = renderer.last("question")
    assert view["id"] == "START"
    assert HR in view["options"]
    assert renderer.last("progress")["fraction"] == 0.0
    assert not controller.animating


def test_full_path_to_deferred_result(controller, renderer):
    controller.start()
    _answer_all(
        controller,
        ("START", MYSELF),
        ("VETERAN_STATUS", DISCHARGED),
        ("DISCHARGE_TYPE", HONORABLE),
        ("SERVICE_DATES", WARTIME),
        ("VERIFY_WARTIME_PERIOD", "Yes"),
        ("DISABILITY_STATUS", RATED_30),
    )
    result = renderer.last("result")
    assert result["type"] == "eligible-10-point-cps"
    assert result["eligible"] is True
    assert controller.result.type == "eligible-10-point-cps"
    assert controller.navigation.showing_result
    assert controller.navigation.current_step == 6
    assert renderer.last("progress")["fraction"] == 1.0


def test_direct_result(controller, renderer):
    controller.start()
    _answer_all(controller, ("START", HR))
    assert renderer.last("result")["title"] == "Information Only"


def test_stale_or_unknown_answers_ignored(controller, renderer):
    controller.start()
    before = list(renderer.events)
    assert not controller.select_answer("VETERAN_STATUS", DISCHARGED)
    assert not controller.select_answer("START", "Something else")
    assert renderer.events == before
    assert controller.navigation.current_step == 0


def test_progress_counts_answers(controller, renderer):
    controller.start()
    _answer_all(controller, ("START", MYSELF), ("VETERAN_STATUS", DISCHARGED))
    progress = renderer.last("progress")
    assert progress["currentStep"] == 2
    assert progress["totalSteps"] == 7
    assert progress["fraction"] == pytest.approx(2 / 7)


def test_announcements(decision_graph, renderer):
    messages = []
    controller = ToolController(decision_graph, renderer, announce=messages.append)
    controller.start()
    controller.select_answer("START", HR)

    assert messages[0] == "New question: " + decision_graph.lookup("START").text
    assert messages[1].startswith("Result: Information Only. ")


# ---------------------------------------------------------------------------
# Validator and display conditions
# ---------------------------------------------------------------------------

def test_validator_ends_flow_even_when_edge_continues(renderer):
    questions = {
        "VETERAN_STATUS": Question("VETERAN_STATUS", "Status?", (
            Option(RETIRED, Continue("RETIREMENT_TYPE")),
        )),
        "RETIREMENT_TYPE": Question("RETIREMENT_TYPE", "Rank?", (
            Option(SENIOR_RANK, Continue("RETIRED_OFFICER_DISABILITY")),
        )),
        "RETIRED_OFFICER_DISABILITY": Question("RETIRED_OFFICER_DISABILITY", "Disabled?", (
            Option("Yes", Continue("DISABILITY_STATUS")),
            Option("No", Continue("DISABILITY_STATUS")),
        )),
        "DISABILITY_STATUS": Question("DISABILITY_STATUS", "Rating?", (
            Option(RATED_30, Deferred()),
        )),
    }
    graph = DecisionGraph(questions, start_id="VETERAN_STATUS")
    controller = ToolController(graph, renderer)
    controller.start()
    _answer_all(
        controller,
        ("VETERAN_STATUS", RETIRED),
        ("RETIREMENT_TYPE", SENIOR_RANK),
        ("RETIRED_OFFICER_DISABILITY", "No"),
    )
    assert renderer.last("result")["type"] == "not-eligible"
    assert renderer.last("question")["id"] == "RETIRED_OFFICER_DISABILITY"
    assert controller.navigation.showing_result


def test_senior_officer_without_disability_on_bundled_graph(controller, renderer):
    controller.start()
    _answer_all(
        controller,
        ("START", MYSELF),
        ("VETERAN_STATUS", RETIRED),
        ("RETIREMENT_TYPE", SENIOR_RANK),
        ("RETIRED_OFFICER_DISABILITY", "No"),
    )
    assert renderer.last("result")["type"] == "not-eligible"


def test_hidden_question_ends_with_not_eligible(renderer):
    questions = {
        "START": Question("START", "Pick", (
            Option("Bad", Continue("NEXT")),
            Option("Good", Continue("NEXT")),
        )),
        "NEXT": Question(
            "NEXT", "Next?", (Option("Done", Deferred()),),
            conditions=(Condition("START", ("Bad",), negate=True),),
        ),
    }
    controller = ToolController(DecisionGraph(questions), renderer)
    controller.start()
    controller.select_answer("START", "Bad")
    assert renderer.last("result")["type"] == "not-eligible"
    assert controller.result.type == "not-eligible"


# ---------------------------------------------------------------------------
# Errors and the animating lock
# ---------------------------------------------------------------------------

def test_runtime_data_integrity_error_renders_message(small_graph, renderer):
    def broken_evaluator(path):
        raise DataIntegrityError("no rules for this path")

    controller = ToolController(small_graph, renderer, evaluator=broken_evaluator)
    controller.start()
    assert controller.select_answer("START", "Go on")
    assert controller.select_answer("SECOND", "Evaluate")
    assert renderer.last("error") == CONFIG_ERROR_MESSAGE
    assert controller.error == CONFIG_ERROR_MESSAGE
    assert controller.result is None
    assert not controller.animating


def test_lock_drops_answers_until_transition_finishes(small_graph, renderer):
    controller = ToolController(small_graph, renderer, wait_for_renderer=True)
    controller.start()
    assert controller.animating
    assert not controller.select_answer("START", "Go on")
    assert not controller.restart()
    assert not controller.handle_key("ArrowDown")

    controller.transition_finished()
    assert controller.select_answer("START", "Go on")
    assert controller.animating
    assert not controller.select_answer("SECOND", "Next")
    assert controller.navigation.current_step == 1

    controller.transition_failed(RuntimeError("animation interrupted"))
    assert not controller.animating
    assert controller.select_answer("SECOND", "Next")


def test_lock_released_when_renderer_raises(small_graph):
    renderer = RecordingRenderer(fail_on="question")
    controller = ToolController(small_graph, renderer)
    with pytest.raises(RuntimeError):
        controller.start()
    assert not controller.animating


# ---------------------------------------------------------------------------
# Back, restart, keyboard, print
# ---------------------------------------------------------------------------

def test_go_back(controller, renderer):
    controller.start()
    assert not controller.go_back()
    _answer_all(controller, ("START", MYSELF), ("VETERAN_STATUS", DISCHARGED))
    assert controller.go_back()
    assert renderer.last("question")["id"] == "VETERAN_STATUS"
    assert controller.navigation.answers == {"START": MYSELF}


def test_go_back_from_result(controller, renderer):
    controller.start()
    _answer_all(controller, ("START", HR))
    assert controller.go_back()
    assert renderer.last("question")["id"] == "START"
    assert controller.result is None
    assert controller.print_view() is None


def test_restart_matches_first_display(controller, renderer):
    controller.start()
    first_question = renderer.last("question")
    first_progress = renderer.last("progress")

    _answer_all(controller, ("START", MYSELF), ("VETERAN_STATUS", DISCHARGED))
    assert controller.restart()

    assert renderer.last("question") == first_question
    assert renderer.last("progress") == first_progress
    assert controller.navigation.answers == {}


def test_keyboard_navigation(controller, renderer):
    controller.start()
    assert controller.focus_index == 0
    assert controller.handle_key("ArrowDown")
    assert controller.focus_index == 1
    assert controller.handle_key("ArrowUp")
    assert controller.handle_key("ArrowLeft")
    assert controller.focus_index == 2
    assert controller.handle_key("ArrowRight")
    assert controller.focus_index == 0
    assert not controller.handle_key("Tab")

    assert controller.handle_key(" ")
    assert renderer.last("question")["id"] == "VETERAN_STATUS"

    assert controller.handle_key("Escape")
    assert renderer.last("question")["id"] == "START"

    controller.handle_key("ArrowUp")
    assert controller.handle_key("Enter")
    assert renderer.last("result")["type"] == "info"
    assert not controller.handle_key("ArrowDown")


def test_print_view(controller):
    controller.start()
    assert controller.print_view() is None
    _answer_all(controller, ("START", HR))
    html = controller.print_view()
    assert "Information Only" in html
    assert "<button" not in html
    assert "<script" not in html


# ---------------------------------------------------------------------------
# Saved progress
# ---------------------------------------------------------------------------

KEY = storage_key("tool-state")


def test_progress_saved_after_each_answer(decision_graph, renderer):
    store = InMemoryProgressStore()
    controller = ToolController(decision_graph, renderer, store=store)
    controller.start()
    controller.select_answer("START", MYSELF)
    saved = json.loads(store.get(KEY))
    assert saved["currentQuestionId"] == "VETERAN_STATUS"
    assert saved["answers"] == {"START": MYSELF}
    assert saved["graphVersion"] == "1.0"


def test_restore_on_confirmation(decision_graph):
    store = InMemoryProgressStore()
    first = ToolController(decision_graph, RecordingRenderer(), store=store)
    first.start()
    _answer_all(first, ("START", MYSELF), ("VETERAN_STATUS", DISCHARGED))

    renderer = RecordingRenderer()
    second = ToolController(decision_graph, renderer, store=store)
    assert second.start(confirm_restore=lambda: True)
    assert renderer.last("question")["id"] == "DISCHARGE_TYPE"
    assert renderer.last("progress")["currentStep"] == 2
    assert second.select_answer("DISCHARGE_TYPE", HONORABLE)


def test_declined_restore_discards_snapshot(decision_graph):
    store = InMemoryProgressStore()
    first = ToolController(decision_graph, RecordingRenderer(), store=store)
    first.start()
    _answer_all(first, ("START", MYSELF))

    renderer = RecordingRenderer()
    second = ToolController(decision_graph, renderer, store=store)
    assert not second.start(confirm_restore=lambda: False)
    assert renderer.last("question")["id"] == "START"
    assert store.get(KEY) is None


def test_restore_not_offered_without_snapshot(decision_graph, renderer):
    asked = []
    controller = ToolController(decision_graph, renderer, store=InMemoryProgressStore())
    assert not controller.start(confirm_restore=lambda: asked.append(True) or True)
    assert asked == []


def test_corrupt_snapshot_ignored(decision_graph, renderer):
    store = InMemoryProgressStore()
    store.set(KEY, "{not json")
    asked = []
    controller = ToolController(decision_graph, renderer, store=store)
    assert not controller.start(confirm_restore=lambda: asked.append(True) or True)
    assert asked == []
    assert renderer.last("question")["id"] == "START"


def test_snapshot_with_unhashable_question_id_ignored(decision_graph, renderer):
    store = InMemoryProgressStore()
    store.set(KEY, json.dumps({
        "answerPath": [{"questionId": ["START"], "answerText": "x"}],
        "currentQuestionId": "START",
        "graphVersion": "1.0",
    }))
    controller = ToolController(decision_graph, renderer, store=store)
    assert not controller.start(confirm_restore=lambda: True)
    assert renderer.last("question")["id"] == "START"
    assert renderer.last("error") is None


def test_result_snapshot_without_answers_ignored(decision_graph, renderer):
    store = InMemoryProgressStore()
    store.set(KEY, json.dumps({
        "answerPath": [], "answers": {}, "currentQuestionId": "__result__", "graphVersion": "1.0",
    }))
    controller = ToolController(decision_graph, renderer, store=store)
    assert not controller.start(confirm_restore=lambda: True)
    assert renderer.last("question")["id"] == "START"
    assert renderer.last("error") is None


def test_restored_result_with_stale_answer_starts_over(decision_graph, renderer):
    store = InMemoryProgressStore()
    store.set(KEY, json.dumps({
        "answerPath": [{"questionId": "START", "answerText": "An answer that was removed", "timestamp": 0}],
        "answers": {"START": "An answer that was removed"},
        "currentQuestionId": "__result__",
        "graphVersion": "1.0",
    }))
    controller = ToolController(decision_graph, renderer, store=store)
    assert not controller.start(confirm_restore=lambda: True)
    assert renderer.kinds() == ["progress", "question"]
    assert renderer.last("question")["id"] == "START"
    assert controller.error is None
    assert controller.navigation.current_step == 0
    assert store.get(KEY) is None


def test_restore_shows_saved_result(decision_graph):
    store = InMemoryProgressStore()
    first = ToolController(decision_graph, RecordingRenderer(), store=store)
    first.start()
    _answer_all(first, ("START", HR))

    renderer = RecordingRenderer()
    second = ToolController(decision_graph, renderer, store=store)
    assert second.start(confirm_restore=lambda: True)
    assert renderer.last("result")["type"] == "info"


def test_restart_clears_saved_progress(decision_graph, renderer):
    store = InMemoryProgressStore()
    controller = ToolController(decision_graph, renderer, store=store)
    controller.start()
    controller.select_answer("START", MYSELF)
    controller.restart()
    assert store.get(KEY) is None


def test_sessions_are_independent(decision_graph):
    first = ToolController(decision_graph, RecordingRenderer())
    second = ToolController(decision_graph, RecordingRenderer())
    first.start()
    second.start()
    first.select_answer("START", MYSELF)
    assert second.navigation.current_step == 0
    assert second.navigation.current_question_id == "START"
