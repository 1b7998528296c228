"""Questionnaire controller.

Binds a DecisionGraph, a NavigationStateMachine and a Renderer together.
State changes are synchronous; the visual transition that follows is a
separate phase guarded by the ``animating`` flag:

1. the flag is set before any state change that has a visual transition,
2. state is mutated and the renderer is called,
3. the flag is cleared once the renderer is done.

With ``wait_for_renderer=False`` step 3 happens as soon as the renderer
callbacks return (or raise). With ``wait_for_renderer=True`` the renderer
must call transition_finished() or transition_failed() itself. While the
flag is set, answer selections, back, restart and key presses are ignored.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Protocol

from vetpref.config import DEFAULT_STORAGE_KEY
from vetpref.decision_graph import DataIntegrityError, DecisionGraph
from vetpref.eligibility import evaluate
from vetpref.models import Result
from vetpref.navigation import RESULT, NavigationStateMachine
from vetpref.routing import Step, route_option
from vetpref.storage import (
    ProgressStore,
    clear_progress,
    load_progress,
    save_progress,
    storage_key,
)
from vetpref.validation import first_blocking_issue, should_show_question, validate_answers
from vetpref.views import (
    CONFIG_ERROR_MESSAGE,
    DEFAULT_DISCLAIMER,
    print_html,
    progress_view,
    question_view,
    result_view,
)


logger = logging.getLogger(__name__)

_NEXT_KEYS = ("ArrowDown", "ArrowRight")
_PREV_KEYS = ("ArrowUp", "ArrowLeft")
_SELECT_KEYS = ("Enter", " ")

_REVIEW_ADVICE = "Please review your answers or consult official OPM guidance for more details."


class Renderer(Protocol):
    """What the controller needs from a view layer."""

    def on_question_change(self, view: dict) -> None: ...
    def on_result(self, view: dict) -> None: ...
    def on_progress(self, progress: dict) -> None: ...
    def on_error(self, message: str) -> None: ...


def not_eligible_result(description: str) -> Result:
    return Result(
        type="not-eligible",
        title="Not Eligible for Veterans' Preference",
        description=description,
        additional_info=[_REVIEW_ADVICE],
    )


class ToolController:
    """Drives one questionnaire session."""

    def __init__(
        self,
        graph: DecisionGraph,
        renderer: Renderer,
        *,
        total_steps: int | None = None,
        evaluator: Callable = evaluate,
        validator: Callable = validate_answers,
        store: ProgressStore | None = None,
        storage_name: str = DEFAULT_STORAGE_KEY,
        announce: Callable[[str], None] | None = None,
        wait_for_renderer: bool = False,
        tool_name: str = "Veterans' Preference Eligibility Tool",
        disclaimer: str = DEFAULT_DISCLAIMER,
        clock=time.time,
    ):
        self._graph = graph
        self._renderer = renderer
        self._evaluator = evaluator
        self._validator = validator
        self._store = store
        self._storage_key = storage_key(storage_name)
        self._announce = announce
        self._wait_for_renderer = wait_for_renderer
        self._tool_name = tool_name
        self._disclaimer = disclaimer

        if total_steps is None:
            total_steps = graph.longest_path_length()
        self.navigation = NavigationStateMachine(total_steps, graph.start_id, clock=clock)

        self._animating = False
        self._result: Result | None = None
        self._error: str | None = None
        self._focus_index = -1

    # -----------------------------------------------------------------------
    # Read access
    # -----------------------------------------------------------------------

    @property
    def animating(self) -> bool:
        return self._animating

    @property
    def result(self) -> Result | None:
        return self._result

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def focus_index(self) -> int:
        return self._focus_index

    @property
    def current_question(self):
        return self._graph.lookup(self.navigation.current_question_id)

    def issues(self) -> list:
        return self._validator(self.navigation.answers)

    # -----------------------------------------------------------------------
    # Transition lock
    # -----------------------------------------------------------------------

    @contextmanager
    def _transition(self):
        self._animating = True
        try:
            yield
        except Exception:
            self._animating = False
            raise
        if not self._wait_for_renderer:
            self._animating = False

    def transition_finished(self) -> None:
        self._animating = False

    def transition_failed(self, exc: BaseException | None = None) -> None:
        logger.error("View transition failed: %s", exc)
        self._animating = False

    # -----------------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------------

    def start(self, confirm_restore: Callable[[], bool] | None = None) -> bool:
        """Begin a session, offering to restore saved progress.

        Saved progress is restored only when ``confirm_restore`` returns
        True; a declined snapshot is discarded. Returns True if progress
        was restored.
        """
        self.navigation.start()
        restored = False

        if self._store is not None:
            snapshot = load_progress(self._store, self._storage_key, self._graph)
            if snapshot is not None:
                if confirm_restore is not None and confirm_restore():
                    restored = self._restore(snapshot)
                else:
                    clear_progress(self._store, self._storage_key)

        with self._transition():
            if restored:
                restored = self._render_restored()
            if not restored:
                self._display_question(self._graph.start_id)
        return restored

    def select_answer(self, question_id: str, answer_text: str) -> bool:
        """Record ``answer_text`` for ``question_id`` and move on.

        Returns False when the selection is ignored: a transition is in
        progress, the question is not the current one, or the answer is not
        one of its options.
        """
        if self._animating:
            logger.debug("Ignoring answer while a transition is in progress")
            return False

        question = self.current_question
        if question is None or question.id != question_id:
            return False
        option = question.option_for(answer_text)
        if option is None:
            logger.debug("Ignoring unknown answer %r for %s", answer_text, question_id)
            return False

        next_id = getattr(option.outcome, "next_question_id", RESULT)
        with self._transition():
            if not self.navigation.advance(question.id, answer_text, next_id):
                return False
            self._save()

            issue = first_blocking_issue(self._validator(self.navigation.answers))
            if issue is not None:
                logger.info("Ending flow early: %s", issue.reason)
                self._show_result(not_eligible_result(issue.message))
                return True

            try:
                step = route_option(self._graph, option, self.navigation.answer_path, self._evaluator)
            except DataIntegrityError as e:
                self._fail(e)
                return True
            self._show_step(step)
        return True

    def select_option(self, index: int) -> bool:
        question = self.current_question
        if question is None or not 0 <= index < len(question.options):
            return False
        return self.select_answer(question.id, question.options[index].answer_text)

    def go_back(self) -> bool:
        if self._animating or self.navigation.current_step == 0:
            return False
        with self._transition():
            self.navigation.go_back()
            self._save()
            self._display_question(self.navigation.current_question_id)
        return True

    def restart(self) -> bool:
        if self._animating:
            return False
        with self._transition():
            self.navigation.reset()
            if self._store is not None:
                clear_progress(self._store, self._storage_key)
            self._display_question(self._graph.start_id)
        return True

    def print_view(self) -> str | None:
        """Printable HTML for the displayed result, or None before a result."""
        if self._result is None:
            return None
        return print_html(self._result, tool_name=self._tool_name, disclaimer=self._disclaimer)

    def handle_key(self, key: str) -> bool:
        """Keyboard navigation over the current question's options."""
        if self._animating:
            return False
        question = self.current_question
        if question is None:
            return False

        count = len(question.options)
        if key in _NEXT_KEYS:
            self._focus_index = (self._focus_index + 1) % count
            return True
        if key in _PREV_KEYS:
            self._focus_index = (self._focus_index - 1) % count
            return True
        if key in _SELECT_KEYS:
            if 0 <= self._focus_index < count:
                return self.select_option(self._focus_index)
            return False
        if key == "Escape":
            return self.go_back()
        return False

    # -----------------------------------------------------------------------
    # Rendering
    # -----------------------------------------------------------------------

    def _progress(self, fraction: float | None = None) -> dict:
        nav = self.navigation
        if fraction is None:
            fraction = nav.progress_fraction()
        return progress_view(fraction, nav.current_step, nav.total_steps)

    def _display_question(self, question_id: str) -> None:
        question = self._graph.lookup(question_id)
        if question is None:
            self._fail(DataIntegrityError(f"Question not found: {question_id}"))
            return

        if not should_show_question(question, self.navigation.answers):
            logger.info("Question %s hidden by its display conditions", question_id)
            self._show_result(not_eligible_result(
                "Based on your previous answers, this path does not lead to "
                "Veterans' Preference eligibility."
            ))
            return

        self._result = None
        self._error = None
        self._focus_index = 0
        self._renderer.on_progress(self._progress())
        self._renderer.on_question_change(question_view(question))
        if self._announce is not None:
            self._announce(f"New question: {question.text}")

    def _show_result(self, result: Result) -> None:
        self.navigation.show_result()
        self._result = result
        self._error = None
        self._focus_index = -1
        self._save()
        self._renderer.on_progress(self._progress(1.0))
        self._renderer.on_result(result_view(result))
        if self._announce is not None:
            self._announce(f"Result: {result.title}. {result.description}")

    def _show_step(self, step: Step) -> None:
        if step.is_result:
            self._show_result(step.result)
        else:
            self._display_question(step.question_id)

    def _fail(self, error: Exception) -> None:
        logger.error("Data integrity error: %s", error)
        self._result = None
        self._error = CONFIG_ERROR_MESSAGE
        self._focus_index = -1
        self._renderer.on_error(CONFIG_ERROR_MESSAGE)

    # -----------------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------------

    def _save(self) -> None:
        if self._store is not None:
            save_progress(self._store, self._storage_key, self.navigation.snapshot(), self._graph.version)

    def _restore(self, snapshot: dict) -> bool:
        try:
            self.navigation.restore(snapshot)
        except ValueError as e:
            logger.warning("Discarding saved progress: %s", e)
            self.navigation.start()
            clear_progress(self._store, self._storage_key)
            return False
        return True

    def _discard_restored(self, reason: str) -> bool:
        logger.warning("Discarding saved progress: %s", reason)
        self.navigation.start()
        clear_progress(self._store, self._storage_key)
        return False

    def _render_restored(self) -> bool:
        """Render the restored position. Returns False if it was unusable."""
        nav = self.navigation
        if not nav.showing_result:
            self._display_question(nav.current_question_id)
            return True

        # Recompute the result from the last recorded answer
        issue = first_blocking_issue(self._validator(nav.answers))
        if issue is not None:
            self._show_result(not_eligible_result(issue.message))
            return True
        last = nav.answer_path[-1] if nav.answer_path else None
        question = self._graph.lookup(last.question_id) if last else None
        option = question.option_for(last.answer_text) if question else None
        if option is None:
            return self._discard_restored("last answer does not match the questionnaire")
        try:
            step = route_option(self._graph, option, nav.answer_path, self._evaluator)
        except DataIntegrityError as e:
            self._fail(e)
            return True
        self._show_step(step)
        return True
