"""Navigation state machine: where the user is in the questionnaire.

Owns the current question id, the ordered answer path and the answers map
derived from it. All operations are synchronous; visual transitions are
the controller's concern.
"""

from __future__ import annotations

import logging
import time

from vetpref.decision_graph import DEFAULT_START_ID
from vetpref.state import AnswerRecord, answers_from_path


logger = logging.getLogger(__name__)

# current_question_id while a Result is displayed
RESULT = "__result__"


class NavigationStateMachine:
    """Single source of truth for the user's position in the flow."""

    def __init__(
        self,
        total_steps: int,
        start_id: str = DEFAULT_START_ID,
        clock=time.time,
    ):
        if total_steps < 0:
            raise ValueError("total_steps must not be negative")
        self._total_steps = total_steps
        self._start_id = start_id
        self._clock = clock
        self._answer_path: list[AnswerRecord] = []
        self._answers: dict[str, str] = {}
        self._current_question_id = start_id

    # -----------------------------------------------------------------------
    # Read access
    # -----------------------------------------------------------------------

    @property
    def current_question_id(self) -> str:
        return self._current_question_id

    @property
    def start_id(self) -> str:
        return self._start_id

    @property
    def total_steps(self) -> int:
        return self._total_steps

    @property
    def current_step(self) -> int:
        return len(self._answer_path)

    @property
    def answer_path(self) -> tuple[AnswerRecord, ...]:
        return tuple(self._answer_path)

    @property
    def answers(self) -> dict[str, str]:
        return dict(self._answers)

    @property
    def showing_result(self) -> bool:
        return self._current_question_id == RESULT

    def progress_fraction(self) -> float:
        """Answers recorded over the total-steps estimate, capped at 1.0."""
        if self._total_steps == 0:
            return 0.0
        return min(len(self._answer_path) / self._total_steps, 1.0)

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    def start(self) -> None:
        self._answer_path = []
        self._answers = {}
        self._current_question_id = self._start_id

    def reset(self) -> None:
        # total_steps is fixed for the lifetime of the machine
        self.start()

    def advance(self, answered_question_id: str, answer_text: str, next_question_id: str) -> bool:
        """Record an answer and move to ``next_question_id``.

        Returns False without changing anything when the answer is for a
        question other than the current one (a stale UI event).
        """
        if answered_question_id != self._current_question_id:
            logger.debug(
                "Ignoring answer for %s; current question is %s",
                answered_question_id, self._current_question_id,
            )
            return False

        self._answer_path.append(
            AnswerRecord(answered_question_id, answer_text, self._clock())
        )
        self._answers[answered_question_id] = answer_text
        self._current_question_id = next_question_id
        return True

    def show_result(self) -> None:
        self._current_question_id = RESULT

    def go_back(self) -> bool:
        """Undo the most recent answer.

        Returns False without changing anything when there is nothing to undo.
        """
        if not self._answer_path:
            return False

        last = self._answer_path.pop()
        self._answers = answers_from_path(self._answer_path)
        self._current_question_id = last.question_id
        return True

    # -----------------------------------------------------------------------
    # Snapshots
    # -----------------------------------------------------------------------

    def snapshot(self) -> dict:
        return {
            "answerPath": [record.to_dict() for record in self._answer_path],
            "answers": dict(self._answers),
            "currentQuestionId": self._current_question_id,
        }

    def restore(self, snapshot: dict) -> None:
        """Replace the current state with a snapshot.

        Raises:
            ValueError: If the snapshot is malformed or its answers map does
                        not match its answer path.
        """
        try:
            path = [AnswerRecord.from_dict(item) for item in snapshot["answerPath"]]
            current = str(snapshot["currentQuestionId"])
            answers = dict(snapshot.get("answers", {}))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed navigation snapshot: {e}") from e

        derived = answers_from_path(path)
        if answers and answers != derived:
            raise ValueError("Snapshot answers do not match its answer path")

        self._answer_path = path
        self._answers = derived
        self._current_question_id = current
