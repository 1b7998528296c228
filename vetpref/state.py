"""State types shared by the navigation state machine and the LangGraph replay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict


@dataclass(frozen=True)
class AnswerRecord:
    question_id: str
    answer_text: str
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "questionId": self.question_id,
            "answerText": self.answer_text,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnswerRecord":
        return cls(
            question_id=str(data["questionId"]),
            answer_text=str(data["answerText"]),
            timestamp=float(data.get("timestamp", 0.0)),
        )


def answers_from_path(answer_path) -> dict[str, str]:
    """Fold an answer path into a question_id -> answer_text mapping."""
    answers: dict[str, str] = {}
    for record in answer_path:
        answers[record.question_id] = record.answer_text
    return answers


class ToolState(TypedDict, total=False):
    # Inputs
    answers: dict

    # Replay output
    visited: list[str]
    outcome: str | None
    result_id: str | None
