from typing import Optional

from .grading import normalize
from .schemas import McqQuestionDraft, QuizDraft, TrueFalseQuestionDraft


class QuizValidationError(ValueError):
    """A quiz draft failed validation; ``field`` names the offending input."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


def validate_quiz_draft(draft: QuizDraft) -> None:
    """Reject the first problem found in a draft; runs before any write."""
    if not draft.title.strip():
        raise QuizValidationError("title", "Please enter a quiz title")

    if not draft.questions:
        raise QuizValidationError("questions", "Please add at least one question")

    for idx, question in enumerate(draft.questions):
        number = idx + 1
        field = f"questions[{idx}]"
        if not question.question_text.strip():
            raise QuizValidationError(f"{field}.question_text", f"Question {number} is empty")
        if not question.correct_answer.strip():
            raise QuizValidationError(
                f"{field}.correct_answer", f"Question {number} needs a correct answer"
            )
        if question.points < 1:
            raise QuizValidationError(
                f"{field}.points", f"Question {number} must be worth at least 1 point"
            )
        if isinstance(question, TrueFalseQuestionDraft) and normalize(question.correct_answer) not in (
            "true",
            "false",
        ):
            raise QuizValidationError(
                f"{field}.correct_answer", f"Question {number} must be answered true or false"
            )
        if isinstance(question, McqQuestionDraft) and not any(o.strip() for o in question.options):
            raise QuizValidationError(f"{field}.options", f"Question {number} needs at least one option")


def stored_options(question) -> Optional[list]:
    """Options are persisted for multiple-choice questions only."""
    if isinstance(question, McqQuestionDraft):
        return list(question.options)
    return None
