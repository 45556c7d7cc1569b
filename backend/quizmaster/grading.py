"""Client-independent grading of a quiz submission.

Every question type is graded the same way: trim and lowercase both the
submitted text and the stored correct answer, then compare for equality.
There is no partial credit and no fuzzy or numeric matching.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence


# (threshold, grade) checked top-down against the percentage
GRADE_THRESHOLDS = [
    (90, "A+"),
    (80, "A"),
    (70, "B"),
    (60, "C"),
]
FALLBACK_GRADE = "D"


class IncompleteSubmissionError(ValueError):
    """Raised when a submission does not answer every question exactly once."""


@dataclass
class GradedAnswer:
    question_id: int
    user_answer: str
    is_correct: bool


@dataclass
class GradedSubmission:
    score: int
    max_score: int
    percentage: float
    answers: List[GradedAnswer] = field(default_factory=list)


def normalize(text: str) -> str:
    return (text or "").strip().lower()


def is_correct(user_answer: str, correct_answer: str) -> bool:
    return normalize(user_answer) == normalize(correct_answer)


def compute_percentage(score: int, max_score: int) -> float:
    """Return score/max_score as a percentage rounded to two decimals."""
    if max_score <= 0:
        raise ValueError("max_score must be positive; a quiz needs at least one scored question")
    return round(score / max_score * 100, 2)


def letter_grade(percentage: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if percentage >= threshold:
            return grade
    return FALLBACK_GRADE


def grade_submission(questions: Sequence, answers: Dict[int, str]) -> GradedSubmission:
    """Grade one answer per question.

    Args:
        questions: question rows in order_index order; each needs ``id``,
            ``points`` and ``correct_answer``.
        answers: question id -> raw submitted text.

    Returns:
        GradedSubmission with answers in question order. The raw text is kept,
        normalisation only affects the comparison.

    Raises:
        IncompleteSubmissionError: if the answer count differs from the
            question count or any question is left without an answer.
    """
    if len(answers) != len(questions):
        raise IncompleteSubmissionError(
            f"Expected {len(questions)} answers, got {len(answers)}"
        )
    missing = [q.id for q in questions if q.id not in answers]
    if missing:
        raise IncompleteSubmissionError(f"No answer for question(s) {missing}")

    score = 0
    max_score = 0
    graded: List[GradedAnswer] = []
    for question in questions:
        user_answer = answers[question.id]
        correct = is_correct(user_answer, question.correct_answer)
        max_score += question.points
        if correct:
            score += question.points
        graded.append(GradedAnswer(question_id=question.id, user_answer=user_answer, is_correct=correct))

    return GradedSubmission(
        score=score,
        max_score=max_score,
        percentage=compute_percentage(score, max_score),
        answers=graded,
    )
