import json
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from . import models, schemas
from .authoring import stored_options
from .grading import GradedSubmission, letter_grade


# --- Accounts ---------------------------------------------------------------


def get_user_by_username(session: Session, username: str) -> Optional[models.User]:
    return session.query(models.User).filter(models.User.username == username).first()


def find_conflicting_user(session: Session, username: str, email: str) -> Optional[models.User]:
    """Return an existing user holding either the username or the email."""
    return (
        session.query(models.User)
        .filter(or_(models.User.username == username, models.User.email == email))
        .first()
    )


def create_user(session: Session, username: str, email: str, hashed_password: str) -> models.User:
    user = models.User(username=username, email=email, hashed_password=hashed_password)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def create_auth_session(session: Session, jti: str, user_id: int, expires_at: datetime) -> models.AuthSession:
    record = models.AuthSession(jti=jti, user_id=user_id, expires_at=expires_at)
    session.add(record)
    session.commit()
    return record


def purge_expired_sessions(session: Session, user_id: int, now: datetime) -> int:
    """Delete the user's sessions whose tokens have already expired."""
    deleted = (
        session.query(models.AuthSession)
        .filter(models.AuthSession.user_id == user_id, models.AuthSession.expires_at < now)
        .delete(synchronize_session=False)
    )
    session.commit()
    return deleted


def get_auth_session(session: Session, jti: str) -> Optional[models.AuthSession]:
    return session.query(models.AuthSession).filter(models.AuthSession.jti == jti).first()


def delete_auth_session(session: Session, jti: str) -> bool:
    deleted = session.query(models.AuthSession).filter(models.AuthSession.jti == jti).delete()
    session.commit()
    return bool(deleted)


# --- Authoring --------------------------------------------------------------


def create_quiz(session: Session, draft: schemas.QuizDraft, creator_id: int) -> models.Quiz:
    """Save a validated draft as one quiz row plus its question rows.

    Both inserts share a single transaction: if the questions fail the quiz
    row is rolled back too, so callers never observe a quiz without questions.
    """
    quiz = models.Quiz(
        title=draft.title.strip(),
        description=draft.description,
        creator_id=creator_id,
        is_public=draft.is_public,
    )
    try:
        session.add(quiz)
        session.flush()  # assigns quiz.id
        for idx, question in enumerate(draft.questions):
            options = stored_options(question)
            session.add(
                models.Question(
                    quiz_id=quiz.id,
                    question_text=question.question_text,
                    question_type=question.question_type,
                    options_json=json.dumps(options, ensure_ascii=False) if options is not None else None,
                    correct_answer=question.correct_answer,
                    points=question.points,
                    order_index=idx,
                )
            )
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(quiz)
    return quiz


# --- Catalog ----------------------------------------------------------------


def list_public_quizzes(session: Session) -> List[models.Quiz]:
    """Return all public quizzes with their creators, newest first."""
    return (
        session.query(models.Quiz)
        .options(joinedload(models.Quiz.creator), selectinload(models.Quiz.questions))
        .filter(models.Quiz.is_public.is_(True))
        .order_by(models.Quiz.created_at.desc(), models.Quiz.id.desc())
        .all()
    )


def filter_by_title(quizzes: List[models.Quiz], term: Optional[str]) -> List[models.Quiz]:
    """Case-insensitive substring match on title over an already-fetched list."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(quizzes)
    return [q for q in quizzes if needle in (q.title or "").lower()]


# --- Taking -----------------------------------------------------------------


def get_quiz_by_id(session: Session, quiz_id: int) -> Optional[models.Quiz]:
    return (
        session.query(models.Quiz)
        .options(joinedload(models.Quiz.creator))
        .filter(models.Quiz.id == quiz_id)
        .first()
    )


def get_questions(session: Session, quiz_id: int) -> List[models.Question]:
    return (
        session.query(models.Question)
        .filter(models.Question.quiz_id == quiz_id)
        .order_by(models.Question.order_index)
        .all()
    )


def can_view_quiz(quiz: models.Quiz, user_id: Optional[int]) -> bool:
    return bool(quiz.is_public) or (user_id is not None and quiz.creator_id == user_id)


def create_attempt(
    session: Session, quiz_id: int, user_id: int, graded: GradedSubmission
) -> models.Attempt:
    """Persist the attempt and its per-question answers in one transaction."""
    attempt = models.Attempt(
        quiz_id=quiz_id,
        user_id=user_id,
        score=graded.score,
        max_score=graded.max_score,
        percentage=graded.percentage,
    )
    try:
        session.add(attempt)
        session.flush()  # assigns attempt.id
        for answer in graded.answers:
            session.add(
                models.Answer(
                    attempt_id=attempt.id,
                    question_id=answer.question_id,
                    user_answer=answer.user_answer,
                    is_correct=answer.is_correct,
                )
            )
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(attempt)
    return attempt


# --- Results ----------------------------------------------------------------


def get_attempt_by_id(session: Session, attempt_id: int) -> Optional[models.Attempt]:
    return (
        session.query(models.Attempt)
        .options(joinedload(models.Attempt.quiz))
        .filter(models.Attempt.id == attempt_id)
        .first()
    )


def list_answers(session: Session, attempt_id: int) -> List[models.Answer]:
    """Return an attempt's answers with their questions, in creation order."""
    return (
        session.query(models.Answer)
        .options(joinedload(models.Answer.question))
        .filter(models.Answer.attempt_id == attempt_id)
        .order_by(models.Answer.created_at, models.Answer.id)
        .all()
    )


# --- Dashboard --------------------------------------------------------------


def count_visible_quizzes(session: Session, user_id: int) -> int:
    return (
        session.query(func.count(models.Quiz.id))
        .filter(or_(models.Quiz.is_public.is_(True), models.Quiz.creator_id == user_id))
        .scalar()
    )


def attempt_stats(session: Session, user_id: int) -> Tuple[int, float]:
    """Return (attempt count, mean percentage rounded to 1 decimal)."""
    count, avg = (
        session.query(func.count(models.Attempt.id), func.avg(models.Attempt.percentage))
        .filter(models.Attempt.user_id == user_id)
        .one()
    )
    return count or 0, round(float(avg), 1) if avg is not None else 0.0


def list_recent_attempts(session: Session, user_id: int, limit: int = 5) -> List[models.Attempt]:
    return (
        session.query(models.Attempt)
        .options(joinedload(models.Attempt.quiz))
        .filter(models.Attempt.user_id == user_id)
        .order_by(models.Attempt.completed_at.desc(), models.Attempt.id.desc())
        .limit(limit)
        .all()
    )


# --- Serialisation ----------------------------------------------------------

_QUESTION_VIEWS = {
    schemas.QuestionType.MCQ.value: schemas.McqQuestionView,
    schemas.QuestionType.TRUE_FALSE.value: schemas.TrueFalseQuestionView,
    schemas.QuestionType.SHORT_ANSWER.value: schemas.ShortAnswerQuestionView,
}


def question_to_view(question: models.Question):
    """Build the variant matching the row's question_type, without the answer."""
    view_cls = _QUESTION_VIEWS[question.question_type]
    fields = {
        "id": question.id,
        "question_text": question.question_text,
        "points": question.points,
        "order_index": question.order_index,
    }
    if view_cls is schemas.McqQuestionView:
        fields["options"] = json.loads(question.options_json or "[]")
    return view_cls(**fields)


def quiz_to_summary(quiz: models.Quiz) -> schemas.QuizSummary:
    return schemas.QuizSummary(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        is_public=quiz.is_public,
        creator_username=quiz.creator.username if quiz.creator else None,
        question_count=len(quiz.questions),
        created_at=quiz.created_at,
    )


def quiz_to_detail(quiz: models.Quiz, questions: List[models.Question]) -> schemas.QuizDetail:
    return schemas.QuizDetail(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        creator_username=quiz.creator.username if quiz.creator else None,
        max_score=sum(q.points for q in questions),
        questions=[question_to_view(q) for q in questions],
    )


def attempt_to_result(attempt: models.Attempt, answers: List[models.Answer]) -> schemas.AttemptResult:
    reviews = [
        schemas.AnswerReview(
            question_id=a.question_id,
            question_text=a.question.question_text,
            question_type=a.question.question_type,
            points=a.question.points,
            user_answer=a.user_answer,
            is_correct=a.is_correct,
            correct_answer=None if a.is_correct else a.question.correct_answer,
        )
        for a in answers
    ]
    return schemas.AttemptResult(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        quiz_title=attempt.quiz.title,
        quiz_description=attempt.quiz.description,
        score=attempt.score,
        max_score=attempt.max_score,
        percentage=attempt.percentage,
        grade=letter_grade(attempt.percentage),
        completed_at=attempt.completed_at,
        answers=reviews,
    )


def attempt_to_recent(attempt: models.Attempt) -> schemas.RecentAttempt:
    return schemas.RecentAttempt(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        quiz_title=attempt.quiz.title,
        score=attempt.score,
        max_score=attempt.max_score,
        percentage=attempt.percentage,
        completed_at=attempt.completed_at,
    )
