import json

import pytest
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import IntegrityError

from quizmaster import crud, models
from quizmaster.authoring import QuizValidationError, stored_options, validate_quiz_draft
from quizmaster.grading import GradedAnswer, GradedSubmission
from quizmaster.schemas import (
    McqQuestionDraft,
    QuestionDraft,
    QuizDraft,
    ShortAnswerQuestionDraft,
    TrueFalseQuestionDraft,
)


def _draft(**overrides):
    data = {
        "title": "Quiz",
        "questions": [{"question_type": "short_answer", "question_text": "Q?", "correct_answer": "A"}],
    }
    data.update(overrides)
    return QuizDraft.model_validate(data)


class TestQuestionDraftVariants:
    def test_discriminator_picks_variant(self):
        adapter = TypeAdapter(QuestionDraft)

        assert isinstance(adapter.validate_python({"question_type": "mcq"}), McqQuestionDraft)
        assert isinstance(adapter.validate_python({"question_type": "true_false"}), TrueFalseQuestionDraft)
        assert isinstance(adapter.validate_python({"question_type": "short_answer"}), ShortAnswerQuestionDraft)

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            TypeAdapter(QuestionDraft).validate_python({"question_type": "essay"})

    def test_options_only_stored_for_mcq(self):
        assert stored_options(McqQuestionDraft(options=["a", "b"])) == ["a", "b"]
        assert stored_options(TrueFalseQuestionDraft()) is None
        assert stored_options(ShortAnswerQuestionDraft()) is None


class TestValidateQuizDraft:
    def test_valid_draft_passes(self):
        validate_quiz_draft(_draft())

    @pytest.mark.parametrize("title", ["", "   "])
    def test_blank_title(self, title):
        with pytest.raises(QuizValidationError) as exc:
            validate_quiz_draft(_draft(title=title))
        assert exc.value.field == "title"

    def test_no_questions(self):
        with pytest.raises(QuizValidationError) as exc:
            validate_quiz_draft(_draft(questions=[]))
        assert exc.value.field == "questions"
        assert exc.value.message == "Please add at least one question"

    def test_blank_question_text_names_the_question(self):
        questions = [
            {"question_type": "short_answer", "question_text": "ok", "correct_answer": "a"},
            {"question_type": "short_answer", "question_text": " ", "correct_answer": "a"},
        ]
        with pytest.raises(QuizValidationError) as exc:
            validate_quiz_draft(_draft(questions=questions))
        assert exc.value.field == "questions[1].question_text"
        assert exc.value.message == "Question 2 is empty"

    def test_blank_correct_answer(self):
        questions = [{"question_type": "short_answer", "question_text": "Q", "correct_answer": ""}]
        with pytest.raises(QuizValidationError) as exc:
            validate_quiz_draft(_draft(questions=questions))
        assert exc.value.message == "Question 1 needs a correct answer"

    def test_points_must_be_positive(self):
        questions = [{"question_type": "short_answer", "question_text": "Q", "correct_answer": "a", "points": 0}]
        with pytest.raises(QuizValidationError) as exc:
            validate_quiz_draft(_draft(questions=questions))
        assert exc.value.field == "questions[0].points"

    def test_true_false_answer_must_be_boolean_word(self):
        questions = [{"question_type": "true_false", "question_text": "Q", "correct_answer": "maybe"}]
        with pytest.raises(QuizValidationError):
            validate_quiz_draft(_draft(questions=questions))

        questions[0]["correct_answer"] = " True "
        validate_quiz_draft(_draft(questions=questions))

    def test_mcq_needs_an_option(self):
        questions = [{"question_type": "mcq", "question_text": "Q", "correct_answer": "a", "options": ["", " "]}]
        with pytest.raises(QuizValidationError) as exc:
            validate_quiz_draft(_draft(questions=questions))
        assert exc.value.field == "questions[0].options"


class TestCreateQuiz:
    def _user(self, db_session):
        return crud.create_user(db_session, "author", "author@example.com", "x")

    def test_questions_get_position_and_options(self, db_session):
        user = self._user(db_session)
        draft = _draft(
            questions=[
                {"question_type": "mcq", "question_text": "Q1", "correct_answer": "a", "options": ["a", "b"]},
                {"question_type": "true_false", "question_text": "Q2", "correct_answer": "true"},
            ]
        )

        quiz = crud.create_quiz(db_session, draft, creator_id=user.id)
        questions = crud.get_questions(db_session, quiz.id)

        assert [q.order_index for q in questions] == [0, 1]
        assert json.loads(questions[0].options_json) == ["a", "b"]
        assert questions[1].options_json is None

    def test_failed_question_insert_leaves_no_quiz(self, db_session, monkeypatch):
        user = self._user(db_session)

        def boom(question):
            raise RuntimeError("write failed")

        monkeypatch.setattr(crud, "stored_options", boom)

        with pytest.raises(RuntimeError):
            crud.create_quiz(db_session, _draft(), creator_id=user.id)

        assert db_session.query(models.Quiz).count() == 0
        assert db_session.query(models.Question).count() == 0


class TestCreateAttempt:
    def test_failed_answer_insert_leaves_no_attempt(self, db_session):
        user = crud.create_user(db_session, "taker", "taker@example.com", "x")
        quiz = crud.create_quiz(db_session, _draft(), creator_id=user.id)
        (question,) = crud.get_questions(db_session, quiz.id)
        graded = GradedSubmission(
            score=0,
            max_score=1,
            percentage=0.0,
            answers=[GradedAnswer(question_id=question.id, user_answer=None, is_correct=False)],
        )

        with pytest.raises(IntegrityError):
            crud.create_attempt(db_session, quiz.id, user.id, graded)

        assert db_session.query(models.Attempt).count() == 0
        assert db_session.query(models.Answer).count() == 0
