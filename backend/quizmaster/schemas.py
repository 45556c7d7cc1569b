from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, constr


class QuestionType(str, Enum):
    MCQ = "mcq"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


# --- Accounts ---------------------------------------------------------------


class UserBase(BaseModel):
    username: constr(min_length=3, max_length=20)
    email: EmailStr


class UserCreate(UserBase):
    password: constr(min_length=8)
    password_confirm: str


class UserResponse(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: int


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# --- Authoring --------------------------------------------------------------
# Drafts are a tagged union on question_type; only mcq carries options.


class _QuestionDraftBase(BaseModel):
    question_text: str = ""
    correct_answer: str = ""
    points: int = 1


class McqQuestionDraft(_QuestionDraftBase):
    question_type: Literal["mcq"] = "mcq"
    options: List[str] = Field(default_factory=list)


class TrueFalseQuestionDraft(_QuestionDraftBase):
    question_type: Literal["true_false"] = "true_false"


class ShortAnswerQuestionDraft(_QuestionDraftBase):
    question_type: Literal["short_answer"] = "short_answer"


QuestionDraft = Annotated[
    Union[McqQuestionDraft, TrueFalseQuestionDraft, ShortAnswerQuestionDraft],
    Field(discriminator="question_type"),
]


class QuizDraft(BaseModel):
    """An unsaved quiz as assembled by the author."""

    title: str = ""
    description: Optional[str] = None
    is_public: bool = True
    questions: List[QuestionDraft] = Field(default_factory=list)


class ArticleDraftRequest(BaseModel):
    """Request body for drafting questions from a Wikipedia URL."""

    url: HttpUrl
    num_questions: int = Field(default=5, ge=1, le=10)


# --- Catalog ----------------------------------------------------------------


class QuizSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    is_public: bool
    creator_username: Optional[str] = None
    question_count: int
    created_at: Optional[datetime] = None


# --- Taking -----------------------------------------------------------------
# Views handed to quiz takers never include the correct answer.


class _QuestionViewBase(BaseModel):
    id: int
    question_text: str
    points: int
    order_index: int


class McqQuestionView(_QuestionViewBase):
    question_type: Literal["mcq"] = "mcq"
    options: List[str]


class TrueFalseQuestionView(_QuestionViewBase):
    question_type: Literal["true_false"] = "true_false"


class ShortAnswerQuestionView(_QuestionViewBase):
    question_type: Literal["short_answer"] = "short_answer"


QuestionView = Annotated[
    Union[McqQuestionView, TrueFalseQuestionView, ShortAnswerQuestionView],
    Field(discriminator="question_type"),
]


class QuizDetail(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    creator_username: Optional[str] = None
    max_score: int
    questions: List[QuestionView]


class AttemptSubmit(BaseModel):
    # question id -> raw answer text; an empty string still counts as answered
    answers: Dict[int, str]


class AttemptCreated(BaseModel):
    attempt_id: int
    score: int
    max_score: int
    percentage: float


# --- Results ----------------------------------------------------------------


class AnswerReview(BaseModel):
    question_id: int
    question_text: str
    question_type: QuestionType
    points: int
    user_answer: str
    is_correct: bool
    correct_answer: Optional[str] = None  # only shown when the answer was wrong


class AttemptResult(BaseModel):
    id: int
    quiz_id: int
    quiz_title: str
    quiz_description: Optional[str] = None
    score: int
    max_score: int
    percentage: float
    grade: str
    completed_at: Optional[datetime] = None
    answers: List[AnswerReview]


# --- Dashboard --------------------------------------------------------------


class RecentAttempt(BaseModel):
    id: int
    quiz_id: int
    quiz_title: str
    score: int
    max_score: int
    percentage: float
    completed_at: Optional[datetime] = None


class DashboardStats(BaseModel):
    username: str
    total_quizzes: int
    total_attempts: int
    average_percentage: float
    recent_attempts: List[RecentAttempt]
