import logging
from typing import List, Optional

import requests
from fastapi import Depends, FastAPI, HTTPException, status  # type: ignore
from fastapi.middleware.cors import CORSMiddleware  # type: ignore
from fastapi.security import OAuth2PasswordRequestForm  # type: ignore
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import auth, crud, grading, llm, models, schemas, scraping
from .authoring import QuizValidationError, validate_quiz_draft
from .config import CORS_ORIGINS, LOG_LEVEL
from .database import Base, engine, get_db

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="QuizMaster")

# Allow browser clients (frontend) to call the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    """Create database tables on startup if they do not exist."""
    Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}


# --- Authentication ---------------------------------------------------------


@app.post("/api/auth/register", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
def register_user(user: schemas.UserCreate, db: Session = Depends(get_db)):
    if user.password != user.password_confirm:
        raise HTTPException(status_code=400, detail="Passwords do not match")

    if crud.find_conflicting_user(db, user.username, user.email):
        raise HTTPException(status_code=400, detail="Username or email already registered")

    db_user = crud.create_user(
        db,
        username=user.username,
        email=user.email,
        hashed_password=auth.get_password_hash(user.password),
    )
    logger.info("Registered user %s", db_user.username)
    return db_user


@app.post("/api/auth/token", response_model=schemas.Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return schemas.Token(access_token=auth.sign_in(db, user))


@app.post("/api/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(token: str = Depends(auth.oauth2_scheme), db: Session = Depends(get_db)):
    auth.sign_out(db, token)


@app.get("/api/auth/me", response_model=schemas.UserResponse)
def read_me(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


# --- Dashboard --------------------------------------------------------------


@app.get("/api/dashboard", response_model=schemas.DashboardStats)
def dashboard(current_user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    """Stats and the five most recent attempts for the signed-in user."""
    total_attempts, average = crud.attempt_stats(db, current_user.id)
    recent = crud.list_recent_attempts(db, current_user.id, limit=5)
    return schemas.DashboardStats(
        username=current_user.username,
        total_quizzes=crud.count_visible_quizzes(db, current_user.id),
        total_attempts=total_attempts,
        average_percentage=average,
        recent_attempts=[crud.attempt_to_recent(a) for a in recent],
    )


# --- Catalog & authoring ----------------------------------------------------


@app.get("/api/quizzes", response_model=List[schemas.QuizSummary])
def browse_quizzes(search: Optional[str] = None, db: Session = Depends(get_db)):
    """Public quizzes, newest first, optionally narrowed by a title search."""
    quizzes = crud.list_public_quizzes(db)
    return [crud.quiz_to_summary(q) for q in crud.filter_by_title(quizzes, search)]


@app.post("/api/quizzes", response_model=schemas.QuizSummary, status_code=status.HTTP_201_CREATED)
def create_quiz(
    draft: schemas.QuizDraft,
    current_user: models.User = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    try:
        validate_quiz_draft(draft)
    except QuizValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    try:
        quiz = crud.create_quiz(db, draft, creator_id=current_user.id)
    except SQLAlchemyError:
        logger.exception("Failed to create quiz for user %s", current_user.username)
        raise HTTPException(status_code=500, detail="Failed to create quiz")

    logger.info("User %s created quiz %s with %d questions", current_user.username, quiz.id, len(draft.questions))
    return crud.quiz_to_summary(quiz)


@app.post("/api/quizzes/drafts/from-article", response_model=schemas.QuizDraft)
def draft_from_article(
    payload: schemas.ArticleDraftRequest,
    current_user: models.User = Depends(auth.get_current_user),
):
    """Scrape an article and let the LLM propose questions; nothing is saved."""
    url = str(payload.url)

    # 1) Scrape article
    try:
        title, text = scraping.fetch_article(url)
    except requests.RequestException as e:
        raise HTTPException(status_code=400, detail=f"Failed to fetch article: {e}")

    # 2) LLM drafting
    try:
        questions = llm.generate_question_drafts(text, num_questions=payload.num_questions)
    except llm.ArticleTooShortError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Question drafting failed for %s", url)
        raise HTTPException(status_code=502, detail="Failed to generate questions")

    return schemas.QuizDraft(
        title=title,
        description=f"Based on {url}",
        questions=questions,
    )


# --- Taking -----------------------------------------------------------------


def _load_quiz_or_404(db: Session, quiz_id: int, user: models.User):
    quiz = crud.get_quiz_by_id(db, quiz_id)
    if not quiz or not crud.can_view_quiz(quiz, user.id):
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz, crud.get_questions(db, quiz_id)


@app.get("/api/quizzes/{quiz_id}", response_model=schemas.QuizDetail)
def get_quiz(
    quiz_id: int,
    current_user: models.User = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    """Return a quiz and its ordered questions, without correct answers."""
    quiz, questions = _load_quiz_or_404(db, quiz_id, current_user)
    return crud.quiz_to_detail(quiz, questions)


@app.post(
    "/api/quizzes/{quiz_id}/attempts",
    response_model=schemas.AttemptCreated,
    status_code=status.HTTP_201_CREATED,
)
def submit_attempt(
    quiz_id: int,
    submission: schemas.AttemptSubmit,
    current_user: models.User = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    """Grade a full set of answers and store the attempt."""
    quiz, questions = _load_quiz_or_404(db, quiz_id, current_user)

    try:
        graded = grading.grade_submission(questions, submission.answers)
    except grading.IncompleteSubmissionError:
        raise HTTPException(status_code=400, detail="Please answer all questions")

    try:
        attempt = crud.create_attempt(db, quiz.id, current_user.id, graded)
    except SQLAlchemyError:
        logger.exception("Failed to store attempt for quiz %s", quiz_id)
        raise HTTPException(status_code=500, detail="Failed to submit quiz")

    logger.info(
        "User %s scored %d/%d on quiz %s (attempt %s)",
        current_user.username,
        graded.score,
        graded.max_score,
        quiz.id,
        attempt.id,
    )
    return schemas.AttemptCreated(
        attempt_id=attempt.id,
        score=attempt.score,
        max_score=attempt.max_score,
        percentage=attempt.percentage,
    )


# --- Results ----------------------------------------------------------------


@app.get("/api/attempts/{attempt_id}", response_model=schemas.AttemptResult)
def get_results(
    attempt_id: int,
    current_user: models.User = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    attempt = crud.get_attempt_by_id(db, attempt_id)
    if not attempt or attempt.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Failed to load results")
    return crud.attempt_to_result(attempt, crud.list_answers(db, attempt_id))
