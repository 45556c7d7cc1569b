# =============================================================================
# CONFTEST - shared fixtures
# =============================================================================
# The environment must be configured before quizmaster is imported, since
# config and database read it at import time.
# =============================================================================

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("GOOGLE_API_KEY", None)

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def reset_database():
    """Give every test an empty schema."""
    from quizmaster import models  # noqa: F401  (registers tables)
    from quizmaster.database import Base, engine

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    from quizmaster.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    """FastAPI test client (no running server needed)."""
    from fastapi.testclient import TestClient
    from quizmaster.main import app

    return TestClient(app)


@pytest.fixture
def register_user(client):
    """Register a user and return auth headers for them."""

    def _register(username="alice", password="s3cret-pass"):
        resp = client.post(
            "/api/auth/register",
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": password,
                "password_confirm": password,
            },
        )
        assert resp.status_code == 201, resp.text
        token = client.post(
            "/api/auth/token", data={"username": username, "password": password}
        ).json()["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _register


@pytest.fixture
def auth_headers(register_user):
    return register_user()


@pytest.fixture
def sample_quiz_payload():
    """One mcq worth 2 points and one short answer worth 3 points."""
    return {
        "title": "Capitals",
        "description": "European capitals",
        "questions": [
            {
                "question_type": "mcq",
                "question_text": "Capital of France?",
                "options": ["Paris", "Lyon", "Nice", "Lille"],
                "correct_answer": "Paris",
                "points": 2,
            },
            {
                "question_type": "short_answer",
                "question_text": "Capital of Italy?",
                "correct_answer": "Rome",
                "points": 3,
            },
        ],
    }


@pytest.fixture
def create_quiz(client, auth_headers):
    def _create(payload, headers=None):
        resp = client.post("/api/quizzes", json=payload, headers=headers or auth_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _create
