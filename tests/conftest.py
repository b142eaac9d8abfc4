"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite store; the HTTP client runs the real
app with the store, clock, cache and identity directory swapped through
dependency overrides.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

from datetime import date, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dailyprep.core.auth import create_token  # noqa: E402
from dailyprep.core.cache import get_daily_set_cache  # noqa: E402
from dailyprep.core.clock import FixedClock, get_clock  # noqa: E402
from dailyprep.core.database import Base, get_db  # noqa: E402
from dailyprep.main import app  # noqa: E402
from dailyprep.models.orm import DAILY_SET_SIZE, DailyQuestionSet, Question, TestAttempt  # noqa: E402
from dailyprep.services.identity import DisplayIdentity, anonymous, get_identity_directory  # noqa: E402

SUBJECTS = ("Math", "Reading", "Logic")
NOW = datetime(2024, 3, 14, 9, 0, 0)


class StaticDirectory:
    """Identity directory backed by a dict; unknown users are anonymous."""

    def __init__(self, emails=None):
        self.emails = dict(emails or {})

    def resolve(self, user_id):
        email = self.emails.get(user_id)
        if not email:
            return anonymous()
        return DisplayIdentity(email=email, name=email.split("@")[0])


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


def add_questions(session, count, subjects=SUBJECTS, start_id=1):
    questions = []
    for i in range(count):
        qid = start_id + i
        questions.append(Question(
            id=qid,
            question_text=f"Question {qid}?",
            option_a=f"{qid}-a", option_b=f"{qid}-b", option_c=f"{qid}-c", option_d=f"{qid}-d",
            correct_answer="ABCD"[qid % 4],
            explanation=f"Because {qid}",
            subject=subjects[qid % len(subjects)],
            difficulty="medium",
        ))
    session.add_all(questions)
    session.commit()
    return questions


@pytest.fixture
def questions(db):
    return add_questions(db, 30)


def add_completed_attempt(session, user_id, test_date, score, question_ids=None,
                          started_at=None, completed_at=None, total=DAILY_SET_SIZE):
    """Insert a finished attempt (and its daily set if missing) directly into the store."""
    if session.get(DailyQuestionSet, test_date) is None:
        session.add(DailyQuestionSet(
            test_date=test_date,
            question_ids=list(question_ids or range(1, DAILY_SET_SIZE + 1)),
            created_at=datetime.combine(test_date, datetime.min.time()),
        ))
    started = started_at or datetime.combine(test_date, datetime.min.time()) + timedelta(hours=8)
    attempt = TestAttempt(
        id=f"{user_id}-{test_date.isoformat()}",
        user_id=user_id,
        test_date=test_date,
        started_at=started,
        completed_at=completed_at or started + timedelta(minutes=25),
        score=score,
        total_questions=total,
    )
    session.add(attempt)
    session.commit()
    return attempt


@pytest.fixture
def directory():
    return StaticDirectory({"user-1": "alice@example.com", "user-2": "bob@example.com"})


@pytest.fixture
def client(session_factory, clock, directory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_daily_set_cache] = lambda: None
    app.dependency_overrides[get_identity_directory] = lambda: directory
    yield TestClient(app)
    app.dependency_overrides.clear()


def headers_for(user_id):
    return {"Authorization": f"Bearer {create_token(user_id)}"}


@pytest.fixture
def auth_headers():
    return headers_for("user-1")


@pytest.fixture
def today():
    return NOW.date()


@pytest.fixture
def yesterday():
    return NOW.date() - timedelta(days=1)


def days_ago(n: int) -> date:
    return NOW.date() - timedelta(days=n)
