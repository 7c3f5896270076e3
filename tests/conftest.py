import os
import tempfile
from datetime import UTC, datetime, timedelta

# must be set before the app modules read them at import time
_DB_DIR = tempfile.mkdtemp(prefix="quiz-attempts-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("ADMIN_TOKEN", "secret")
os.environ.setdefault("GRADING_API_KEY", "test-key")
os.environ["SWEEP_INTERVAL_SECONDS"] = "0"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import models  # noqa: E402,F401
from bank import QuizFileModel, upsert_quiz  # noqa: E402
from container import build_services  # noqa: E402
from db import Base, SessionLocal, engine  # noqa: E402
from main import app  # noqa: E402

BROWSER = {
    "user_agent": "pytest",
    "platform": "linux",
    "language": "en",
    "screen_resolution": "1920x1080",
    "timezone": "UTC",
}


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def services(clock):
    return build_services(SessionLocal, clock)


@pytest.fixture
def make_quiz():
    """Create a quiz; defaults to two 5-point questions, a 10 minute limit and pass mark 60."""

    def _make(**overrides) -> int:
        data = {
            "slug": f"quiz-{len(_make.created) + 1}",
            "title": "Test quiz",
            "time_limit_minutes": 10,
            "passing_score": 60,
            "questions": [
                {"prompt": "2 + 2", "options": ["3", "4", "5"], "correct_option": 1, "points": 5},
                {"prompt": "3 * 3", "options": ["6", "9", "12"], "correct_option": 1, "points": 5},
            ],
        }
        data.update(overrides)
        with SessionLocal() as db:
            quiz = upsert_quiz(db, QuizFileModel(**data))
            db.commit()
            _make.created.append(quiz.id)
            return quiz.id

    _make.created = []
    return _make


@pytest.fixture
def client(services):
    previous = app.state.services
    app.state.services = services
    with TestClient(app, headers={"x-api-key": "test-key", "x-user-id": "u1"}) as c:
        yield c
    app.state.services = previous
