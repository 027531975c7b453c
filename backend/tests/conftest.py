import os
import tempfile
from pathlib import Path

# Point the app at a throwaway SQLite file before `lingua` is imported anywhere.
_DB_DIR = Path(tempfile.mkdtemp(prefix="lingua-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_DIR / 'test.db'}")

from datetime import datetime, timezone

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from lingua import models
from lingua.database import create_db_and_tables


@pytest.fixture
def session():
    """A session on a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(bind=engine)
    with Session(engine) as s:
        yield s
    engine.dispose()


@pytest.fixture
def make_user(session):
    def _make(username, experience=0, **fields):
        user = models.User(username=username, password_hash="x", experience=experience, **fields)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
    return _make


@pytest.fixture
def make_lesson(session):
    def _make(type="grammar", level=1, mode="easy", **fields):
        lesson = models.Lesson(type=type, level=level, mode=mode, lesson_data=fields.pop("lesson_data", {}), **fields)
        session.add(lesson)
        session.commit()
        session.refresh(lesson)
        return lesson
    return _make


@pytest.fixture
def make_result(session):
    def _make(user, lesson, score, experience=0):
        result = models.Result(
            user_id=user.id,
            lesson_id=lesson.id,
            score=score,
            completion_time=score,
            added_experience=experience,
        )
        session.add(result)
        session.commit()
        session.refresh(result)
        return result
    return _make


class FrozenClock:
    """Callable clock whose current instant can be moved by tests."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    # a Wednesday
    return FrozenClock(datetime(2026, 3, 11, 15, 30, tzinfo=timezone.utc))
