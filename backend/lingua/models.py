"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table; ranking snapshots reference users by id.
"""

from typing import Any, Dict, Optional
from sqlalchemy import BigInteger, Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, timezone
from typing import List

# experience is stored in a signed 64-bit column
MAX_EXPERIENCE = 2 ** 63 - 1

PERIODS = ("daily", "weekly", "monthly")
LESSON_MODES = ("easy", "hard")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered learner.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `experience`: cumulative experience, only ever increased by lesson completions
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    experience: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0, index=True))
    created_at: datetime = Field(default_factory=_utcnow)
    results: List['Result'] = Relationship(back_populates='user')


class Lesson(SQLModel, table=True):
    """A lesson of a given type/level/mode.

    `lesson_data` is a schema-less JSON document; its shape depends on the
    lesson type and is passed through to clients untouched.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    type: str = Field(index=True)
    level: int = Field(index=True)
    mode: str
    english_level: Optional[str] = None
    xp: int = 0
    lesson_data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Result(SQLModel, table=True):
    """The latest completion of a lesson by a user.

    There is at most one row per (user, lesson); repeat completions
    overwrite it. `score` is the lesson-scope ranking key (lower is better)
    and holds the completion time in seconds.
    """
    __table_args__ = (UniqueConstraint('user_id', 'lesson_id', name='uq_result_user_lesson'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    lesson_id: int = Field(foreign_key='lesson.id', index=True)
    score: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0, index=True))
    completion_time: int = 0
    completed_at: datetime = Field(default_factory=_utcnow)
    added_experience: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    user: Optional[User] = Relationship(back_populates='results')


class UserRanking(SQLModel, table=True):
    """A user's position in one ranking snapshot.

    Rows are written in batches by a recompute and never updated. All rows
    of one recompute share `batch_id`; the period is the half-open interval
    `[period_start, period_end)`.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    batch_id: str = Field(index=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    position: int
    experience: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    period: str = Field(index=True)
    period_start: datetime
    period_end: datetime = Field(index=True)
    created_at: datetime = Field(default_factory=_utcnow)
