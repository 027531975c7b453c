"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests.
"""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class RegisterIn(BaseModel):
    """Payload for user registration."""
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1)
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginIn(BaseModel):
    """Payload for the login endpoint."""
    username: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class UserOut(BaseModel):
    id: int
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    experience: int


class ProfileUpdateIn(BaseModel):
    """Profile fields to change; omitted or empty fields are left as they are."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserStatsOut(BaseModel):
    total_lessons: int
    total_experience: int
    average_experience: float
    max_experience: int
    fastest_completion: Optional[str] = None
    average_completion: float


class ProfileWithStatsOut(BaseModel):
    user: UserOut
    stats: UserStatsOut


class LessonOut(BaseModel):
    id: int
    type: str
    level: int
    mode: str
    english_level: Optional[str] = None
    xp: int
    lesson_data: Dict[str, Any]


class LessonLevelOut(BaseModel):
    """The easy/hard lesson pair of one level."""
    level: int
    easy_id: int
    hard_id: int


class CompleteLessonIn(BaseModel):
    """A finished lesson reported by the client."""
    lesson_id: int
    completion_time: int = Field(ge=0, description="seconds")
    earned_experience: int = Field(ge=0)


class LeaderboardEntryOut(BaseModel):
    user_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: int
    experience: int
    trend: str


class ExtendedLeaderboardEntryOut(LeaderboardEntryOut):
    total_lessons: int
    total_time_spent: int
    average_time_spent: str


class LessonLeaderboardEntryOut(BaseModel):
    user_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: int
    completion_time: int
    score: int
    experience: int


class LessonLeaderboardOut(BaseModel):
    entries: List[LessonLeaderboardEntryOut]
    user_position: int
    total_users: int


class CompleteLessonOut(BaseModel):
    experience: int
    earned_xp: int
    completed_time: int
    leaderboard: LessonLeaderboardOut


class RankingHistoryOut(BaseModel):
    position: int
    experience: int
    period: str
    period_start: datetime
    period_end: datetime


class RankingUpdateOut(BaseModel):
    period: str
    batch_id: str
    users_count: int
    period_start: str
    period_end: str
