"""Business logic services used by HTTP controllers.

This module holds small service classes for accounts, profiles and the
lesson catalogue. Services are intentionally thin: they perform
validation, execute domain logic and persist aggregates via
repositories. Ranking lives in `leaderboard.py` and completion handling
in `completion.py`.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
import jwt
from typing import List, Optional
from . import models, repositories
from sqlmodel import Session
from .config import settings
from .errors import ConflictError, InvalidArgumentError, NotFoundError
from .utils.lesson_loader import read_lesson_file
from .utils.periods import format_duration

logger = logging.getLogger(__name__)

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, username: str, password: str, first_name: Optional[str] = None, last_name: Optional[str] = None) -> models.User:
        """Create a new user with a hashed password.

        Raises `ConflictError` if the username is taken.
        """
        if not username or not username.strip():
            raise InvalidArgumentError("username required")
        if not password:
            raise InvalidArgumentError("password required")
        if self.user_repo.get_by_username(username):
            raise ConflictError("username already taken", {"username": username})
        hashed = PWD_CTX.hash(password)
        u = models.User(username=username, password_hash=hashed, first_name=first_name, last_name=last_name)
        user = self.user_repo.create(u)
        logger.info("user_registered %s", json.dumps({"user_id": user.id, "username": user.username}))
        return user

    def authenticate(self, username: str, password: str):
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "username": user.username, "exp": int(expire.timestamp())}
        token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
        logger.info("user_logged_in %s", json.dumps({"user_id": user.id}))
        return token


class UserService:
    """Profile reads/updates and per-user result statistics."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.result_repo = repositories.ResultRepository(session)

    def get_profile(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("user not found", {"user_id": user_id})
        return user

    def update_profile(self, user_id: int, first_name: Optional[str] = None, last_name: Optional[str] = None) -> models.User:
        """Update name fields; empty values leave the stored value untouched."""
        user = self.get_profile(user_id)
        fields = {}
        if first_name:
            fields['first_name'] = first_name
        if last_name:
            fields['last_name'] = last_name
        if not fields:
            return user
        return self.user_repo.update_profile(user, fields)

    def get_stats(self, user_id: int) -> dict:
        """Summarise the user's lesson results.

        Experience figures come from the stored results, so they reflect
        the latest completion of each lesson rather than lifetime gains.
        """
        self.get_profile(user_id)
        raw = self.result_repo.stats_for_user(user_id)
        total = raw['total_lessons']
        return {
            'total_lessons': total,
            'total_experience': raw['total_experience'],
            'average_experience': raw['total_experience'] / total if total else 0.0,
            'max_experience': raw['max_experience'],
            'fastest_completion': format_duration(raw['fastest_completion_time']) if total else None,
            'average_completion': raw['average_score'],
        }


class LessonService:
    """Lesson catalogue reads and file synchronisation."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.LessonRepository(session)

    def get_lesson(self, lesson_id: int) -> models.Lesson:
        lesson = self.repo.get(lesson_id)
        if not lesson:
            raise NotFoundError("lesson not found", {"lesson_id": lesson_id})
        return lesson

    def list_types(self) -> List[str]:
        return self.repo.unique_types()

    def get_lessons_by_type(self, lesson_type: str) -> List[dict]:
        """Pair the easy and hard lessons of each level for `lesson_type`.

        Levels missing either mode are skipped, as are lessons with an
        unknown mode.
        """
        by_level = {}
        for lesson in self.repo.list_by_type(lesson_type):
            slot = by_level.setdefault(lesson.level, {'level': lesson.level, 'easy_id': None, 'hard_id': None})
            if lesson.mode not in models.LESSON_MODES:
                logger.warning("unknown lesson mode id=%s mode=%s", lesson.id, lesson.mode)
                continue
            slot[f'{lesson.mode}_id'] = lesson.id
        out = []
        for level in sorted(by_level):
            slot = by_level[level]
            if slot['easy_id'] is None or slot['hard_id'] is None:
                logger.warning("lesson level incomplete type=%s level=%s", lesson_type, level)
                continue
            out.append(slot)
        return out

    def load_lessons_from_file(self, path) -> dict:
        """Synchronise the catalogue with a lesson file.

        Lessons are matched on (type, mode, level). New ones are created,
        matching ones are kept (content differences are only logged) and
        stored lessons absent from the file are deleted.
        """
        parsed = read_lesson_file(path)
        stored = self.repo.list_all()
        index = {(l.type, l.mode, l.level): l for l in stored}
        seen = set()
        created = 0
        for item in parsed:
            key = (item['type'], item['mode'], item['level'])
            existing = index.get(key)
            if existing is not None:
                # repeated key within the file; first occurrence wins
                if existing.id in seen:
                    continue
                if existing.lesson_data != item['lesson_data']:
                    logger.warning("lesson content differs from file id=%s key=%s", existing.id, key)
                seen.add(existing.id)
                continue
            lesson = self.repo.create(models.Lesson(**item))
            index[key] = lesson
            seen.add(lesson.id)
            created += 1
        deleted = 0
        for lesson in stored:
            if lesson.id not in seen:
                self.repo.delete(lesson.id)
                deleted += 1
        logger.info("lessons_loaded %s", json.dumps({"path": str(path), "created": created, "deleted": deleted}))
        return {'created': created, 'kept': len(seen) - created, 'deleted': deleted}
