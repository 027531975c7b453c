"""Lesson completion orchestration.

Applies one completion event: the learner's experience grows by the
earned amount and their result for the lesson is inserted or
overwritten. Both writes are committed together or not at all.
"""

import json
import logging
from datetime import datetime, timezone

from sqlmodel import Session

from . import models, repositories
from .errors import InvalidArgumentError, LinguaError, NotFoundError

logger = logging.getLogger(__name__)


class LessonCompletionService:
    """Record a finished lesson and credit its experience to the learner."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.lesson_repo = repositories.LessonRepository(session)
        self.result_repo = repositories.ResultRepository(session)

    def complete_lesson(self, user_id: int, lesson_id: int, completion_time: int, earned_experience: int) -> dict:
        """Apply a completion of `lesson_id` by `user_id`.

        The experience increment is performed by the database so
        concurrent completions accumulate. The result row for the
        (user, lesson) pair is overwritten when it exists; its score is
        the completion time in seconds.

        Returns `{user_id, lesson_id, completion_time, earned_experience,
        total_experience}`.
        """
        if completion_time is None or completion_time < 0:
            raise InvalidArgumentError("completion_time must be >= 0", {"completion_time": completion_time})
        if earned_experience is None or earned_experience < 0:
            raise InvalidArgumentError("earned_experience must be >= 0", {"earned_experience": earned_experience})

        user = self.user_repo.get(user_id)
        if user is None:
            raise NotFoundError("user not found", {"user_id": user_id})
        lesson = self.lesson_repo.get(lesson_id)
        if lesson is None:
            raise NotFoundError("lesson not found", {"lesson_id": lesson_id})

        now = datetime.now(timezone.utc)
        try:
            with repositories.store_errors(self.session, "complete_lesson", user_id=user_id, lesson_id=lesson_id):
                total = self.user_repo.add_experience(
                    user_id, earned_experience, commit=False, ceiling=models.MAX_EXPERIENCE
                )
                if total is None:
                    raise InvalidArgumentError(
                        "experience overflow",
                        {"user_id": user_id, "earned_experience": earned_experience, "max": models.MAX_EXPERIENCE},
                    )
                self.result_repo.upsert(
                    user_id,
                    lesson_id,
                    score=completion_time,
                    completion_time=completion_time,
                    completed_at=now,
                    added_experience=earned_experience,
                    commit=False,
                )
                self.session.commit()
        except LinguaError:
            self.session.rollback()
            raise

        logger.info("lesson_completed %s", json.dumps({
            "user_id": user_id,
            "lesson_id": lesson_id,
            "completion_time": completion_time,
            "earned_experience": earned_experience,
            "total_experience": total,
        }))
        return {
            'user_id': user_id,
            'lesson_id': lesson_id,
            'completion_time': completion_time,
            'earned_experience': earned_experience,
            'total_experience': total,
        }
