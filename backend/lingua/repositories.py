"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
lessons, results, ranking snapshots). Repositories return SQLModel
objects and commit where appropriate; write methods accept
`commit=False` so a service can group several writes into one
transaction and commit once.

Any `SQLAlchemyError` is rolled back and re-raised as `StoreError` with
the operation name and the ids involved.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, func, or_, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from . import models
from .errors import ConflictError, StoreError

logger = logging.getLogger(__name__)

# dialects with a native INSERT .. ON CONFLICT DO UPDATE
UPSERT_INSERTS = {"sqlite": sqlite_insert, "postgresql": postgresql_insert}


@contextmanager
def store_errors(session: Session, operation: str, **context):
    """Translate database failures inside the block into `StoreError`."""
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("store_error op=%s ctx=%s err=%s", operation, context, exc)
        raise StoreError(f"{operation} failed", {"operation": operation, **context}) from exc


def _finish(session: Session, commit: bool):
    if commit:
        session.commit()
    else:
        session.flush()


class UserRepository:
    """Lookup and experience updates for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance.

        Raises `ConflictError` if the username is already taken.
        """
        try:
            self.session.add(user)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("username already taken", {"username": user.username}) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError("create user failed", {"operation": "create_user", "username": user.username}) from exc
        self.session.refresh(user)
        return user

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        with store_errors(self.session, "get_user", user_id=user_id):
            return self.session.get(models.User, user_id)

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        with store_errors(self.session, "get_user_by_username", username=username):
            stmt = select(models.User).where(models.User.username == username)
            return self.session.exec(stmt).first()

    def get_many(self, user_ids: Iterable[int]) -> List[models.User]:
        """Fetch all users whose id is in `user_ids` with a single query."""
        ids = list(set(user_ids))
        if not ids:
            return []
        with store_errors(self.session, "get_users", user_ids=sorted(ids)):
            stmt = select(models.User).where(models.User.id.in_(ids))
            return list(self.session.exec(stmt).all())

    def top_by_experience(self, limit: int) -> List[models.User]:
        """Return up to `limit` users by experience descending, id ascending on ties."""
        with store_errors(self.session, "top_users_by_experience", limit=limit):
            stmt = (
                select(models.User)
                .order_by(models.User.experience.desc(), models.User.id.asc())
                .limit(limit)
            )
            return list(self.session.exec(stmt).all())

    def update_experience(self, user_id: int, experience: int, commit: bool = True) -> None:
        """Overwrite a user's experience with `experience`."""
        with store_errors(self.session, "update_experience", user_id=user_id):
            self.session.execute(
                update(models.User).where(models.User.id == user_id).values(experience=experience)
            )
            _finish(self.session, commit)

    def add_experience(self, user_id: int, delta: int, commit: bool = True, ceiling: Optional[int] = None) -> Optional[int]:
        """Atomically add `delta` to a user's experience and return the new total.

        The increment is evaluated by the database so concurrent
        completions cannot overwrite each other's gains. With `ceiling`
        the row is only updated while the result stays at or below it.
        Returns `None` when no row was updated (unknown user or ceiling
        reached).
        """
        with store_errors(self.session, "add_experience", user_id=user_id, delta=delta):
            stmt = update(models.User).where(models.User.id == user_id)
            if ceiling is not None:
                stmt = stmt.where(models.User.experience <= ceiling - delta)
            res = self.session.execute(
                stmt.values(experience=models.User.experience + delta),
                execution_options={"synchronize_session": False},
            )
            if res.rowcount == 0:
                return None
            _finish(self.session, commit)
            stmt = select(models.User.experience).where(models.User.id == user_id)
            return int(self.session.exec(stmt).one())

    def update_profile(self, user: models.User, fields: Dict[str, str]) -> models.User:
        """Apply profile field changes to `user` and persist them."""
        with store_errors(self.session, "update_profile", user_id=user.id):
            for key, value in fields.items():
                setattr(user, key, value)
            self.session.add(user)
            self.session.commit()
            self.session.refresh(user)
            return user


class LessonRepository:
    """CRUD operations for `Lesson` records."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, lesson: models.Lesson) -> models.Lesson:
        with store_errors(self.session, "create_lesson", type=lesson.type, level=lesson.level, mode=lesson.mode):
            self.session.add(lesson)
            self.session.commit()
            self.session.refresh(lesson)
            return lesson

    def get(self, lesson_id: int) -> Optional[models.Lesson]:
        """Fetch a lesson by id."""
        with store_errors(self.session, "get_lesson", lesson_id=lesson_id):
            return self.session.get(models.Lesson, lesson_id)

    def list_all(self) -> List[models.Lesson]:
        with store_errors(self.session, "list_lessons"):
            return list(self.session.exec(select(models.Lesson).order_by(models.Lesson.id)).all())

    def list_by_type(self, lesson_type: str) -> List[models.Lesson]:
        """Return all lessons of `lesson_type`."""
        with store_errors(self.session, "list_lessons_by_type", type=lesson_type):
            stmt = select(models.Lesson).where(models.Lesson.type == lesson_type).order_by(models.Lesson.level, models.Lesson.id)
            return list(self.session.exec(stmt).all())

    def unique_types(self) -> List[str]:
        """Return the distinct lesson types, sorted."""
        with store_errors(self.session, "list_lesson_types"):
            stmt = select(models.Lesson.type).distinct().order_by(models.Lesson.type)
            return list(self.session.exec(stmt).all())

    def update(self, lesson: models.Lesson) -> models.Lesson:
        with store_errors(self.session, "update_lesson", lesson_id=lesson.id):
            self.session.add(lesson)
            self.session.commit()
            self.session.refresh(lesson)
            return lesson

    def delete(self, lesson_id: int) -> None:
        with store_errors(self.session, "delete_lesson", lesson_id=lesson_id):
            lesson = self.session.get(models.Lesson, lesson_id)
            if lesson is not None:
                self.session.delete(lesson)
                self.session.commit()


class ResultRepository:
    """Per-lesson completion records and the ordered queries over them."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, result: models.Result, commit: bool = True) -> models.Result:
        """Insert a new result row."""
        with store_errors(self.session, "create_result", user_id=result.user_id, lesson_id=result.lesson_id):
            self.session.add(result)
            _finish(self.session, commit)
            if commit:
                self.session.refresh(result)
            return result

    def update(self, result: models.Result, commit: bool = True) -> models.Result:
        """Persist changes made to an existing result row."""
        with store_errors(self.session, "update_result", result_id=result.id):
            self.session.add(result)
            _finish(self.session, commit)
            if commit:
                self.session.refresh(result)
            return result

    def upsert(self, user_id: int, lesson_id: int, score: int, completion_time: int,
               completed_at: datetime, added_experience: int, commit: bool = True) -> None:
        """Insert the (user, lesson) result or overwrite the existing one.

        Runs as a single INSERT .. ON CONFLICT statement on SQLite and
        PostgreSQL, so two writers racing on the same pair both succeed
        and the last one wins. Other dialects fall back to lookup then
        write.
        """
        values = {
            'score': score,
            'completion_time': completion_time,
            'completed_at': completed_at,
            'added_experience': added_experience,
        }
        with store_errors(self.session, "upsert_result", user_id=user_id, lesson_id=lesson_id):
            dialect = self.session.get_bind().dialect.name
            insert = UPSERT_INSERTS.get(dialect)
            if insert is None:
                existing = self.get_by_user_and_lesson(user_id, lesson_id)
                if existing is None:
                    self.create(models.Result(user_id=user_id, lesson_id=lesson_id, **values), commit=commit)
                else:
                    for key, value in values.items():
                        setattr(existing, key, value)
                    self.update(existing, commit=commit)
                return
            stmt = insert(models.Result).values(user_id=user_id, lesson_id=lesson_id, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[models.Result.user_id, models.Result.lesson_id],
                set_={key: getattr(stmt.excluded, key) for key in values},
            )
            self.session.execute(stmt)
            _finish(self.session, commit)

    def get_by_user_and_lesson(self, user_id: int, lesson_id: int) -> Optional[models.Result]:
        with store_errors(self.session, "get_result", user_id=user_id, lesson_id=lesson_id):
            stmt = select(models.Result).where(
                models.Result.user_id == user_id,
                models.Result.lesson_id == lesson_id,
            )
            return self.session.exec(stmt).first()

    def count_better_than(self, lesson_id: int, score: int) -> int:
        """Count results for `lesson_id` with a strictly lower score."""
        with store_errors(self.session, "count_better_results", lesson_id=lesson_id, score=score):
            stmt = select(func.count(models.Result.id)).where(
                models.Result.lesson_id == lesson_id,
                models.Result.score < score,
            )
            return int(self.session.exec(stmt).one())

    def count_ahead_of(self, result: models.Result) -> int:
        """Count results of the same lesson ordered before `result`.

        Uses the same (score, id) ordering as `range_by_lesson`, so the
        value is `result`'s zero-based offset in that ordering.
        """
        with store_errors(self.session, "count_results_ahead", result_id=result.id, lesson_id=result.lesson_id):
            stmt = select(func.count(models.Result.id)).where(
                models.Result.lesson_id == result.lesson_id,
                or_(
                    models.Result.score < result.score,
                    and_(models.Result.score == result.score, models.Result.id < result.id),
                ),
            )
            return int(self.session.exec(stmt).one())

    def count_for_lesson(self, lesson_id: int) -> int:
        with store_errors(self.session, "count_lesson_results", lesson_id=lesson_id):
            stmt = select(func.count(models.Result.id)).where(models.Result.lesson_id == lesson_id)
            return int(self.session.exec(stmt).one())

    def range_by_lesson(self, lesson_id: int, offset: int, limit: int, ascending: bool = True) -> List[models.Result]:
        """Return a page of results for a lesson ordered by score.

        Rows with equal scores are ordered by id ascending so paging is
        stable across calls.
        """
        score_order = models.Result.score.asc() if ascending else models.Result.score.desc()
        with store_errors(self.session, "range_lesson_results", lesson_id=lesson_id, offset=offset, limit=limit):
            stmt = (
                select(models.Result)
                .where(models.Result.lesson_id == lesson_id)
                .order_by(score_order, models.Result.id.asc())
                .offset(offset)
                .limit(limit)
            )
            return list(self.session.exec(stmt).all())

    def totals_by_user(self, user_ids: Iterable[int]) -> Dict[int, Tuple[int, int]]:
        """Return `{user_id: (lessons_completed, total_completion_time)}`."""
        ids = list(set(user_ids))
        if not ids:
            return {}
        with store_errors(self.session, "result_totals", user_ids=sorted(ids)):
            stmt = (
                select(
                    models.Result.user_id,
                    func.count(models.Result.id),
                    func.coalesce(func.sum(models.Result.completion_time), 0),
                )
                .where(models.Result.user_id.in_(ids))
                .group_by(models.Result.user_id)
            )
            return {uid: (int(count), int(total)) for uid, count, total in self.session.exec(stmt).all()}

    def stats_for_user(self, user_id: int) -> dict:
        """Aggregate a user's results into lesson count, experience and timing figures."""
        with store_errors(self.session, "user_stats", user_id=user_id):
            stmt = select(
                func.count(models.Result.id),
                func.coalesce(func.sum(models.Result.added_experience), 0),
                func.coalesce(func.max(models.Result.added_experience), 0),
                func.coalesce(func.avg(models.Result.score), 0),
            ).where(models.Result.user_id == user_id)
            total, total_xp, max_xp, avg_score = self.session.exec(stmt).one()
            fastest = None
            if total:
                fastest = self.session.exec(
                    select(models.Result)
                    .where(models.Result.user_id == user_id)
                    .order_by(models.Result.score.asc(), models.Result.id.asc())
                    .limit(1)
                ).first()
        return {
            "total_lessons": int(total),
            "total_experience": int(total_xp),
            "max_experience": int(max_xp),
            "average_score": float(avg_score),
            "fastest_completion_time": fastest.completion_time if fastest else None,
        }


class RankingRepository:
    """Append-only storage for `UserRanking` snapshot batches."""
    def __init__(self, session: Session):
        self.session = session

    def save_batch(self, rankings: List[models.UserRanking]) -> None:
        """Insert all rows of one snapshot in a single transaction."""
        if not rankings:
            return
        with store_errors(self.session, "save_rankings", batch_id=rankings[0].batch_id, rows=len(rankings)):
            self.session.add_all(rankings)
            self.session.commit()

    def latest_before(self, period: str, instant: datetime, user_ids: Optional[Iterable[int]] = None) -> List[models.UserRanking]:
        """Return the most recent batch for `period` whose period ended before `instant`.

        When several batches share that period end, the one written last
        wins. `user_ids` restricts the returned rows. An empty list means
        no earlier snapshot exists.
        """
        with store_errors(self.session, "latest_rankings_before", period=period, instant=instant.isoformat()):
            anchor = self.session.exec(
                select(models.UserRanking)
                .where(models.UserRanking.period == period, models.UserRanking.period_end < instant)
                .order_by(models.UserRanking.period_end.desc(), models.UserRanking.id.desc())
                .limit(1)
            ).first()
            if anchor is None:
                return []
            stmt = select(models.UserRanking).where(models.UserRanking.batch_id == anchor.batch_id)
            if user_ids is not None:
                ids = list(set(user_ids))
                if not ids:
                    return []
                stmt = stmt.where(models.UserRanking.user_id.in_(ids))
            return list(self.session.exec(stmt.order_by(models.UserRanking.position)).all())

    def history_for_user(self, user_id: int, period: str, limit: int) -> List[models.UserRanking]:
        """Return a user's snapshot rows for `period`, newest first."""
        with store_errors(self.session, "ranking_history", user_id=user_id, period=period):
            stmt = (
                select(models.UserRanking)
                .where(models.UserRanking.user_id == user_id, models.UserRanking.period == period)
                .order_by(models.UserRanking.period_end.desc(), models.UserRanking.id.desc())
                .limit(limit)
            )
            return list(self.session.exec(stmt).all())
