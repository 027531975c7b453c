"""Leaderboard engine.

Produces ranked views of learners:

- the global board, ordered by cumulative experience with a trend
  against the latest earlier weekly snapshot;
- the extended global board, adding lesson count and time figures;
- the per-lesson board, a window of results centred on one learner,
  ordered by score (completion time, lower is better);
- periodic ranking snapshots used for the trend.

Every call re-reads the stores; nothing is cached between requests.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from sqlmodel import Session

from . import models, repositories
from .config import settings
from .errors import InvalidArgumentError, NotFoundError
from .utils.periods import format_duration, now_in, period_bounds

logger = logging.getLogger(__name__)

# snapshots the global trend is measured against
TREND_PERIOD = "weekly"


def compute_trend(previous: Optional[int], current: int) -> str:
    """Compare a previous snapshot position with the current one.

    A numerically larger previous position means the learner climbed.
    """
    if previous is None or previous == current:
        return "stable"
    return "up" if previous > current else "down"


def _check_limit(limit: int) -> None:
    if limit is None or limit <= 0:
        logger.warning("invalid_limit %s", json.dumps({"limit": limit}))
        raise InvalidArgumentError("limit must be positive", {"limit": limit})


def _check_period(period: str) -> None:
    if period not in models.PERIODS:
        logger.warning("invalid_period %s", json.dumps({"period": period}))
        raise InvalidArgumentError("invalid period", {"period": period, "allowed": list(models.PERIODS)})


def _user_fields(user: Optional[models.User], user_id: int) -> dict:
    return {
        'user_id': user_id,
        'username': user.username if user else None,
        'first_name': user.first_name if user else None,
        'last_name': user.last_name if user else None,
    }


class LeaderboardService:
    """Compute global and per-lesson standings and ranking snapshots."""
    def __init__(self, session: Session, clock: Optional[Callable[[], datetime]] = None, snapshot_cap: Optional[int] = None):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.result_repo = repositories.ResultRepository(session)
        self.ranking_repo = repositories.RankingRepository(session)
        self._clock = clock or (lambda: now_in(settings.RANKING_TIMEZONE))
        self.snapshot_cap = snapshot_cap or settings.RANKING_SNAPSHOT_CAP

    def _previous_positions(self, user_ids: Iterable[int]) -> Dict[int, int]:
        prev = self.ranking_repo.latest_before(TREND_PERIOD, self._clock(), user_ids=user_ids)
        return {r.user_id: r.position for r in prev}

    def get_global_leaderboard(self, limit: int) -> List[dict]:
        """Return the top `limit` learners by experience.

        Ties on experience are broken by user id so repeated calls over
        the same data yield the same order. Each entry carries its
        1-based `position` and a `trend` of `up`, `down` or `stable`.
        """
        _check_limit(limit)
        users = self.user_repo.top_by_experience(limit)
        prev_positions = self._previous_positions(u.id for u in users)
        entries = []
        for idx, user in enumerate(users):
            position = idx + 1
            entries.append({
                **_user_fields(user, user.id),
                'position': position,
                'experience': user.experience,
                'trend': compute_trend(prev_positions.get(user.id), position),
            })
        return entries

    def get_extended_leaderboard(self, limit: int) -> List[dict]:
        """Global leaderboard enriched with lesson count and time spent."""
        entries = self.get_global_leaderboard(limit)
        totals = self.result_repo.totals_by_user(e['user_id'] for e in entries)
        for entry in entries:
            lessons, time_spent = totals.get(entry['user_id'], (0, 0))
            entry['total_lessons'] = lessons
            entry['total_time_spent'] = time_spent
            entry['average_time_spent'] = format_duration(time_spent / lessons if lessons else 0)
        return entries

    def get_lesson_leaderboard(self, lesson_id: int, user_id: int, limit: int) -> dict:
        """Return up to `2*limit+1` results for a lesson around `user_id`.

        The learner's rank is one plus the number of results with a
        strictly lower score. The window normally holds `limit` rows on
        each side of the learner; near the head or tail of the board it
        slides so it stays full whenever enough results exist. Rows with
        equal scores share a display position.

        Raises `NotFoundError` if the learner has no result for the lesson.
        """
        _check_limit(limit)
        own = self.result_repo.get_by_user_and_lesson(user_id, lesson_id)
        if own is None:
            raise NotFoundError("no result for user in lesson", {"user_id": user_id, "lesson_id": lesson_id})

        rank = self.result_repo.count_better_than(lesson_id, own.score) + 1
        total = self.result_repo.count_for_lesson(lesson_id)
        size = 2 * limit + 1
        # 1-based slot of the learner in (score, id) order; equals rank unless tied
        slot = self.result_repo.count_ahead_of(own) + 1
        window_start = max(1, min(slot - limit, total - size + 1))
        rows = self.result_repo.range_by_lesson(lesson_id, offset=window_start - 1, limit=size)

        users = {u.id: u for u in self.user_repo.get_many(r.user_id for r in rows)}
        entries = []
        position = 0
        for idx, row in enumerate(rows):
            if idx == 0:
                position = self.result_repo.count_better_than(lesson_id, row.score) + 1
            elif row.score != rows[idx - 1].score:
                position = window_start + idx
            entries.append({
                **_user_fields(users.get(row.user_id), row.user_id),
                'position': position,
                'completion_time': row.completion_time,
                'score': row.score,
                'experience': row.added_experience,
            })
        return {'entries': entries, 'user_position': rank, 'total_users': total}

    def update_user_rankings(self, period: str) -> dict:
        """Write a full snapshot of current positions for `period`.

        Every call appends a new batch tagged with the period containing
        the current instant; older batches are left in place.
        """
        _check_period(period)
        now = self._clock()
        period_start, period_end = period_bounds(period, now)
        users = self.user_repo.top_by_experience(self.snapshot_cap)
        batch_id = uuid.uuid4().hex
        rankings = [
            models.UserRanking(
                batch_id=batch_id,
                user_id=user.id,
                position=idx + 1,
                experience=user.experience,
                period=period,
                period_start=period_start,
                period_end=period_end,
            )
            for idx, user in enumerate(users)
        ]
        self.ranking_repo.save_batch(rankings)
        summary = {
            'period': period,
            'batch_id': batch_id,
            'users_count': len(rankings),
            'period_start': period_start.isoformat(),
            'period_end': period_end.isoformat(),
        }
        logger.info("rankings_updated %s", json.dumps(summary))
        return summary

    def get_user_ranking_history(self, user_id: int, period: str, limit: int) -> List[dict]:
        """Return the learner's snapshot positions for `period`, newest first."""
        _check_period(period)
        _check_limit(limit)
        rows = self.ranking_repo.history_for_user(user_id, period, limit)
        return [
            {
                'position': r.position,
                'experience': r.experience,
                'period': r.period,
                'period_start': r.period_start,
                'period_end': r.period_end,
            }
            for r in rows
        ]
