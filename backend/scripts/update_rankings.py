"""CLI script to snapshot leaderboard positions for a period.
Usage: python scripts/update_rankings.py [--period daily|weekly|monthly]

Intended to be run from cron at the end of each period so the global
leaderboard can show position trends.
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `lingua` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from lingua.database import engine, create_db_and_tables
from lingua.errors import LinguaError
from lingua.leaderboard import LeaderboardService
from lingua.models import PERIODS


def main(period: str = 'weekly') -> int:
    create_db_and_tables()
    with Session(engine) as session:
        try:
            summary = LeaderboardService(session).update_user_rankings(period)
        except LinguaError as e:
            print(f'Ranking update failed: {e}')
            return 1
    print(f"Ranked {summary['users_count']} users for {period} "
          f"[{summary['period_start']} .. {summary['period_end']}) batch {summary['batch_id']}")
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--period', choices=PERIODS, default='weekly', help='Snapshot period')
    args = parser.parse_args()
    sys.exit(main(period=args.period))
