"""CLI script to fill the database with fake learners and lesson results.
Usage: python scripts/seed_data.py [--users N] [--lessons N] [--seed S]
"""
import sys
import argparse
import pathlib
import random
from typing import Optional
# Ensure `backend/` is on sys.path so `lingua` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from lingua.database import engine, create_db_and_tables
from lingua import models, repositories
from lingua.completion import LessonCompletionService
from lingua.errors import ConflictError
from lingua.services import AuthService

FIRST_NAMES = ["Alex", "Ivan", "Maxim", "Dmitry", "Andrew", "Artem", "Sergey", "Vladimir", "Nikita", "Mikhail"]
LAST_NAMES = ["Smirnov", "Ivanov", "Kuznetsov", "Sokolov", "Popov", "Lebedev", "Kozlov", "Novikov", "Morozov", "Petrov"]
MIN_TIME, MAX_TIME = 60, 300
MIN_XP, MAX_XP = 50, 200


def _ensure_lessons(session: Session, count: int):
    """Return `count` lessons, creating placeholder grammar lessons if the catalogue is short."""
    repo = repositories.LessonRepository(session)
    lessons = repo.list_all()
    level = max((l.level for l in lessons), default=0)
    while len(lessons) < count:
        level += 1
        for mode in models.LESSON_MODES:
            lessons.append(repo.create(models.Lesson(type='grammar', level=level, mode=mode, xp=100, lesson_data={'title': f'Grammar {level} ({mode})'})))
    return lessons[:count]


def main(users: int = 50, lessons: int = 10, seed: Optional[int] = None):
    """Create fake users and complete random lessons for each of them.

    Users are named `user1..userN` with password `password123`; existing
    usernames are reused so the script can be re-run.
    """
    rng = random.Random(seed)
    create_db_and_tables()
    with Session(engine) as session:
        auth = AuthService(session)
        user_repo = repositories.UserRepository(session)
        completion = LessonCompletionService(session)
        catalogue = _ensure_lessons(session, lessons)
        created = 0
        results = 0
        for i in range(users):
            username = f'user{i + 1}'
            try:
                user = auth.register(username, 'password123', rng.choice(FIRST_NAMES), rng.choice(LAST_NAMES))
                created += 1
            except ConflictError:
                user = user_repo.get_by_username(username)
            for lesson in rng.sample(catalogue, rng.randint(1, len(catalogue))):
                completion.complete_lesson(user.id, lesson.id, rng.randint(MIN_TIME, MAX_TIME), rng.randint(MIN_XP, MAX_XP))
                results += 1
        print(f'Created {created} users, recorded {results} lesson results')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--users', type=int, default=50, help='Number of fake users')
    parser.add_argument('--lessons', type=int, default=10, help='Number of lessons to spread results over')
    parser.add_argument('--seed', type=int, help='Random seed for reproducible data')
    args = parser.parse_args()
    main(users=args.users, lessons=args.lessons, seed=args.seed)
