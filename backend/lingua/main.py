"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the language-learning backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Domain errors raised by services
are translated into HTTP status codes by `lingua_error_handler`.

Endpoints implemented:
- POST /auth/register
- POST /auth/login
- GET /users/me, PATCH /users/me, GET /users/me/stats
- GET /lessons/types, GET /lessons, GET /lessons/{lesson_id}
- POST /lessons/complete
- GET /leaderboard, GET /leaderboard/extended
- GET /leaderboard/lesson/{lesson_id}
- GET /leaderboard/history
- POST /admin/leaderboard/update
- GET /health
"""

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import json
import logging
import time
import uuid
from typing import List
from .database import create_db_and_tables, get_session, engine
from . import services, models
from .auth import get_current_user
from .completion import LessonCompletionService
from .config import settings
from .errors import LinguaError
from .leaderboard import LeaderboardService
from .schemas import (
    CompleteLessonIn,
    CompleteLessonOut,
    ExtendedLeaderboardEntryOut,
    LeaderboardEntryOut,
    LessonLeaderboardOut,
    LessonLevelOut,
    LessonOut,
    LoginIn,
    ProfileUpdateIn,
    ProfileWithStatsOut,
    RankingHistoryOut,
    RankingUpdateOut,
    RegisterIn,
    TokenOut,
    UserOut,
)

app = FastAPI(title="Lingua Learning API")
logger = logging.getLogger("lingua.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

# completion responses embed this many neighbours on each side
COMPLETION_LEADERBOARD_LIMIT = 10

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()

if settings.LESSONS_FILE:
    with Session(engine) as _session:
        services.LessonService(_session).load_lessons_from_file(settings.LESSONS_FILE)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(LinguaError)
async def lingua_error_handler(request: Request, exc: LinguaError):
    """Map domain errors to their HTTP status with a `detail` body."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "domain_error %s",
        json.dumps(
            {
                "request_id": getattr(request.state, "request_id", ""),
                "path": request.url.path,
                **exc.to_dict(),
            },
            default=str,
            ensure_ascii=True,
        ),
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "context": exc.details})


def _user_out(user: models.User) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        experience=user.experience,
    )


@app.post('/auth/register', response_model=UserOut)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new user.

    Returns 409 if the username is already taken.
    """
    user = services.AuthService(db).register(payload.username, payload.password, payload.first_name, payload.last_name)
    return _user_out(user)


@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token.

    The returned token contains `user_id` and `username` and is signed
    using the configured JWT secret.
    """
    token = services.AuthService(db).authenticate(payload.username, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return {'access_token': token}


@app.get('/users/me', response_model=UserOut)
def get_me(user: models.User = Depends(get_current_user)):
    """Return the authenticated user's profile."""
    return _user_out(user)


@app.patch('/users/me', response_model=UserOut)
def update_me(payload: ProfileUpdateIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Update first/last name of the authenticated user."""
    updated = services.UserService(db).update_profile(user.id, payload.first_name, payload.last_name)
    return _user_out(updated)


@app.get('/users/me/stats', response_model=ProfileWithStatsOut)
def get_my_stats(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Return the profile together with lesson result statistics."""
    stats = services.UserService(db).get_stats(user.id)
    return {'user': _user_out(user), 'stats': stats}


@app.get('/lessons/types', response_model=List[str])
def lesson_types(db: Session = Depends(get_session)):
    """List the distinct lesson types in the catalogue."""
    return services.LessonService(db).list_types()


@app.get('/lessons', response_model=List[LessonLevelOut])
def lessons_by_type(type: str, db: Session = Depends(get_session)):
    """Return the easy/hard lesson ids of every complete level of `type`."""
    return services.LessonService(db).get_lessons_by_type(type)


@app.get('/lessons/{lesson_id}', response_model=LessonOut)
def get_lesson(lesson_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Return a lesson including its content document."""
    lesson = services.LessonService(db).get_lesson(lesson_id)
    return LessonOut(
        id=lesson.id,
        type=lesson.type,
        level=lesson.level,
        mode=lesson.mode,
        english_level=lesson.english_level,
        xp=lesson.xp,
        lesson_data=lesson.lesson_data or {},
    )


@app.post('/lessons/complete', response_model=CompleteLessonOut)
def complete_lesson(payload: CompleteLessonIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Record a finished lesson and return the learner's standing in it.

    Experience is credited to the authenticated user, the lesson result
    is stored (overwriting an earlier one) and the lesson leaderboard
    around the user is returned alongside the new totals.
    """
    result = LessonCompletionService(db).complete_lesson(
        user.id, payload.lesson_id, payload.completion_time, payload.earned_experience
    )
    board = LeaderboardService(db).get_lesson_leaderboard(payload.lesson_id, user.id, COMPLETION_LEADERBOARD_LIMIT)
    return {
        'experience': result['total_experience'],
        'earned_xp': result['earned_experience'],
        'completed_time': result['completion_time'],
        'leaderboard': board,
    }


@app.get('/leaderboard', response_model=List[LeaderboardEntryOut])
def leaderboard(limit: int = 10, db: Session = Depends(get_session)):
    """Top learners by experience with their weekly trend."""
    return LeaderboardService(db).get_global_leaderboard(limit)


@app.get('/leaderboard/extended', response_model=List[ExtendedLeaderboardEntryOut])
def extended_leaderboard(limit: int = 10, db: Session = Depends(get_session)):
    """Top learners with lesson count and time spent."""
    return LeaderboardService(db).get_extended_leaderboard(limit)


@app.get('/leaderboard/lesson/{lesson_id}', response_model=LessonLeaderboardOut)
def lesson_leaderboard(lesson_id: int, limit: int = 10, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Results of one lesson around the authenticated user.

    Returns 404 if the user has not completed the lesson.
    """
    return LeaderboardService(db).get_lesson_leaderboard(lesson_id, user.id, limit)


@app.get('/leaderboard/history', response_model=List[RankingHistoryOut])
def ranking_history(period: str = 'weekly', limit: int = 10, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """The authenticated user's past snapshot positions for `period`."""
    return LeaderboardService(db).get_user_ranking_history(user.id, period, limit)


@app.post('/admin/leaderboard/update', response_model=RankingUpdateOut)
def update_rankings(period: str = 'weekly', db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Snapshot current positions for `period` (daily, weekly or monthly).

    When `ADMIN_USERNAMES` is configured only those users may call this;
    otherwise any signed-in user can, which suits single-tenant dev setups.
    """
    if settings.ADMIN_USERNAMES and user.username not in settings.ADMIN_USERNAMES:
        logger.warning("admin_denied %s", json.dumps({"user_id": user.id, "path": "/admin/leaderboard/update"}))
        raise HTTPException(status_code=403, detail='admin rights required')
    return LeaderboardService(db).update_user_rankings(period)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
