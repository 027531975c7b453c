"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    DATABASE_URL: str
    LOG_LEVEL: str
    RANKING_SNAPSHOT_CAP: int
    RANKING_TIMEZONE: str
    LESSONS_FILE: str
    ADMIN_USERNAMES: frozenset

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'lingua.db'}")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        # upper bound on users captured by one ranking snapshot
        self.RANKING_SNAPSHOT_CAP = int(os.getenv("RANKING_SNAPSHOT_CAP", "1000"))
        self.RANKING_TIMEZONE = os.getenv("RANKING_TIMEZONE", "UTC")
        self.LESSONS_FILE = os.getenv("LESSONS_FILE", "")
        # users allowed to write ranking snapshots over HTTP; empty admits any signed-in user
        self.ADMIN_USERNAMES = frozenset(
            name.strip() for name in os.getenv("ADMIN_USERNAMES", "").split(",") if name.strip()
        )
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.JWT_EXPIRE_HOURS <= 0:
            raise RuntimeError("JWT_EXPIRE_HOURS must be positive")
        if self.RANKING_SNAPSHOT_CAP <= 0:
            raise RuntimeError("RANKING_SNAPSHOT_CAP must be positive")


settings = Settings()
