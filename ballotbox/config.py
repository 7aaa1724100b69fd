import os
from datetime import timedelta
from pathlib import Path
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent  # project root (where wsgi.py is)
load_dotenv(BASE_DIR / ".env")


def _limit(action: str, max_attempts: int, window_minutes: int) -> tuple[int, int]:
    prefix = f"RATE_LIMIT_{action.upper()}"
    return (
        int(os.getenv(f"{prefix}_MAX", str(max_attempts))),
        int(os.getenv(f"{prefix}_WINDOW_MIN", str(window_minutes))),
    )


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "jwt-dev-secret")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(
        minutes=int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES_MIN", "480"))
    )
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(
        days=int(os.getenv("JWT_REFRESH_TOKEN_EXPIRES_DAYS", "1"))
    )

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Number of reverse proxies whose X-Forwarded-For / X-Forwarded-Proto are trusted
    PROXY_FIX_X_FOR = int(os.getenv("PROXY_FIX_X_FOR", "0"))

    # Election clock: all schedule times are interpreted at this fixed offset
    ELECTION_UTC_OFFSET_HOURS = float(os.getenv("ELECTION_UTC_OFFSET_HOURS", "7"))

    # Ballot tokens
    TOKEN_CODE_PREFIX = os.getenv("TOKEN_CODE_PREFIX", "RSL")
    TOKEN_EXPIRY_MINUTES = int(os.getenv("TOKEN_EXPIRY_MINUTES", "30"))
    TOKEN_BATCH_MAX = int(os.getenv("TOKEN_BATCH_MAX", "120"))

    # Rate limiting: "database" survives restarts and is shared between workers,
    # "memory" is per-process
    RATE_LIMIT_STORAGE = os.getenv("RATE_LIMIT_STORAGE", "database")
    RATE_LIMITS = {
        "login": _limit("login", 5, 15),
        "activate": _limit("activate", 30, 1),
        "validate": _limit("validate", 20, 1),
        "vote": _limit("vote", 20, 1),
    }

    SWAGGER = {"title": "Ballot Token Service API", "uiversion": 3}
