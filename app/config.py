import os
from datetime import timedelta

DEFAULT_LEVEL_THRESHOLDS = (0, 100, 250, 500, 1000, 2000, 3500, 6000, 10000, 15000)


def normalize_database_url(url: str) -> str:
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://") :]
    return url


def parse_level_thresholds(raw: str | None) -> tuple[int, ...]:
    if not raw or not raw.strip():
        return DEFAULT_LEVEL_THRESHOLDS

    values = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        values.append(int(token))

    if not values or values[0] != 0:
        raise ValueError("LEVEL_THRESHOLDS must start at 0.")
    if any(later <= earlier for earlier, later in zip(values, values[1:])):
        raise ValueError("LEVEL_THRESHOLDS must be strictly increasing.")
    return tuple(values)


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = normalize_database_url(
        os.getenv("DATABASE_URL", "sqlite:///dev.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"
    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "tastehealth_session")
    PERMANENT_SESSION_LIFETIME = timedelta(
        hours=int(os.getenv("SESSION_LIFETIME_HOURS", "24"))
    )

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    LEVEL_THRESHOLDS = parse_level_thresholds(os.getenv("LEVEL_THRESHOLDS"))
    DAILY_QUEST_COUNT = int(os.getenv("DAILY_QUEST_COUNT", "3"))
    LEADERBOARD_LIMIT = int(os.getenv("LEADERBOARD_LIMIT", "50"))
    POINTS_HISTORY_LIMIT = int(os.getenv("POINTS_HISTORY_LIMIT", "50"))
    NOTIFICATION_PAGE_SIZE = int(os.getenv("NOTIFICATION_PAGE_SIZE", "10"))
    # 0 disables the check-in bonus.
    STREAK_CHECKIN_POINTS = int(os.getenv("STREAK_CHECKIN_POINTS", "10"))
    SEED_QUEST_CATALOG = (
        os.getenv("SEED_QUEST_CATALOG", "true").strip().lower() in {"1", "true", "yes", "on"}
    )
    SEED_BADGE_CATALOG = (
        os.getenv("SEED_BADGE_CATALOG", "true").strip().lower() in {"1", "true", "yes", "on"}
    )
