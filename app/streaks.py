import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import db
from app.models import DailyStreak

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakResult:
    success: bool
    streak_count: int

    def to_dict(self) -> dict:
        return asdict(self)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _streak_row(user_id: int, day: date) -> DailyStreak | None:
    return DailyStreak.query.filter_by(user_id=user_id, day=day).first()


def record_daily_streak(user_id: int, today: date | None = None) -> StreakResult:
    """Record today's check-in; a missing row for yesterday resets the count to 1."""
    today = today or utc_today()
    yesterday = today - timedelta(days=1)

    try:
        existing = _streak_row(user_id, today)
        if existing:
            return StreakResult(success=False, streak_count=existing.streak_count)

        previous = _streak_row(user_id, yesterday)
        new_count = previous.streak_count + 1 if previous else 1

        db.session.add(DailyStreak(user_id=user_id, day=today, streak_count=new_count))
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent check-in for the same day.
        db.session.rollback()
        existing = _streak_row(user_id, today)
        return StreakResult(success=False, streak_count=existing.streak_count if existing else 0)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to record daily streak for user %s", user_id)
        return StreakResult(success=False, streak_count=0)

    return StreakResult(success=True, streak_count=new_count)


def get_current_streak(user_id: int) -> int:
    try:
        latest = (
            DailyStreak.query.filter_by(user_id=user_id)
            .order_by(DailyStreak.day.desc())
            .first()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load current streak for user %s", user_id)
        return 0
    return latest.streak_count if latest else 0


def get_longest_streak(user_id: int) -> int:
    try:
        longest = (
            db.session.query(func.max(DailyStreak.streak_count))
            .filter(DailyStreak.user_id == user_id)
            .scalar()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load longest streak for user %s", user_id)
        return 0
    return longest or 0


def get_streak_history(user_id: int, days: int = 30) -> list[DailyStreak]:
    try:
        return (
            DailyStreak.query.filter_by(user_id=user_id)
            .order_by(DailyStreak.day.desc())
            .limit(max(1, days))
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load streak history for user %s", user_id)
        return []
