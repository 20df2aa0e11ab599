"""Points and level bookkeeping.

The ledger keeps one ``UserPoints`` row per user. ``total_points`` only ever
grows and ``current_level`` is recomputed from it in the same transaction as
every award, so the two columns cannot drift apart.
"""

import logging
from bisect import bisect_right
from dataclasses import asdict, dataclass

from flask import current_app, has_app_context
from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import db
from app.config import DEFAULT_LEVEL_THRESHOLDS
from app.models import PointsTransaction, User, UserPoints, utcnow

logger = logging.getLogger(__name__)


class PointsValidationError(ValueError):
    pass


@dataclass(frozen=True)
class AwardResult:
    success: bool
    level_up: bool = False
    new_level: int | None = None
    total_points: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def configured_thresholds() -> tuple[int, ...]:
    if has_app_context():
        return tuple(current_app.config.get("LEVEL_THRESHOLDS") or DEFAULT_LEVEL_THRESHOLDS)
    return DEFAULT_LEVEL_THRESHOLDS


def level_from_points(points: int, thresholds=None) -> int:
    """Return the level unlocked by ``points``.

    Thresholds are inclusive lower bounds: with ``(0, 100, 300)`` a total of
    100 is level 2. Negative totals are treated as zero.
    """
    if thresholds is None:
        thresholds = configured_thresholds()
    return max(1, bisect_right(thresholds, max(0, int(points))))


def next_level_threshold(points: int, thresholds=None) -> int | None:
    if thresholds is None:
        thresholds = configured_thresholds()
    index = bisect_right(thresholds, max(0, int(points)))
    if index >= len(thresholds):
        return None
    return thresholds[index]


def points_to_next_level(points: int, thresholds=None) -> int:
    target = next_level_threshold(points, thresholds)
    if target is None:
        return 0
    return target - max(0, int(points))


def _validate_award(amount, reason) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise PointsValidationError("Point amount must be an integer.")
    if amount <= 0:
        raise PointsValidationError("Point amount must be positive.")
    if not reason or not str(reason).strip():
        raise PointsValidationError("A reason is required when awarding points.")


def _get_or_create_ledger(user_id: int, thresholds) -> UserPoints:
    ledger = UserPoints.query.filter_by(user_id=user_id).first()
    if ledger:
        return ledger

    ledger = UserPoints(
        user_id=user_id,
        total_points=0,
        current_level=level_from_points(0, thresholds),
    )
    db.session.add(ledger)
    db.session.flush()
    return ledger


def _apply_award(user_id, amount, reason, source_id, source_type, thresholds) -> AwardResult:
    ledger = _get_or_create_ledger(user_id, thresholds)

    # Increment server-side so concurrent awards cannot overwrite each other.
    db.session.execute(
        update(UserPoints)
        .where(UserPoints.user_id == user_id)
        .values(total_points=UserPoints.total_points + amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(ledger)

    old_level = level_from_points(ledger.total_points - amount, thresholds)
    new_level = level_from_points(ledger.total_points, thresholds)
    ledger.current_level = new_level

    db.session.add(
        PointsTransaction(
            user_id=user_id,
            points=amount,
            transaction_type="earn",
            reason=str(reason).strip()[:255],
            source_id=str(source_id) if source_id is not None else None,
            source_type=source_type,
        )
    )
    db.session.commit()

    if new_level > old_level:
        logger.info("User %s reached level %s", user_id, new_level)

    return AwardResult(
        success=True,
        level_up=new_level > old_level,
        new_level=new_level,
        total_points=ledger.total_points,
    )


def award_points(
    user_id: int,
    amount: int,
    reason: str,
    source_id=None,
    source_type: str | None = None,
) -> AwardResult:
    _validate_award(amount, reason)
    thresholds = configured_thresholds()

    try:
        if db.session.get(User, user_id) is None:
            return AwardResult(success=False)
        return _apply_award(user_id, amount, reason, source_id, source_type, thresholds)
    except IntegrityError:
        # A parallel request created the ledger row first; retry against it.
        db.session.rollback()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to award %s points to user %s", amount, user_id)
        return AwardResult(success=False)

    try:
        return _apply_award(user_id, amount, reason, source_id, source_type, thresholds)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to award %s points to user %s", amount, user_id)
        return AwardResult(success=False)


def get_user_points(user_id: int) -> UserPoints | None:
    try:
        return UserPoints.query.filter_by(user_id=user_id).first()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load points for user %s", user_id)
        return None


def get_points_summary(user_id: int) -> dict:
    thresholds = configured_thresholds()
    ledger = get_user_points(user_id)
    total = ledger.total_points if ledger else 0
    level = ledger.current_level if ledger else level_from_points(0, thresholds)
    return {
        "total_points": total,
        "current_level": level,
        "points_to_next_level": points_to_next_level(total, thresholds),
        "next_level_threshold": next_level_threshold(total, thresholds),
        "max_level": len(thresholds),
    }


def get_points_transactions(user_id: int, limit: int | None = None) -> list[PointsTransaction]:
    if limit is None:
        limit = current_app.config.get("POINTS_HISTORY_LIMIT", 50)
    try:
        return (
            PointsTransaction.query.filter_by(user_id=user_id)
            .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
            .limit(max(1, limit))
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load points history for user %s", user_id)
        return []


def _leaderboard_entry(ledger: UserPoints, user: User, rank: int) -> dict:
    return {
        "user_id": ledger.user_id,
        "name": user.display_name(),
        "points": ledger.total_points,
        "level": ledger.current_level,
        "rank": rank,
    }


def get_leaderboard(user_id: int | None = None, limit: int | None = None) -> dict:
    if limit is None:
        limit = current_app.config.get("LEADERBOARD_LIMIT", 50)

    try:
        rows = (
            db.session.query(UserPoints, User)
            .join(User, User.id == UserPoints.user_id)
            .order_by(UserPoints.total_points.desc(), UserPoints.user_id.asc())
            .limit(max(1, limit))
            .all()
        )
        leaderboard = [
            _leaderboard_entry(ledger, user, index + 1) for index, (ledger, user) in enumerate(rows)
        ]

        user_rank = None
        if user_id is not None:
            user_rank = next((entry for entry in leaderboard if entry["user_id"] == user_id), None)
            if user_rank is None:
                own = UserPoints.query.filter_by(user_id=user_id).first()
                if own:
                    ahead = (
                        db.session.query(func.count(UserPoints.id))
                        .filter(
                            or_(
                                UserPoints.total_points > own.total_points,
                                and_(
                                    UserPoints.total_points == own.total_points,
                                    UserPoints.user_id < own.user_id,
                                ),
                            )
                        )
                        .scalar()
                    )
                    user_rank = _leaderboard_entry(own, db.session.get(User, user_id), ahead + 1)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to build leaderboard")
        return {"leaderboard": [], "user_rank": None}

    return {"leaderboard": leaderboard, "user_rank": user_rank}


def ensure_ledger_rows() -> dict:
    """Create missing ledger rows and repair levels that disagree with totals."""
    thresholds = configured_thresholds()

    missing_user_ids = [
        user_id
        for (user_id,) in db.session.query(User.id)
        .outerjoin(UserPoints, UserPoints.user_id == User.id)
        .filter(UserPoints.id.is_(None))
        .all()
    ]
    for user_id in missing_user_ids:
        db.session.add(
            UserPoints(
                user_id=user_id,
                total_points=0,
                current_level=level_from_points(0, thresholds),
            )
        )

    repaired = 0
    for ledger in UserPoints.query.all():
        expected = level_from_points(ledger.total_points, thresholds)
        if ledger.current_level != expected:
            ledger.current_level = expected
            repaired += 1

    db.session.commit()
    if missing_user_ids or repaired:
        logger.info(
            "Ledger repair created %s rows and fixed %s levels", len(missing_user_ids), repaired
        )
    return {"created": len(missing_user_ids), "repaired": repaired}
