"""Badges and the achievement progress shown next to them.

A badge unlocks once a user's metric for its ``rule`` reaches
``requirement_count``. Metrics are read from the ledger, the streak table and
completed quest assignments. Unlocking is idempotent per (user, badge).
"""

import logging
from dataclasses import asdict, dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import db
from app.ledger import get_user_points
from app.models import BADGE_RULES, Badge, User, UserBadge, UserQuest, utcnow
from app.streaks import get_longest_streak

logger = logging.getLogger(__name__)

_SEEDED_FLAG = "badge_catalog_seeded"

DEFAULT_BADGES = [
    {
        "slug": "welcome",
        "name": "Welcome Badge",
        "description": "Started your nutrition journey.",
        "icon": "star",
        "category": "milestone",
        "rule": "level",
        "requirement_count": 1,
    },
    {
        "slug": "rising-star",
        "name": "Rising Star",
        "description": "Reached level 2.",
        "icon": "zap",
        "category": "milestone",
        "rule": "level",
        "requirement_count": 2,
    },
    {
        "slug": "nutrition-expert",
        "name": "Nutrition Expert",
        "description": "Reached level 5.",
        "icon": "crown",
        "category": "special",
        "rule": "level",
        "requirement_count": 5,
        "rarity": "rare",
    },
    {
        "slug": "master-nutritionist",
        "name": "Master Nutritionist",
        "description": "Reached level 10.",
        "icon": "crown",
        "category": "special",
        "rule": "level",
        "requirement_count": 10,
        "rarity": "legendary",
    },
    {
        "slug": "getting-started",
        "name": "Getting Started",
        "description": "Checked in three days in a row.",
        "icon": "fire",
        "category": "streak",
        "rule": "streak",
        "requirement_count": 3,
        "points": 15,
    },
    {
        "slug": "week-warrior",
        "name": "Week Warrior",
        "description": "Checked in seven days in a row.",
        "icon": "fire",
        "category": "streak",
        "rule": "streak",
        "requirement_count": 7,
        "points": 50,
        "rarity": "uncommon",
    },
    {
        "slug": "habit-builder",
        "name": "Habit Builder",
        "description": "Checked in thirty days in a row.",
        "icon": "fire",
        "category": "streak",
        "rule": "streak",
        "requirement_count": 30,
        "points": 200,
        "rarity": "rare",
    },
    {
        "slug": "first-quest",
        "name": "First Quest",
        "description": "Completed your first quest.",
        "icon": "gift",
        "category": "achievement",
        "rule": "quests_completed",
        "requirement_count": 1,
        "points": 10,
    },
    {
        "slug": "quest-regular",
        "name": "Quest Regular",
        "description": "Completed ten quests.",
        "icon": "gift",
        "category": "achievement",
        "rule": "quests_completed",
        "requirement_count": 10,
        "points": 100,
        "rarity": "uncommon",
    },
    {
        "slug": "quest-master",
        "name": "Quest Master",
        "description": "Completed fifty quests.",
        "icon": "crown",
        "category": "achievement",
        "rule": "quests_completed",
        "requirement_count": 50,
        "points": 300,
        "rarity": "legendary",
    },
]


@dataclass(frozen=True)
class BadgeUnlockResult:
    success: bool
    newly_unlocked: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def seed_default_badges_if_needed() -> None:
    if current_app.extensions.get(_SEEDED_FLAG):
        return

    changed = False
    for row in DEFAULT_BADGES:
        if row["rule"] not in BADGE_RULES:
            raise ValueError(f"Unknown badge rule: {row['rule']}")

        fields = {
            "name": row["name"],
            "description": row.get("description", ""),
            "icon": row.get("icon"),
            "category": row.get("category", "milestone"),
            "rule": row["rule"],
            "requirement_count": row.get("requirement_count", 1),
            "points": row.get("points", 0),
            "rarity": row.get("rarity", "common"),
        }
        existing = Badge.query.filter_by(slug=row["slug"]).first()
        if existing is None:
            db.session.add(Badge(slug=row["slug"], **fields))
            changed = True
            continue

        for field_name, field_value in fields.items():
            if getattr(existing, field_name) != field_value:
                setattr(existing, field_name, field_value)
                changed = True

    if changed:
        db.session.commit()
    current_app.extensions[_SEEDED_FLAG] = True


def serialize_badge(badge: Badge) -> dict:
    return {
        "id": badge.id,
        "slug": badge.slug,
        "name": badge.name,
        "description": badge.description,
        "icon": badge.icon,
        "category": badge.category,
        "rule": badge.rule,
        "requirement_count": badge.requirement_count,
        "points": badge.points,
        "rarity": badge.rarity,
    }


def serialize_user_badge(user_badge: UserBadge) -> dict:
    return {
        "id": user_badge.id,
        "badge_id": user_badge.badge_id,
        "unlocked_at": user_badge.unlocked_at.isoformat() if user_badge.unlocked_at else None,
        "is_equipped": user_badge.is_equipped,
        "badge": serialize_badge(user_badge.badge) if user_badge.badge else None,
    }


def badge_metrics(user_id: int) -> dict:
    ledger = get_user_points(user_id)
    completed = UserQuest.query.filter_by(user_id=user_id, completed=True).count()
    return {
        "level": ledger.current_level if ledger else 1,
        "streak": get_longest_streak(user_id),
        "quests_completed": completed,
    }


def _find_user_badge(user_id: int, badge_id: int) -> UserBadge | None:
    return UserBadge.query.filter_by(user_id=user_id, badge_id=badge_id).first()


def unlock_badge(user_id: int, badge_id: int) -> BadgeUnlockResult:
    try:
        if _find_user_badge(user_id, badge_id):
            return BadgeUnlockResult(success=True, newly_unlocked=False)

        badge = db.session.get(Badge, badge_id)
        if badge is None or not badge.active or db.session.get(User, user_id) is None:
            return BadgeUnlockResult(success=False)

        db.session.add(UserBadge(user_id=user_id, badge_id=badge_id, unlocked_at=utcnow()))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return BadgeUnlockResult(success=_find_user_badge(user_id, badge_id) is not None)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to unlock badge %s for user %s", badge_id, user_id)
        return BadgeUnlockResult(success=False)

    logger.info("User %s unlocked badge %s", user_id, badge_id)
    return BadgeUnlockResult(success=True, newly_unlocked=True)


def get_user_badges(user_id: int) -> list[UserBadge]:
    try:
        return (
            UserBadge.query.filter_by(user_id=user_id)
            .order_by(UserBadge.unlocked_at.desc(), UserBadge.id.desc())
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load badges for user %s", user_id)
        return []


def evaluate_badges(user_id: int) -> list[Badge]:
    """Unlock every active badge whose requirement the user now meets.

    Returns only the badges unlocked by this call.
    """
    try:
        metrics = badge_metrics(user_id)
        owned = {
            badge_id for (badge_id,) in db.session.query(UserBadge.badge_id).filter(UserBadge.user_id == user_id)
        }
        candidates = (
            Badge.query.filter_by(active=True)
            .order_by(Badge.requirement_count.asc(), Badge.id.asc())
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to evaluate badges for user %s", user_id)
        return []

    unlocked = []
    for badge in candidates:
        if badge.id in owned or metrics.get(badge.rule, 0) < badge.requirement_count:
            continue
        if unlock_badge(user_id, badge.id).newly_unlocked:
            unlocked.append(badge)
    return unlocked


def get_user_achievements(user_id: int) -> list[dict]:
    try:
        metrics = badge_metrics(user_id)
        owned = {user_badge.badge_id: user_badge for user_badge in UserBadge.query.filter_by(user_id=user_id)}
        badges = (
            Badge.query.filter_by(active=True)
            .order_by(Badge.rule.asc(), Badge.requirement_count.asc(), Badge.id.asc())
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load achievements for user %s", user_id)
        return []

    achievements = []
    for badge in badges:
        target = max(1, badge.requirement_count)
        user_badge = owned.get(badge.id)
        current = target if user_badge else min(metrics.get(badge.rule, 0), target)
        achievements.append(
            {
                "badge": serialize_badge(badge),
                "current": current,
                "target": target,
                "percentage": round(current / target * 100, 1),
                "unlocked": user_badge is not None,
                "unlocked_at": user_badge.unlocked_at.isoformat() if user_badge else None,
            }
        )
    return achievements
