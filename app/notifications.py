"""User notifications and the scheduled jobs that generate them.

Two generators exist:

* the rotation job sends every user one message from the category the
  rotation cursor points at, then moves the cursor to the next category;
* the daily job sends every user one message from each category, at most once
  per calendar day.

The rotation cursor lives in a single ``notification_rotation`` row. It is
read into a ``RotationState`` before a run and written back with a
compare-and-swap on ``version`` in the same transaction as the new
notifications, so two workers cannot both advance it from the same state.
"""

import logging
import random
from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import db
from app.models import Notification, NotificationLog, NotificationRotation, User, utcnow
from app.streaks import utc_today

logger = logging.getLogger(__name__)

ROTATION_ROW_ID = 1
NOTIFICATION_TYPES = ("meal", "water", "exercise", "sleep", "achievement", "system")

NOTIFICATION_TEMPLATES = {
    "meal": [
        {"title": "Meal Plan Reminder", "message": "Don't forget to prepare your lunch according to your meal plan today!"},
        {"title": "New Recipe Available", "message": "A new healthy recipe matching your preferences just landed. Check it out!"},
        {"title": "Meal Tracking Reminder", "message": "You haven't logged breakfast yet today. Did you forget to track it?"},
        {"title": "Weekly Meal Plan Ready", "message": "Your weekly meal plan is ready to view."},
        {"title": "Meal Prep Day", "message": "Today is a great day to prep meals. Get your containers ready!"},
        {"title": "Balanced Plate", "message": "Try to include protein, healthy fats and complex carbs in your next meal."},
        {"title": "Mindful Eating", "message": "Eat slowly and without screens today. It helps digestion and satisfaction."},
    ],
    "water": [
        {"title": "Hydration Reminder", "message": "You're behind on your water goal. Time to hydrate!"},
        {"title": "Morning Hydration", "message": "Start your day with a glass of water. Have you had your first one yet?"},
        {"title": "Hydration Tip", "message": "Add lemon or cucumber to your water for a refreshing twist."},
        {"title": "Afternoon Hydration Check", "message": "It's mid-afternoon. Have you been drinking enough water today?"},
        {"title": "Hydration and Exercise", "message": "Hydrate before, during and after your workout today."},
        {"title": "Keep a Bottle Handy", "message": "Carrying a water bottle makes it easier to hit your goal."},
    ],
    "exercise": [
        {"title": "Workout Reminder", "message": "It's time for your scheduled workout. Get moving!"},
        {"title": "Movement Break", "message": "Take a five-minute movement break to energize body and mind."},
        {"title": "Active Minutes", "message": "A short walk now gets you closer to today's active minutes goal."},
        {"title": "Rest Day Reminder", "message": "Rest days matter too. Focus on recovery and stretching today."},
        {"title": "Exercise Motivation", "message": "Exercise celebrates what your body can do. It is not a punishment."},
    ],
    "sleep": [
        {"title": "Sleep Schedule Reminder", "message": "Start getting ready for bed to meet your sleep goal tonight."},
        {"title": "Sleep Tracking Reminder", "message": "Don't forget to log last night's sleep."},
        {"title": "Sleep Tip", "message": "Avoid screens an hour before bedtime for better sleep quality."},
        {"title": "Sleep Routine", "message": "Consistent sleep and wake times help your body's natural rhythm."},
        {"title": "Sleep Environment", "message": "Keep your bedroom cool, dark and quiet tonight."},
    ],
    "achievement": [
        {"title": "Daily Progress Check", "message": "You're making progress every day. Keep going!"},
        {"title": "Quest Reminder", "message": "Your daily quests are waiting. Finish one to earn points."},
        {"title": "Streak Check-in", "message": "Check in today to keep your streak alive."},
        {"title": "Leaderboard Update", "message": "See where you stand on the nutrition leaderboard this week."},
        {"title": "Level Up Ahead", "message": "You're closer to your next level than you think. Earn a few more points!"},
    ],
    "system": [
        {"title": "App Tip", "message": "Explore your nutrition dashboard. There may be tools you haven't found yet."},
        {"title": "Weekly Summary Ready", "message": "Your weekly health and nutrition summary is available."},
        {"title": "Profile Completion", "message": "Add more profile details to get better recommendations."},
        {"title": "Feature Reminder", "message": "Check your progress charts to see how far you've come."},
        {"title": "Account Security", "message": "Consider updating your password for better account security."},
    ],
}


class RotationConflictError(RuntimeError):
    pass


@dataclass(frozen=True)
class RotationState:
    current_type: str
    version: int

    def advanced(self) -> "RotationState":
        return RotationState(next_notification_type(self.current_type), self.version + 1)


@dataclass(frozen=True)
class RotationResult:
    sent_type: str
    count: int
    state: RotationState


@dataclass(frozen=True)
class DailyRunResult:
    sent: bool
    count: int
    notification_date: date


def next_notification_type(current: str) -> str:
    if current not in NOTIFICATION_TYPES:
        return NOTIFICATION_TYPES[0]
    index = NOTIFICATION_TYPES.index(current)
    return NOTIFICATION_TYPES[(index + 1) % len(NOTIFICATION_TYPES)]


def pick_template(kind: str, rng: random.Random) -> dict:
    return rng.choice(NOTIFICATION_TEMPLATES[kind])


def _all_user_ids() -> list[int]:
    return [user_id for (user_id,) in db.session.query(User.id).order_by(User.id.asc())]


def load_rotation_state() -> RotationState:
    row = db.session.get(NotificationRotation, ROTATION_ROW_ID)
    if row is None:
        row = NotificationRotation(id=ROTATION_ROW_ID, current_type=NOTIFICATION_TYPES[0], version=0)
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            row = db.session.get(NotificationRotation, ROTATION_ROW_ID)

    current_type = row.current_type if row.current_type in NOTIFICATION_TYPES else NOTIFICATION_TYPES[0]
    return RotationState(current_type=current_type, version=row.version)


def run_notification_rotation(state: RotationState, rng: random.Random | None = None) -> RotationResult:
    """Send one ``state.current_type`` notification to every user and advance the cursor.

    Re-running for the same period sends again; only a concurrent run from
    the same state is rejected, with ``RotationConflictError``.
    """
    rng = rng or random.Random()
    user_ids = _all_user_ids()
    if not user_ids:
        logger.info("No users found for notification rotation")
        return RotationResult(sent_type=state.current_type, count=0, state=state)

    next_state = state.advanced()
    try:
        for user_id in user_ids:
            template = pick_template(state.current_type, rng)
            db.session.add(
                Notification(
                    user_id=user_id,
                    kind=state.current_type,
                    title=template["title"],
                    message=template["message"],
                    is_read=False,
                )
            )

        result = db.session.execute(
            update(NotificationRotation)
            .where(
                NotificationRotation.id == ROTATION_ROW_ID,
                NotificationRotation.version == state.version,
            )
            .values(
                current_type=next_state.current_type,
                version=next_state.version,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise RotationConflictError(
                f"Rotation cursor moved past version {state.version}; another run is active."
            )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Notification rotation failed for type %s", state.current_type)
        raise

    logger.info(
        "Sent %s %s notifications; next type is %s",
        len(user_ids),
        state.current_type,
        next_state.current_type,
    )
    return RotationResult(sent_type=state.current_type, count=len(user_ids), state=next_state)


def run_daily_notifications(today: date | None = None, rng: random.Random | None = None) -> DailyRunResult:
    today = today or utc_today()
    rng = rng or random.Random()

    if NotificationLog.query.filter_by(notification_date=today).first():
        logger.info("Daily notifications already sent for %s", today)
        return DailyRunResult(sent=False, count=0, notification_date=today)

    user_ids = _all_user_ids()
    if not user_ids:
        return DailyRunResult(sent=False, count=0, notification_date=today)

    count = 0
    for user_id in user_ids:
        for kind in NOTIFICATION_TYPES:
            template = pick_template(kind, rng)
            db.session.add(
                Notification(
                    user_id=user_id,
                    kind=kind,
                    title=template["title"],
                    message=template["message"],
                    is_read=False,
                )
            )
            count += 1

    db.session.add(NotificationLog(notification_date=today, count=count))
    try:
        db.session.commit()
    except IntegrityError:
        # The log row for today was written by a concurrent run.
        db.session.rollback()
        return DailyRunResult(sent=False, count=0, notification_date=today)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Daily notification run failed for %s", today)
        raise

    logger.info("Sent %s daily notifications to %s users", count, len(user_ids))
    return DailyRunResult(sent=True, count=count, notification_date=today)


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "kind": notification.kind,
        "title": notification.title,
        "message": notification.message,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


def create_notification(user_id: int, kind: str, title: str, message: str) -> Notification | None:
    notification = Notification(user_id=user_id, kind=kind, title=title, message=message, is_read=False)
    try:
        db.session.add(notification)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to create notification for user %s", user_id)
        return None
    return notification


def get_notifications(user_id: int, limit: int | None = None) -> list[Notification]:
    if limit is None:
        limit = current_app.config.get("NOTIFICATION_PAGE_SIZE", 10)
    try:
        return (
            Notification.query.filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(max(1, limit))
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load notifications for user %s", user_id)
        return []


def get_unread_notification_count(user_id: int) -> int:
    try:
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to count unread notifications for user %s", user_id)
        return 0


def mark_notification_as_read(user_id: int, notification_id: int) -> bool:
    try:
        notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if notification is None:
            return False
        notification.is_read = True
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to mark notification %s as read", notification_id)
        return False
    return True


def mark_all_notifications_as_read(user_id: int) -> bool:
    try:
        Notification.query.filter_by(user_id=user_id, is_read=False).update(
            {"is_read": True}, synchronize_session=False
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to mark notifications as read for user %s", user_id)
        return False
    return True


def delete_notification(user_id: int, notification_id: int) -> bool:
    try:
        deleted = Notification.query.filter_by(id=notification_id, user_id=user_id).delete(
            synchronize_session=False
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to delete notification %s", notification_id)
        return False
    return deleted > 0
