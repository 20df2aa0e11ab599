import logging
from functools import wraps

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from app import db
from app.badges import (
    evaluate_badges,
    get_user_achievements,
    get_user_badges,
    seed_default_badges_if_needed,
    serialize_badge,
    serialize_user_badge,
)
from app.ledger import (
    PointsValidationError,
    award_points,
    get_leaderboard,
    get_points_summary,
    get_points_transactions,
)
from app.models import QUEST_TYPES, Quest, User
from app.notifications import (
    create_notification,
    delete_notification,
    get_notifications,
    get_unread_notification_count,
    mark_all_notifications_as_read,
    mark_notification_as_read,
    serialize_notification,
)
from app.quest_catalog import seed_default_quests_if_needed
from app.quests import (
    complete_quest_step,
    generate_daily_quests_for_user,
    get_quests_by_type,
    get_user_active_quests,
    get_user_completed_quests,
    get_user_quests,
    serialize_assignment,
    serialize_quest,
    start_quest,
)
from app.streaks import get_current_streak, get_longest_streak, get_streak_history, record_daily_streak

bp = Blueprint("main", __name__)
logger = logging.getLogger(__name__)


def normalize_email(value: str | None):
    if not value:
        return None
    return value.strip().lower()


def parse_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def request_data():
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form


def get_current_user_id():
    user = g.get("user")
    return user.id if user else None


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if g.user is None:
            return jsonify({"ok": False, "error": "Please log in first."}), 401
        return view(*args, **kwargs)

    return wrapped


def maybe_seed_quests():
    if current_app.config.get("SEED_QUEST_CATALOG"):
        seed_default_quests_if_needed()


def maybe_seed_badges():
    if current_app.config.get("SEED_BADGE_CATALOG"):
        seed_default_badges_if_needed()


def reward_new_badges(user_id: int) -> list[dict]:
    maybe_seed_badges()
    unlocked = evaluate_badges(user_id)
    for badge in unlocked:
        if badge.points > 0:
            award = award_points(
                user_id,
                badge.points,
                f"Badge unlocked: {badge.name}",
                source_id=badge.id,
                source_type="badge",
            )
            if not award.success:
                logger.warning("Badge %s points for user %s were not recorded", badge.id, user_id)
        create_notification(
            user_id,
            "achievement",
            "Badge Unlocked!",
            f'You earned the "{badge.name}" badge.',
        )
    return [serialize_badge(badge) for badge in unlocked]


@bp.before_app_request
def load_logged_in_user():
    user_id = session.get("user_id")
    g.user = db.session.get(User, user_id) if user_id else None


@bp.post("/register")
def register():
    data = request_data()
    full_name = (data.get("full_name") or "").strip()
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""

    if not full_name:
        return jsonify({"ok": False, "error": "Full name is required."}), 400
    if not email:
        return jsonify({"ok": False, "error": "Email is required."}), 400
    if len(password) < 8:
        return jsonify({"ok": False, "error": "Password must be at least 8 characters."}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({"ok": False, "error": "An account with that email already exists."}), 400

    user = User(
        full_name=full_name,
        email=email,
        password_hash=generate_password_hash(password),
    )
    db.session.add(user)
    db.session.commit()

    session.clear()
    session["user_id"] = user.id
    return jsonify({"ok": True, "user_id": user.id}), 201


@bp.post("/login")
def login():
    data = request_data()
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first() if email else None
    if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
        return jsonify({"ok": False, "error": "Invalid email or password."}), 401

    session.clear()
    session["user_id"] = user.id
    return jsonify({"ok": True, "user_id": user.id})


@bp.post("/logout")
@login_required
def logout():
    session.clear()
    return jsonify({"ok": True})


@bp.get("/api/me")
@login_required
def me():
    user_id = get_current_user_id()
    return jsonify(
        {
            "ok": True,
            "user_id": user_id,
            "name": g.user.display_name(),
            "points": get_points_summary(user_id),
            "streak": get_current_streak(user_id),
            "unread_notifications": get_unread_notification_count(user_id),
        }
    )


@bp.get("/api/points")
@login_required
def points_summary():
    return jsonify({"ok": True, "points": get_points_summary(get_current_user_id())})


@bp.get("/api/points/transactions")
@login_required
def points_transactions():
    limit = parse_int(request.args.get("limit"))
    transactions = get_points_transactions(get_current_user_id(), limit=limit)
    return jsonify(
        {
            "ok": True,
            "transactions": [
                {
                    "id": item.id,
                    "points": item.points,
                    "transaction_type": item.transaction_type,
                    "reason": item.reason,
                    "source_id": item.source_id,
                    "source_type": item.source_type,
                    "created_at": item.created_at.isoformat(),
                }
                for item in transactions
            ],
        }
    )


@bp.get("/api/leaderboard")
@login_required
def leaderboard():
    limit = parse_int(request.args.get("limit"))
    board = get_leaderboard(user_id=get_current_user_id(), limit=limit)
    return jsonify({"ok": True, **board})


@bp.get("/api/streak")
@login_required
def streak_overview():
    user_id = get_current_user_id()
    history = get_streak_history(user_id)
    return jsonify(
        {
            "ok": True,
            "current": get_current_streak(user_id),
            "longest": get_longest_streak(user_id),
            "history": [{"day": row.day.isoformat(), "streak_count": row.streak_count} for row in history],
        }
    )


@bp.post("/api/streak/check-in")
@login_required
def streak_check_in():
    user_id = get_current_user_id()
    result = record_daily_streak(user_id)
    payload = {"ok": True, "streak": result.to_dict(), "award": None, "badges": []}
    if not result.success:
        return jsonify(payload)

    bonus = current_app.config.get("STREAK_CHECKIN_POINTS", 0)
    if bonus > 0:
        award = award_points(
            user_id,
            bonus,
            f"Daily check-in (day {result.streak_count})",
            source_type="streak",
        )
        payload["award"] = award.to_dict()
    payload["badges"] = reward_new_badges(user_id)
    return jsonify(payload)


@bp.get("/api/quests")
@login_required
def quest_list():
    quest_type = (request.args.get("type") or "daily").strip().lower()
    if quest_type not in QUEST_TYPES:
        return jsonify({"ok": False, "error": "Invalid quest type. Use daily, weekly, or monthly."}), 400

    maybe_seed_quests()
    return jsonify({"ok": True, "quests": [serialize_quest(quest) for quest in get_quests_by_type(quest_type)]})


@bp.get("/api/quests/active")
@login_required
def quest_active():
    return jsonify({"ok": True, "quests": get_user_active_quests(get_current_user_id())})


@bp.get("/api/quests/completed")
@login_required
def quest_completed():
    return jsonify({"ok": True, "quests": get_user_completed_quests(get_current_user_id())})


@bp.get("/api/quests/mine")
@login_required
def quest_mine():
    assignments = get_user_quests(get_current_user_id())
    return jsonify({"ok": True, "quests": [serialize_assignment(item) for item in assignments]})


@bp.get("/api/badges")
@login_required
def badge_overview():
    maybe_seed_badges()
    user_id = get_current_user_id()
    return jsonify(
        {
            "ok": True,
            "badges": [serialize_user_badge(item) for item in get_user_badges(user_id)],
            "achievements": get_user_achievements(user_id),
        }
    )


@bp.post("/api/quests/daily/generate")
@login_required
def quest_generate_daily():
    maybe_seed_quests()
    user_id = get_current_user_id()
    generated = generate_daily_quests_for_user(user_id)
    return jsonify({"ok": True, "generated": generated, "quests": get_user_active_quests(user_id)})


@bp.post("/api/quests/<int:quest_id>/start")
@login_required
def quest_start(quest_id: int):
    assignment = start_quest(get_current_user_id(), quest_id)
    if assignment is None:
        return jsonify({"ok": False, "error": "Quest not found."}), 404
    return jsonify({"ok": True, "quest": serialize_assignment(assignment)})


@bp.post("/api/quests/<int:quest_id>/steps/<int:step_index>/complete")
@login_required
def quest_complete_step(quest_id: int, step_index: int):
    user_id = get_current_user_id()
    result = complete_quest_step(user_id, quest_id, step_index)
    if not result.success:
        return jsonify({"ok": False, "result": result.to_dict(), "error": "Step could not be completed."}), 400

    payload = {"ok": True, "result": result.to_dict(), "award": None, "badges": []}
    if not result.newly_completed:
        return jsonify(payload)

    quest = db.session.get(Quest, quest_id)
    if quest and quest.reward_points > 0:
        try:
            award = award_points(
                user_id,
                quest.reward_points,
                f"Quest completed: {quest.title}",
                source_id=quest.id,
                source_type="quest",
            )
        except PointsValidationError as exc:
            return jsonify({"ok": False, "error": str(exc)}), 400
        payload["award"] = award.to_dict()
        if award.success:
            create_notification(
                user_id,
                "achievement",
                "Quest Completed!",
                f'You completed "{quest.title}" and earned {quest.reward_points} points!',
            )
        else:
            logger.error(
                "Reward of %s points for quest %s was not recorded for user %s",
                quest.reward_points,
                quest.id,
                user_id,
            )
    payload["badges"] = reward_new_badges(user_id)
    return jsonify(payload)


@bp.get("/api/notifications")
@login_required
def notification_list():
    limit = parse_int(request.args.get("limit"))
    notifications = get_notifications(get_current_user_id(), limit=limit)
    return jsonify({"ok": True, "notifications": [serialize_notification(item) for item in notifications]})


@bp.get("/api/notifications/unread-count")
@login_required
def notification_unread_count():
    return jsonify({"ok": True, "count": get_unread_notification_count(get_current_user_id())})


@bp.post("/api/notifications/<int:notification_id>/read")
@login_required
def notification_mark_read(notification_id: int):
    if not mark_notification_as_read(get_current_user_id(), notification_id):
        return jsonify({"ok": False, "error": "Notification not found."}), 404
    return jsonify({"ok": True})


@bp.post("/api/notifications/read-all")
@login_required
def notification_mark_all_read():
    return jsonify({"ok": mark_all_notifications_as_read(get_current_user_id())})


@bp.delete("/api/notifications/<int:notification_id>")
@login_required
def notification_delete(notification_id: int):
    if not delete_notification(get_current_user_id(), notification_id):
        return jsonify({"ok": False, "error": "Notification not found."}), 404
    return jsonify({"ok": True})
