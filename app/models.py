from datetime import datetime, timezone

from app import db

QUEST_STRUCTURE_STEPPED = "stepped"
QUEST_STRUCTURE_SIMPLE = "simple"
QUEST_TYPES = ("daily", "weekly", "monthly")
BADGE_RULES = ("level", "streak", "quests_completed")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    password_hash = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    points = db.relationship("UserPoints", backref="user", uselist=False, lazy=True)
    points_transactions = db.relationship("PointsTransaction", backref="user", lazy=True)
    daily_streaks = db.relationship("DailyStreak", backref="user", lazy=True)
    quests = db.relationship("UserQuest", backref="user", lazy=True)
    notifications = db.relationship("Notification", backref="user", lazy=True)
    badges = db.relationship("UserBadge", backref="user", lazy=True)

    def display_name(self):
        if self.full_name:
            return self.full_name
        return f"User {self.id}"


class UserPoints(db.Model):
    __tablename__ = "user_points"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False)
    total_points = db.Column(db.Integer, nullable=False, default=0)
    current_level = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        db.CheckConstraint("total_points >= 0", name="ck_user_points_total_non_negative"),
        db.Index("ix_user_points_total_points", "total_points"),
    )


class PointsTransaction(db.Model):
    __tablename__ = "points_transactions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)
    transaction_type = db.Column(db.String(16), nullable=False, default="earn")
    reason = db.Column(db.String(255), nullable=False)
    source_id = db.Column(db.String(64), nullable=True)
    source_type = db.Column(db.String(40), nullable=True)  # quest, streak, manual
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)


class DailyStreak(db.Model):
    __tablename__ = "daily_streaks"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    day = db.Column(db.Date, nullable=False, index=True)  # UTC calendar day
    streak_count = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (db.UniqueConstraint("user_id", "day", name="uq_daily_streaks_user_day"),)


class Quest(db.Model):
    __tablename__ = "quests"

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(80), unique=True, nullable=False)
    title = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    quest_type = db.Column(db.String(20), nullable=False, default="daily", index=True)
    structure = db.Column(db.String(12), nullable=False, default=QUEST_STRUCTURE_STEPPED)
    steps = db.Column(db.JSON, nullable=True)  # [{"title": ..., "description": ...}]
    reward_points = db.Column(db.Integer, nullable=False, default=0)
    difficulty = db.Column(db.String(20), nullable=False, default="easy")
    duration_days = db.Column(db.Integer, nullable=False, default=1)
    category = db.Column(db.String(40), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    assignments = db.relationship("UserQuest", backref="quest", lazy=True)

    @property
    def step_count(self) -> int:
        if self.structure == QUEST_STRUCTURE_SIMPLE:
            return 1
        return len(self.steps or [])

    def step_list(self):
        if self.structure == QUEST_STRUCTURE_SIMPLE:
            return [{"title": self.title, "description": self.description}]
        return list(self.steps or [])


class UserQuest(db.Model):
    __tablename__ = "user_quests"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    quest_id = db.Column(db.Integer, db.ForeignKey("quests.id"), nullable=False, index=True)
    current_step = db.Column(db.Integer, nullable=False, default=0)
    completed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    started_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (db.UniqueConstraint("user_id", "quest_id", name="uq_user_quests_user_quest"),)

    @property
    def status(self) -> str:
        if self.completed:
            return "completed"
        if self.current_step == 0:
            return "not_started"
        return "in_progress"


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    kind = db.Column(db.String(20), nullable=False, index=True)
    title = db.Column(db.String(180), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)


class NotificationRotation(db.Model):
    __tablename__ = "notification_rotation"

    id = db.Column(db.Integer, primary_key=True)
    current_type = db.Column(db.String(20), nullable=False, default="meal")
    version = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class NotificationLog(db.Model):
    __tablename__ = "notification_logs"

    id = db.Column(db.Integer, primary_key=True)
    notification_date = db.Column(db.Date, unique=True, nullable=False)
    count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)


class Badge(db.Model):
    __tablename__ = "badges"

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(80), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    icon = db.Column(db.String(40), nullable=True)
    category = db.Column(db.String(20), nullable=False, default="milestone")
    rule = db.Column(db.String(20), nullable=False)  # level, streak, quests_completed
    requirement_count = db.Column(db.Integer, nullable=False, default=1)
    points = db.Column(db.Integer, nullable=False, default=0)
    rarity = db.Column(db.String(20), nullable=False, default="common")
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    holders = db.relationship("UserBadge", backref="badge", lazy=True)


class UserBadge(db.Model):
    __tablename__ = "user_badges"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    badge_id = db.Column(db.Integer, db.ForeignKey("badges.id"), nullable=False, index=True)
    unlocked_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    is_equipped = db.Column(db.Boolean, nullable=False, default=False)

    __table_args__ = (db.UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),)
