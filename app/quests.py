"""Quest templates and per-user quest assignments.

A quest template is either *stepped* (an ordered, non-empty list of steps) or
*simple* (a single implicit step). The shape is fixed when the template is
authored, so readers never have to guess a step count.

Assignments move strictly forward: ``current_step`` only increases, and an
assignment is completed exactly when ``current_step`` reaches the template's
step count. Completing a quest does not award points here; callers decide
what a completion is worth.
"""

import logging
import random
from dataclasses import asdict, dataclass

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import db
from app.models import (
    QUEST_STRUCTURE_SIMPLE,
    QUEST_STRUCTURE_STEPPED,
    QUEST_TYPES,
    Quest,
    User,
    UserQuest,
    utcnow,
)

logger = logging.getLogger(__name__)


class QuestDefinitionError(ValueError):
    pass


@dataclass(frozen=True)
class StepResult:
    success: bool
    completed: bool
    # True only for the call that moved the assignment into the completed state.
    newly_completed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_steps(steps) -> list[dict]:
    if steps is None:
        return []
    if not isinstance(steps, (list, tuple)):
        raise QuestDefinitionError("Quest steps must be a list.")

    normalized = []
    for index, step in enumerate(steps):
        if isinstance(step, str):
            step = {"title": step}
        if not isinstance(step, dict):
            raise QuestDefinitionError(f"Step {index} must be an object or a title.")
        title = str(step.get("title") or "").strip()
        if not title:
            raise QuestDefinitionError(f"Step {index} needs a title.")
        normalized.append(
            {
                "title": title,
                "description": str(step.get("description") or "").strip(),
            }
        )
    return normalized


def validate_quest_definition(structure: str, steps: list[dict], quest_type: str, reward_points) -> None:
    if structure not in (QUEST_STRUCTURE_STEPPED, QUEST_STRUCTURE_SIMPLE):
        raise QuestDefinitionError(f"Unknown quest structure: {structure}")
    if structure == QUEST_STRUCTURE_STEPPED and not steps:
        raise QuestDefinitionError("A stepped quest needs at least one step.")
    if structure == QUEST_STRUCTURE_SIMPLE and steps:
        raise QuestDefinitionError("A simple quest cannot list steps.")
    if quest_type not in QUEST_TYPES:
        raise QuestDefinitionError(f"Unknown quest type: {quest_type}")
    if isinstance(reward_points, bool) or not isinstance(reward_points, int) or reward_points < 0:
        raise QuestDefinitionError("Reward points must be a non-negative integer.")


def create_quest(
    *,
    slug: str,
    title: str,
    description: str = "",
    quest_type: str = "daily",
    steps=None,
    reward_points: int = 0,
    difficulty: str = "easy",
    duration_days: int = 1,
    category: str | None = None,
    active: bool = True,
    commit: bool = True,
) -> Quest:
    if not slug or not title:
        raise QuestDefinitionError("Quests need a slug and a title.")

    normalized_steps = normalize_steps(steps)
    structure = QUEST_STRUCTURE_STEPPED if normalized_steps else QUEST_STRUCTURE_SIMPLE
    validate_quest_definition(structure, normalized_steps, quest_type, reward_points)

    quest = Quest(
        slug=slug,
        title=title,
        description=description or "",
        quest_type=quest_type,
        structure=structure,
        steps=normalized_steps or None,
        reward_points=reward_points,
        difficulty=difficulty,
        duration_days=max(1, int(duration_days)),
        category=category,
        active=active,
    )
    db.session.add(quest)
    if commit:
        db.session.commit()
    return quest


def serialize_quest(quest: Quest) -> dict:
    return {
        "id": quest.id,
        "slug": quest.slug,
        "title": quest.title,
        "description": quest.description,
        "quest_type": quest.quest_type,
        "structure": quest.structure,
        "steps": quest.step_list(),
        "step_count": quest.step_count,
        "reward_points": quest.reward_points,
        "difficulty": quest.difficulty,
        "duration_days": quest.duration_days,
        "category": quest.category,
    }


def quest_progress(assignment: UserQuest) -> dict:
    target = assignment.quest.step_count if assignment.quest else 1
    target = max(1, target)
    current = min(assignment.current_step, target)
    return {
        "current": current,
        "target": target,
        "percentage": round(current / target * 100, 1),
    }


def serialize_assignment(assignment: UserQuest) -> dict:
    return {
        "id": assignment.id,
        "user_id": assignment.user_id,
        "quest_id": assignment.quest_id,
        "current_step": assignment.current_step,
        "completed": assignment.completed,
        "status": assignment.status,
        "started_at": assignment.started_at.isoformat() if assignment.started_at else None,
        "completed_at": assignment.completed_at.isoformat() if assignment.completed_at else None,
        "quest": serialize_quest(assignment.quest) if assignment.quest else None,
        "progress": quest_progress(assignment),
    }


def get_quests_by_type(quest_type: str) -> list[Quest]:
    try:
        return (
            Quest.query.filter_by(quest_type=quest_type, active=True)
            .order_by(Quest.created_at.desc(), Quest.id.desc())
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load %s quests", quest_type)
        return []


def get_daily_quests() -> list[Quest]:
    return get_quests_by_type("daily")


def _find_assignment(user_id: int, quest_id: int) -> UserQuest | None:
    return UserQuest.query.filter_by(user_id=user_id, quest_id=quest_id).first()


def start_quest(user_id: int, quest_id: int) -> UserQuest | None:
    try:
        existing = _find_assignment(user_id, quest_id)
        if existing:
            return existing

        quest = db.session.get(Quest, quest_id)
        if quest is None or not quest.active:
            return None

        assignment = UserQuest(
            user_id=user_id,
            quest_id=quest_id,
            current_step=0,
            completed=False,
            started_at=utcnow(),
        )
        db.session.add(assignment)
        db.session.commit()
        return assignment
    except IntegrityError:
        db.session.rollback()
        return _find_assignment(user_id, quest_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to start quest %s for user %s", quest_id, user_id)
        return None


def complete_quest_step(user_id: int, quest_id: int, step_index: int) -> StepResult:
    try:
        quest = db.session.get(Quest, quest_id)
        if quest is None:
            logger.warning("Quest %s not found", quest_id)
            return StepResult(success=False, completed=False)

        assignment = _find_assignment(user_id, quest_id)
        if assignment is None:
            return StepResult(success=False, completed=False)

        step_count = quest.step_count
        if isinstance(step_index, bool) or not isinstance(step_index, int):
            return StepResult(success=False, completed=False)
        if step_index < 0 or step_index >= step_count:
            return StepResult(success=False, completed=False)

        if step_index < assignment.current_step:
            return StepResult(success=True, completed=assignment.completed)

        # A later index also covers the steps before it.
        finished = step_index + 1 == step_count
        values = {"current_step": step_index + 1}
        if finished:
            values["completed"] = True
            values["completed_at"] = utcnow()

        result = db.session.execute(
            update(UserQuest)
            .where(UserQuest.id == assignment.id, UserQuest.current_step <= step_index)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.session.rollback()
            current = _find_assignment(user_id, quest_id)
            return StepResult(success=True, completed=bool(current and current.completed))

        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to complete step %s of quest %s for user %s", step_index, quest_id, user_id)
        return StepResult(success=False, completed=False)

    if finished:
        logger.info("User %s completed quest %s", user_id, quest_id)
    return StepResult(success=True, completed=finished, newly_completed=finished)


def _assignments_query(user_id: int):
    return (
        UserQuest.query.filter_by(user_id=user_id)
        .join(Quest, Quest.id == UserQuest.quest_id)
        .order_by(UserQuest.started_at.desc(), UserQuest.id.desc())
    )


def get_user_quests(user_id: int) -> list[UserQuest]:
    try:
        return _assignments_query(user_id).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load quests for user %s", user_id)
        return []


def get_user_active_quests(user_id: int) -> list[dict]:
    try:
        assignments = _assignments_query(user_id).filter(UserQuest.completed.is_(False)).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load active quests for user %s", user_id)
        return []
    return [serialize_assignment(assignment) for assignment in assignments]


def get_user_completed_quests(user_id: int) -> list[dict]:
    try:
        assignments = _assignments_query(user_id).filter(UserQuest.completed.is_(True)).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to load completed quests for user %s", user_id)
        return []
    return [serialize_assignment(assignment) for assignment in assignments]


def count_active_quests(user_id: int) -> int:
    return UserQuest.query.filter_by(user_id=user_id, completed=False).count()


def generate_daily_quests_for_user(user_id: int, rng: random.Random | None = None) -> bool:
    """Assign a fresh batch of daily quests to a user with nothing in progress.

    Quests the user has been assigned before are never picked again.
    """
    rng = rng or random.Random()
    batch_size = current_app.config.get("DAILY_QUEST_COUNT", 3)

    try:
        if count_active_quests(user_id) > 0:
            return False
        assigned = {
            quest_id
            for (quest_id,) in db.session.query(UserQuest.quest_id).filter(UserQuest.user_id == user_id)
        }
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to inspect quests for user %s", user_id)
        return False

    eligible = sorted(
        (quest for quest in get_daily_quests() if quest.id not in assigned),
        key=lambda quest: quest.id,
    )
    if not eligible:
        return False

    selected = rng.sample(eligible, min(batch_size, len(eligible)))
    started = 0
    for quest in selected:
        if start_quest(user_id, quest.id) is not None:
            started += 1
    return started > 0


def refresh_daily_quests(rng: random.Random | None = None) -> dict:
    rng = rng or random.Random()
    user_ids = [user_id for (user_id,) in db.session.query(User.id).order_by(User.id.asc())]

    generated = 0
    for user_id in user_ids:
        if generate_daily_quests_for_user(user_id, rng=rng):
            generated += 1

    logger.info("Daily quest refresh assigned quests to %s of %s users", generated, len(user_ids))
    return {"users": len(user_ids), "generated": generated}
