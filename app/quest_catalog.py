from flask import current_app

from app import db
from app.models import Quest
from app.quests import create_quest

_SEEDED_FLAG = "quest_catalog_seeded"

DEFAULT_QUESTS = [
    {
        "slug": "hydration-hero",
        "title": "Hydration Hero",
        "description": "Spread your water intake across the whole day.",
        "quest_type": "daily",
        "category": "water",
        "difficulty": "easy",
        "reward_points": 30,
        "steps": [
            {"title": "Morning glass", "description": "Drink a glass of water within an hour of waking."},
            {"title": "Midday refill", "description": "Finish a full bottle before lunch ends."},
            {"title": "Evening top-up", "description": "Log your eighth glass of the day."},
        ],
    },
    {
        "slug": "veggie-boost",
        "title": "Veggie Boost",
        "description": "Add vegetables to every main meal today.",
        "quest_type": "daily",
        "category": "meal",
        "difficulty": "easy",
        "reward_points": 40,
        "steps": [
            {"title": "Breakfast greens", "description": "Include at least one vegetable at breakfast."},
            {"title": "Colorful lunch", "description": "Eat two different colored vegetables at lunch."},
            {"title": "Half-plate dinner", "description": "Fill half of your dinner plate with vegetables."},
        ],
    },
    {
        "slug": "protein-balance",
        "title": "Protein Balance",
        "description": "Hit a protein source at each meal.",
        "quest_type": "daily",
        "category": "meal",
        "difficulty": "medium",
        "reward_points": 50,
        "steps": [
            {"title": "Protein breakfast", "description": "Log a breakfast with eggs, yogurt or another protein."},
            {"title": "Lean lunch", "description": "Pick a lean protein for lunch."},
        ],
    },
    {
        "slug": "mindful-meal",
        "title": "Mindful Meal",
        "description": "Eat one meal slowly, without screens, and rate how you feel afterwards.",
        "quest_type": "daily",
        "category": "meal",
        "difficulty": "easy",
        "reward_points": 20,
    },
    {
        "slug": "sugar-swap",
        "title": "Sugar Swap",
        "description": "Replace sugary drinks and snacks with whole-food options.",
        "quest_type": "daily",
        "category": "meal",
        "difficulty": "medium",
        "reward_points": 45,
        "steps": [
            {"title": "Swap the drink", "description": "Choose water or unsweetened tea instead of soda."},
            {"title": "Swap the snack", "description": "Choose fruit or nuts instead of a sweet snack."},
        ],
    },
    {
        "slug": "move-after-meals",
        "title": "Move After Meals",
        "description": "Take a short walk after two meals.",
        "quest_type": "daily",
        "category": "exercise",
        "difficulty": "easy",
        "reward_points": 30,
        "steps": [
            {"title": "Lunch walk", "description": "Walk for ten minutes after lunch."},
            {"title": "Dinner walk", "description": "Walk for ten minutes after dinner."},
        ],
    },
    {
        "slug": "wind-down",
        "title": "Wind Down",
        "description": "Put screens away an hour before bed.",
        "quest_type": "daily",
        "category": "sleep",
        "difficulty": "medium",
        "reward_points": 25,
    },
    {
        "slug": "meal-prep-sunday",
        "title": "Meal Prep Week",
        "description": "Plan and prepare meals ahead for the coming week.",
        "quest_type": "weekly",
        "category": "meal",
        "difficulty": "hard",
        "duration_days": 7,
        "reward_points": 150,
        "steps": [
            {"title": "Plan the menu", "description": "Build a meal plan covering five days."},
            {"title": "Shop the list", "description": "Buy everything on your meal plan list."},
            {"title": "Batch cook", "description": "Prepare at least three meals in advance."},
            {"title": "Stick to the plan", "description": "Eat your planned meals for five days."},
        ],
    },
    {
        "slug": "fiber-month",
        "title": "Fiber Month",
        "description": "Build a lasting habit of fiber-rich meals.",
        "quest_type": "monthly",
        "category": "meal",
        "difficulty": "hard",
        "duration_days": 30,
        "reward_points": 400,
        "steps": [
            {"title": "Week one", "description": "Eat whole grains at least five days this week."},
            {"title": "Week two", "description": "Add legumes to three meals this week."},
            {"title": "Week three", "description": "Include fruit with skin every day this week."},
            {"title": "Week four", "description": "Keep all three habits going for a full week."},
        ],
    },
]


def seed_default_quests_if_needed() -> None:
    if current_app.extensions.get(_SEEDED_FLAG):
        return

    changed = False
    for row in DEFAULT_QUESTS:
        existing = Quest.query.filter_by(slug=row["slug"]).first()
        if existing is None:
            create_quest(
                slug=row["slug"],
                title=row["title"],
                description=row.get("description", ""),
                quest_type=row.get("quest_type", "daily"),
                steps=row.get("steps"),
                reward_points=row.get("reward_points", 0),
                difficulty=row.get("difficulty", "easy"),
                duration_days=row.get("duration_days", 1),
                category=row.get("category"),
                commit=False,
            )
            changed = True
            continue

        # Step lists are fixed once authored; assignments index into them.
        fields_to_sync = {
            "title": row["title"],
            "description": row.get("description", ""),
            "reward_points": row.get("reward_points", 0),
            "difficulty": row.get("difficulty", "easy"),
            "duration_days": row.get("duration_days", 1),
            "category": row.get("category"),
        }
        for field_name, field_value in fields_to_sync.items():
            if getattr(existing, field_name) != field_value:
                setattr(existing, field_name, field_value)
                changed = True

    if changed:
        db.session.commit()
    current_app.extensions[_SEEDED_FLAG] = True
