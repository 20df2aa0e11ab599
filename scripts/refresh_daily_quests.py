import argparse
import random
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from app.quest_catalog import seed_default_quests_if_needed
from app.quests import refresh_daily_quests


def main():
    parser = argparse.ArgumentParser(
        description="Assign daily quests to every user with no quest in progress."
    )
    parser.add_argument(
        "--skip-seed",
        action="store_true",
        help="Do not sync the built-in quest catalog before assigning.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for quest selection (default: unseeded).",
    )
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if not args.skip_seed:
            seed_default_quests_if_needed()
        summary = refresh_daily_quests(rng=random.Random(args.seed))
        print(f"Users checked: {summary['users']}")
        print(f"Users given new quests: {summary['generated']}")


if __name__ == "__main__":
    main()
