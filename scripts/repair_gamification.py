import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from app.ledger import ensure_ledger_rows


def main():
    app = create_app()
    with app.app_context():
        summary = ensure_ledger_rows()
        print(f"Ledger rows created: {summary['created']}")
        print(f"Levels repaired: {summary['repaired']}")


if __name__ == "__main__":
    main()
