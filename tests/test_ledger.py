import tempfile
import unittest
from pathlib import Path
from uuid import uuid4

from werkzeug.security import generate_password_hash

from app import create_app, db
from app.ledger import (
    PointsValidationError,
    award_points,
    ensure_ledger_rows,
    get_leaderboard,
    get_points_summary,
    get_points_transactions,
    level_from_points,
    next_level_threshold,
    points_to_next_level,
)
from app.models import PointsTransaction, User, UserPoints

THRESHOLDS = (0, 100, 300, 600)


def _make_user(name: str) -> User:
    user = User(
        full_name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        password_hash=generate_password_hash("pass12345"),
    )
    db.session.add(user)
    db.session.commit()
    return user


class LevelTableTestCase(unittest.TestCase):
    def test_thresholds_are_inclusive_lower_bounds(self):
        self.assertEqual(level_from_points(0, THRESHOLDS), 1)
        self.assertEqual(level_from_points(99, THRESHOLDS), 1)
        self.assertEqual(level_from_points(100, THRESHOLDS), 2)
        self.assertEqual(level_from_points(299, THRESHOLDS), 2)
        self.assertEqual(level_from_points(300, THRESHOLDS), 3)
        self.assertEqual(level_from_points(600, THRESHOLDS), 4)

    def test_level_is_capped_at_the_last_threshold(self):
        self.assertEqual(level_from_points(1_000_000, THRESHOLDS), 4)
        self.assertIsNone(next_level_threshold(700, THRESHOLDS))
        self.assertEqual(points_to_next_level(700, THRESHOLDS), 0)

    def test_negative_totals_count_as_zero(self):
        self.assertEqual(level_from_points(-50, THRESHOLDS), 1)
        self.assertEqual(points_to_next_level(-50, THRESHOLDS), 100)

    def test_points_to_next_level(self):
        self.assertEqual(next_level_threshold(150, THRESHOLDS), 300)
        self.assertEqual(points_to_next_level(150, THRESHOLDS), 150)


class LedgerTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.db_file = Path(tempfile.gettempdir()) / f"tastehealth-ledger-{uuid4().hex}.db"
        cls.app = create_app(
            {
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{cls.db_file.as_posix()}",
                "SECRET_KEY": "test-secret",
                "TESTING": True,
                "LEVEL_THRESHOLDS": THRESHOLDS,
            }
        )

    @classmethod
    def tearDownClass(cls):
        with cls.app.app_context():
            db.session.remove()
            db.drop_all()
            db.engine.dispose()
        if cls.db_file.exists():
            try:
                cls.db_file.unlink()
            except PermissionError:
                pass

    def setUp(self):
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.drop_all()
        db.create_all()
        self.user_id = _make_user("Ada Lovelace").id

    def tearDown(self):
        db.session.remove()
        self.ctx.pop()

    def test_first_award_creates_ledger_and_levels_up(self):
        result = award_points(self.user_id, 100, "Quest completed")

        self.assertTrue(result.success)
        self.assertTrue(result.level_up)
        self.assertEqual(result.new_level, 2)
        self.assertEqual(result.total_points, 100)

        ledger = UserPoints.query.filter_by(user_id=self.user_id).one()
        self.assertEqual(ledger.total_points, 100)
        self.assertEqual(ledger.current_level, 2)
        self.assertEqual(PointsTransaction.query.filter_by(user_id=self.user_id).count(), 1)

    def test_award_within_a_level_does_not_level_up(self):
        award_points(self.user_id, 100, "first")
        result = award_points(self.user_id, 50, "second")

        self.assertTrue(result.success)
        self.assertFalse(result.level_up)
        self.assertEqual(result.new_level, 2)
        self.assertEqual(result.total_points, 150)

    def test_level_always_matches_total_after_each_award(self):
        previous_total = 0
        for amount in (30, 70, 200, 300, 5, 1):
            award_points(self.user_id, amount, "bonus")
            ledger = UserPoints.query.filter_by(user_id=self.user_id).one()
            self.assertEqual(ledger.total_points, previous_total + amount)
            self.assertEqual(ledger.current_level, level_from_points(ledger.total_points, THRESHOLDS))
            previous_total = ledger.total_points

        self.assertEqual(previous_total, 606)
        self.assertEqual(PointsTransaction.query.filter_by(user_id=self.user_id).count(), 6)

    def test_invalid_awards_are_rejected_without_writing(self):
        for amount in (0, -5, 1.5, True, "10"):
            with self.assertRaises(PointsValidationError):
                award_points(self.user_id, amount, "bad amount")
        with self.assertRaises(PointsValidationError):
            award_points(self.user_id, 10, "   ")

        self.assertIsNone(UserPoints.query.filter_by(user_id=self.user_id).first())
        self.assertEqual(PointsTransaction.query.count(), 0)

    def test_award_to_unknown_user_fails(self):
        result = award_points(9999, 10, "ghost")
        self.assertFalse(result.success)
        self.assertEqual(PointsTransaction.query.count(), 0)

    def test_transaction_records_source(self):
        award_points(self.user_id, 25, "Quest completed: Hydration Hero", source_id=7, source_type="quest")
        transaction = get_points_transactions(self.user_id)[0]
        self.assertEqual(transaction.points, 25)
        self.assertEqual(transaction.source_id, "7")
        self.assertEqual(transaction.source_type, "quest")
        self.assertEqual(transaction.transaction_type, "earn")

    def test_summary_for_user_without_ledger(self):
        summary = get_points_summary(self.user_id)
        self.assertEqual(summary["total_points"], 0)
        self.assertEqual(summary["current_level"], 1)
        self.assertEqual(summary["points_to_next_level"], 100)
        self.assertEqual(summary["max_level"], 4)

    def test_leaderboard_orders_by_points_then_user_id(self):
        grace = _make_user("Grace Hopper")
        alan = _make_user("Alan Turing")
        award_points(self.user_id, 50, "a")
        award_points(grace.id, 200, "b")
        award_points(alan.id, 50, "c")

        board = get_leaderboard(user_id=alan.id)
        self.assertEqual(
            [entry["user_id"] for entry in board["leaderboard"]],
            [grace.id, self.user_id, alan.id],
        )
        self.assertEqual([entry["rank"] for entry in board["leaderboard"]], [1, 2, 3])
        self.assertEqual(board["user_rank"]["rank"], 3)

    def test_leaderboard_reports_rank_outside_the_page(self):
        grace = _make_user("Grace Hopper")
        award_points(grace.id, 500, "a")
        award_points(self.user_id, 10, "b")

        board = get_leaderboard(user_id=self.user_id, limit=1)
        self.assertEqual(len(board["leaderboard"]), 1)
        self.assertEqual(board["user_rank"]["user_id"], self.user_id)
        self.assertEqual(board["user_rank"]["rank"], 2)

    def test_ensure_ledger_rows_creates_and_repairs(self):
        other = _make_user("Grace Hopper")
        db.session.add(UserPoints(user_id=other.id, total_points=350, current_level=1))
        db.session.commit()

        counts = ensure_ledger_rows()
        self.assertEqual(counts, {"created": 1, "repaired": 1})
        self.assertEqual(UserPoints.query.filter_by(user_id=other.id).one().current_level, 3)
        self.assertEqual(UserPoints.query.filter_by(user_id=self.user_id).one().total_points, 0)


if __name__ == "__main__":
    unittest.main()
