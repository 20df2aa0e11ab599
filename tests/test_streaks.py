import tempfile
import unittest
from datetime import date
from pathlib import Path
from uuid import uuid4

from app import create_app, db
from app.models import DailyStreak, User
from app.streaks import get_current_streak, get_longest_streak, get_streak_history, record_daily_streak


class DailyStreakTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.db_file = Path(tempfile.gettempdir()) / f"tastehealth-streaks-{uuid4().hex}.db"
        cls.app = create_app(
            {
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{cls.db_file.as_posix()}",
                "SECRET_KEY": "test-secret",
                "TESTING": True,
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
        user = User(full_name="Streak Tester", email="streak@example.com")
        other = User(full_name="Other Tester", email="other@example.com")
        db.session.add_all([user, other])
        db.session.commit()
        self.user_id = user.id
        self.other_id = other.id

    def tearDown(self):
        db.session.remove()
        self.ctx.pop()

    def test_consecutive_days_extend_and_gap_resets(self):
        first = record_daily_streak(self.user_id, today=date(2024, 1, 1))
        second = record_daily_streak(self.user_id, today=date(2024, 1, 2))
        after_gap = record_daily_streak(self.user_id, today=date(2024, 1, 4))

        self.assertEqual((first.success, first.streak_count), (True, 1))
        self.assertEqual((second.success, second.streak_count), (True, 2))
        self.assertEqual((after_gap.success, after_gap.streak_count), (True, 1))

    def test_second_check_in_on_same_day_is_rejected(self):
        record_daily_streak(self.user_id, today=date(2024, 1, 1))
        record_daily_streak(self.user_id, today=date(2024, 1, 2))

        repeat = record_daily_streak(self.user_id, today=date(2024, 1, 2))
        self.assertFalse(repeat.success)
        self.assertEqual(repeat.streak_count, 2)
        self.assertEqual(DailyStreak.query.filter_by(user_id=self.user_id).count(), 2)

    def test_current_and_longest_streak(self):
        for day in (1, 2, 3, 5):
            record_daily_streak(self.user_id, today=date(2024, 1, day))

        self.assertEqual(get_current_streak(self.user_id), 1)
        self.assertEqual(get_longest_streak(self.user_id), 3)

    def test_streaks_are_tracked_per_user(self):
        record_daily_streak(self.user_id, today=date(2024, 1, 1))
        record_daily_streak(self.user_id, today=date(2024, 1, 2))
        result = record_daily_streak(self.other_id, today=date(2024, 1, 2))

        self.assertEqual(result.streak_count, 1)
        self.assertEqual(get_current_streak(self.user_id), 2)
        self.assertEqual(get_current_streak(self.other_id), 1)

    def test_user_without_check_ins_has_no_streak(self):
        self.assertEqual(get_current_streak(self.user_id), 0)
        self.assertEqual(get_longest_streak(self.user_id), 0)
        self.assertEqual(get_streak_history(self.user_id), [])

    def test_history_is_newest_first_and_limited(self):
        for day in range(1, 6):
            record_daily_streak(self.user_id, today=date(2024, 1, day))

        history = get_streak_history(self.user_id, days=3)
        self.assertEqual([row.day for row in history], [date(2024, 1, 5), date(2024, 1, 4), date(2024, 1, 3)])
        self.assertEqual([row.streak_count for row in history], [5, 4, 3])


if __name__ == "__main__":
    unittest.main()
