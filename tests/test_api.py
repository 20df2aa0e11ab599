import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch
from uuid import uuid4

from app import create_app, db
from app.ledger import AwardResult
from app.models import Notification, Quest, User


class ApiTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.db_file = Path(tempfile.gettempdir()) / f"tastehealth-api-{uuid4().hex}.db"
        cls.app = create_app(
            {
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{cls.db_file.as_posix()}",
                "SECRET_KEY": "test-secret",
                "TESTING": True,
                "STREAK_CHECKIN_POINTS": 10,
                "SEED_QUEST_CATALOG": True,
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
        with self.app.app_context():
            db.drop_all()
            db.create_all()
        self.app.extensions.pop("quest_catalog_seeded", None)
        self.app.extensions.pop("badge_catalog_seeded", None)

        self.client = self.app.test_client()
        response = self.client.post(
            "/register",
            json={"full_name": "Api Tester", "email": "Api@Example.com", "password": "pass12345"},
        )
        self.assertEqual(response.status_code, 201)

    def _quest_id(self, slug: str) -> int:
        with self.app.app_context():
            return Quest.query.filter_by(slug=slug).one().id

    def test_endpoints_require_login(self):
        anonymous = self.app.test_client()
        for path in ("/api/me", "/api/points", "/api/quests", "/api/notifications"):
            response = anonymous.get(path)
            self.assertEqual(response.status_code, 401, path)
            self.assertFalse(response.get_json()["ok"])

    def test_login_and_logout(self):
        self.client.post("/logout")
        self.assertEqual(self.client.get("/api/me").status_code, 401)

        bad = self.client.post("/login", json={"email": "api@example.com", "password": "wrong-pass"})
        self.assertEqual(bad.status_code, 401)

        good = self.client.post("/login", data={"email": "API@example.com", "password": "pass12345"})
        self.assertEqual(good.status_code, 200)
        me = self.client.get("/api/me").get_json()
        self.assertEqual(me["name"], "Api Tester")
        self.assertEqual(me["points"]["total_points"], 0)

    def test_duplicate_registration_is_rejected(self):
        response = self.app.test_client().post(
            "/register",
            json={"full_name": "Again", "email": "api@example.com", "password": "pass12345"},
        )
        self.assertEqual(response.status_code, 400)

    def test_check_in_awards_bonus_once_per_day(self):
        first = self.client.post("/api/streak/check-in").get_json()
        self.assertTrue(first["streak"]["success"])
        self.assertEqual(first["streak"]["streak_count"], 1)
        self.assertEqual(first["award"]["total_points"], 10)

        second = self.client.post("/api/streak/check-in").get_json()
        self.assertFalse(second["streak"]["success"])
        self.assertIsNone(second["award"])

        streak = self.client.get("/api/streak").get_json()
        self.assertEqual(streak["current"], 1)
        self.assertEqual(len(streak["history"]), 1)

        transactions = self.client.get("/api/points/transactions").get_json()["transactions"]
        self.assertEqual(len(transactions), 1)
        self.assertEqual(transactions[0]["source_type"], "streak")

    def test_quest_list_rejects_unknown_type(self):
        response = self.client.get("/api/quests?type=yearly")
        self.assertEqual(response.status_code, 400)

    def test_quest_list_seeds_catalog(self):
        quests = self.client.get("/api/quests?type=daily").get_json()["quests"]
        self.assertTrue(quests)
        self.assertTrue(all(quest["quest_type"] == "daily" for quest in quests))

    def test_completing_a_quest_awards_points_and_notifies(self):
        self.client.get("/api/quests")
        quest_id = self._quest_id("hydration-hero")

        started = self.client.post(f"/api/quests/{quest_id}/start")
        self.assertEqual(started.status_code, 200)
        self.assertEqual(started.get_json()["quest"]["status"], "not_started")

        for index in range(2):
            response = self.client.post(f"/api/quests/{quest_id}/steps/{index}/complete").get_json()
            self.assertTrue(response["ok"])
            self.assertIsNone(response["award"])

        final = self.client.post(f"/api/quests/{quest_id}/steps/2/complete").get_json()
        self.assertTrue(final["result"]["completed"])
        self.assertEqual(final["award"]["total_points"], 30)
        self.assertEqual({badge["slug"] for badge in final["badges"]}, {"welcome", "first-quest"})

        replay = self.client.post(f"/api/quests/{quest_id}/steps/2/complete").get_json()
        self.assertTrue(replay["ok"])
        self.assertIsNone(replay["award"])
        # 30 for the quest plus 10 for the first-quest badge.
        self.assertEqual(self.client.get("/api/points").get_json()["points"]["total_points"], 40)

        completed = self.client.get("/api/quests/completed").get_json()["quests"]
        self.assertEqual([item["quest_id"] for item in completed], [quest_id])

        notifications = self.client.get("/api/notifications").get_json()["notifications"]
        titles = [item["title"] for item in notifications]
        self.assertEqual(titles.count("Quest Completed!"), 1)
        self.assertEqual(titles.count("Badge Unlocked!"), 2)

    def test_jumping_to_the_last_step_completes_the_quest(self):
        self.client.get("/api/quests")
        quest_id = self._quest_id("hydration-hero")
        self.client.post(f"/api/quests/{quest_id}/start")

        response = self.client.post(f"/api/quests/{quest_id}/steps/2/complete")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertTrue(payload["result"]["completed"])
        self.assertEqual(payload["award"]["total_points"], 30)

    def test_out_of_range_step_is_a_bad_request(self):
        self.client.get("/api/quests")
        quest_id = self._quest_id("hydration-hero")
        self.client.post(f"/api/quests/{quest_id}/start")

        response = self.client.post(f"/api/quests/{quest_id}/steps/3/complete")
        self.assertEqual(response.status_code, 400)

    def test_failed_reward_does_not_announce_points(self):
        self.client.get("/api/quests")
        quest_id = self._quest_id("mindful-meal")
        self.client.post(f"/api/quests/{quest_id}/start")

        with patch("app.routes.award_points", return_value=AwardResult(success=False)):
            payload = self.client.post(f"/api/quests/{quest_id}/steps/0/complete").get_json()

        self.assertTrue(payload["result"]["completed"])
        self.assertFalse(payload["award"]["success"])
        titles = [item["title"] for item in self.client.get("/api/notifications").get_json()["notifications"]]
        self.assertNotIn("Quest Completed!", titles)

    def test_my_quests_lists_every_assignment(self):
        self.client.get("/api/quests")
        done_id = self._quest_id("mindful-meal")
        open_id = self._quest_id("hydration-hero")
        self.client.post(f"/api/quests/{done_id}/start")
        self.client.post(f"/api/quests/{open_id}/start")
        self.client.post(f"/api/quests/{done_id}/steps/0/complete")

        quests = self.client.get("/api/quests/mine").get_json()["quests"]
        statuses = {item["quest_id"]: item["status"] for item in quests}
        self.assertEqual(statuses, {done_id: "completed", open_id: "not_started"})

    def test_badges_endpoint_reports_unlocks_and_progress(self):
        first = self.client.post("/api/streak/check-in").get_json()
        self.assertEqual([badge["slug"] for badge in first["badges"]], ["welcome"])

        overview = self.client.get("/api/badges").get_json()
        self.assertEqual([item["badge"]["slug"] for item in overview["badges"]], ["welcome"])
        progress = {item["badge"]["slug"]: item for item in overview["achievements"]}
        self.assertEqual((progress["getting-started"]["current"], progress["getting-started"]["target"]), (1, 3))
        self.assertFalse(progress["getting-started"]["unlocked"])

    def test_starting_unknown_quest_is_not_found(self):
        self.assertEqual(self.client.post("/api/quests/9999/start").status_code, 404)

    def test_generate_daily_quests(self):
        response = self.client.post("/api/quests/daily/generate").get_json()
        self.assertTrue(response["generated"])
        self.assertEqual(len(response["quests"]), 3)

        again = self.client.post("/api/quests/daily/generate").get_json()
        self.assertFalse(again["generated"])
        self.assertEqual(len(self.client.get("/api/quests/active").get_json()["quests"]), 3)

    def test_notification_endpoints(self):
        with self.app.app_context():
            user_id = User.query.filter_by(email="api@example.com").one().id
            db.session.add(Notification(user_id=user_id, kind="water", title="Drink", message="Hydrate"))
            db.session.commit()

        self.assertEqual(self.client.get("/api/notifications/unread-count").get_json()["count"], 1)
        notification_id = self.client.get("/api/notifications").get_json()["notifications"][0]["id"]

        self.assertEqual(self.client.post(f"/api/notifications/{notification_id}/read").status_code, 200)
        self.assertEqual(self.client.get("/api/notifications/unread-count").get_json()["count"], 0)
        self.assertEqual(self.client.post("/api/notifications/9999/read").status_code, 404)
        self.assertTrue(self.client.post("/api/notifications/read-all").get_json()["ok"])

        self.assertEqual(self.client.delete(f"/api/notifications/{notification_id}").status_code, 200)
        self.assertEqual(self.client.delete(f"/api/notifications/{notification_id}").status_code, 404)

    def test_leaderboard_includes_current_user(self):
        self.client.post("/api/streak/check-in")
        board = self.client.get("/api/leaderboard").get_json()
        self.assertEqual(board["leaderboard"][0]["points"], 10)
        self.assertEqual(board["user_rank"]["rank"], 1)


if __name__ == "__main__":
    unittest.main()
