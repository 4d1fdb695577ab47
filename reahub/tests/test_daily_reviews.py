import unittest

from reahub.db import InMemoryDbClient, TaskRecord
from reahub.jobs.daily_reviews import run_daily_review_reminders
from reahub.types import AppRole, NotificationPriority, TaskStatus

# 2023-11-14 22:13:20 UTC
NOW = 1_700_000_000.0
TODAY = "2023-11-14"


class DailyReviewTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.lead = self.db.create_profile("lead@reahub.test", "Lead", [AppRole.ADMIN])
        self.alice = self.db.create_profile(
            "alice@reahub.test", "Alice", [AppRole.ESTIMATION]
        )
        self.idle = self.db.create_profile("idle@reahub.test", "Idle", [AppRole.DESIGNER])
        self.db.create_task(
            TaskRecord(title="RFQ", created_by=self.lead.id, assigned_to=self.alice.id)
        )
        self.db.create_task(TaskRecord(title="Brief", created_by=self.alice.id))
        self.db.create_task(
            TaskRecord(title="Shipped", created_by=self.idle.id, status=TaskStatus.DONE)
        )

    def test_reminds_everyone_with_open_work(self):
        result = run_daily_review_reminders(self.db, "morning", now=NOW)

        self.assertEqual(
            result, {"success": True, "reminders_sent": 2, "review_type": "morning"}
        )
        notes = self.db.list_notifications(self.alice.id)
        self.assertEqual(len(notes), 1)
        self.assertEqual(notes[0].title, "Morning Task Review Required")
        self.assertEqual(notes[0].priority, NotificationPriority.HIGH)
        self.assertEqual(notes[0].sender_id, self.alice.id)
        self.assertIn("You have 2 active tasks", notes[0].message)
        self.assertIn("You have 1 active tasks", self.db.list_notifications(self.lead.id)[0].message)
        self.assertEqual(self.db.list_notifications(self.idle.id), [])

        reviews = self.db.list_daily_reviews(review_date=TODAY)
        self.assertEqual(
            sorted(r.user_id for r in reviews), sorted([self.lead.id, self.alice.id])
        )
        self.assertFalse(any(r.completed for r in reviews))

    def test_completed_reviews_are_not_nagged(self):
        self.db.complete_daily_review(self.alice.id, TODAY, 2, now=NOW - 60)

        result = run_daily_review_reminders(self.db, "evening", now=NOW)

        self.assertEqual(result["reminders_sent"], 1)
        self.assertEqual(self.db.list_notifications(self.alice.id), [])
        self.assertEqual(
            self.db.list_notifications(self.lead.id)[0].title,
            "Evening Task Review Required",
        )
        review = self.db.list_daily_reviews(user_id=self.alice.id)[0]
        self.assertTrue(review.completed)
        self.assertEqual(review.tasks_reviewed, 2)

    def test_rerun_keeps_one_review_row_per_day(self):
        run_daily_review_reminders(self.db, "morning", now=NOW)
        run_daily_review_reminders(self.db, "evening", now=NOW + 60)
        self.assertEqual(len(self.db.list_daily_reviews(user_id=self.alice.id)), 1)

    def test_unknown_review_type(self):
        with self.assertRaises(ValueError):
            run_daily_review_reminders(self.db, "midday", now=NOW)


if __name__ == "__main__":
    unittest.main()
