import unittest

from reahub.db import InMemoryDbClient, TaskRecord
from reahub.jobs.broadcasts import (
    UnknownBroadcastType,
    daily_stats,
    run_daily_broadcast,
    start_of_day,
)
from reahub.types import AppRole, NotificationPriority, TaskStatus, TaskType

# 2023-11-14 22:13:20 UTC
NOW = 1_700_000_000.0
HOUR = 3600.0


class DailyBroadcastTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.admin = self.db.create_profile("admin@reahub.test", "Admin", [AppRole.ADMIN])
        self.alice = self.db.create_profile(
            "alice@reahub.test", "Alice", [AppRole.ESTIMATION]
        )
        self.bob = self.db.create_profile("bob@reahub.test", "Bob", [AppRole.ESTIMATION])

    def _quotation(self, status, idle_hours=0.0, **kwargs):
        return self.db.create_task(
            TaskRecord(
                title="Quote",
                created_by=self.admin.id,
                type=TaskType.QUOTATION,
                status=status,
                last_activity_at=NOW - idle_hours * HOUR,
                **kwargs,
            )
        )

    def _seed(self):
        self._quotation(TaskStatus.TODO)
        self._quotation(TaskStatus.TODO, idle_hours=3)
        self._quotation(TaskStatus.SUPPLIER_QUOTES, idle_hours=1)
        self._quotation(TaskStatus.DONE, assigned_to=self.alice.id, completed_at=NOW - HOUR)
        self._quotation(TaskStatus.DONE, assigned_to=self.alice.id, completed_at=NOW - 2 * HOUR)
        self._quotation(TaskStatus.DONE, assigned_to=self.bob.id, completed_at=NOW - 3 * HOUR)
        # Completed yesterday.
        self._quotation(TaskStatus.DONE, assigned_to=self.bob.id, completed_at=NOW - 30 * HOUR)

    def test_start_of_day_is_utc_midnight(self):
        self.assertEqual(start_of_day(NOW), 1_699_920_000.0)

    def test_daily_stats(self):
        self._seed()
        stats = daily_stats(self.db, NOW, daily_goal=10)
        self.assertEqual(stats.rfq_count, 2)
        self.assertEqual(stats.in_progress_count, 1)
        self.assertEqual(stats.completed_today, 3)
        self.assertEqual(stats.stuck_count, 1)
        self.assertEqual(stats.top_performer, ("Alice", 2))

    def test_morning_broadcast_reaches_estimation_team(self):
        self._seed()
        result = run_daily_broadcast(self.db, "morning", now=NOW, daily_goal=10)

        self.assertEqual(result["recipient_count"], 2)
        for user in (self.alice, self.bob):
            notes = self.db.list_notifications(user.id)
            self.assertEqual(len(notes), 1)
            self.assertEqual(notes[0].priority, NotificationPriority.MEDIUM)
            self.assertTrue(notes[0].is_broadcast)
            self.assertIn("Your Daily Quota: 5 quotations each", notes[0].message)
        self.assertEqual(self.db.list_notifications(self.admin.id), [])

    def test_progress_mentions_stuck_tasks(self):
        self._seed()
        run_daily_broadcast(self.db, "progress", now=NOW, daily_goal=10)
        note = self.db.list_notifications(self.alice.id)[0]
        self.assertIn("3/10 quotations (30%)", note.message)
        self.assertIn("1 tasks need attention", note.message)

    def test_end_of_day_goal_met(self):
        self._seed()
        run_daily_broadcast(self.db, "endofday", now=NOW, daily_goal=3)
        note = self.db.list_notifications(self.bob.id)[0]
        self.assertEqual(note.title, "DAILY GOAL ACHIEVED!")
        self.assertIn("Top Performer: Alice (2 quotations)", note.message)

    def test_unknown_type(self):
        with self.assertRaises(UnknownBroadcastType):
            run_daily_broadcast(self.db, "midnight", now=NOW)

    def test_no_team(self):
        result = run_daily_broadcast(InMemoryDbClient(), "morning", now=NOW)
        self.assertEqual(result["recipient_count"], 0)


if __name__ == "__main__":
    unittest.main()
