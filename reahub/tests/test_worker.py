import unittest
from unittest.mock import patch

from reahub.config import Settings
from reahub.db import InMemoryDbClient, TaskRecord
from reahub.queue import InMemorySyncQueue, make_sync_item
from reahub.storage import InMemoryStorageClient
from reahub.types import AppRole
from reahub.worker import due_daily_jobs, run_due_jobs

# 2023-11-14 22:13:20 UTC
NOW = 1_700_000_000.0
MIDNIGHT = 1_699_920_000.0
HOUR = 3600.0
INTERVAL_JOBS = {
    "escalate",
    "automation",
    "stale",
    "reminders",
    "reports",
    "efficiency",
    "sync",
}
EVENING_SLOTS = {"review:evening", "broadcast:endofday", "quotation_report"}


class WorkerTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.queue = InMemorySyncQueue()
        self.settings = Settings(use_in_memory_backends=True)
        self.last_run = {}

    def _tick(self, now, last_run=None):
        return run_due_jobs(
            db=self.db,
            storage=self.storage,
            queue=self.queue,
            last_run=self.last_run if last_run is None else last_run,
            now=now,
            settings=self.settings,
        )

    def test_first_tick_runs_interval_jobs_and_open_slots(self):
        results = self._tick(NOW)
        self.assertEqual(set(results), INTERVAL_JOBS | EVENING_SLOTS)
        self.assertTrue(results["reports"]["success"])
        self.assertEqual(self.db.get_job_marker("broadcast:endofday"), NOW)
        self.assertIsNone(self.db.get_job_marker("broadcast:morning"))

    def test_jobs_wait_for_their_interval(self):
        self._tick(NOW)
        results = self._tick(NOW + 60)
        self.assertEqual(set(results), {"sync"})

        results = self._tick(NOW + self.settings.escalation_interval_seconds)
        self.assertIn("escalate", results)
        self.assertNotIn("automation", results)

    def test_daily_slots_only_run_inside_their_window(self):
        self.assertEqual(due_daily_jobs(self.db, MIDNIGHT + 7 * HOUR), [])
        self.assertEqual(due_daily_jobs(self.db, MIDNIGHT + 8 * HOUR), ["review:morning"])
        self.assertEqual(
            due_daily_jobs(self.db, MIDNIGHT + 9 * HOUR),
            ["review:morning", "broadcast:morning"],
        )
        # A late start never sends the morning broadcast in the afternoon.
        self.assertEqual(
            due_daily_jobs(self.db, MIDNIGHT + 15 * HOUR),
            ["review:morning", "broadcast:progress"],
        )

    def test_daily_slots_run_once_per_day(self):
        self.db.set_job_marker("review:morning", MIDNIGHT + 8 * HOUR)
        self.db.set_job_marker("broadcast:morning", MIDNIGHT + 9 * HOUR)
        self.assertEqual(due_daily_jobs(self.db, MIDNIGHT + 10 * HOUR), [])

        self.db.set_job_marker("broadcast:morning", MIDNIGHT - HOUR)
        self.assertEqual(
            due_daily_jobs(self.db, MIDNIGHT + 10 * HOUR), ["broadcast:morning"]
        )

    def test_restarted_scheduler_does_not_resend_or_backfill(self):
        estimator = self.db.create_profile("est@reahub.test", "Est", [AppRole.ESTIMATION])

        morning = self._tick(MIDNIGHT + 9.5 * HOUR, last_run={})
        self.assertIn("broadcast:morning", morning)
        self.assertIn("review:morning", morning)

        evening = self._tick(MIDNIGHT + 19 * HOUR, last_run={})
        self.assertEqual({k for k in evening if k not in INTERVAL_JOBS}, EVENING_SLOTS)

        again = self._tick(MIDNIGHT + 19 * HOUR + 60, last_run={})
        self.assertEqual({k for k in again if k not in INTERVAL_JOBS}, set())

        titles = [n.title for n in self.db.list_notifications(estimator.id)]
        self.assertEqual(titles.count("GOOD MORNING ESTIMATION TEAM!"), 1)
        self.assertEqual(titles.count("PROGRESS UPDATE"), 0)
        self.assertEqual(titles.count("END OF DAY SUMMARY"), 1)

    def test_sync_job_drains_queue(self):
        task = self.db.create_task(TaskRecord(title="Offline", created_by="u1"))
        self.queue.enqueue(make_sync_item("update", "tasks", {"id": task.id, "title": "Synced"}))

        results = self._tick(NOW)

        self.assertEqual(results["sync"]["synced"], 1)
        self.assertEqual(self.db.get_task(task.id).title, "Synced")
        self.assertEqual(self.queue.size(), 0)

    @patch("reahub.worker.run_escalation", side_effect=RuntimeError("boom"))
    def test_failing_job_does_not_stop_others(self, _mock_escalation):
        results = self._tick(NOW)
        self.assertNotIn("escalate", results)
        self.assertIn("automation", results)
        self.assertEqual(self.last_run["escalate"], NOW)

    @patch("reahub.worker.run_quotation_report", side_effect=RuntimeError("boom"))
    def test_failing_daily_job_is_not_retried_the_same_day(self, _mock_report):
        results = self._tick(NOW)
        self.assertNotIn("quotation_report", results)
        self.assertIn("broadcast:endofday", results)
        self.assertEqual(self.db.get_job_marker("quotation_report"), NOW)
        self.assertNotIn("quotation_report", self._tick(NOW + 60))


if __name__ == "__main__":
    unittest.main()
