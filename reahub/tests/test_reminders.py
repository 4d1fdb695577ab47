import unittest

from reahub.db import InMemoryDbClient, TaskRecord
from reahub.jobs.reminders import run_estimation_reminders
from reahub.types import AppRole, TaskPriority, TaskStatus, TaskType

NOW = 1_700_000_000.0


class EstimationReminderTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.admin = self.db.create_profile("admin@reahub.test", "Admin", [AppRole.ADMIN])
        self.est = self.db.create_profile("est@reahub.test", "Est", [AppRole.ESTIMATION])
        self.idle = self.db.create_profile("idle@reahub.test", "Idle", [AppRole.ESTIMATION])

    def _task(self, **kwargs):
        return self.db.create_task(
            TaskRecord(title="Task", created_by=self.admin.id, assigned_to=self.est.id, **kwargs)
        )

    def test_counts_open_tasks_and_reminds_on_high_priority(self):
        urgent = self._task(type=TaskType.QUOTATION, priority=TaskPriority.HIGH)
        self._task(type=TaskType.QUOTATION)
        self._task(type=TaskType.INVOICE, priority=TaskPriority.LOW)
        self._task(status=TaskStatus.DONE, priority=TaskPriority.HIGH)
        self._task(status=TaskStatus.PENDING_INVOICES)
        self._task(status=TaskStatus.QUOTATION_BILL)

        result = run_estimation_reminders(self.db, now=NOW)

        self.assertTrue(result["success"])
        self.assertEqual(result["users_processed"], 2)
        self.assertEqual(result["reminders_created"], 1)
        self.assertEqual(
            result["pending_by_user"], {self.est.id: {"quotation": 2, "invoice": 1}}
        )
        reminders = self.db.list_reminders(self.est.id)
        self.assertEqual(len(reminders), 1)
        self.assertEqual(reminders[0].task_id, urgent.id)
        self.assertEqual(reminders[0].reminder_time, NOW + 3600)

    def test_no_estimation_users(self):
        result = run_estimation_reminders(InMemoryDbClient(), now=NOW)
        self.assertEqual(result["users_processed"], 0)
        self.assertEqual(result["reminders_created"], 0)


if __name__ == "__main__":
    unittest.main()
