import unittest
from unittest.mock import patch

from reahub.db import InMemoryDbClient, StageLimitRecord, TaskRecord
from reahub.jobs.escalation import (
    find_stuck_tasks,
    least_busy_estimation_member,
    run_escalation,
)
from reahub.types import AppRole, NotificationPriority, TaskStatus, TaskType

NOW = 1_700_000_000.0
HOUR = 3600.0


class EscalationTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.admin = self.db.create_profile("admin@reahub.test", "Admin", [AppRole.ADMIN])
        self.head = self.db.create_profile(
            "head@reahub.test", "Head", [AppRole.TECHNICAL_HEAD]
        )
        self.alice = self.db.create_profile(
            "alice@reahub.test", "Alice", [AppRole.ESTIMATION]
        )
        self.bob = self.db.create_profile("bob@reahub.test", "Bob", [AppRole.ESTIMATION])

    def _quotation(self, title, idle_hours, status=TaskStatus.TODO, assigned_to=None, **kwargs):
        task = TaskRecord(
            title=title,
            created_by=self.admin.id,
            status=status,
            type=TaskType.QUOTATION,
            assigned_to=assigned_to,
            last_activity_at=NOW - idle_hours * HOUR,
            **kwargs,
        )
        return self.db.create_task(task)

    def _notifications(self, user_id):
        return self.db.list_notifications(user_id)

    def test_find_stuck_tasks_uses_stage_limits(self):
        stuck = self._quotation("RFQ stuck", 2.5)
        self._quotation("Waiting on supplier", 3.0, status=TaskStatus.SUPPLIER_QUOTES)
        self._quotation("Old but deleted", 9.0, deleted_at=NOW - HOUR)
        self.db.create_task(
            TaskRecord(
                title="General task",
                created_by=self.admin.id,
                last_activity_at=NOW - 10 * HOUR,
            )
        )
        older = self._quotation("Client silent", 6.0, status=TaskStatus.CLIENT_APPROVAL)

        found = find_stuck_tasks(self.db, NOW)

        self.assertEqual([s.task.id for s in found], [older.id, stuck.id])
        self.assertEqual(found[0].time_limit, 3)
        self.assertAlmostEqual(found[1].hours_idle, 2.5)

    def test_two_hour_rung_notifies_assignee(self):
        self._quotation("RFQ", 2.5, assigned_to=self.alice.id)

        result = run_escalation(self.db, now=NOW)

        self.assertEqual(result["tasks_processed"], 1)
        self.assertEqual(result["tasks"][0]["action"], "notify_assignee")
        notes = self._notifications(self.alice.id)
        self.assertEqual(len(notes), 1)
        self.assertEqual(notes[0].priority, NotificationPriority.URGENT)

    def test_three_hour_rung_alerts_admins_only(self):
        self._quotation("RFQ", 3.5, assigned_to=self.alice.id)

        result = run_escalation(self.db, now=NOW)

        self.assertEqual(result["tasks"][0]["action"], "notify_admins")
        for user in (self.admin, self.head):
            notes = self._notifications(user.id)
            self.assertEqual(len(notes), 1)
            self.assertEqual(notes[0].priority, NotificationPriority.HIGH)
        self.assertEqual(self._notifications(self.alice.id), [])

    def test_unassigned_task_skips_first_rung_and_alerts_from_creator(self):
        self._quotation("Unassigned RFQ", 2.5)

        result = run_escalation(self.db, now=NOW)

        self.assertEqual(result["tasks"][0]["action"], "none")
        for user in (self.admin, self.head, self.alice, self.bob):
            self.assertEqual(self._notifications(user.id), [])

        result = run_escalation(self.db, now=NOW + HOUR)

        self.assertEqual(result["tasks"][0]["action"], "notify_admins")
        for user in (self.admin, self.head):
            notes = self._notifications(user.id)
            self.assertEqual(len(notes), 1)
            self.assertEqual(notes[0].sender_id, self.admin.id)
            self.assertIn("ASSIGNED TO: Unknown", notes[0].message)

    def test_four_hour_rung_broadcasts_to_estimation(self):
        self._quotation("RFQ", 4.5, assigned_to=self.alice.id)

        result = run_escalation(self.db, now=NOW)

        self.assertEqual(result["tasks"][0]["action"], "broadcast_team")
        for user in (self.alice, self.bob):
            notes = self._notifications(user.id)
            self.assertEqual(len(notes), 1)
            self.assertTrue(notes[0].is_broadcast)
            self.assertEqual(notes[0].priority, NotificationPriority.URGENT)
        self.assertEqual(self._notifications(self.admin.id), [])

    def test_five_hour_rung_reassigns_to_least_busy(self):
        task = self._quotation("RFQ", 5.5, assigned_to=self.alice.id)
        self._quotation("Fresh", 0.1, status=TaskStatus.SUPPLIER_QUOTES, assigned_to=self.alice.id)

        result = run_escalation(self.db, now=NOW)

        self.assertEqual(result["tasks"][0]["action"], "reassign")
        updated = self.db.get_task(task.id)
        self.assertEqual(updated.assigned_to, self.bob.id)
        self.assertEqual(updated.last_activity_at, NOW)

        old_notes = self._notifications(self.alice.id)
        new_notes = self._notifications(self.bob.id)
        self.assertEqual(len(old_notes), 1)
        self.assertEqual(old_notes[0].priority, NotificationPriority.HIGH)
        self.assertIn("Bob", old_notes[0].message)
        self.assertEqual(len(new_notes), 1)
        self.assertEqual(new_notes[0].priority, NotificationPriority.URGENT)

    def test_reassign_skipped_when_assignee_is_least_busy(self):
        solo_db = InMemoryDbClient()
        creator = solo_db.create_profile("c@reahub.test", None, [AppRole.ADMIN])
        only = solo_db.create_profile("only@reahub.test", "Only", [AppRole.ESTIMATION])
        task = solo_db.create_task(
            TaskRecord(
                title="RFQ",
                created_by=creator.id,
                type=TaskType.QUOTATION,
                assigned_to=only.id,
                last_activity_at=NOW - 6 * HOUR,
            )
        )

        result = run_escalation(solo_db, now=NOW)

        self.assertEqual(result["tasks"][0]["action"], "none")
        self.assertEqual(solo_db.get_task(task.id).assigned_to, only.id)
        self.assertEqual(solo_db.list_notifications(only.id), [])

    def test_stuck_below_first_rung_gets_nothing(self):
        self.db.set_stage_limit(StageLimitRecord("todo", 1, 0))
        self._quotation("RFQ", 1.5, assigned_to=self.alice.id)

        result = run_escalation(self.db, now=NOW)

        self.assertEqual(result["tasks"][0]["action"], "none")
        self.assertEqual(self._notifications(self.alice.id), [])

    def test_least_busy_breaks_ties_by_user_id(self):
        member = least_busy_estimation_member(self.db)
        self.assertEqual(member.user_id, min(self.alice.id, self.bob.id))
        self.assertEqual(member.active_task_count, 0)

    def test_failure_on_one_task_does_not_stop_the_run(self):
        self._quotation("First", 2.5, assigned_to=self.alice.id)
        self._quotation("Second", 2.2, assigned_to=self.bob.id)

        with patch(
            "reahub.jobs.escalation.notify_users", side_effect=RuntimeError("boom")
        ):
            result = run_escalation(self.db, now=NOW)

        self.assertEqual(result["tasks_processed"], 2)
        self.assertEqual([t["action"] for t in result["tasks"]], ["error", "error"])

    def test_no_stuck_tasks(self):
        self._quotation("Fresh", 0.5)
        result = run_escalation(self.db, now=NOW)
        self.assertEqual(result["message"], "No stuck tasks")
        self.assertEqual(result["tasks"], [])


if __name__ == "__main__":
    unittest.main()
