import unittest

from reahub import tasks as task_ops
from reahub.jobs.automation import run_automation_rules
from reahub.db import (
    AchievementRecord,
    ActivityRecord,
    ActivityStreakRecord,
    AutomationRuleRecord,
    DuplicateError,
    MessageRecord,
    NotFoundError,
    NotificationRecord,
    PostgresDbClient,
    ReminderRecord,
    StageLimitRecord,
    TaskRecord,
)
from reahub.types import AppRole, NotificationPriority, TaskStatus, TaskType

NOW = 1_700_000_000.0


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def test_profiles_and_roles(self):
        admin = self.db.create_profile("a@reahub.test", "Ann", [AppRole.ADMIN, AppRole.ESTIMATION])
        ops = self.db.create_profile("o@reahub.test", None, [AppRole.OPERATIONS])

        fetched = self.db.get_profile(admin.id)
        self.assertEqual(fetched.roles, [AppRole.ADMIN, AppRole.ESTIMATION])
        self.assertEqual(self.db.get_profile(ops.id).display_name, "o@reahub.test")
        self.assertEqual(
            [p.id for p in self.db.list_profiles(role=AppRole.OPERATIONS)], [ops.id]
        )
        self.assertEqual(
            self.db.user_ids_with_roles([AppRole.ADMIN, AppRole.OPERATIONS]),
            sorted([admin.id, ops.id]),
        )
        with self.assertRaises(DuplicateError):
            self.db.create_profile("a@reahub.test", "Again", [])

    def test_task_lifecycle(self):
        task = self.db.create_task(
            TaskRecord(
                title="Quote",
                created_by="u1",
                type=TaskType.QUOTATION,
                last_activity_at=NOW - 7200,
            )
        )
        fetched = self.db.get_task(task.id)
        self.assertEqual(fetched.status, TaskStatus.TODO)
        self.assertEqual(fetched.type, TaskType.QUOTATION)

        done = self.db.update_task(task.id, {"status": "done"}, now=NOW)
        self.assertEqual(done.status, TaskStatus.DONE)
        self.assertEqual(done.previous_status, TaskStatus.TODO)
        self.assertEqual(done.completed_at, NOW)
        self.assertEqual(done.last_activity_at, NOW)

        reopened = self.db.update_task(task.id, {"status": TaskStatus.TODO}, now=NOW + 1)
        self.assertIsNone(reopened.completed_at)
        self.assertEqual(reopened.previous_status, TaskStatus.DONE)

        with self.assertRaises(ValueError):
            self.db.update_task(task.id, {"created_by": "u2"})
        with self.assertRaises(NotFoundError):
            self.db.update_task("missing", {"title": "x"})

    def test_list_tasks_filters(self):
        old = self.db.create_task(
            TaskRecord(title="Old", created_by="u1", assigned_to="u2", last_activity_at=NOW - 86400)
        )
        self.db.create_task(TaskRecord(title="New", created_by="u1", last_activity_at=NOW))
        gone = self.db.create_task(TaskRecord(title="Gone", created_by="u1", deleted_at=NOW))

        self.assertEqual(len(self.db.list_tasks()), 2)
        self.assertEqual(len(self.db.list_tasks(include_deleted=True)), 3)
        self.assertEqual(
            [t.id for t in self.db.list_tasks(inactive_before=NOW - 3600)], [old.id]
        )
        self.assertEqual([t.id for t in self.db.list_tasks(assigned_to="u2")], [old.id])
        self.assertEqual(self.db.list_tasks(exclude_statuses=[TaskStatus.TODO]), [])
        self.assertNotIn(gone.id, [t.id for t in self.db.list_tasks()])

    def test_activity_log_through_task_operations(self):
        task = task_ops.create_task(self.db, TaskRecord(title="Logo", created_by="u1"), now=NOW)
        task_ops.update_task(
            self.db, task.id, {"assigned_to": "u2", "title": "Logo v2"}, user_id="u1", now=NOW + 1
        )
        actions = [a.action for a in self.db.list_activity(task.id)]
        self.assertEqual(sorted(actions), ["assigned", "created", "edited"])
        self.assertEqual(self.db.get_task(task.id).assigned_by, "u1")

        self.db.delete_task(task.id)
        self.assertIsNone(self.db.get_task(task.id))
        self.assertEqual(self.db.list_activity(task.id), [])

    def test_notifications_acknowledge_once(self):
        note = NotificationRecord(
            sender_id="u1",
            recipient_id="u2",
            title="Heads up",
            message="Call the client",
            priority=NotificationPriority.URGENT,
        )
        self.db.insert_notifications([note])

        self.assertEqual(len(self.db.list_notifications("u2", unacknowledged_only=True)), 1)
        first = self.db.acknowledge_notification(note.id, now=NOW)
        second = self.db.acknowledge_notification(note.id, now=NOW + 60)
        self.assertTrue(first.is_acknowledged)
        self.assertEqual(second.acknowledged_at, NOW)
        self.assertEqual(self.db.list_notifications("u2", unacknowledged_only=True), [])
        with self.assertRaises(NotFoundError):
            self.db.acknowledge_notification("missing")

    def test_presence_upsert(self):
        self.db.upsert_presence("u1", status="online", custom_message=None, now=NOW)
        self.db.upsert_presence("u1", status="busy", custom_message="On site", now=NOW + 5)
        presence = self.db.get_presence("u1")
        self.assertEqual(presence.status, "busy")
        self.assertEqual(presence.last_active, NOW + 5)
        self.assertEqual(len(self.db.list_presence()), 1)

    def test_rules_crud(self):
        rule = self.db.create_rule(
            AutomationRuleRecord(
                rule_name="Nudge",
                source_status=TaskStatus.TODO,
                threshold_hours=24,
                notify_roles=[AppRole.ADMIN],
            )
        )
        with self.assertRaises(DuplicateError):
            self.db.create_rule(
                AutomationRuleRecord(rule_name="Nudge", source_status=TaskStatus.TODO, threshold_hours=1)
            )

        updated = self.db.update_rule(
            rule.id,
            {"enabled": False, "target_status": TaskStatus.DONE, "notify_roles": [AppRole.ESTIMATION]},
        )
        self.assertFalse(updated.enabled)
        self.assertEqual(updated.target_status, TaskStatus.DONE)
        self.assertEqual(updated.notify_roles, [AppRole.ESTIMATION])
        self.assertEqual(self.db.list_rules(enabled_only=True), [])

        self.db.delete_rule(rule.id)
        self.assertIsNone(self.db.get_rule(rule.id))
        with self.assertRaises(NotFoundError):
            self.db.delete_rule(rule.id)

    def test_automation_rule_moves_status(self):
        self.db.create_rule(
            AutomationRuleRecord(
                rule_name="Close idle",
                source_status=TaskStatus.TODO,
                threshold_hours=24,
                target_status=TaskStatus.DONE,
            )
        )
        idle = self.db.create_task(
            TaskRecord(title="Idle", created_by="u1", last_activity_at=NOW - 30 * 3600)
        )
        busy = self.db.create_task(
            TaskRecord(title="Busy", created_by="u1", last_activity_at=NOW - 3600)
        )

        result = run_automation_rules(self.db, now=NOW)

        self.assertEqual(result["actions_applied"], 1)
        moved = self.db.get_task(idle.id)
        self.assertEqual(moved.status, TaskStatus.DONE)
        self.assertEqual(moved.previous_status, TaskStatus.TODO)
        self.assertEqual(moved.completed_at, NOW)
        self.assertEqual(self.db.get_task(busy.id).status, TaskStatus.TODO)

    def test_stage_limits_seeded_and_updatable(self):
        limits = self.db.list_stage_limits()
        self.assertEqual(limits["todo"].time_limit_hours, 2)
        self.assertEqual(limits["supplier_quotes"].time_limit_hours, 4)
        self.assertEqual(limits["client_approval"].warning_threshold_hours, 2)

        self.db.set_stage_limit(StageLimitRecord("todo", 6, 5))
        self.assertEqual(self.db.list_stage_limits()["todo"].time_limit_hours, 6)

    def test_reminders(self):
        self.db.create_reminder(ReminderRecord(task_id="t1", user_id="u1", reminder_time=NOW + 10))
        self.db.create_reminder(ReminderRecord(task_id="t2", user_id="u1", reminder_time=NOW + 5))
        self.assertEqual([r.task_id for r in self.db.list_reminders("u1")], ["t2", "t1"])

    def test_chat_messages(self):
        self.db.save_message(MessageRecord(sender_id="a", recipient_id="b", message="hi", created_at=NOW))
        self.db.save_message(MessageRecord(sender_id="b", recipient_id="a", message="yo", created_at=NOW + 1))
        self.db.save_message(MessageRecord(sender_id="a", recipient_id="b", message="?", created_at=NOW + 2))
        self.db.save_message(MessageRecord(sender_id="c", recipient_id="b", message="x", created_at=NOW + 3))

        self.assertEqual(
            [m.message for m in self.db.list_conversation("b", "a")], ["hi", "yo", "?"]
        )
        self.assertEqual(self.db.count_unread("b"), 3)
        self.assertEqual(self.db.mark_messages_read("b", "a"), 2)
        self.assertEqual(self.db.count_unread("b"), 1)

    def test_update_profile(self):
        ann = self.db.create_profile("a@reahub.test", "Ann", [AppRole.ESTIMATION])
        self.db.create_profile("b@reahub.test", "Ben", [])

        updated = self.db.update_profile(
            ann.id,
            {"email": "ann@reahub.test", "full_name": "Ann Lee", "roles": [AppRole.ADMIN]},
        )
        self.assertEqual(updated.email, "ann@reahub.test")
        self.assertEqual(updated.full_name, "Ann Lee")
        self.assertEqual(self.db.get_profile(ann.id).roles, [AppRole.ADMIN])
        self.assertEqual(self.db.user_ids_with_roles([AppRole.ESTIMATION]), [])

        with self.assertRaises(DuplicateError):
            self.db.update_profile(ann.id, {"email": "b@reahub.test"})
        with self.assertRaises(NotFoundError):
            self.db.update_profile("missing", {"full_name": "x"})
        with self.assertRaises(ValueError):
            self.db.update_profile(ann.id, {"created_at": 1.0})

    def test_daily_reviews(self):
        first = self.db.ensure_daily_review("u1", "2023-11-14", now=NOW)
        again = self.db.ensure_daily_review("u1", "2023-11-14", now=NOW + 5)
        self.assertEqual(first.id, again.id)
        self.assertFalse(again.completed)

        done = self.db.complete_daily_review("u1", "2023-11-14", 4, now=NOW + 10)
        self.assertTrue(done.completed)
        self.assertEqual(done.completed_at, NOW + 10)
        self.db.complete_daily_review("u2", "2023-11-10", 1, now=NOW)
        self.db.ensure_daily_review("u2", "2023-11-14", now=NOW)

        self.assertEqual(
            [r.user_id for r in self.db.list_daily_reviews(review_date="2023-11-14", completed_only=True)],
            ["u1"],
        )
        self.assertEqual(
            [r.review_date for r in self.db.list_daily_reviews(user_id="u2", since_date="2023-11-12")],
            ["2023-11-14"],
        )

    def test_streaks_achievements_and_user_activity(self):
        self.assertIsNone(self.db.get_activity_streak("u1"))
        self.db.save_activity_streak(ActivityStreakRecord(user_id="u1", current_streak=1))
        self.db.save_activity_streak(
            ActivityStreakRecord(user_id="u1", current_streak=2, efficiency_score=30, updated_at=NOW)
        )
        streak = self.db.get_activity_streak("u1")
        self.assertEqual((streak.current_streak, streak.efficiency_score), (2, 30))

        award = AchievementRecord(user_id="u1", achievement_type="task_master", metadata={"tasks": 12})
        self.assertTrue(self.db.award_achievement(award))
        self.assertFalse(
            self.db.award_achievement(AchievementRecord(user_id="u1", achievement_type="task_master"))
        )
        self.assertEqual(
            [(a.achievement_type, a.metadata) for a in self.db.list_achievements("u1")],
            [("task_master", {"tasks": 12})],
        )

        self.db.add_activity(ActivityRecord(task_id="t1", user_id="u1", action="edited", created_at=NOW - 10))
        self.db.add_activity(ActivityRecord(task_id="t1", user_id="u1", action="edited", created_at=NOW - 999))
        self.db.add_activity(ActivityRecord(task_id="t1", user_id="u2", action="edited", created_at=NOW))
        self.assertEqual(len(self.db.list_user_activity("u1", since=NOW - 100)), 1)

    def test_job_markers(self):
        self.assertIsNone(self.db.get_job_marker("broadcast:morning"))
        self.db.set_job_marker("broadcast:morning", NOW)
        self.db.set_job_marker("broadcast:morning", NOW + 60)
        self.assertEqual(self.db.get_job_marker("broadcast:morning"), NOW + 60)


if __name__ == "__main__":
    unittest.main()
