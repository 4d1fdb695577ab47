"""
Task tracking service for the estimation, design and operations teams.

This package provides a FastAPI application over database, storage and
queue abstractions, plus the scheduled jobs (escalation, automation rules,
stale detection, reminders, broadcasts, reports and offline sync) that keep
the task board moving.
"""
