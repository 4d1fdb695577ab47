"""
Scheduled jobs. Each ``run_*`` function scans the database once and returns
a JSON-serializable status payload.
"""
