"""
Background Jobs for Studio Notifications.

- reminder_cron: site-log reminders and the daily task briefing
"""

from .reminder_cron import ReminderConfig, ReminderScheduler, ReminderSummary, run_reminder_job

__all__ = ["ReminderConfig", "ReminderScheduler", "ReminderSummary", "run_reminder_job"]
