"""Studio Notifications: stakeholder fan-out, reminders and inbox sync."""

__version__ = "1.0.0"
