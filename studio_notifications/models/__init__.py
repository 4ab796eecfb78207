"""SQLAlchemy ORM Models for Studio Notifications."""

from .base import Base, TimestampMixin, UUIDMixin
from .models import (
    # Enums
    NotificationType,
    ProjectStatus,
    TaskStatus,
    # Directory
    User,
    # Projects & entities
    DesignFile,
    InventoryItem,
    Project,
    ProjectMember,
    SiteLog,
    Task,
    # Notifications
    BroadcastLog,
    Notification,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    # Enums
    "NotificationType",
    "ProjectStatus",
    "TaskStatus",
    # Directory
    "User",
    # Projects & entities
    "Project",
    "ProjectMember",
    "DesignFile",
    "InventoryItem",
    "Task",
    "SiteLog",
    # Notifications
    "Notification",
    "BroadcastLog",
]
