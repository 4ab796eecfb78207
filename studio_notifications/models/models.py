"""SQLAlchemy ORM Models for the studio notification subsystem.

The project, design, inventory, task and site-log tables are owned by the
dashboard's CRUD layer; this package only reads them to decide who hears
about what. The ``notifications`` table is the only one it writes.
"""

from datetime import date, datetime
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDMixin


# =============================================================================
# ENUMS
# =============================================================================


class NotificationType(str, PyEnum):
    """Closed set of inbox notification types."""
    TASK_ASSIGNED = "task_assigned"
    DESIGN_APPROVED = "design_approved"
    DESIGN_REJECTED = "design_rejected"
    DESIGN_UPLOADED = "design_uploaded"
    PROJECT_UPDATE = "project_update"
    INVENTORY_ADDED = "inventory_added"
    COMMENT_ADDED = "comment_added"
    BILL_APPROVED = "bill_approved"
    BILL_REJECTED = "bill_rejected"
    MENTION = "mention"
    GENERAL = "general"


class ProjectStatus(str, PyEnum):
    PLANNING = "planning"
    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskStatus(str, PyEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"


def _enum(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# DIRECTORY
# =============================================================================


class User(Base, UUIDMixin, TimestampMixin):
    """Studio user (staff or client)."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    handle: Mapped[str | None] = mapped_column(
        String(100), comment="@handle used in mentions"
    )
    phone_number: Mapped[str | None] = mapped_column(
        String(32), comment="Contact address for the messaging channel"
    )
    role: Mapped[str] = mapped_column(String(50), default="employee", nullable=False)
    designation: Mapped[str | None] = mapped_column(String(100))
    onesignal_player_id: Mapped[str | None] = mapped_column(String(255))

    memberships: Mapped[list["ProjectMember"]] = relationship(back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# =============================================================================
# PROJECTS & ENTITIES (read-only here)
# =============================================================================


class Project(Base, UUIDMixin, TimestampMixin):
    """Interior-design project."""

    __tablename__ = "projects"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ProjectStatus] = mapped_column(
        _enum(ProjectStatus, "project_status"),
        default=ProjectStatus.ACTIVE,
        nullable=False,
    )
    created_by: Mapped[UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False,
        comment="Administrative owner of the project",
    )
    assigned_employee_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True,
        comment="Primary PM/designer running the project day to day",
    )

    members: Mapped[list["ProjectMember"]] = relationship(back_populates="project")

    @property
    def primary_owner_id(self) -> UUID:
        return self.assigned_employee_id or self.created_by


class ProjectMember(Base, UUIDMixin):
    """Membership linking users to projects."""

    __tablename__ = "project_members"

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    role: Mapped[str | None] = mapped_column(
        String(100), comment="Role on this project, e.g. 'site supervisor'"
    )

    project: Mapped["Project"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )


class DesignFile(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "design_files"

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    uploaded_by: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)


class InventoryItem(Base, UUIDMixin, TimestampMixin):
    """Inventory purchase with an attached bill awaiting approval."""

    __tablename__ = "inventory_items"

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)


class Task(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "tasks"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    project_id: Mapped[UUID | None] = mapped_column(ForeignKey("projects.id"), nullable=True)
    assigned_to: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    status: Mapped[TaskStatus] = mapped_column(
        _enum(TaskStatus, "task_status"),
        default=TaskStatus.TODO,
        nullable=False,
    )
    due_date: Mapped[date | None] = mapped_column(Date)
    # Calendar tasks carry a start time; project step tasks only a due date
    start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class SiteLog(Base, UUIDMixin, TimestampMixin):
    """Daily work log for a project site."""

    __tablename__ = "site_logs"

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    log_date: Mapped[date] = mapped_column(Date, nullable=False)
    submitted_by: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)

    __table_args__ = (
        Index("idx_site_logs_date", "log_date", "project_id"),
    )


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class Notification(Base, UUIDMixin, TimestampMixin):
    """
    One entry in a user's inbox.

    Immutable except for ``is_read``. Created only by the in-app channel,
    read/updated/deleted only by its recipient.
    """

    __tablename__ = "notifications"

    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        _enum(NotificationType, "notification_type"),
        default=NotificationType.GENERAL,
        nullable=False,
    )
    related_id: Mapped[UUID | None] = mapped_column(
        nullable=True, comment="Weak reference used for deep links only"
    )
    related_type: Mapped[str | None] = mapped_column(String(50))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    recipient: Mapped["User"] = relationship()

    __table_args__ = (
        Index("idx_notifications_user_created", "user_id", "created_at"),
        Index("idx_notifications_user_unread", "user_id", "is_read"),
    )


class BroadcastLog(Base, UUIDMixin, TimestampMixin):
    """History of admin broadcasts."""

    __tablename__ = "broadcast_logs"

    admin_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    recipient_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    target_user_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
