"""
Entity Store: read access to the dashboard's domain tables.

The resolver and the reminder sweeps only ever *read* projects, members and
the entities an event refers to. Keeping that behind a small interface lets
tests substitute failing or in-memory stores.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    DesignFile,
    InventoryItem,
    Project,
    ProjectStatus,
    ProjectMember,
    SiteLog,
    Task,
    TaskStatus,
    User,
)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class NotificationError(Exception):
    """Base exception for notification operations."""
    pass


class EntityNotFoundError(NotificationError):
    """An entity referenced by an event does not exist."""

    def __init__(self, kind: str, entity_id: UUID | None):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


# =============================================================================
# INTERFACE
# =============================================================================


class EntityStore(ABC):
    """Read-only view over the domain entities that drive notifications."""

    @abstractmethod
    async def get_user(self, user_id: UUID) -> User | None: ...

    @abstractmethod
    async def get_users(self, user_ids: Sequence[UUID] | None = None) -> list[User]:
        """Users by id, or every user when ``user_ids`` is None."""

    @abstractmethod
    async def get_project(self, project_id: UUID) -> Project | None: ...

    @abstractmethod
    async def get_project_members(self, project_id: UUID) -> list[tuple[User, str | None]]:
        """Members of a project with their role on it."""

    @abstractmethod
    async def get_design_file(self, design_file_id: UUID) -> DesignFile | None: ...

    @abstractmethod
    async def get_inventory_item(self, item_id: UUID) -> InventoryItem | None: ...

    @abstractmethod
    async def get_task(self, task_id: UUID) -> Task | None: ...

    @abstractmethod
    async def list_projects_by_status(self, statuses: Sequence[str]) -> list[Project]: ...

    @abstractmethod
    async def project_ids_with_site_log(self, log_date: date) -> set[UUID]: ...

    @abstractmethod
    async def list_open_tasks_due_by(self, day: date) -> list[Task]: ...

    @abstractmethod
    async def list_tasks_starting_between(self, start: datetime, end: datetime) -> list[Task]:
        """Assigned to-do tasks with start_at in (start, end]."""


# =============================================================================
# SQLALCHEMY IMPLEMENTATION
# =============================================================================


class SqlEntityStore(EntityStore):
    """EntityStore backed by the application database."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_user(self, user_id: UUID) -> User | None:
        result = await self._session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_users(self, user_ids: Sequence[UUID] | None = None) -> list[User]:
        query = select(User).order_by(User.full_name)
        if user_ids is not None:
            if not user_ids:
                return []
            query = query.where(User.id.in_(list(user_ids)))
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def get_project(self, project_id: UUID) -> Project | None:
        result = await self._session.execute(
            select(Project).where(Project.id == project_id)
        )
        return result.scalar_one_or_none()

    async def get_project_members(self, project_id: UUID) -> list[tuple[User, str | None]]:
        result = await self._session.execute(
            select(User, ProjectMember.role)
            .join(ProjectMember, ProjectMember.user_id == User.id)
            .where(ProjectMember.project_id == project_id)
            .order_by(User.full_name)
        )
        return [(user, role) for user, role in result.all()]

    async def get_design_file(self, design_file_id: UUID) -> DesignFile | None:
        result = await self._session.execute(
            select(DesignFile).where(DesignFile.id == design_file_id)
        )
        return result.scalar_one_or_none()

    async def get_inventory_item(self, item_id: UUID) -> InventoryItem | None:
        result = await self._session.execute(
            select(InventoryItem).where(InventoryItem.id == item_id)
        )
        return result.scalar_one_or_none()

    async def get_task(self, task_id: UUID) -> Task | None:
        result = await self._session.execute(select(Task).where(Task.id == task_id))
        return result.scalar_one_or_none()

    async def list_projects_by_status(self, statuses: Sequence[str]) -> list[Project]:
        result = await self._session.execute(
            select(Project)
            .where(Project.status.in_([ProjectStatus(s) for s in statuses]))
            .order_by(Project.title)
        )
        return list(result.scalars().all())

    async def project_ids_with_site_log(self, log_date: date) -> set[UUID]:
        result = await self._session.execute(
            select(SiteLog.project_id).where(SiteLog.log_date == log_date).distinct()
        )
        return {row.project_id for row in result.all()}

    async def list_open_tasks_due_by(self, day: date) -> list[Task]:
        result = await self._session.execute(
            select(Task).where(
                Task.status.not_in([TaskStatus.DONE, TaskStatus.CANCELLED]),
                Task.assigned_to.is_not(None),
                Task.due_date.is_not(None),
                Task.due_date <= day,
            )
        )
        return list(result.scalars().all())

    async def list_tasks_starting_between(self, start: datetime, end: datetime) -> list[Task]:
        result = await self._session.execute(
            select(Task)
            .where(
                Task.status == TaskStatus.TODO,
                Task.assigned_to.is_not(None),
                Task.start_at > start,
                Task.start_at <= end,
            )
            .order_by(Task.start_at)
        )
        return list(result.scalars().all())
