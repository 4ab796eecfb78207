"""Shared fixtures: a throwaway SQLite database and a seeded studio."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from studio_notifications.core.database import get_session, get_session_factory
from studio_notifications.core.security import create_access_token
from studio_notifications.models import (
    Base,
    DesignFile,
    InventoryItem,
    Project,
    ProjectMember,
    ProjectStatus,
    Task,
    User,
)
from studio_notifications.schemas import NotificationResponse


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
async def engine(tmp_path):
    """File-backed so concurrent sessions (in-app channel writes) see each other."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'studio.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


# =============================================================================
# SEED DATA
# =============================================================================


@dataclass
class Studio:
    admin: User
    owner: User
    designer: User
    supervisor: User
    carpenter: User
    outsider: User
    project: Project
    design: DesignFile
    bill: InventoryItem
    task: Task


@pytest.fixture
async def studio(session) -> Studio:
    """
    One active project:

    - owner (Priya) created it and is not a member
    - designer (Jane, @jane) uploaded the design
    - supervisor (Ravi) is a member with the Site Supervisor designation
    - carpenter (Sam) is a plain member who submitted a bill
    - outsider (Omar) has nothing to do with it
    """
    admin = User(email="ada@studio.test", full_name="Ada Admin", role="admin")
    owner = User(email="priya@studio.test", full_name="Priya Sharma", phone_number="+91 98765 43210")
    designer = User(email="jane.doe@studio.test", full_name="Jane Doe", handle="jane")
    supervisor = User(
        email="ravi@studio.test",
        full_name="Ravi Kumar",
        designation="Site Supervisor",
        phone_number="9876500000",
    )
    carpenter = User(email="sam@studio.test", full_name="Sam Lee")
    outsider = User(email="omar@studio.test", full_name="Omar Out")
    session.add_all([admin, owner, designer, supervisor, carpenter, outsider])
    await session.flush()

    project = Project(title="Villa Renovation", status=ProjectStatus.ACTIVE, created_by=owner.id)
    session.add(project)
    await session.flush()

    session.add_all([
        ProjectMember(project_id=project.id, user_id=designer.id, role="designer"),
        ProjectMember(project_id=project.id, user_id=supervisor.id),
        ProjectMember(project_id=project.id, user_id=carpenter.id, role="carpenter"),
    ])
    design = DesignFile(project_id=project.id, file_name="living-room-v2.pdf", uploaded_by=designer.id)
    bill = InventoryItem(project_id=project.id, item_name="Teak plywood", created_by=carpenter.id)
    task = Task(
        title="Measure kitchen",
        project_id=project.id,
        assigned_to=carpenter.id,
        due_date=date.today(),
    )
    session.add_all([design, bill, task])
    await session.commit()

    return Studio(
        admin=admin,
        owner=owner,
        designer=designer,
        supervisor=supervisor,
        carpenter=carpenter,
        outsider=outsider,
        project=project,
        design=design,
        bill=bill,
        task=task,
    )


# =============================================================================
# HTTP
# =============================================================================


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
async def api_client(session_factory):
    """The FastAPI app wired to the test database."""
    from studio_notifications.main import app

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# =============================================================================
# CLIENT
# =============================================================================

EPOCH = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def make_record(
    minute: int = 0,
    is_read: bool = False,
    record_id: UUID | None = None,
    user_id: UUID | None = None,
    title: str = "New Comment on Your Design",
) -> NotificationResponse:
    """A fetched inbox record created ``minute`` minutes after EPOCH."""
    return NotificationResponse(
        id=record_id or uuid4(),
        user_id=user_id or UUID(int=1),
        title=title,
        message="Sam commented on living-room-v2.pdf",
        type="comment_added",
        is_read=is_read,
        created_at=EPOCH + timedelta(minutes=minute),
    )
