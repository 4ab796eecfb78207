"""Admin API routes: broadcast a notification to many users."""

import logging

from fastapi import APIRouter, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from ..core import AdminDep, SessionDep, SessionFactoryDep
from ..models import BroadcastLog
from ..schemas import BroadcastRequest, BroadcastResponse
from ..services.entities import SqlEntityStore
from ..services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

DEFAULT_BROADCAST_TITLE = "Site Update 📢"


@router.post("/broadcast-notification", response_model=BroadcastResponse)
async def broadcast_notification(
    request: BroadcastRequest,
    admin: AdminDep,
    session: SessionDep,
    session_factory: SessionFactoryDep,
):
    """
    Send a general notification to the listed users, or to everyone.

    Goes through the full fan-out (inbox, push, messaging) and is recorded in
    ``broadcast_logs``. A failure to record the log does not fail the request.
    """
    if not request.message or not request.message.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Broadcast message is required",
        )

    entities = SqlEntityStore(session)
    users = await entities.get_users(request.user_ids or None)
    if not users:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No recipients found",
        )

    title = request.title or DEFAULT_BROADCAST_TITLE
    service = NotificationService(session, session_factory, entities=entities)
    report = await service.broadcast(title, request.message, users)

    try:
        async with session.begin_nested():
            session.add(BroadcastLog(
                admin_id=admin.id,
                title=title,
                message=request.message,
                recipient_count=len(users),
                target_user_ids=[str(u) for u in request.user_ids] or None,
            ))
    except SQLAlchemyError as e:
        logger.error(f"Failed to log broadcast to history: {e}")

    logger.info(f"Admin {admin.id} broadcast '{title}' to {len(users)} user(s)")
    return BroadcastResponse(
        recipient_count=len(users),
        in_app_created=report.in_app_created,
    )
