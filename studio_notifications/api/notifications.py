"""Inbox API: the read surface the client sync engine polls.

Every route acts on the caller's own records only.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from ..core import CurrentUserDep, SessionDep
from ..schemas import (
    DeleteResponse,
    MarkReadRequest,
    MarkReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from ..services.inbox import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, NotificationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    session: SessionDep,
    current_user: CurrentUserDep,
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    unread_only: bool = Query(default=False),
):
    """Most recent notifications, newest first."""
    store = NotificationStore(session)
    records = await store.list_recent(current_user.id, limit=limit, unread_only=unread_only)
    return [NotificationResponse.model_validate(r) for r in records]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    session: SessionDep,
    current_user: CurrentUserDep,
):
    store = NotificationStore(session)
    return UnreadCountResponse(unread_count=await store.unread_count(current_user.id))


@router.patch("", response_model=MarkReadResponse)
async def mark_notifications(
    request: MarkReadRequest,
    session: SessionDep,
    current_user: CurrentUserDep,
):
    """
    Set ``is_read`` on one record, a list of records, or all of them.

    Records already in the requested state are skipped, so retrying a
    request is harmless.
    """
    store = NotificationStore(session)
    updated = await store.set_read(current_user.id, request.target_ids, request.is_read)
    logger.info(f"User {current_user.id} set is_read={request.is_read} on {updated} notification(s)")
    return MarkReadResponse(updated=updated)


@router.delete("/{notification_id}", response_model=DeleteResponse)
async def delete_notification(
    notification_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
):
    store = NotificationStore(session)
    if not await store.delete(current_user.id, notification_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return DeleteResponse()
