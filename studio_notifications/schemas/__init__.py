"""Pydantic schemas for the Studio Notifications API."""

from .base import ErrorDetail, ErrorResponse, StudioBaseModel, TimestampMixin
from .notifications import (
    BroadcastRequest,
    BroadcastResponse,
    DeleteResponse,
    MarkReadRequest,
    MarkReadResponse,
    NotificationResponse,
    RefreshRequest,
    TokenResponse,
    UnreadCountResponse,
)

__all__ = [
    # Base
    "StudioBaseModel",
    "TimestampMixin",
    "ErrorDetail",
    "ErrorResponse",
    # Notifications
    "NotificationResponse",
    "UnreadCountResponse",
    "MarkReadRequest",
    "MarkReadResponse",
    "DeleteResponse",
    # Auth
    "RefreshRequest",
    "TokenResponse",
    # Broadcast
    "BroadcastRequest",
    "BroadcastResponse",
]
