"""Request/response schemas for the inbox, auth refresh and broadcast APIs.

``NotificationResponse`` is also what the client sync engine parses fetched
records into, so both sides agree on the wire shape.
"""

from uuid import UUID

from pydantic import Field, model_validator

from .base import StudioBaseModel, TimestampMixin


class NotificationResponse(StudioBaseModel, TimestampMixin):
    """A single inbox record."""

    id: UUID
    user_id: UUID
    title: str
    message: str
    type: str
    related_id: UUID | None = None
    related_type: str | None = None
    is_read: bool = False


class UnreadCountResponse(StudioBaseModel):
    unread_count: int


class MarkReadRequest(StudioBaseModel):
    """Mark one, several, or (when neither id field is given) all records."""

    notification_id: UUID | None = None
    notification_ids: list[UUID] | None = None
    is_read: bool

    @model_validator(mode="after")
    def _single_target(self) -> "MarkReadRequest":
        if self.notification_id is not None and self.notification_ids:
            raise ValueError("Pass notification_id or notification_ids, not both")
        return self

    @property
    def target_ids(self) -> list[UUID] | None:
        if self.notification_id is not None:
            return [self.notification_id]
        return self.notification_ids


class MarkReadResponse(StudioBaseModel):
    success: bool = True
    updated: int


class DeleteResponse(StudioBaseModel):
    success: bool = True


class RefreshRequest(StudioBaseModel):
    refresh_token: str


class TokenResponse(StudioBaseModel):
    """Fresh session credential."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Seconds until the access token expires")


class BroadcastRequest(StudioBaseModel):
    """Admin broadcast; an empty ``user_ids`` targets every user."""

    title: str | None = Field(default=None, max_length=255)
    message: str | None = None
    user_ids: list[UUID] = Field(default_factory=list)


class BroadcastResponse(StudioBaseModel):
    success: bool = True
    recipient_count: int
    in_app_created: int
