"""
Notification templates and deep links.

A template carries a default title/message plus optional per-reason
variants, so the uploader of a design and the owner of its project read
different wording for the same comment.
"""

from dataclasses import dataclass, field
from uuid import UUID

from ..models import NotificationType
from .events import EventKind, NotificationEvent
from .stakeholders import EventContext, InclusionReason, Stakeholder

BASE_ROUTE = "/dashboard"
PREVIEW_LENGTH = 50


def preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    """First ``length`` characters of text, with an ellipsis when cut."""
    text = (text or "").strip()
    return text[:length] + ("..." if len(text) > length else "")


def deep_link_for(
    notification_type: NotificationType,
    related_id: UUID | None = None,
    related_type: str | None = None,
) -> str | None:
    """Dashboard route a notification should open, if any."""
    if notification_type == NotificationType.TASK_ASSIGNED:
        return f"{BASE_ROUTE}/tasks?taskId={related_id}" if related_id else f"{BASE_ROUTE}/tasks"

    if not related_id:
        return None

    if notification_type in (
        NotificationType.DESIGN_APPROVED,
        NotificationType.DESIGN_REJECTED,
        NotificationType.DESIGN_UPLOADED,
        NotificationType.COMMENT_ADDED,
    ):
        return f"{BASE_ROUTE}/projects/{related_id}?stage=design"
    if notification_type in (NotificationType.PROJECT_UPDATE, NotificationType.MENTION):
        return f"{BASE_ROUTE}/projects/{related_id}?stage=work_progress&tab=updates"
    if notification_type in (
        NotificationType.INVENTORY_ADDED,
        NotificationType.BILL_APPROVED,
        NotificationType.BILL_REJECTED,
    ):
        return f"{BASE_ROUTE}/projects/{related_id}?stage=work_progress&tab=inventory"
    if notification_type == NotificationType.GENERAL and related_type == "project":
        return f"{BASE_ROUTE}/projects/{related_id}"
    return None


@dataclass(frozen=True)
class RenderedNotification:
    """What one recipient receives on every channel."""
    title: str
    message: str
    type: NotificationType
    related_id: UUID | None = None
    related_type: str | None = None

    @property
    def route(self) -> str | None:
        return deep_link_for(self.type, self.related_id, self.related_type)

    @property
    def metadata(self) -> dict:
        """Channel metadata: record type, related entity and deep link."""
        return {
            "type": self.type,
            "related_id": self.related_id,
            "related_type": self.related_type,
            "route": self.route,
        }


@dataclass
class NotificationTemplate:
    title: str
    message: str
    type: NotificationType = NotificationType.GENERAL
    related_id: UUID | None = None
    related_type: str | None = None
    variants: dict[InclusionReason, tuple[str, str]] = field(default_factory=dict)

    def render_for(self, stakeholder: Stakeholder | None = None) -> RenderedNotification:
        title, message = self.title, self.message
        notification_type = self.type
        if stakeholder is not None and stakeholder.reason in self.variants:
            title, message = self.variants[stakeholder.reason]
            if stakeholder.reason == InclusionReason.MENTIONED:
                notification_type = NotificationType.MENTION
        return RenderedNotification(
            title=title,
            message=message,
            type=notification_type,
            related_id=self.related_id,
            related_type=self.related_type,
        )


def _mention_variant(ctx: EventContext, text: str) -> tuple[str, str]:
    return (
        "You were mentioned",
        f'{ctx.actor_name} mentioned you in project "{ctx.project_title}": {preview(text)}',
    )


def build_template(event: NotificationEvent, ctx: EventContext) -> NotificationTemplate:
    """Template for an event, using names gathered during resolution."""
    actor, project, entity = ctx.actor_name, ctx.project_title, ctx.entity_name
    mention = {InclusionReason.MENTIONED: _mention_variant(ctx, event.text)}

    if event.kind == EventKind.COMMENT_ADDED:
        return NotificationTemplate(
            title="New Comment on Project Design",
            message=f'{actor} commented on design "{entity}" in project "{project}"',
            type=NotificationType.COMMENT_ADDED,
            related_id=ctx.project_id,
            related_type="project",
            variants={
                InclusionReason.UPLOADER: (
                    "New Comment on Your Design",
                    f'{actor} commented on your design "{entity}"',
                ),
                **mention,
            },
        )

    if event.kind == EventKind.DESIGN_UPLOADED:
        return NotificationTemplate(
            title="New Design Uploaded",
            message=f'{actor} uploaded "{entity}" to project "{project}"',
            type=NotificationType.DESIGN_UPLOADED,
            related_id=ctx.project_id,
            related_type="project",
            variants=mention,
        )

    if event.kind in (EventKind.DESIGN_APPROVED, EventKind.DESIGN_REJECTED):
        approved = event.kind == EventKind.DESIGN_APPROVED
        message = f'Your design "{entity}" has been {"approved" if approved else "rejected"}'
        if not approved and event.text:
            message += f". Reason: {event.text}"
        return NotificationTemplate(
            title="Design Approved" if approved else "Design Rejected",
            message=message,
            type=NotificationType.DESIGN_APPROVED if approved else NotificationType.DESIGN_REJECTED,
            related_id=ctx.project_id,
            related_type="project",
        )

    if event.kind == EventKind.TASK_ASSIGNED:
        where = f' in project "{project}"' if project else ""
        return NotificationTemplate(
            title="New Task Assigned",
            message=f'You have been assigned to "{entity}"{where}',
            type=NotificationType.TASK_ASSIGNED,
            related_id=ctx.entity_id,
            related_type="task",
        )

    if event.kind == EventKind.INVENTORY_ADDED:
        return NotificationTemplate(
            title="Inventory Added",
            message=f'{actor} added "{entity}" to project "{project}"',
            type=NotificationType.INVENTORY_ADDED,
            related_id=ctx.project_id,
            related_type="project",
        )

    if event.kind in (EventKind.BILL_APPROVED, EventKind.BILL_REJECTED):
        approved = event.kind == EventKind.BILL_APPROVED
        message = (
            f'Your bill for "{entity}" in project "{project}" was '
            f'{"approved" if approved else "rejected"}'
        )
        if not approved and event.text:
            message += f". Reason: {event.text}"
        return NotificationTemplate(
            title="Bill Approved" if approved else "Bill Rejected",
            message=message,
            type=NotificationType.BILL_APPROVED if approved else NotificationType.BILL_REJECTED,
            related_id=ctx.project_id,
            related_type="project",
        )

    if event.kind == EventKind.PROJECT_UPDATE:
        return NotificationTemplate(
            title=f"Project Update: {project}",
            message=f"{actor}: {preview(event.text, 140)}",
            type=NotificationType.PROJECT_UPDATE,
            related_id=ctx.project_id,
            related_type="project",
            variants=mention,
        )

    if event.kind == EventKind.MENTION:
        title, message = _mention_variant(ctx, event.text)
        return NotificationTemplate(
            title=title,
            message=message,
            type=NotificationType.MENTION,
            related_id=ctx.project_id,
            related_type="project",
        )

    return NotificationTemplate(
        title="Notification",
        message=event.text or "You have a new notification.",
        related_id=ctx.project_id,
        related_type="project" if ctx.project_id else None,
    )
