"""Domain events that can trigger notifications."""

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID


class EventKind(str, Enum):
    COMMENT_ADDED = "comment_added"
    DESIGN_UPLOADED = "design_uploaded"
    DESIGN_APPROVED = "design_approved"
    DESIGN_REJECTED = "design_rejected"
    TASK_ASSIGNED = "task_assigned"
    INVENTORY_ADDED = "inventory_added"
    BILL_APPROVED = "bill_approved"
    BILL_REJECTED = "bill_rejected"
    PROJECT_UPDATE = "project_update"
    MENTION = "mention"


@dataclass
class NotificationEvent:
    """
    Something happened in the dashboard that somebody may need to hear about.

    Only the ids relevant to ``kind`` need to be set; ``text`` carries free
    text (a comment, an update, a rejection reason) that is scanned for
    @mentions and quoted in messages.
    """
    kind: EventKind
    actor_id: UUID
    project_id: UUID | None = None
    design_file_id: UUID | None = None
    inventory_item_id: UUID | None = None
    task_id: UUID | None = None
    text: str = ""
    extra: dict = field(default_factory=dict)
