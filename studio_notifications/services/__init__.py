"""Business logic services for Studio Notifications."""

from .channels import (
    ChannelKind,
    ChannelNotConfiguredError,
    InAppChannel,
    MessagingChannel,
    MessagingConfig,
    NotificationChannel,
    PushChannel,
    PushConfig,
)
from .dispatcher import DispatchReport, FanOutDispatcher
from .entities import EntityNotFoundError, EntityStore, NotificationError, SqlEntityStore
from .events import EventKind, NotificationEvent
from .inbox import NotificationStore
from .notification_service import NotificationService, build_dispatcher
from .stakeholders import (
    EventContext,
    InclusionReason,
    Recipient,
    Stakeholder,
    StakeholderResolver,
    StakeholderSet,
)
from .templates import NotificationTemplate, RenderedNotification, build_template, deep_link_for

__all__ = [
    # Errors
    "NotificationError",
    "EntityNotFoundError",
    "ChannelNotConfiguredError",
    # Events & resolution
    "EventKind",
    "NotificationEvent",
    "EntityStore",
    "SqlEntityStore",
    "EventContext",
    "InclusionReason",
    "Recipient",
    "Stakeholder",
    "StakeholderResolver",
    "StakeholderSet",
    # Templates
    "NotificationTemplate",
    "RenderedNotification",
    "build_template",
    "deep_link_for",
    # Delivery
    "ChannelKind",
    "NotificationChannel",
    "InAppChannel",
    "PushChannel",
    "PushConfig",
    "MessagingChannel",
    "MessagingConfig",
    "FanOutDispatcher",
    "DispatchReport",
    "NotificationService",
    "build_dispatcher",
    # Inbox
    "NotificationStore",
]
