"""
Notification Service: the entry point business handlers call.

    service = NotificationService(session, async_session_factory)
    await service.notify(NotificationEvent(EventKind.COMMENT_ADDED, ...))

``notify`` resolves stakeholders, builds the template for the event kind and
fans it out. It never raises; the business action it follows has already
succeeded and its response must not depend on delivery.
"""

import logging
from typing import Iterable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import NotificationType, User
from .channels import (
    InAppChannel,
    MessagingChannel,
    MessagingConfig,
    PushChannel,
    PushConfig,
)
from .dispatcher import DispatchReport, FanOutDispatcher
from .entities import EntityStore, SqlEntityStore
from .events import NotificationEvent
from .stakeholders import InclusionReason, Recipient, StakeholderResolver, StakeholderSet
from .templates import NotificationTemplate, build_template

logger = logging.getLogger(__name__)


def build_dispatcher(
    session_factory: async_sessionmaker[AsyncSession],
    push_config: PushConfig | None = None,
    messaging_config: MessagingConfig | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FanOutDispatcher:
    """Dispatcher over the three standard channels."""
    return FanOutDispatcher([
        InAppChannel(session_factory),
        PushChannel(push_config or PushConfig.from_settings(), http_client),
        MessagingChannel(messaging_config or MessagingConfig.from_settings(), http_client),
    ])


class NotificationService:
    """
    Resolves, templates and dispatches notifications for domain events.

    Entity reads go through ``session``; inbox writes are made by the in-app
    channel in sessions of their own, so a rollback of the caller's
    transaction never takes delivered notifications with it.
    """

    def __init__(
        self,
        session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: FanOutDispatcher | None = None,
        entities: EntityStore | None = None,
    ):
        self._entities = entities or SqlEntityStore(session)
        self._resolver = StakeholderResolver(self._entities)
        self._dispatcher = dispatcher or build_dispatcher(session_factory)

    @property
    def dispatcher(self) -> FanOutDispatcher:
        return self._dispatcher

    async def notify(self, event: NotificationEvent) -> DispatchReport | None:
        """Notify everyone with a stake in ``event``. Returns None on failure."""
        try:
            stakeholders = await self._resolver.resolve(event)
            if not stakeholders:
                logger.info(f"No stakeholders for {event.kind.value}, nothing to send")
                return DispatchReport()

            template = build_template(event, stakeholders.context)
            return await self._dispatcher.dispatch(stakeholders, template)
        except Exception as e:
            logger.error(f"Failed to notify for {event.kind.value}: {e}", exc_info=True)
            return None

    async def broadcast(
        self,
        title: str,
        message: str,
        users: Iterable[User],
    ) -> DispatchReport:
        """Send one general notification to an explicit list of users."""
        stakeholders = StakeholderSet.of(
            (Recipient.from_user(user) for user in users),
            reason=InclusionReason.DIRECT,
        )
        template = NotificationTemplate(
            title=title,
            message=message,
            type=NotificationType.GENERAL,
        )
        return await self._dispatcher.dispatch(stakeholders, template)
