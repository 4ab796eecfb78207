"""
Notification Channels: one sender per delivery surface.

- InAppChannel:     writes the inbox record
- PushChannel:      OneSignal push, addressed by external user id
- MessagingChannel: WhatsApp text through the Wasender HTTP API

Every channel shares the signature ``send(recipient, title, body, metadata)``
and returns a bool. Nothing raises past ``send``; errors are logged and
reported as ``False`` so the dispatcher can treat all channels alike.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings, get_settings
from ..models import NotificationType
from .entities import NotificationError
from .inbox import NotificationStore
from .stakeholders import Recipient

logger = logging.getLogger(__name__)


class ChannelNotConfiguredError(NotificationError):
    """A channel was asked to send without credentials."""
    pass


class ChannelKind(str, Enum):
    IN_APP = "in_app"
    PUSH = "push"
    MESSAGING = "messaging"


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class PushConfig:
    """OneSignal delivery configuration."""
    app_id: str | None = None
    rest_api_key: str | None = None
    api_url: str = "https://onesignal.com/api/v1/notifications"
    timeout_seconds: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.rest_api_key)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PushConfig":
        settings = settings or get_settings()
        return cls(
            app_id=settings.onesignal_app_id,
            rest_api_key=settings.onesignal_rest_api_key,
            api_url=settings.onesignal_api_url,
            timeout_seconds=settings.push_timeout_seconds,
        )


@dataclass
class MessagingConfig:
    """WhatsApp (Wasender) delivery configuration."""
    api_key: str | None = None
    api_url: str = "https://www.wasenderapi.com/api/send-message"
    app_url: str = ""
    timeout_seconds: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "MessagingConfig":
        settings = settings or get_settings()
        return cls(
            api_key=settings.wasender_api_key,
            api_url=settings.wasender_api_url,
            app_url=settings.app_url,
            timeout_seconds=settings.messaging_timeout_seconds,
        )


# =============================================================================
# NOTIFICATION CHANNELS (Abstract)
# =============================================================================


class NotificationChannel(ABC):
    """Abstract base for notification delivery channels."""

    kind: ChannelKind

    def accepts(self, recipient: Recipient) -> bool:
        """Whether this recipient can be reached on this channel at all."""
        return True

    async def send(
        self,
        recipient: Recipient,
        title: str,
        body: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        Deliver one notification.

        Returns:
            True if the channel accepted the notification, False otherwise
        """
        try:
            return bool(await self._deliver(recipient, title, body, metadata or {}))
        except ChannelNotConfiguredError as e:
            logger.warning(f"[{self.kind.value.upper()}] skipped: {e}")
            return False
        except Exception as e:
            logger.error(f"[{self.kind.value.upper()}] delivery to {recipient.id} failed: {e}")
            return False

    @abstractmethod
    async def _deliver(
        self,
        recipient: Recipient,
        title: str,
        body: str,
        metadata: dict[str, Any],
    ) -> bool:
        pass


class InAppChannel(NotificationChannel):
    """Writes the recipient's inbox record in its own transaction."""

    kind = ChannelKind.IN_APP

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _deliver(
        self,
        recipient: Recipient,
        title: str,
        body: str,
        metadata: dict[str, Any],
    ) -> bool:
        async with self._session_factory() as session:
            store = NotificationStore(session)
            notification = await store.create(
                user_id=recipient.id,
                title=title,
                message=body,
                notification_type=metadata.get("type", NotificationType.GENERAL),
                related_id=metadata.get("related_id"),
                related_type=metadata.get("related_type"),
            )
            await session.commit()

        logger.info(f"[IN_APP] Saved notification {notification.id} for {recipient.id}")
        return True


class PushChannel(NotificationChannel):
    """OneSignal push notifications addressed by the database user id."""

    kind = ChannelKind.PUSH

    def __init__(self, config: PushConfig, client: httpx.AsyncClient | None = None):
        self._config = config
        self._client = client

    def accepts(self, recipient: Recipient) -> bool:
        return self._config.enabled

    async def _deliver(
        self,
        recipient: Recipient,
        title: str,
        body: str,
        metadata: dict[str, Any],
    ) -> bool:
        if not self._config.enabled:
            raise ChannelNotConfiguredError("OneSignal is not configured")

        notification_type = metadata.get("type", NotificationType.GENERAL)
        related_id = metadata.get("related_id")
        route = metadata.get("route")
        payload = {
            "app_id": self._config.app_id,
            "include_external_user_ids": [str(recipient.id)],
            "headings": {"en": title},
            "contents": {"en": body},
            "data": {
                "type": getattr(notification_type, "value", notification_type),
                "relatedId": str(related_id) if related_id else None,
                "relatedType": metadata.get("related_type"),
                "route": route,
            },
        }
        if route:
            payload["url"] = route

        response = await self._post(payload)
        if response.status_code >= 400:
            logger.error(f"[PUSH] OneSignal API error {response.status_code}: {response.text[:200]}")
            return False

        result = response.json()
        # OneSignal answers 200 with an empty id when nobody is subscribed
        if not result.get("id") or result.get("errors"):
            logger.warning(f"[PUSH] No registered device for {recipient.id}: {result.get('errors')}")
            return False

        logger.info(f"[PUSH] Sent to {recipient.id}: {result.get('id')}")
        return True

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._config.rest_api_key}",
        }
        if self._client is not None:
            return await self._client.post(
                self._config.api_url, json=payload, headers=headers,
                timeout=self._config.timeout_seconds,
            )
        async with httpx.AsyncClient() as client:
            return await client.post(
                self._config.api_url, json=payload, headers=headers,
                timeout=self._config.timeout_seconds,
            )


class MessagingChannel(NotificationChannel):
    """WhatsApp messages to the recipient's phone number."""

    kind = ChannelKind.MESSAGING

    def __init__(self, config: MessagingConfig, client: httpx.AsyncClient | None = None):
        self._config = config
        self._client = client

    def accepts(self, recipient: Recipient) -> bool:
        return self._config.enabled and bool(normalize_phone(recipient.phone_number))

    def format_message(self, title: str, body: str, route: str | None) -> str:
        message = f"🔔 *{title}*\n\n{body}"
        if route:
            message += f"\n\nOpen: {self._config.app_url}{route}"
        return message

    async def _deliver(
        self,
        recipient: Recipient,
        title: str,
        body: str,
        metadata: dict[str, Any],
    ) -> bool:
        address = normalize_phone(recipient.phone_number)
        if not address:
            return False
        return await self.send_text(address, self.format_message(title, body, metadata.get("route")))

    async def send_text(self, address: str, text: str) -> bool:
        if not self._config.enabled:
            raise ChannelNotConfiguredError("Wasender is not configured")

        payload = {"to": address, "text": text}
        headers = {"Authorization": f"Bearer {self._config.api_key}"}
        if self._client is not None:
            response = await self._client.post(
                self._config.api_url, json=payload, headers=headers,
                timeout=self._config.timeout_seconds,
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self._config.api_url, json=payload, headers=headers,
                    timeout=self._config.timeout_seconds,
                )

        if response.status_code >= 400:
            logger.error(f"[MESSAGING] Wasender error {response.status_code}: {response.text[:200]}")
            return False

        logger.info(f"[MESSAGING] Sent to {address[-4:].rjust(len(address), '*')}")
        return True


def normalize_phone(phone_number: str | None) -> str:
    """Digits only, as the messaging API expects."""
    return re.sub(r"[^\d]", "", phone_number or "")
