"""Inbox read API as seen from the client."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable
from uuid import UUID

import httpx
from pydantic import ValidationError

from ..schemas import NotificationResponse, TokenResponse
from .credentials import Credential
from .errors import InboxRequestError, InboxUnauthorizedError

logger = logging.getLogger(__name__)


class InboxAPI(ABC):
    """What the sync engine needs from the server."""

    @abstractmethod
    async def fetch_recent(self, token: str, limit: int) -> list[NotificationResponse]:
        """Newest-first records of the authenticated user."""

    @abstractmethod
    async def mark_read(self, token: str, notification_id: UUID) -> None: ...

    @abstractmethod
    async def mark_all_read(self, token: str) -> None: ...

    @abstractmethod
    async def delete(self, token: str, notification_id: UUID) -> None: ...

    @abstractmethod
    async def refresh(self, refresh_token: str) -> Credential: ...


class HttpInboxClient(InboxAPI):
    """
    InboxAPI over HTTP.

    Raises InboxUnauthorizedError on 401 and InboxRequestError for transport
    failures and any other non-2xx status.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        api_prefix: str = "/api/v1",
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._prefix = f"{base_url.rstrip('/')}{api_prefix}"
        self._clock = clock

    async def fetch_recent(self, token: str, limit: int) -> list[NotificationResponse]:
        response = await self._request(
            "GET", "/notifications", token,
            params={"limit": limit},
            headers={"Cache-Control": "no-cache"},
        )
        try:
            return [NotificationResponse.model_validate(item) for item in response.json()]
        except (ValueError, ValidationError) as e:
            raise InboxRequestError(f"Malformed inbox payload: {e}") from e

    async def mark_read(self, token: str, notification_id: UUID) -> None:
        await self._request(
            "PATCH", "/notifications", token,
            json={"notification_id": str(notification_id), "is_read": True},
        )

    async def mark_all_read(self, token: str) -> None:
        await self._request("PATCH", "/notifications", token, json={"is_read": True})

    async def delete(self, token: str, notification_id: UUID) -> None:
        await self._request("DELETE", f"/notifications/{notification_id}", token)

    async def refresh(self, refresh_token: str) -> Credential:
        response = await self._request(
            "POST", "/auth/refresh", None, json={"refresh_token": refresh_token},
        )
        try:
            tokens = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise InboxRequestError(f"Malformed refresh payload: {e}") from e
        return Credential(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=self._clock() + tokens.expires_in,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        token: str | None,
        **kwargs,
    ) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(
                method, f"{self._prefix}{path}", headers=headers, **kwargs
            )
        except httpx.HTTPError as e:
            logger.warning(f"Inbox request {method} {path} failed: {e}")
            raise InboxRequestError(f"{method} {path} failed: {e}") from e

        if response.status_code == 401:
            raise InboxUnauthorizedError(f"{method} {path} unauthorized")
        if response.status_code >= 400:
            raise InboxRequestError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response
