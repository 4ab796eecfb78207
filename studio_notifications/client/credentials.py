"""
Session credential with proactive refresh.

States: valid -> refreshing -> {valid | expired}

Refresh is a critical section. Whoever finds the credential near expiry
starts a single refresh task; every other caller arriving while it runs
awaits that same task instead of starting a second one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from .errors import CredentialExpiredError

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_THRESHOLD = 300.0


class CredentialState(str, Enum):
    VALID = "valid"
    REFRESHING = "refreshing"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Credential:
    access_token: str
    refresh_token: str
    expires_at: float  # epoch seconds

    def remaining(self, now: float) -> float:
        return self.expires_at - now


# refresh token -> new credential
Refresher = Callable[[str], Awaitable[Credential]]


class CredentialManager:
    """Holds the session credential and serializes its refresh."""

    def __init__(
        self,
        credential: Credential,
        refresher: Refresher,
        clock: Callable[[], float] = time.time,
        refresh_threshold: float = DEFAULT_REFRESH_THRESHOLD,
    ):
        self._credential = credential
        self._refresher = refresher
        self._clock = clock
        self.refresh_threshold = refresh_threshold
        self._state = CredentialState.VALID
        self._inflight: asyncio.Task | None = None
        self.refresh_count = 0

    @property
    def state(self) -> CredentialState:
        return self._state

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def access_token(self) -> str:
        return self._credential.access_token

    def needs_refresh(self) -> bool:
        return self._credential.remaining(self._clock()) < self.refresh_threshold

    async def ensure_fresh(self) -> Credential:
        """
        The credential to use for the next request.

        Refreshes first when less than ``refresh_threshold`` seconds remain,
        or when a previous refresh left the credential expired.

        Raises:
            CredentialExpiredError: If a needed refresh fails
        """
        if self._inflight is not None:
            return await self._await_inflight()
        if self._state == CredentialState.EXPIRED or self.needs_refresh():
            return await self.force_refresh()
        return self._credential

    async def force_refresh(self) -> Credential:
        """Refresh now, joining a refresh that is already running."""
        if self._inflight is None:
            self._state = CredentialState.REFRESHING
            self._inflight = asyncio.ensure_future(self._refresh())
            # Retrieve the outcome even if every waiter was cancelled
            self._inflight.add_done_callback(lambda t: t.cancelled() or t.exception())
        return await self._await_inflight()

    def replace(self, credential: Credential) -> None:
        """Install a credential obtained elsewhere (e.g. a new sign-in)."""
        self._credential = credential
        self._state = CredentialState.VALID

    async def _await_inflight(self) -> Credential:
        task = self._inflight
        return await asyncio.shield(task)

    async def _refresh(self) -> Credential:
        self.refresh_count += 1
        try:
            credential = await self._refresher(self._credential.refresh_token)
        except Exception as e:
            self._state = CredentialState.EXPIRED
            logger.warning(f"Credential refresh failed: {e}")
            raise CredentialExpiredError(f"Session could not be refreshed: {e}") from e
        finally:
            self._inflight = None

        self._credential = credential
        self._state = CredentialState.VALID
        logger.info(f"Credential refreshed, valid for {credential.remaining(self._clock()):.0f}s")
        return credential
