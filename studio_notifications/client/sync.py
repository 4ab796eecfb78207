"""
Client Synchronization Engine: keeps a session's inbox view current.

Per cycle:  idle -> polling -> fetched -> {applied | skipped} -> idle

- Polling starts at the fast interval; after ``idle_cycles_before_slow``
  cycles without a change it widens to the slow interval, and any change
  resets it to fast.
- While the host is hidden no poll runs at all. Becoming visible wakes the
  loop for an immediate fetch.
- Fetches never overlap: an out-of-band ``sync_now()`` arriving during a
  fetch joins that fetch.
- The credential is checked before every fetch. A 401 gets exactly one
  refresh-and-retry; a second failure becomes a RecoverableError for the UI
  and the loop carries on.
- After ``stop()`` no poll fires and the audio context is released.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from ..schemas import NotificationResponse
from .audio import AlertOutcome, AudioAlertPlayer
from .cache import CacheDelta, ClientNotificationCache
from .credentials import CredentialManager
from .errors import (
    CredentialExpiredError,
    InboxRequestError,
    InboxUnauthorizedError,
    RecoverableError,
)
from .inbox_client import InboxAPI
from .session import SessionContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    FETCHED = "fetched"
    APPLIED = "applied"
    SKIPPED = "skipped"


@dataclass
class SyncConfig:
    """Polling cadence and cache sizing for the client engine."""
    fast_interval: float = 30.0
    slow_interval: float = 180.0
    idle_cycles_before_slow: int = 5
    refresh_threshold: float = 300.0
    page_size: int = 20
    cache_size: int = 50


@dataclass(frozen=True)
class SyncSnapshot:
    """What the UI renders."""
    records: list[NotificationResponse] = field(default_factory=list)
    unread_count: int = 0
    error: RecoverableError | None = None


Listener = Callable[[SyncSnapshot], None]


class SyncEngine:
    """One polling loop per signed-in session."""

    def __init__(
        self,
        api: InboxAPI,
        credentials: CredentialManager,
        session: SessionContext | None = None,
        config: SyncConfig | None = None,
        player: AudioAlertPlayer | None = None,
    ):
        self._api = api
        self._credentials = credentials
        self._session = session or SessionContext()
        self._config = config or SyncConfig()
        self._credentials.refresh_threshold = self._config.refresh_threshold
        self._cache = ClientNotificationCache(max_records=self._config.cache_size)
        self._player = player or AudioAlertPlayer(self._session)

        self._state = SyncState.IDLE
        self._interval = self._config.fast_interval
        self._idle_cycles = 0
        self._visible = True
        self._error: RecoverableError | None = None
        self._listeners: list[Listener] = []

        self._wake = asyncio.Event()
        self._stopped = False
        self._loop_task: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None

        self.cycle_count = 0
        self.last_alert: AlertOutcome | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def error(self) -> RecoverableError | None:
        return self._error

    @property
    def cache(self) -> ClientNotificationCache:
        return self._cache

    @property
    def player(self) -> AudioAlertPlayer:
        return self._player

    def snapshot(self) -> SyncSnapshot:
        return SyncSnapshot(
            records=self._cache.records,
            unread_count=self._cache.unread_count,
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a render callback. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._stopped:
            raise RuntimeError("SyncEngine cannot be restarted after stop()")
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Tear down: cancel the loop and any fetch, release audio and listeners."""
        self._stopped = True
        self._wake.set()

        for task in (self._loop_task, self._inflight):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._inflight = None

        await self._player.close()
        self._listeners.clear()
        self._state = SyncState.IDLE
        logger.info("Notification sync stopped")

    async def __aenter__(self) -> "SyncEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    def set_visible(self, visible: bool) -> None:
        """Host visibility changed. Becoming visible triggers an immediate fetch."""
        was_visible, self._visible = self._visible, visible
        # sync_now joins a fetch already in flight
        if visible and not was_visible:
            self._wake.set()

    async def user_gesture(self) -> None:
        """Forward a click/touch so audio alerts are allowed to play."""
        await self._player.unlock()

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        logger.info("Notification sync started")
        while not self._stopped:
            if self._visible:
                await self.sync_now()
            await self._sleep()

    async def _sleep(self) -> None:
        # Hidden hosts sleep until woken; visible ones until the interval elapses
        timeout = self._interval if self._visible else None
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()

    async def sync_now(self) -> CacheDelta | None:
        """
        Fetch and reconcile now, joining a fetch already in flight.

        Returns None when the fetch failed or the engine is stopped.
        """
        if self._stopped:
            return None
        if self._inflight is None:
            self._inflight = asyncio.create_task(self._cycle())
            self._inflight.add_done_callback(self._clear_inflight)
        return await asyncio.shield(self._inflight)

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def retry(self) -> CacheDelta | None:
        """Manual retry from the error affordance."""
        logger.info("Manual notification sync retry")
        return await self.sync_now()

    async def _cycle(self) -> CacheDelta | None:
        self._state = SyncState.POLLING
        try:
            records = await self._authorized(
                lambda token: self._api.fetch_recent(token, self._config.page_size)
            )
        except Exception as e:
            self._state = SyncState.IDLE
            self._fail(e)
            return None
        finally:
            self.cycle_count += 1

        if self._stopped:
            self._state = SyncState.IDLE
            return None

        self._state = SyncState.FETCHED
        had_error, self._error = self._error is not None, None
        delta = self._cache.apply(records)

        if delta.changed:
            self._idle_cycles = 0
            self._interval = self._config.fast_interval
            self._state = SyncState.APPLIED
            newest = delta.newest_unread
            if newest is not None:
                self.last_alert = await self._player.play_for(newest)
                logger.info(f"New notification {newest.id}: alert {self.last_alert.value}")
            self._emit()
        else:
            self._idle_cycles += 1
            if self._idle_cycles >= self._config.idle_cycles_before_slow:
                if self._interval != self._config.slow_interval:
                    logger.debug(f"No changes for {self._idle_cycles} cycles, slowing polling")
                self._interval = self._config.slow_interval
            self._state = SyncState.SKIPPED
            if had_error:
                self._emit()

        self._state = SyncState.IDLE
        return delta

    async def _authorized(self, operation: Callable[[str], Awaitable[T]]) -> T:
        """Run an API call with a fresh credential and one refresh-and-retry on 401."""
        credential = await self._credentials.ensure_fresh()
        try:
            return await operation(credential.access_token)
        except InboxUnauthorizedError:
            logger.info("Inbox request unauthorized, refreshing credential once")
            credential = await self._credentials.force_refresh()
            return await operation(credential.access_token)

    def _fail(self, error: Exception) -> None:
        if isinstance(error, (CredentialExpiredError, InboxUnauthorizedError)):
            message = "Session expired. Please sign in again."
        elif isinstance(error, InboxRequestError):
            message = "Failed to load notifications."
        else:
            message = "Network error. Please try again."
        logger.warning(f"Notification sync failed: {error}")
        self._error = RecoverableError(message=message, cause=str(error))
        self._emit()

    def _emit(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}")

    # -------------------------------------------------------------------------
    # Optimistic actions
    # -------------------------------------------------------------------------

    async def mark_read(self, notification_id: UUID) -> bool:
        """Mark one record read locally, then on the server. Reverted on failure."""
        original = self._cache.get(notification_id)
        if original is None or not self._cache.mark_read(notification_id):
            return False
        self._emit()

        try:
            await self._authorized(lambda token: self._api.mark_read(token, notification_id))
        except Exception as e:
            self._cache.replace(original)
            self._fail(e)
            return False
        return True

    async def mark_all_read(self) -> int:
        originals = [r for r in self._cache.records if not r.is_read]
        if not self._cache.mark_all_read():
            return 0
        self._emit()

        try:
            await self._authorized(self._api.mark_all_read)
        except Exception as e:
            for record in originals:
                self._cache.replace(record)
            self._fail(e)
            return 0
        return len(originals)

    async def delete(self, notification_id: UUID) -> bool:
        removed = self._cache.remove(notification_id)
        if removed is None:
            return False
        self._emit()

        try:
            await self._authorized(lambda token: self._api.delete(token, notification_id))
        except InboxRequestError as e:
            if e.status_code == 404:
                return True
            self._cache.restore(removed)
            self._fail(e)
            return False
        except Exception as e:
            self._cache.restore(removed)
            self._fail(e)
            return False
        return True
