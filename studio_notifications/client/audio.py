"""
Audio alert for newly arrived notifications.

Mobile platforms refuse to start audio until the user has interacted with
the page, so the player stays locked until ``unlock()`` is called from a
gesture handler. One audio context is acquired lazily and reused for the
whole session. When no context can be had, the platform's native
notification is tried; failing that the alert is a silent no-op.
"""

import logging
from enum import Enum

from ..schemas import NotificationResponse
from .session import AudioContext, SessionContext

logger = logging.getLogger(__name__)

# Two short sine beeps: (frequency Hz, start offset s, duration s)
CHIME = ((800.0, 0.0, 0.15), (600.0, 0.2, 0.15))


class AlertOutcome(str, Enum):
    PLAYED = "played"
    NATIVE = "native"
    SILENT = "silent"
    ALREADY_PLAYED = "already_played"


class AudioAlertPlayer:
    """Plays at most one alert per record per session."""

    def __init__(self, session: SessionContext, chime=CHIME):
        self._session = session
        self._chime = chime
        self._context: AudioContext | None = None
        self._unavailable = False
        self._unlocked = False
        self._closed = False

    @property
    def unlocked(self) -> bool:
        return self._unlocked

    @property
    def context(self) -> AudioContext | None:
        return self._context

    async def unlock(self) -> None:
        """Call from a user gesture (click, touch) before any alert can sound."""
        if self._closed:
            return
        self._unlocked = True
        context = self._acquire()
        if context is not None:
            try:
                await self._resume(context)
            except Exception as e:
                logger.warning(f"Could not resume audio context: {e}")

    async def play_for(self, record: NotificationResponse) -> AlertOutcome:
        """
        Alert for ``record`` unless this session already did.

        Never raises.
        """
        storage = self._session.storage
        marker = self._session.played_marker(record.id)
        if storage.get(marker):
            return AlertOutcome.ALREADY_PLAYED
        storage.set(marker, "1")

        if not self._closed and self._unlocked:
            context = self._acquire()
            if context is not None:
                try:
                    await self._resume(context)
                    if context.state == "running":
                        for frequency, start, duration in self._chime:
                            await context.play_tone(frequency, start, duration)
                        return AlertOutcome.PLAYED
                except Exception as e:
                    logger.warning(f"Audio alert failed: {e}")

        return await self._native_fallback(record)

    async def close(self) -> None:
        """Release the audio context. The player cannot be reused afterwards."""
        self._closed = True
        context, self._context = self._context, None
        if context is not None:
            try:
                await context.close()
            except Exception as e:
                logger.warning(f"Failed to close audio context: {e}")

    def _acquire(self) -> AudioContext | None:
        if self._context is not None or self._unavailable:
            return self._context

        backend = self._session.audio_backend
        if backend is None:
            self._unavailable = True
            return None
        try:
            self._context = backend()
        except Exception as e:
            logger.warning(f"Audio context unavailable: {e}")
            self._context = None
        if self._context is None:
            self._unavailable = True
        return self._context

    @staticmethod
    async def _resume(context: AudioContext) -> None:
        if context.state == "suspended":
            await context.resume()

    async def _native_fallback(self, record: NotificationResponse) -> AlertOutcome:
        notifier = self._session.native_notifier
        if notifier is None or notifier.permission != "granted":
            return AlertOutcome.SILENT
        try:
            await notifier.show(record.title, record.message)
            return AlertOutcome.NATIVE
        except Exception as e:
            logger.warning(f"Native notification failed: {e}")
            return AlertOutcome.SILENT
