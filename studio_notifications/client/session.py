"""Session-scoped state for one signed-in client.

Everything that must live exactly as long as the user's session (the
already-played markers and the platform capabilities) hangs off a
``SessionContext`` instead of module globals, so two sessions in one process
never share state.
"""

from dataclasses import dataclass, field
from typing import Callable, Protocol


class SessionStorage(Protocol):
    """Key/value storage that lives for the session (a tab's sessionStorage)."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemorySessionStorage:
    """In-process SessionStorage."""

    def __init__(self):
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def __len__(self) -> int:
        return len(self._values)


class AudioContext(Protocol):
    """A platform audio output that may start out suspended."""

    @property
    def state(self) -> str:
        """"running", "suspended" or "closed"."""

    async def resume(self) -> None: ...

    async def play_tone(self, frequency: float, start: float, duration: float) -> None: ...

    async def close(self) -> None: ...


class NativeNotifier(Protocol):
    """The platform's own notification popup."""

    @property
    def permission(self) -> str:
        """"granted", "denied" or "default"."""

    async def show(self, title: str, body: str) -> None: ...


# Returns None (or raises) when the platform has no audio output
AudioBackend = Callable[[], AudioContext | None]


@dataclass
class SessionContext:
    """Mutable state owned by one client session."""
    storage: SessionStorage = field(default_factory=MemorySessionStorage)
    audio_backend: AudioBackend | None = None
    native_notifier: NativeNotifier | None = None
    played_marker_prefix: str = "notification_sound_played:"

    def played_marker(self, record_id: object) -> str:
        return f"{self.played_marker_prefix}{record_id}"
