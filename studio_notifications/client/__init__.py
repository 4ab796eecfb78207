"""
Client library: keeps a signed-in session's notification view in sync.

    api = HttpInboxClient("https://studio.example.com")
    credentials = CredentialManager(credential, api.refresh)
    async with SyncEngine(api, credentials, SessionContext()) as engine:
        engine.subscribe(render)
        ...
"""

from .audio import AlertOutcome, AudioAlertPlayer
from .cache import CacheDelta, ClientNotificationCache, compute_fingerprint
from .credentials import Credential, CredentialManager, CredentialState
from .errors import (
    CredentialExpiredError,
    InboxRequestError,
    InboxUnauthorizedError,
    RecoverableError,
    SyncError,
)
from .inbox_client import HttpInboxClient, InboxAPI
from .session import (
    AudioBackend,
    AudioContext,
    MemorySessionStorage,
    NativeNotifier,
    SessionContext,
    SessionStorage,
)
from .sync import SyncConfig, SyncEngine, SyncSnapshot, SyncState

__all__ = [
    # Errors
    "SyncError",
    "InboxUnauthorizedError",
    "InboxRequestError",
    "CredentialExpiredError",
    "RecoverableError",
    # Session
    "SessionContext",
    "SessionStorage",
    "MemorySessionStorage",
    "AudioBackend",
    "AudioContext",
    "NativeNotifier",
    # Components
    "HttpInboxClient",
    "InboxAPI",
    "Credential",
    "CredentialManager",
    "CredentialState",
    "ClientNotificationCache",
    "CacheDelta",
    "compute_fingerprint",
    "AudioAlertPlayer",
    "AlertOutcome",
    # Engine
    "SyncEngine",
    "SyncConfig",
    "SyncSnapshot",
    "SyncState",
]
