"""Client-side exceptions and the recoverable error state shown to the UI."""

from dataclasses import dataclass


class SyncError(Exception):
    """Base exception for client synchronization."""
    pass


class InboxUnauthorizedError(SyncError):
    """The inbox API rejected the session credential (HTTP 401)."""
    pass


class InboxRequestError(SyncError):
    """Transport failure or unexpected status from the inbox API."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class CredentialExpiredError(SyncError):
    """The session credential could not be refreshed."""
    pass


@dataclass(frozen=True)
class RecoverableError:
    """An error the UI shows with a manual retry affordance."""
    message: str
    retryable: bool = True
    cause: str | None = None
