"""
Client Notification Cache: the locally held page of inbox records.

Change detection never compares payloads: each fetch is reduced to a
fingerprint over (id, is_read) pairs and only a differing fingerprint replaces
the cache. A replacement also reports which records are new (absent from the
previous cache) and still unread, which is what drives the audio alert.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID

from ..schemas import NotificationResponse

EMPTY_FINGERPRINT = hashlib.sha256(b"").hexdigest()


def compute_fingerprint(records: Iterable[NotificationResponse]) -> str:
    """
    Deterministic summary of a record sequence.

    Depends only on the set of (id, is_read) pairs: the order records arrive
    in and every other field are ignored.
    """
    pairs = sorted(f"{r.id}:{int(r.is_read)}" for r in records)
    return hashlib.sha256("|".join(pairs).encode()).hexdigest() if pairs else EMPTY_FINGERPRINT


@dataclass
class CacheDelta:
    """Outcome of applying one fetch to the cache."""
    changed: bool
    unread_count: int
    new_unread: list[NotificationResponse] = field(default_factory=list)

    @property
    def newest_unread(self) -> NotificationResponse | None:
        """The single record an alert may fire for."""
        if not self.new_unread:
            return None
        return max(self.new_unread, key=lambda r: (r.created_at, str(r.id)))


class ClientNotificationCache:
    """Newest-first records plus the fingerprint they were derived from."""

    def __init__(self, max_records: int = 50):
        self.max_records = max_records
        self._records: list[NotificationResponse] = []
        self._fingerprint = EMPTY_FINGERPRINT
        self._primed = False

    @property
    def records(self) -> list[NotificationResponse]:
        return list(self._records)

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    @property
    def unread_count(self) -> int:
        return sum(1 for r in self._records if not r.is_read)

    @property
    def primed(self) -> bool:
        """Whether at least one fetch has been applied."""
        return self._primed

    def ids(self) -> set[UUID]:
        return {r.id for r in self._records}

    def get(self, record_id: UUID) -> NotificationResponse | None:
        return next((r for r in self._records if r.id == record_id), None)

    def apply(self, fetched: list[NotificationResponse]) -> CacheDelta:
        """
        Reconcile a fresh fetch.

        An equal fingerprint leaves the cache untouched. On the first fetch
        every unread record counts as new; the per-session played marker is
        what keeps a reload from alerting twice.
        """
        fetched = sorted(fetched, key=lambda r: (r.created_at, str(r.id)), reverse=True)
        fetched = fetched[: self.max_records]
        fingerprint = compute_fingerprint(fetched)

        if self._primed and fingerprint == self._fingerprint:
            return CacheDelta(changed=False, unread_count=self.unread_count)

        previous_ids = self.ids()
        new_unread = [r for r in fetched if r.id not in previous_ids and not r.is_read]

        self._records = fetched
        self._fingerprint = fingerprint
        self._primed = True
        return CacheDelta(changed=True, unread_count=self.unread_count, new_unread=new_unread)

    # -------------------------------------------------------------------------
    # Local (optimistic) edits
    # -------------------------------------------------------------------------

    def mark_read(self, record_id: UUID) -> bool:
        """Returns False when the record is absent or already read."""
        for index, record in enumerate(self._records):
            if record.id == record_id:
                if record.is_read:
                    return False
                self._records[index] = record.model_copy(update={"is_read": True})
                self._refingerprint()
                return True
        return False

    def mark_all_read(self) -> int:
        changed = 0
        for index, record in enumerate(self._records):
            if not record.is_read:
                self._records[index] = record.model_copy(update={"is_read": True})
                changed += 1
        if changed:
            self._refingerprint()
        return changed

    def remove(self, record_id: UUID) -> NotificationResponse | None:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                del self._records[index]
                self._refingerprint()
                return record
        return None

    def restore(self, record: NotificationResponse) -> None:
        """Put back a record whose optimistic removal was rejected."""
        if record.id in self.ids():
            return
        self._records.append(record)
        self._records.sort(key=lambda r: (r.created_at, str(r.id)), reverse=True)
        self._refingerprint()

    def replace(self, record: NotificationResponse) -> None:
        for index, existing in enumerate(self._records):
            if existing.id == record.id:
                self._records[index] = record
                self._refingerprint()
                return

    def clear(self) -> None:
        self._records = []
        self._fingerprint = EMPTY_FINGERPRINT
        self._primed = False

    def _refingerprint(self) -> None:
        # Local edits mirror what the next fetch will return, so it compares equal
        self._fingerprint = compute_fingerprint(self._records)
