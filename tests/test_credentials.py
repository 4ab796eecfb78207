"""
Tests for the session credential manager.

The important property: however many callers find the credential near
expiry at once, exactly one refresh request goes out.
"""

import asyncio

import pytest

from studio_notifications.client.credentials import Credential, CredentialManager, CredentialState
from studio_notifications.client.errors import CredentialExpiredError


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRefresher:
    """Counts calls; can be slowed down or made to fail."""

    def __init__(self, clock: FakeClock, lifetime: float = 1_800.0, delay: float = 0.0):
        self.clock = clock
        self.lifetime = lifetime
        self.delay = delay
        self.calls = 0
        self.error: Exception | None = None

    async def __call__(self, refresh_token: str) -> Credential:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return Credential(
            access_token=f"access-{self.calls}",
            refresh_token=f"refresh-{self.calls}",
            expires_at=self.clock() + self.lifetime,
        )


def manager(remaining: float, delay: float = 0.0) -> tuple[CredentialManager, FakeRefresher, FakeClock]:
    clock = FakeClock()
    refresher = FakeRefresher(clock, delay=delay)
    credential = Credential("access-0", "refresh-0", expires_at=clock() + remaining)
    return CredentialManager(credential, refresher, clock=clock, refresh_threshold=300), refresher, clock


class TestEnsureFresh:
    async def test_valid_credential_is_used_as_is(self):
        credentials, refresher, _ = manager(remaining=1_200)

        credential = await credentials.ensure_fresh()

        assert credential.access_token == "access-0"
        assert refresher.calls == 0

    async def test_refreshes_inside_threshold(self):
        credentials, refresher, _ = manager(remaining=120)

        credential = await credentials.ensure_fresh()

        assert credential.access_token == "access-1"
        assert refresher.calls == 1
        assert credentials.state == CredentialState.VALID

    async def test_refreshes_once_time_passes(self):
        credentials, refresher, clock = manager(remaining=1_200)
        await credentials.ensure_fresh()

        clock.now += 1_000
        await credentials.ensure_fresh()

        assert refresher.calls == 1

    async def test_concurrent_callers_share_one_refresh(self):
        credentials, refresher, _ = manager(remaining=10, delay=0.05)

        results = await asyncio.gather(*(credentials.ensure_fresh() for _ in range(10)))

        assert refresher.calls == 1
        assert {c.access_token for c in results} == {"access-1"}

    async def test_force_refresh_joins_running_refresh(self):
        credentials, refresher, _ = manager(remaining=10, delay=0.05)

        await asyncio.gather(credentials.ensure_fresh(), credentials.force_refresh())

        assert refresher.calls == 1


class TestRefreshFailure:
    async def test_failure_expires_the_credential(self):
        credentials, refresher, _ = manager(remaining=10)
        refresher.error = RuntimeError("refresh token revoked")

        with pytest.raises(CredentialExpiredError):
            await credentials.ensure_fresh()

        assert credentials.state == CredentialState.EXPIRED

    async def test_all_waiters_see_the_failure(self):
        credentials, refresher, _ = manager(remaining=10, delay=0.05)
        refresher.error = RuntimeError("offline")

        results = await asyncio.gather(
            *(credentials.ensure_fresh() for _ in range(3)), return_exceptions=True,
        )

        assert refresher.calls == 1
        assert all(isinstance(r, CredentialExpiredError) for r in results)

    async def test_expired_credential_retries_next_time(self):
        credentials, refresher, _ = manager(remaining=10)
        refresher.error = RuntimeError("offline")
        with pytest.raises(CredentialExpiredError):
            await credentials.ensure_fresh()

        refresher.error = None
        credential = await credentials.ensure_fresh()

        assert credential.access_token == "access-2"
        assert credentials.state == CredentialState.VALID

    async def test_cancelled_waiter_does_not_cancel_refresh(self):
        credentials, refresher, _ = manager(remaining=10, delay=0.05)

        waiter = asyncio.create_task(credentials.ensure_fresh())
        await asyncio.sleep(0.01)
        waiter.cancel()
        credential = await credentials.ensure_fresh()

        assert credential.access_token == "access-1"
        assert refresher.calls == 1

    def test_replace_restores_valid_state(self):
        credentials, _, clock = manager(remaining=10)

        credentials.replace(Credential("new", "new-refresh", expires_at=clock() + 3_600))

        assert credentials.access_token == "new"
        assert credentials.state == CredentialState.VALID
        assert credentials.needs_refresh() is False
