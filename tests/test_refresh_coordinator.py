"""
Tests for single-flight access token refresh.
"""
import asyncio
import time

import pytest

from weave_client.refresh_coordinator import RefreshCoordinator
from weave_client.token_store import AuthTokens

from conftest import make_jwt


class FakeRefreshEndpoint:
    """Async stand-in for the refresh call that counts invocations."""

    def __init__(self, payload=None, error=None, delay=0.01):
        self.payload = payload
        self.error = error
        self.delay = delay
        self.calls = []

    async def __call__(self, refresh_token):
        self.calls.append(refresh_token)
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.mark.asyncio
async def test_valid_token_returned_without_refresh(token_store, valid_access_token):
    token_store.set_tokens(AuthTokens(valid_access_token, "refresh-1"))
    endpoint = FakeRefreshEndpoint()
    coordinator = RefreshCoordinator(token_store, endpoint, skew_seconds=30)

    assert await coordinator.ensure_access_token() == valid_access_token
    assert endpoint.calls == []


@pytest.mark.asyncio
async def test_no_refresh_token_returns_none_without_network(token_store, expired_access_token):
    token_store.set_tokens(AuthTokens(expired_access_token, None))
    endpoint = FakeRefreshEndpoint()
    coordinator = RefreshCoordinator(token_store, endpoint)

    assert await coordinator.ensure_access_token() is None
    assert endpoint.calls == []


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(token_store, expired_access_token):
    new_token = make_jwt(exp=time.time() + 3600)
    token_store.set_tokens(AuthTokens(expired_access_token, "refresh-1"))
    endpoint = FakeRefreshEndpoint(payload={"access_token": new_token, "refresh_token": "refresh-2"})
    coordinator = RefreshCoordinator(token_store, endpoint)

    results = await asyncio.gather(*(coordinator.ensure_access_token() for _ in range(10)))

    assert endpoint.calls == ["refresh-1"]
    assert results == [new_token] * 10
    assert token_store.get_refresh_token() == "refresh-2"
    assert coordinator.is_refresh_in_progress() is False


@pytest.mark.asyncio
async def test_concurrent_callers_all_get_none_on_failure(token_store, expired_access_token):
    token_store.set_tokens(AuthTokens(expired_access_token, "refresh-1"))
    endpoint = FakeRefreshEndpoint(error=RuntimeError("boom"))
    coordinator = RefreshCoordinator(token_store, endpoint)

    results = await asyncio.gather(*(coordinator.ensure_access_token() for _ in range(5)))

    assert results == [None] * 5
    assert len(endpoint.calls) == 1
    assert token_store.has_credentials() is False
    assert coordinator.get_status()["stats"] == {"total": 1, "successful": 0, "failed": 1}


@pytest.mark.asyncio
async def test_token_inside_skew_triggers_refresh(token_store):
    soon = make_jwt(exp=time.time() + 10)
    fresh = make_jwt(exp=time.time() + 3600)
    token_store.set_tokens(AuthTokens(soon, "refresh-1"))
    endpoint = FakeRefreshEndpoint(payload={"access_token": fresh})
    coordinator = RefreshCoordinator(token_store, endpoint, skew_seconds=30)

    # Still a usable token for plain reads...
    assert token_store.get_access_token() == soon
    # ...but not good enough for a request
    assert await coordinator.ensure_access_token() == fresh
    assert len(endpoint.calls) == 1


@pytest.mark.asyncio
async def test_missing_refresh_token_in_response_keeps_previous(token_store, expired_access_token):
    fresh = make_jwt(exp=time.time() + 3600)
    token_store.set_tokens(AuthTokens(expired_access_token, "refresh-1"))
    endpoint = FakeRefreshEndpoint(payload={"data": {"access_token": fresh}})
    coordinator = RefreshCoordinator(token_store, endpoint)

    tokens = await coordinator.refresh_access_token()

    assert tokens == AuthTokens(fresh, "refresh-1")
    assert token_store.get_refresh_token() == "refresh-1"


@pytest.mark.asyncio
async def test_response_without_access_token_clears_credentials(token_store, expired_access_token):
    token_store.set_tokens(AuthTokens(expired_access_token, "refresh-1"))
    endpoint = FakeRefreshEndpoint(payload={"message": "ok"})
    coordinator = RefreshCoordinator(token_store, endpoint)

    assert await coordinator.refresh_access_token() is None
    assert token_store.get_refresh_token() is None


@pytest.mark.asyncio
async def test_new_attempt_allowed_after_settlement(token_store, expired_access_token):
    token_store.set_tokens(AuthTokens(expired_access_token, "refresh-1"))
    endpoint = FakeRefreshEndpoint(payload={"access_token": "opaque-1"})
    coordinator = RefreshCoordinator(token_store, endpoint)

    await coordinator.refresh_access_token()
    endpoint.payload = {"access_token": "opaque-2"}
    second = await coordinator.refresh_access_token()

    assert len(endpoint.calls) == 2
    assert second.access_token == "opaque-2"


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_refresh(token_store, expired_access_token):
    token_store.set_tokens(AuthTokens(expired_access_token, "refresh-1"))
    endpoint = FakeRefreshEndpoint(payload={"access_token": "opaque-new"}, delay=0.05)
    coordinator = RefreshCoordinator(token_store, endpoint)

    first = asyncio.ensure_future(coordinator.refresh_access_token())
    second = asyncio.ensure_future(coordinator.refresh_access_token())
    await asyncio.sleep(0.01)
    first.cancel()

    result = await second
    assert result.access_token == "opaque-new"
    assert len(endpoint.calls) == 1
    with pytest.raises(asyncio.CancelledError):
        await first
