"""Unit tests for the provider token cache."""

import asyncio
import json

import httpx
import pytest

from pixpay.common.errors import AuthenticationFailed
from pixpay.services.provider.credentials import CredentialCache


def test_concurrent_callers_share_one_refresh(fake_provider):
    """Twenty concurrent callers must trigger exactly one token request."""

    async def scenario():
        async with httpx.AsyncClient(transport=fake_provider.transport()) as http:
            provider = fake_provider.build(http)
            return await asyncio.gather(*(provider.credentials.get_token() for _ in range(20)))

    tokens = asyncio.run(scenario())

    assert set(tokens) == {"tok-1"}
    assert fake_provider.token_calls == 1


def test_token_request_uses_client_credentials(fake_provider):
    async def scenario():
        async with httpx.AsyncClient(transport=fake_provider.transport()) as http:
            await fake_provider.build(http).credentials.get_token()

    asyncio.run(scenario())

    body = json.loads(fake_provider.requests[0].content)
    assert body == {
        "client_id": "client-id",
        "client_secret": "client-secret",
        "grant_type": "client_credentials",
    }


def test_refresh_failure_reaches_every_waiter_and_keeps_nothing(fake_provider):
    """A failed refresh fails all waiters once; the next call refreshes again."""

    fake_provider.token_status = 401

    async def scenario():
        async with httpx.AsyncClient(transport=fake_provider.transport()) as http:
            credentials = fake_provider.build(http).credentials
            results = await asyncio.gather(
                *(credentials.get_token() for _ in range(5)),
                return_exceptions=True,
            )
            cached = credentials._token
            fake_provider.token_status = 200
            retried = await credentials.get_token()
            return results, cached, retried

    results, cached, retried = asyncio.run(scenario())

    assert all(isinstance(r, AuthenticationFailed) for r in results)
    assert cached is None
    assert retried == "tok-2"
    assert fake_provider.token_calls == 2


def test_expired_token_is_refreshed(fake_provider):
    now = [1000.0]
    fake_provider.token_expires_in = 120

    async def scenario():
        async with httpx.AsyncClient(transport=fake_provider.transport()) as http:
            credentials = fake_provider.build(http, clock=lambda: now[0]).credentials
            first = await credentials.get_token()
            now[0] += 60
            still_valid = await credentials.get_token()
            # Inside the 30s early-refresh window.
            now[0] += 35
            refreshed = await credentials.get_token()
            return first, still_valid, refreshed

    first, still_valid, refreshed = asyncio.run(scenario())

    assert first == still_valid == "tok-1"
    assert refreshed == "tok-2"


def test_invalidate_ignores_tokens_already_replaced(fake_provider):
    async def scenario():
        async with httpx.AsyncClient(transport=fake_provider.transport()) as http:
            credentials = fake_provider.build(http).credentials
            await credentials.get_token()
            credentials.invalidate("some-older-token")
            kept = await credentials.get_token()
            credentials.invalidate(kept)
            return kept, await credentials.get_token()

    kept, replaced = asyncio.run(scenario())

    assert kept == "tok-1"
    assert replaced == "tok-2"


def test_missing_access_token_is_authentication_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"token_type": "bearer"})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            await CredentialCache(http, "https://provider.test", "id", "secret").get_token()

    with pytest.raises(AuthenticationFailed):
        asyncio.run(scenario())
