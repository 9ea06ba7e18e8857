"""Bearer token cache for the payment provider.

Concurrent callers that find no valid token share one in-flight refresh task;
they all receive its token or its `AuthenticationFailed`.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

import httpx

from pixpay.common.errors import AuthenticationFailed
from pixpay.common.logging import logger
from pixpay.common.metrics import token_refresh_total


@dataclass(frozen=True)
class AccessToken:
    """Opaque bearer token plus the monotonic instant it stops being usable."""

    value: str
    expires_at: float

    def expired(self, now: float, skew_seconds: float = 0.0) -> bool:
        return now >= self.expires_at - skew_seconds


class CredentialCache:
    """Owns the provider access token; never persists it."""

    token_path = "/auth/token"

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        client_id: str,
        client_secret: str,
        timeout_seconds: float = 10.0,
        default_ttl_seconds: int = 300,
        refresh_skew_seconds: int = 30,
        service_name: str = "pixpay-orchestrator",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout_seconds = timeout_seconds
        self.default_ttl_seconds = default_ttl_seconds
        self.refresh_skew_seconds = refresh_skew_seconds
        self.service_name = service_name
        self._clock = clock
        self._token: AccessToken | None = None
        self._refresh_task: asyncio.Task | None = None

    async def get_token(self) -> str:
        """Return a valid bearer token, refreshing once for all concurrent callers."""

        token = self._token
        if token is not None and not token.expired(self._clock(), self.refresh_skew_seconds):
            return token.value

        task = self._refresh_task
        if task is None:
            task = asyncio.create_task(self._refresh())
            self._refresh_task = task
        try:
            # Shielded so one cancelled waiter does not cancel the shared refresh.
            return (await asyncio.shield(task)).value
        finally:
            if self._refresh_task is task and task.done():
                self._refresh_task = None

    def invalidate(self, token_value: str | None = None) -> None:
        """Drop the cached token, e.g. after the provider answered 401.

        When `token_value` is given, only that token is dropped so a stale
        401 cannot discard a token another caller already refreshed.
        """

        if self._token is None:
            return
        if token_value is None or self._token.value == token_value:
            logger.info("provider_token_invalidated")
            self._token = None

    async def _refresh(self) -> AccessToken:
        self._token = None
        try:
            resp = await self.http.post(
                f"{self.base_url}{self.token_path}",
                json={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "client_credentials",
                },
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            token_refresh_total.labels(service=self.service_name, outcome="timeout").inc()
            raise AuthenticationFailed(f"token request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            token_refresh_total.labels(service=self.service_name, outcome="transport_error").inc()
            raise AuthenticationFailed(f"token request failed: {exc}") from exc

        if resp.status_code >= 300:
            token_refresh_total.labels(service=self.service_name, outcome="rejected").inc()
            logger.error("provider_token_rejected status=%s", resp.status_code)
            raise AuthenticationFailed(f"token endpoint returned {resp.status_code}: {resp.text}")

        try:
            payload = resp.json()
            value = payload["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            token_refresh_total.labels(service=self.service_name, outcome="malformed").inc()
            raise AuthenticationFailed("token endpoint response has no access_token") from exc
        if not isinstance(value, str) or not value:
            token_refresh_total.labels(service=self.service_name, outcome="malformed").inc()
            raise AuthenticationFailed("token endpoint returned an empty access_token")

        ttl = payload.get("expires_in") or self.default_ttl_seconds
        try:
            ttl = float(ttl)
        except (TypeError, ValueError):
            ttl = float(self.default_ttl_seconds)
        token = AccessToken(value=value, expires_at=self._clock() + ttl)
        self._token = token
        token_refresh_total.labels(service=self.service_name, outcome="ok").inc()
        logger.info("provider_token_refreshed expires_in=%s", ttl)
        return token
