"""Replay cache for create-payment responses keyed by `Idempotency-Key`.

Each cached response is stored with a fingerprint of the request that
produced it. Reusing a key for a different request is refused. Requests
sharing a key are serialized inside this process. Across several processes
on one Redis, only sequential retries are guaranteed to replay.
"""

import asyncio
import hashlib
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, Awaitable, Callable

from pixpay.common.logging import logger


class IdempotencyKeyReused(Exception):
    """The key was already used for a request with a different body."""


def request_fingerprint(account_id: Any, amount: Any) -> str:
    """Stable hash of the fields that decide which QR code is issued."""

    if isinstance(amount, Decimal) and amount.is_finite():
        amount = amount.normalize()
    raw = f"{account_id}|{amount}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class IdempotencyCache:
    """Stores successful create-payment responses per account and client key."""

    key_prefix = "idempotency:create-payment:"

    def __init__(self, backend, ttl_seconds: int = 86400) -> None:
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        # cache key -> [lock, number of holders and waiters]
        self._locks: dict[str, list] = {}

    def _key(self, account_id: str, idempotency_key: str) -> str:
        # Scope by account so two accounts cannot collide on the same client key.
        return f"{self.key_prefix}{account_id}:{idempotency_key}"

    @asynccontextmanager
    async def _hold(self, cache_key: str):
        entry = self._locks.get(cache_key)
        if entry is None:
            entry = self._locks[cache_key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._locks.pop(cache_key, None)

    async def get(self, account_id: str, idempotency_key: str, fingerprint: str) -> dict | None:
        """Return the cached response, or raise when the key belongs to another request."""

        try:
            cached = await self.backend.get(self._key(account_id, idempotency_key))
        except Exception as exc:
            logger.warning("idempotency_cache_read_failed: %s", exc)
            return None
        if not cached:
            return None
        if cached.get("fingerprint") != fingerprint:
            raise IdempotencyKeyReused("Idempotency-Key was already used with a different request body")
        return cached.get("response")

    async def put(self, account_id: str, idempotency_key: str, fingerprint: str, payload: dict[str, Any]) -> None:
        try:
            await self.backend.set(
                self._key(account_id, idempotency_key),
                {"fingerprint": fingerprint, "response": payload},
                ttl_seconds=self.ttl_seconds,
            )
        except Exception as exc:
            logger.warning("idempotency_cache_write_failed: %s", exc)

    async def run_once(
        self,
        account_id: str,
        idempotency_key: str,
        fingerprint: str,
        produce: Callable[[], Awaitable[dict[str, Any]]],
    ) -> tuple[dict[str, Any], bool]:
        """Return `(response, replayed)`, calling `produce` only on a cache miss."""

        async with self._hold(self._key(account_id, idempotency_key)):
            cached = await self.get(account_id, idempotency_key, fingerprint)
            if cached is not None:
                return cached, True
            payload = await produce()
            await self.put(account_id, idempotency_key, fingerprint, payload)
            return payload, False
