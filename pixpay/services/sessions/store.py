"""Key-value backends and the payment session store built on them.

Values are kept as JSON documents in both backends so the in-memory store
behaves like Redis: readers never share mutable state with writers.
"""

import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

from redis import asyncio as aioredis

from pixpay.common.config import CommonSettings
from pixpay.common.logging import logger
from pixpay.services.sessions.models import PaymentSession


class MemoryBackend:
    """Bounded in-process store with write-order eviction and optional TTL."""

    def __init__(
        self,
        max_entries: int = 10_000,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float | None, str]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at is not None and expires_at <= self._clock():
                del self._entries[key]
                return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        raw = json.dumps(value)
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._entries[key] = (expires_at, raw)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("memory_store_evicted key=%s", evicted)

    async def close(self) -> None:
        return None


class RedisBackend:
    """Redis-backed store; each write is a single atomic `SET`."""

    def __init__(self, client: aioredis.Redis, ttl_seconds: int | None = None) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    async def get(self, key: str) -> Any:
        raw = await self.client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        await self.client.set(key, json.dumps(value), ex=ttl or None)

    async def close(self) -> None:
        await self.client.aclose()


def build_backend(config: CommonSettings, ttl_seconds: int | None = None):
    """Create a storage backend of the kind selected by `session_backend`.

    Each call returns an independent backend, so caches built this way never
    compete with the session store for capacity.
    """

    ttl = ttl_seconds if ttl_seconds is not None else config.session_ttl_seconds
    if config.session_backend == "redis":
        client = aioredis.Redis.from_url(config.redis_url, decode_responses=True)
        return RedisBackend(client, ttl_seconds=ttl)
    if config.session_backend == "memory":
        return MemoryBackend(max_entries=config.session_max_entries, ttl_seconds=ttl)
    raise ValueError(f"unknown session_backend: {config.session_backend}")


class PaymentSessionStore:
    """Last-write-wins mapping from account id to its latest webhook state."""

    key_prefix = "payment-session:"

    def __init__(self, backend) -> None:
        self.backend = backend

    def _key(self, account_id: str) -> str:
        return f"{self.key_prefix}{account_id}"

    async def record(self, account_id: str, status: str | None, data: Any) -> PaymentSession:
        """Overwrite the session for `account_id` with the given event values."""

        session = PaymentSession(account_id=account_id, status=status, data=data)
        await self.backend.set(self._key(account_id), session.model_dump())
        return session

    async def get(self, account_id: str) -> PaymentSession | None:
        raw = await self.backend.get(self._key(account_id))
        if raw is None:
            return None
        return PaymentSession(**raw)
