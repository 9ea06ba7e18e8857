"""Shared fixtures: a scripted provider behind `httpx.MockTransport`."""

import json
import os

os.environ.setdefault("OTEL_ENABLED", "false")

import httpx
import pytest

from pixpay.services.provider.client import ProviderClient
from pixpay.services.provider.credentials import CredentialCache


PROVIDER_URL = "https://provider.test"
QR_SUFFIX = "/depositDynamicQRCode"


class FakeProvider:
    """Scripted provider API that records every request it receives."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_calls = 0
        self.token_status = 200
        self.token_expires_in = 3600
        self.qr_status = 200
        self.qr_body = {"code": "xyz"}
        self.qr_timeout = False
        self.qr_unauthorized = 0
        self.subscribe_status = 200
        self.subscribe_body = {"subscribed": True}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/auth/token":
            self.token_calls += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(
                200,
                json={"access_token": f"tok-{self.token_calls}", "expires_in": self.token_expires_in},
            )
        if path.endswith(QR_SUFFIX):
            if self.qr_timeout:
                raise httpx.ReadTimeout("read timed out", request=request)
            if self.qr_unauthorized:
                self.qr_unauthorized -= 1
                return httpx.Response(401, json={"error": "token expired"})
            return httpx.Response(self.qr_status, json=self.qr_body)
        if "/subscribe/" in path:
            return httpx.Response(self.subscribe_status, json=self.subscribe_body)
        return httpx.Response(404, json={"error": "unknown route"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def build(self, http: httpx.AsyncClient, clock=None) -> ProviderClient:
        kwargs = {"clock": clock} if clock is not None else {}
        credentials = CredentialCache(http, PROVIDER_URL, "client-id", "client-secret", **kwargs)
        return ProviderClient(http, PROVIDER_URL, credentials, timeout_seconds=2.0)

    def paths(self, include_token: bool = False) -> list[str]:
        return [r.url.path for r in self.requests if include_token or r.url.path != "/auth/token"]

    def bodies(self, suffix: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path.endswith(suffix)]


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()
