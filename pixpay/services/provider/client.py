"""Authenticated calls to the PIX deposit provider.

Every call carries a bearer token from `CredentialCache` and a bounded
timeout. Failures are normalized to `ProviderRequestFailed`.
"""

from decimal import Decimal
from time import perf_counter
from typing import Any

import httpx

from pixpay.common.errors import ProviderRequestFailed
from pixpay.common.logging import logger
from pixpay.common.metrics import provider_request_duration_seconds, provider_requests_total
from pixpay.services.provider.credentials import CredentialCache


SUBSCRIBED = "subscribed"
ALREADY_SUBSCRIBED = "already_subscribed"


def _response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _amount_json(amount: Decimal) -> int | float:
    """Render a decimal amount as a JSON number."""

    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def _looks_already_subscribed(body: Any) -> bool:
    text = str(body).lower()
    return "already" in text and ("subscri" in text or "exist" in text)


class ProviderClient:
    """HTTP client for QR-code creation and webhook subscription."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        credentials: CredentialCache,
        timeout_seconds: float = 10.0,
        service_name: str = "pixpay-orchestrator",
    ) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout_seconds = timeout_seconds
        self.service_name = service_name

    def _record(self, operation: str, outcome: str) -> None:
        provider_requests_total.labels(service=self.service_name, operation=operation, outcome=outcome).inc()

    async def _send(self, operation: str, path: str, body: dict) -> tuple[httpx.Response, str]:
        token = await self.credentials.get_token()
        try:
            with provider_request_duration_seconds.labels(service=self.service_name, operation=operation).time():
                resp = await self.http.post(
                    f"{self.base_url}{path}",
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=self.timeout_seconds,
                )
        except httpx.TimeoutException as exc:
            self._record(operation, "timeout")
            logger.warning("provider_timeout operation=%s error=%s", operation, exc)
            raise ProviderRequestFailed(f"{operation} timed out", reason="timeout") from exc
        except httpx.HTTPError as exc:
            self._record(operation, "transport_error")
            logger.warning("provider_transport_error operation=%s error=%s", operation, exc)
            raise ProviderRequestFailed(f"{operation} failed: {exc}", reason="transport") from exc
        return resp, token

    async def _post(self, operation: str, path: str, body: dict) -> httpx.Response:
        """POST with bearer auth, repeating once after a 401 with a fresh token."""

        resp, token = await self._send(operation, path, body)
        if resp.status_code == 401:
            logger.info("provider_unauthorized operation=%s refreshing token", operation)
            self.credentials.invalidate(token)
            resp, _ = await self._send(operation, path, body)
        return resp

    async def create_deposit_qr(self, account_id: str, amount: Decimal) -> Any:
        """Create a dynamic deposit QR code and return the provider payload untouched."""

        operation = "create_deposit_qr"
        start = perf_counter()
        resp = await self._post(
            operation,
            f"/api/v2.0/accounts/{account_id}/depositDynamicQRCode",
            {"amount": _amount_json(amount)},
        )
        if not resp.is_success:
            self._record(operation, "rejected")
            body = _response_body(resp)
            logger.error("provider_qr_rejected status=%s body=%s", resp.status_code, body)
            raise ProviderRequestFailed(
                f"QR creation returned {resp.status_code}",
                status=resp.status_code,
                body=body,
            )
        self._record(operation, "ok")
        logger.info("provider_qr_created latency_ms=%s", int((perf_counter() - start) * 1000))
        return _response_body(resp)

    async def subscribe_webhook(self, account_id: str, callback_url: str, event_name: str) -> str:
        """Register `callback_url` for `event_name`; an existing subscription counts as success."""

        operation = "subscribe_webhook"
        resp = await self._post(
            operation,
            f"/callback/v2.0/subscribe/depositorders/accounts/{account_id}",
            {"url": callback_url, "event": event_name},
        )
        if resp.is_success:
            self._record(operation, "ok")
            return SUBSCRIBED
        body = _response_body(resp)
        if resp.status_code == 409 or (resp.status_code < 500 and _looks_already_subscribed(body)):
            self._record(operation, "already_subscribed")
            logger.info("provider_webhook_already_subscribed status=%s", resp.status_code)
            return ALREADY_SUBSCRIBED
        self._record(operation, "rejected")
        raise ProviderRequestFailed(
            f"webhook subscription returned {resp.status_code}",
            status=resp.status_code,
            body=body,
        )
