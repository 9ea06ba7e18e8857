"""Payment orchestration.

Create-payment runs strictly in order: validate, authenticate, create the QR
code, subscribe the webhook. Nothing is retried here; the caller decides
whether to re-invoke. Status queries read the webhook-fed session store.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from pixpay.common.errors import AuthenticationFailed, InvalidArgument, NotFound, ProviderRequestFailed
from pixpay.common.logging import account_id_ctx, logger
from pixpay.common.metrics import (
    payment_failure_total,
    status_queries_total,
    webhook_registration_failures_total,
)
from pixpay.services.provider.client import ProviderClient
from pixpay.services.sessions.models import PaymentSession
from pixpay.services.sessions.store import PaymentSessionStore


DEPOSIT_ORDER_CREATED = "depositorder.created"


@dataclass
class CreatePaymentResult:
    """Outcome of create-payment.

    `webhook_registered=False` is the partial-success state: the QR code was
    issued but automatic status updates may never arrive.
    """

    qr_payload: Any
    webhook_url: str
    status_endpoint: str
    webhook_registered: bool
    webhook_error: str | None = None


def validate_payment_input(account_id: Any, amount: Any) -> tuple[str, Decimal]:
    """Normalize inputs or raise `InvalidArgument`."""

    if not isinstance(account_id, str) or not account_id.strip():
        raise InvalidArgument("accountId and amount are required")
    if amount is None or isinstance(amount, bool):
        raise InvalidArgument("accountId and amount are required")
    if isinstance(amount, float) and not math.isfinite(amount):
        raise InvalidArgument("amount must be a finite number")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidArgument("amount must be a number") from exc
    if not value.is_finite() or value <= 0:
        raise InvalidArgument("amount must be a positive number")
    return account_id.strip(), value


def status_endpoint_for(account_id: str) -> str:
    return f"/payment-status/{account_id}"


class PaymentOrchestrator:
    """Public entry point for create-payment and status-query workflows."""

    def __init__(
        self,
        provider: ProviderClient,
        store: PaymentSessionStore,
        event_name: str = DEPOSIT_ORDER_CREATED,
        service_name: str = "pixpay-orchestrator",
    ) -> None:
        self.provider = provider
        self.store = store
        self.event_name = event_name
        self.service_name = service_name

    async def create_payment(self, account_id: Any, amount: Any, callback_base_url: str) -> CreatePaymentResult:
        """Issue a deposit QR code and subscribe the callback for its settlement."""

        account_id, amount = validate_payment_input(account_id, amount)
        if not callback_base_url:
            raise InvalidArgument("callback base URL is not configured")
        account_id_ctx.set(account_id)

        try:
            await self.provider.credentials.get_token()
            qr_payload = await self.provider.create_deposit_qr(account_id, amount)
        except (AuthenticationFailed, ProviderRequestFailed) as exc:
            payment_failure_total.labels(service=self.service_name, kind=exc.kind).inc()
            logger.error("create_payment_failed kind=%s error=%s", exc.kind, exc)
            raise

        webhook_url = f"{callback_base_url.rstrip('/')}/webhook"
        webhook_registered = True
        webhook_error = None
        try:
            outcome = await self.provider.subscribe_webhook(account_id, webhook_url, self.event_name)
            logger.info("webhook_subscription outcome=%s url=%s", outcome, webhook_url)
        except (AuthenticationFailed, ProviderRequestFailed) as exc:
            webhook_registered = False
            webhook_error = f"{exc.kind}: {exc}"
            webhook_registration_failures_total.labels(service=self.service_name).inc()
            logger.warning("webhook_subscription_failed qr_issued=true error=%s", exc)

        return CreatePaymentResult(
            qr_payload=qr_payload,
            webhook_url=webhook_url,
            status_endpoint=status_endpoint_for(account_id),
            webhook_registered=webhook_registered,
            webhook_error=webhook_error,
        )

    async def get_status(self, account_id: str) -> PaymentSession:
        """Return the last webhook-recorded session or raise `NotFound`."""

        if not isinstance(account_id, str) or not account_id.strip():
            raise InvalidArgument("accountId is required")
        session = await self.store.get(account_id.strip())
        if session is None:
            status_queries_total.labels(service=self.service_name, outcome="not_found").inc()
            # Expected while the payer has not paid yet.
            logger.info("payment_status_not_found account_id=%s", account_id)
            raise NotFound("Status not found")
        status_queries_total.labels(service=self.service_name, outcome="found").inc()
        return session
