"""Inbound provider webhook handling.

Each valid event overwrites the account's session (Unknown -> Recorded,
Recorded -> Recorded). No status vocabulary or transition order is enforced;
the provider is the source of truth and delivery order is not guaranteed.
"""

import hmac

from pixpay.common.errors import InvalidArgument
from pixpay.common.logging import account_id_ctx, logger
from pixpay.common.metrics import webhook_events_total
from pixpay.services.gateway.schemas import WebhookEvent
from pixpay.services.sessions.models import PaymentSession
from pixpay.services.sessions.store import PaymentSessionStore


class WebhookTokenRejected(Exception):
    """Shared-secret header missing or wrong."""


class WebhookIngress:
    """Validates provider callbacks and records them in the session store."""

    def __init__(
        self,
        store: PaymentSessionStore,
        secret: str | None = None,
        service_name: str = "pixpay-orchestrator",
    ) -> None:
        self.store = store
        self.secret = secret
        self.service_name = service_name

    def check_token(self, presented: str | None) -> None:
        """Reject the call when a shared secret is configured and does not match."""

        if not self.secret:
            return
        if presented is None or not hmac.compare_digest(presented, self.secret):
            webhook_events_total.labels(service=self.service_name, outcome="unauthorized").inc()
            raise WebhookTokenRejected("invalid webhook token")

    async def receive(self, event: WebhookEvent) -> PaymentSession:
        """Validate one event and overwrite the stored session for its account."""

        account_id = event.account_id.strip() if isinstance(event.account_id, str) else ""
        if not account_id:
            webhook_events_total.labels(service=self.service_name, outcome="rejected").inc()
            raise InvalidArgument("accountId is required")

        account_id_ctx.set(account_id)
        session = await self.store.record(account_id, event.status, event.data)
        webhook_events_total.labels(service=self.service_name, outcome="recorded").inc()
        logger.info("webhook_recorded status=%s", event.status)
        return session
