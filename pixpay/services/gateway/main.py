"""Public HTTP surface: create-payment, provider webhook and status polling.

The callback URL handed to the provider is built from the configured
`public_base_url`, never from the inbound request's host headers.
"""

from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

import httpx
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pixpay.common.config import CommonSettings, settings
from pixpay.common.errors import AuthenticationFailed, InvalidArgument, NotFound, ProviderRequestFailed
from pixpay.common.logging import configure_logging, logger, trace_id_ctx
from pixpay.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    idempotent_replays_total,
    metrics_response,
    payment_latency_seconds,
    payment_requests_total,
)
from pixpay.common.startup import log_startup_config
from pixpay.common.tracing import instrument_app, setup_tracing
from pixpay.services.gateway.idempotency import IdempotencyCache, IdempotencyKeyReused, request_fingerprint
from pixpay.services.gateway.schemas import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentStatusResponse,
    WebhookAck,
    WebhookEvent,
)
from pixpay.services.gateway.service import PaymentOrchestrator
from pixpay.services.gateway.webhooks import WebhookIngress, WebhookTokenRejected
from pixpay.services.provider.client import ProviderClient
from pixpay.services.provider.credentials import CredentialCache
from pixpay.services.sessions.store import PaymentSessionStore, build_backend

configure_logging()
setup_tracing(settings.service_name)


def build_app(
    config: CommonSettings = settings,
    transport: httpx.AsyncBaseTransport | None = None,
    session_backend=None,
    idempotency_backend=None,
) -> FastAPI:
    """Wire provider client, stores and orchestrator into a FastAPI app.

    `transport` and the backends are injectable so tests can run the whole
    surface against `httpx.MockTransport` and in-memory stores.
    """

    log_startup_config(
        config,
        [
            "service_name",
            "provider_base_url",
            "provider_client_id",
            "provider_client_secret",
            "public_base_url",
            "session_backend",
            "redis_url",
            "webhook_secret",
        ],
    )
    http = httpx.AsyncClient(transport=transport, timeout=config.provider_timeout_seconds)
    credentials = CredentialCache(
        http,
        config.provider_base_url,
        config.provider_client_id,
        config.provider_client_secret,
        timeout_seconds=config.provider_timeout_seconds,
        default_ttl_seconds=config.token_default_ttl_seconds,
        refresh_skew_seconds=config.token_refresh_skew_seconds,
        service_name=config.service_name,
    )
    provider = ProviderClient(
        http,
        config.provider_base_url,
        credentials,
        timeout_seconds=config.provider_timeout_seconds,
        service_name=config.service_name,
    )
    session_backend = session_backend if session_backend is not None else build_backend(config)
    if idempotency_backend is None:
        idempotency_backend = build_backend(config, ttl_seconds=config.idempotency_ttl_seconds)
    store = PaymentSessionStore(session_backend)
    orchestrator = PaymentOrchestrator(
        provider,
        store,
        event_name=config.webhook_event_name,
        service_name=config.service_name,
    )
    ingress = WebhookIngress(store, secret=config.webhook_secret, service_name=config.service_name)
    idempotency = IdempotencyCache(idempotency_backend, ttl_seconds=config.idempotency_ttl_seconds)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Close the provider connection pool and store clients on shutdown."""

        yield
        await http.aclose()
        await session_backend.close()
        if idempotency_backend is not session_backend:
            await idempotency_backend.close()

    app = FastAPI(title="PixPay Orchestrator", lifespan=lifespan)
    instrument_app(app)
    app.state.orchestrator = orchestrator
    app.state.ingress = ingress
    app.state.idempotency = idempotency
    app.state.config = config

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Bind a trace id and record request count and latency for every HTTP call."""

        trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=config.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=config.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(InvalidArgument)
    async def invalid_argument_handler(_: Request, exc: InvalidArgument):
        return JSONResponse(status_code=400, content={"error": str(exc), "kind": exc.kind})

    @app.exception_handler(NotFound)
    async def not_found_handler(_: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"error": str(exc), "kind": exc.kind})

    @app.exception_handler(AuthenticationFailed)
    async def authentication_failed_handler(_: Request, exc: AuthenticationFailed):
        return JSONResponse(
            status_code=500,
            content={"error": "provider authentication failed", "kind": exc.kind, "details": str(exc)},
        )

    @app.exception_handler(ProviderRequestFailed)
    async def provider_failed_handler(_: Request, exc: ProviderRequestFailed):
        return JSONResponse(
            status_code=500,
            content={
                "error": "payment creation failed",
                "kind": exc.kind,
                "reason": exc.reason,
                "status": exc.status,
                "details": jsonable_encoder(exc.details()),
            },
        )

    @app.exception_handler(IdempotencyKeyReused)
    async def idempotency_reused_handler(_: Request, exc: IdempotencyKeyReused):
        return JSONResponse(status_code=422, content={"error": str(exc), "kind": "idempotency_key_reused"})

    @app.post("/create-payment", response_model=CreatePaymentResponse, response_model_by_alias=True)
    async def create_payment(req: CreatePaymentRequest, idempotency_key: str | None = Header(default=None)):
        """Create a deposit QR code and subscribe its settlement webhook.

        With an `Idempotency-Key` header a repeated request returns the first
        successful response instead of issuing another QR code.
        """

        async def issue() -> dict:
            payment_requests_total.labels(service=config.service_name).inc()
            with payment_latency_seconds.labels(service=config.service_name).time():
                result = await orchestrator.create_payment(req.account_id, req.amount, config.public_base_url)
            return CreatePaymentResponse(
                qr_data=result.qr_payload,
                webhook=result.webhook_url,
                status_endpoint=result.status_endpoint,
                webhook_registered=result.webhook_registered,
            ).model_dump(by_alias=True)

        if not (idempotency_key and req.account_id):
            return await issue()
        payload, replayed = await idempotency.run_once(
            req.account_id,
            idempotency_key,
            request_fingerprint(req.account_id, req.amount),
            issue,
        )
        if replayed:
            idempotent_replays_total.labels(service=config.service_name).inc()
        return payload

    @app.post("/webhook", response_model=WebhookAck)
    async def webhook(event: WebhookEvent, x_webhook_token: str | None = Header(default=None)):
        """Record a provider status callback (last write wins)."""

        try:
            ingress.check_token(x_webhook_token)
        except WebhookTokenRejected as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        await ingress.receive(event)
        return WebhookAck(received=True)

    @app.get("/payment-status/{account_id}", response_model=PaymentStatusResponse)
    async def payment_status(account_id: str):
        """Return the last status recorded by a webhook for `account_id`."""

        session = await orchestrator.get_status(account_id)
        return PaymentStatusResponse(status=session.status, data=session.data)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    logger.info("app_built public_base_url=%s", config.public_base_url)
    return app


app = build_app()
