"""Provider client request shapes and failure classification."""

import asyncio
from decimal import Decimal

import httpx
import pytest

from conftest import QR_SUFFIX
from pixpay.common.errors import ProviderRequestFailed
from pixpay.services.provider.client import ALREADY_SUBSCRIBED, SUBSCRIBED


def _run(fake_provider, call):
    async def scenario():
        async with httpx.AsyncClient(transport=fake_provider.transport()) as http:
            return await call(fake_provider.build(http))

    return asyncio.run(scenario())


def test_create_qr_posts_amount_with_bearer_token(fake_provider):
    payload = _run(fake_provider, lambda p: p.create_deposit_qr("A1", Decimal("50")))

    assert payload == {"code": "xyz"}
    request = fake_provider.requests[-1]
    assert request.url.path == "/api/v2.0/accounts/A1/depositDynamicQRCode"
    assert request.headers["authorization"] == "Bearer tok-1"
    assert fake_provider.bodies(QR_SUFFIX) == [{"amount": 50}]


def test_fractional_amount_is_sent_as_number(fake_provider):
    _run(fake_provider, lambda p: p.create_deposit_qr("A1", Decimal("12.5")))

    assert fake_provider.bodies(QR_SUFFIX) == [{"amount": 12.5}]


def test_create_qr_non_2xx_carries_status_and_body(fake_provider):
    fake_provider.qr_status = 422
    fake_provider.qr_body = {"message": "account blocked"}

    with pytest.raises(ProviderRequestFailed) as excinfo:
        _run(fake_provider, lambda p: p.create_deposit_qr("A1", Decimal("10")))

    assert excinfo.value.status == 422
    assert excinfo.value.body == {"message": "account blocked"}
    assert excinfo.value.reason == "http_status"
    assert not excinfo.value.timed_out


def test_create_qr_timeout_is_distinguishable(fake_provider):
    fake_provider.qr_timeout = True

    with pytest.raises(ProviderRequestFailed) as excinfo:
        _run(fake_provider, lambda p: p.create_deposit_qr("A1", Decimal("10")))

    assert excinfo.value.timed_out
    assert excinfo.value.status is None


def test_unauthorized_refreshes_token_and_repeats_once(fake_provider):
    fake_provider.qr_unauthorized = 1

    payload = _run(fake_provider, lambda p: p.create_deposit_qr("A1", Decimal("10")))

    assert payload == {"code": "xyz"}
    assert fake_provider.token_calls == 2
    qr_requests = [r for r in fake_provider.requests if r.url.path.endswith(QR_SUFFIX)]
    assert [r.headers["authorization"] for r in qr_requests] == ["Bearer tok-1", "Bearer tok-2"]


def test_second_unauthorized_is_surfaced(fake_provider):
    fake_provider.qr_unauthorized = 2

    with pytest.raises(ProviderRequestFailed) as excinfo:
        _run(fake_provider, lambda p: p.create_deposit_qr("A1", Decimal("10")))

    assert excinfo.value.status == 401
    assert len(fake_provider.bodies(QR_SUFFIX)) == 2


def test_subscribe_posts_callback_and_event(fake_provider):
    outcome = _run(
        fake_provider,
        lambda p: p.subscribe_webhook("A1", "https://pay.example.com/webhook", "depositorder.created"),
    )

    assert outcome == SUBSCRIBED
    assert fake_provider.paths() == ["/callback/v2.0/subscribe/depositorders/accounts/A1"]
    assert fake_provider.bodies("/accounts/A1") == [
        {"url": "https://pay.example.com/webhook", "event": "depositorder.created"}
    ]


@pytest.mark.parametrize(
    "status,body",
    [
        (409, {"message": "conflict"}),
        (400, {"message": "Subscription already exists for this account"}),
    ],
)
def test_existing_subscription_counts_as_success(fake_provider, status, body):
    fake_provider.subscribe_status = status
    fake_provider.subscribe_body = body

    outcome = _run(fake_provider, lambda p: p.subscribe_webhook("A1", "https://x/webhook", "depositorder.created"))

    assert outcome == ALREADY_SUBSCRIBED


def test_subscribe_server_error_raises(fake_provider):
    fake_provider.subscribe_status = 503
    fake_provider.subscribe_body = {"message": "unavailable"}

    with pytest.raises(ProviderRequestFailed) as excinfo:
        _run(fake_provider, lambda p: p.subscribe_webhook("A1", "https://x/webhook", "depositorder.created"))

    assert excinfo.value.status == 503
