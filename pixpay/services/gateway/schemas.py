"""API request/response schemas for the public payment endpoints.

Field names on the wire are camelCase (`accountId`, `qrData`); Python code
uses snake_case attributes.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreatePaymentRequest(BaseModel):
    """Payload accepted by `POST /create-payment`.

    Presence and positivity are checked by the orchestrator so non-HTTP
    callers get the same `InvalidArgument` behavior.
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    account_id: str | None = Field(default=None, alias="accountId")
    amount: Decimal | None = None


class CreatePaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    qr_data: Any = Field(alias="qrData")
    webhook: str
    status_endpoint: str = Field(alias="statusEndpoint")
    webhook_registered: bool = Field(alias="webhookRegistered")


class WebhookEvent(BaseModel):
    """Provider callback body.

    Numeric `accountId` or `status` values are kept as their string form;
    only a missing `accountId` is rejected.
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    account_id: str | None = Field(default=None, alias="accountId")
    status: str | None = None
    data: Any = None


class WebhookAck(BaseModel):
    received: bool = True


class PaymentStatusResponse(BaseModel):
    """Stored `{status, data}` for one account."""

    status: str | None
    data: Any
