"""Payment session record kept per provider account."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class PaymentSession(BaseModel):
    """Last known provider status for one account, as written by a webhook."""

    account_id: str
    status: str | None = None
    data: Any = None
    updated_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
