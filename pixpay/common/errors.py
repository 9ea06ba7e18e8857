"""Error taxonomy shared by the provider client, store and orchestrator.

Every error carries a stable `kind` so callers branch on the kind rather than
on message text.
"""

from typing import Any


class PixPayError(Exception):
    """Base class for orchestrator errors."""

    kind = "internal_error"


class InvalidArgument(PixPayError):
    """Malformed or missing input; raised before any network call."""

    kind = "invalid_argument"


class AuthenticationFailed(PixPayError):
    """Token acquisition against the provider failed."""

    kind = "authentication_failed"


class ProviderRequestFailed(PixPayError):
    """A provider call returned non-success, timed out, or never reached it.

    `reason` is one of `http_status`, `timeout` or `transport`.
    """

    kind = "provider_request_failed"

    def __init__(self, message: str, status: int | None = None, body: Any = None, reason: str = "http_status") -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.reason = reason

    @property
    def timed_out(self) -> bool:
        return self.reason == "timeout"

    def details(self) -> Any:
        """Provider error body when there is one, else the message."""

        return self.body if self.body is not None else str(self)


class NotFound(PixPayError):
    """No webhook has been recorded yet for the queried account."""

    kind = "not_found"
