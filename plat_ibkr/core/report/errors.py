from __future__ import annotations

from typing import Optional


class GatewayConnectionError(RuntimeError):
    """Raised when a gateway session cannot be established."""


class SubscriptionRequestError(RuntimeError):
    """Raised when the gateway rejects or aborts a subscription request."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int] = None,
        req_id: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.req_id = req_id

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"[{self.code}] {self.message}"


class SubscriptionTimeoutError(SubscriptionRequestError):
    """Raised when a subscription does not reach its end marker in time."""
