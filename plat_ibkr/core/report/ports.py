from __future__ import annotations

from typing import Protocol, Sequence, TypeVar

from plat_ibkr.core.report.messages import (
    AccountSummaryMessage,
    PositionMessage,
    TickMessage,
)

MessageT = TypeVar("MessageT", covariant=True)


class Subscription(Protocol[MessageT]):
    async def next(self) -> MessageT:
        """Wait for the next message; raise SubscriptionRequestError if the request failed."""
        raise NotImplementedError

    def cancel(self) -> None:
        """Tell the gateway to stop sending messages. Safe to call more than once."""
        raise NotImplementedError


class GatewaySession(Protocol):
    async def open_account_summary(
        self,
        group: str,
        tags: Sequence[str],
    ) -> Subscription[AccountSummaryMessage]:
        """Request account summary values for the group and tags."""
        raise NotImplementedError

    async def open_positions(self) -> Subscription[PositionMessage]:
        """Request all positions across managed accounts."""
        raise NotImplementedError

    async def open_market_data_snapshot(self, symbol: str) -> Subscription[TickMessage]:
        """Request a one-shot market data snapshot for a stock symbol."""
        raise NotImplementedError
