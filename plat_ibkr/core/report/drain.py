from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from loguru import logger

from plat_ibkr.core.ops.events import SubscriptionCompleted, SubscriptionFailed
from plat_ibkr.core.report.errors import SubscriptionRequestError, SubscriptionTimeoutError
from plat_ibkr.core.report.messages import (
    AccountSummary,
    AccountSummaryEnd,
    AccountSummaryMessage,
    PositionEnd,
    PositionMessage,
    PositionUpdate,
    TickMessage,
    TickPrice,
    TickPriceSize,
    TickSize,
    TickSnapshotEnd,
)
from plat_ibkr.core.report.models import AccountSummaryRow, MarketDataRow, PositionRow
from plat_ibkr.core.report.ports import GatewaySession, Subscription

MessageT = TypeVar("MessageT")
RowT = TypeVar("RowT")

EventLogger = Callable[[object], None]

DEFAULT_ACCOUNT_GROUP = "All"
DEFAULT_SUMMARY_TAGS: tuple[str, ...] = (
    "AccountType",
    "NetLiquidation",
    "TotalCashValue",
    "BuyingPower",
    "GrossPositionValue",
    "AvailableFunds",
)


async def drain_subscription(
    subscription: Subscription[MessageT],
    *,
    to_row: Callable[[MessageT], Optional[RowT]],
    is_terminal: Callable[[MessageT], bool],
    kind: str,
    timeout: Optional[float] = None,
    event_logger: Optional[EventLogger] = None,
) -> list[RowT]:
    """Read messages until the terminal one, mapping each to at most one row.

    The subscription is cancelled exactly once before returning, whether the
    end marker arrived, the request failed mid-stream, or the timeout expired.
    Rows collected before a failure are kept.
    """
    rows: list[RowT] = []

    async def _consume() -> None:
        while True:
            message = await subscription.next()
            if is_terminal(message):
                return
            row = to_row(message)
            if row is not None:
                rows.append(row)

    try:
        if timeout is not None and timeout > 0:
            try:
                await asyncio.wait_for(_consume(), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise SubscriptionTimeoutError(
                    f"{kind} did not complete within {timeout:g}s"
                ) from exc
        else:
            await _consume()
    except SubscriptionRequestError as exc:
        logger.warning("{} request failed after {} rows: {}", kind, len(rows), exc)
        _log_event(
            event_logger,
            SubscriptionFailed.now(
                kind=kind,
                message=exc.message,
                code=exc.code,
                rows_collected=len(rows),
            ),
        )
        return rows
    finally:
        subscription.cancel()

    logger.debug("{} complete: {} rows", kind, len(rows))
    _log_event(event_logger, SubscriptionCompleted.now(kind=kind, rows_collected=len(rows)))
    return rows


async def collect_account_summary(
    session: GatewaySession,
    *,
    group: str = DEFAULT_ACCOUNT_GROUP,
    tags: Sequence[str] = DEFAULT_SUMMARY_TAGS,
    timeout: Optional[float] = None,
    event_logger: Optional[EventLogger] = None,
) -> list[AccountSummaryRow]:
    kind = "account summary"
    subscription = await _open(
        kind,
        lambda: session.open_account_summary(group, tags),
        event_logger,
    )
    if subscription is None:
        return []
    return await drain_subscription(
        subscription,
        to_row=_account_summary_row,
        is_terminal=_is_account_summary_end,
        kind=kind,
        timeout=timeout,
        event_logger=event_logger,
    )


async def collect_positions(
    session: GatewaySession,
    *,
    timeout: Optional[float] = None,
    event_logger: Optional[EventLogger] = None,
) -> list[PositionRow]:
    kind = "positions"
    subscription = await _open(kind, session.open_positions, event_logger)
    if subscription is None:
        return []
    return await drain_subscription(
        subscription,
        to_row=_position_row,
        is_terminal=_is_position_end,
        kind=kind,
        timeout=timeout,
        event_logger=event_logger,
    )


async def collect_market_data(
    session: GatewaySession,
    symbol: str,
    *,
    timeout: Optional[float] = None,
    event_logger: Optional[EventLogger] = None,
) -> list[MarketDataRow]:
    kind = f"market data {symbol}"
    subscription = await _open(
        kind,
        lambda: session.open_market_data_snapshot(symbol),
        event_logger,
    )
    if subscription is None:
        return []
    return await drain_subscription(
        subscription,
        to_row=_market_data_mapper(symbol),
        is_terminal=_is_snapshot_end,
        kind=kind,
        timeout=timeout,
        event_logger=event_logger,
    )


async def _open(
    kind: str,
    opener: Callable[[], Awaitable[Subscription[MessageT]]],
    event_logger: Optional[EventLogger],
) -> Optional[Subscription[MessageT]]:
    try:
        return await opener()
    except SubscriptionRequestError as exc:
        logger.warning("{} request rejected: {}", kind, exc)
        _log_event(
            event_logger,
            SubscriptionFailed.now(kind=kind, message=exc.message, code=exc.code),
        )
        return None


def _account_summary_row(message: AccountSummaryMessage) -> Optional[AccountSummaryRow]:
    if isinstance(message, AccountSummary):
        return AccountSummaryRow.from_summary(message)
    return None


def _is_account_summary_end(message: AccountSummaryMessage) -> bool:
    return isinstance(message, AccountSummaryEnd)


def _position_row(message: PositionMessage) -> Optional[PositionRow]:
    if isinstance(message, PositionUpdate):
        return PositionRow.from_update(message)
    return None


def _is_position_end(message: PositionMessage) -> bool:
    return isinstance(message, PositionEnd)


def _market_data_mapper(symbol: str) -> Callable[[TickMessage], Optional[MarketDataRow]]:
    def _to_row(message: TickMessage) -> Optional[MarketDataRow]:
        if isinstance(message, (TickPrice, TickPriceSize)):
            return MarketDataRow(symbol=symbol, tick_type=message.tick_type, value=message.price)
        if isinstance(message, TickSize):
            return MarketDataRow(symbol=symbol, tick_type=message.tick_type, value=message.size)
        return None

    return _to_row


def _is_snapshot_end(message: TickMessage) -> bool:
    return isinstance(message, TickSnapshotEnd)


def _log_event(event_logger: Optional[EventLogger], event: object) -> None:
    if event_logger:
        event_logger(event)
