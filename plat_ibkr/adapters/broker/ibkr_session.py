from __future__ import annotations

import asyncio
from typing import Callable, Generic, Optional, Sequence, TypeVar, Union

from loguru import logger

from plat_ibkr.adapters.broker._ib_client import Stock
from plat_ibkr.adapters.broker._ib_compat import (
    await_with_timeout,
    end_snapshot_request,
    is_unset,
    request_market_data_type,
    size_tick_type_name,
    start_snapshot_request,
    tick_type_name,
)
from plat_ibkr.adapters.broker.ibkr_connection import POSITIONS_ROUTE, IBKRConnection
from plat_ibkr.core.ops.events import SubscriptionOpened
from plat_ibkr.core.report.errors import SubscriptionRequestError
from plat_ibkr.core.report.messages import (
    AccountSummary,
    AccountSummaryEnd,
    AccountSummaryMessage,
    ContractRef,
    PositionEnd,
    PositionMessage,
    PositionUpdate,
    TickGeneric,
    TickMessage,
    TickNotice,
    TickPrice,
    TickPriceSize,
    TickSize,
    TickSnapshotEnd,
    TickString,
)
from plat_ibkr.core.report.ports import GatewaySession

MessageT = TypeVar("MessageT")

# Gateway codes that accompany a request without failing it.
_INFORMATIONAL_CODES = frozenset({10090, 10167})


class IBKRSubscription(Generic[MessageT]):
    """Queue fed by IB wrapper callbacks and drained with ``next()``."""

    def __init__(self, kind: str, *, req_id: Optional[int] = None) -> None:
        self._kind = kind
        self._req_id = req_id
        self._queue: asyncio.Queue[Union[MessageT, SubscriptionRequestError]] = asyncio.Queue()
        self._cleanups: list[Callable[[], None]] = []
        self._ended = False
        self._cancelled = False

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def req_id(self) -> Optional[int]:
        return self._req_id

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def push(self, message: MessageT) -> None:
        if self._ended or self._cancelled:
            return
        self._queue.put_nowait(message)

    def finish(self, message: MessageT) -> None:
        self.push(message)
        self._ended = True

    def fail(self, error: SubscriptionRequestError) -> None:
        if self._ended or self._cancelled:
            return
        self._ended = True
        self._queue.put_nowait(error)

    def add_cleanup(self, cleanup: Callable[[], None]) -> None:
        self._cleanups.append(cleanup)

    async def next(self) -> MessageT:
        item = await self._queue.get()
        if isinstance(item, SubscriptionRequestError):
            raise item
        return item

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        for cleanup in reversed(self._cleanups):
            try:
                cleanup()
            except Exception as exc:
                logger.warning("{} cancel step failed: {}", self._kind, exc)
        self._cleanups.clear()
        logger.debug("{} subscription cancelled (reqId={})", self._kind, self._req_id)


class IBKRGatewaySession(GatewaySession):
    def __init__(
        self,
        connection: IBKRConnection,
        *,
        event_logger: Optional[Callable[[object], None]] = None,
    ) -> None:
        self._connection = connection
        self._ib = connection.ib
        self._event_logger = event_logger

    async def open_account_summary(
        self,
        group: str,
        tags: Sequence[str],
    ) -> IBKRSubscription[AccountSummaryMessage]:
        kind = "account summary"
        self._require_connected(kind)
        req_id = int(self._ib.client.getReqId())
        subscription: IBKRSubscription[AccountSummaryMessage] = IBKRSubscription(kind, req_id=req_id)

        def _on_callback(name: str, payload: tuple) -> None:
            message = account_summary_message(name, payload)
            if isinstance(message, AccountSummaryEnd):
                subscription.finish(message)
            elif message is not None:
                subscription.push(message)

        self._attach(subscription, req_id, _on_callback)
        try:
            self._ib.client.reqAccountSummary(req_id, group, ",".join(tags))
        except Exception as exc:
            subscription.cancel()
            raise SubscriptionRequestError(f"{kind} request failed: {exc}", req_id=req_id) from exc
        subscription.add_cleanup(lambda: self._ib.client.cancelAccountSummary(req_id))
        self._opened(kind, req_id=req_id)
        return subscription

    async def open_positions(self) -> IBKRSubscription[PositionMessage]:
        kind = "positions"
        self._require_connected(kind)
        subscription: IBKRSubscription[PositionMessage] = IBKRSubscription(kind)

        def _on_callback(name: str, payload: tuple) -> None:
            message = position_message(name, payload)
            if isinstance(message, PositionEnd):
                subscription.finish(message)
            elif message is not None:
                subscription.push(message)

        try:
            unroute = self._connection.route_callbacks(POSITIONS_ROUTE, _on_callback)
        except RuntimeError as exc:
            raise SubscriptionRequestError(f"{kind} request already in flight") from exc
        subscription.add_cleanup(unroute)
        try:
            self._ib.client.reqPositions()
        except Exception as exc:
            subscription.cancel()
            raise SubscriptionRequestError(f"{kind} request failed: {exc}") from exc
        subscription.add_cleanup(self._ib.client.cancelPositions)
        self._opened(kind)
        return subscription

    async def open_market_data_snapshot(self, symbol: str) -> IBKRSubscription[TickMessage]:
        kind = f"market data {symbol}"
        self._require_connected(kind)
        contract = await self._qualify_stock(symbol)
        request_market_data_type(self._ib, self._connection.config.market_data_type)

        req_id = int(self._ib.client.getReqId())
        subscription: IBKRSubscription[TickMessage] = IBKRSubscription(kind, req_id=req_id)

        def _on_callback(name: str, payload: tuple) -> None:
            message = tick_message(name, payload)
            if isinstance(message, TickSnapshotEnd):
                subscription.finish(message)
            elif message is not None:
                subscription.push(message)

        self._attach(subscription, req_id, _on_callback, notices=True)
        try:
            ticker = start_snapshot_request(self._ib, req_id, contract)
        except Exception as exc:
            subscription.cancel()
            raise SubscriptionRequestError(f"{kind} request failed: {exc}", req_id=req_id) from exc
        subscription.add_cleanup(
            lambda: end_snapshot_request(
                self._ib,
                req_id,
                ticker,
                cancel_on_wire=not subscription.ended,
            )
        )
        self._opened(kind, req_id=req_id, symbol=symbol)
        return subscription

    async def _qualify_stock(self, symbol: str) -> object:
        contract = Stock(symbol.upper(), "SMART", "USD")
        try:
            contracts = await await_with_timeout(
                self._ib.qualifyContractsAsync(contract),
                timeout=self._connection.config.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SubscriptionRequestError(f"Timed out qualifying contract for {symbol}") from exc
        qualified = [item for item in contracts or [] if item is not None and getattr(item, "conId", 0)]
        if not qualified:
            raise SubscriptionRequestError(f"Could not qualify contract for {symbol}")
        return qualified[0]

    def _attach(
        self,
        subscription: IBKRSubscription,
        req_id: int,
        on_callback: Callable[[str, tuple], None],
        *,
        notices: bool = False,
    ) -> None:
        def _on_gateway_message(
            msg_req_id: Optional[int],
            code: Optional[int],
            message: Optional[str],
            _advanced: Optional[str],
        ) -> None:
            if msg_req_id != req_id:
                return
            text = message or ""
            if is_informational_code(code):
                if notices:
                    subscription.push(TickNotice(code=code, message=text))
                return
            subscription.fail(SubscriptionRequestError(text, code=code, req_id=req_id))

        subscription.add_cleanup(self._connection.subscribe_gateway_messages(_on_gateway_message))
        subscription.add_cleanup(self._connection.route_callbacks(req_id, on_callback))

    def _require_connected(self, kind: str) -> None:
        if not self._connection.is_connected():
            raise SubscriptionRequestError(f"{kind}: IBKR is not connected")

    def _opened(self, kind: str, *, req_id: Optional[int] = None, symbol: Optional[str] = None) -> None:
        logger.debug("{} subscription opened (reqId={})", kind, req_id)
        if self._event_logger:
            self._event_logger(SubscriptionOpened.now(kind=kind, req_id=req_id, symbol=symbol))


def is_informational_code(code: Optional[int]) -> bool:
    if code is None:
        return False
    return 2100 <= code < 2200 or code in _INFORMATIONAL_CODES


def account_summary_message(name: str, payload: tuple) -> Optional[AccountSummaryMessage]:
    if name == "accountSummaryEnd":
        return AccountSummaryEnd()
    if name == "accountSummary" and len(payload) >= 4:
        account, tag, value, currency = payload[:4]
        return AccountSummary(
            account=str(account or ""),
            tag=str(tag or ""),
            value="" if value is None else str(value),
            currency=str(currency or ""),
        )
    return None


def position_message(name: str, payload: tuple) -> Optional[PositionMessage]:
    if name == "positionEnd":
        return PositionEnd()
    if name == "position" and len(payload) >= 4:
        account, contract, position, average_cost = payload[:4]
        return PositionUpdate(
            account=str(account or ""),
            contract=_contract_ref(contract),
            position=float(position or 0.0),
            average_cost=float(average_cost or 0.0),
        )
    return None


def tick_message(name: str, payload: tuple) -> Optional[TickMessage]:
    if name == "tickSnapshotEnd":
        return TickSnapshotEnd()
    if not payload:
        return None
    tick_type = payload[0]
    if name == "priceSizeTick" and len(payload) >= 3:
        price, size = payload[1], payload[2]
        if not is_unset(size) and float(size) != 0:
            return TickPriceSize(
                tick_type=tick_type_name(tick_type),
                price=float(price),
                size_tick_type=size_tick_type_name(tick_type),
                size=float(size),
            )
        return TickPrice(tick_type=tick_type_name(tick_type), price=float(price))
    if name == "tickSize" and len(payload) >= 2:
        return TickSize(tick_type=tick_type_name(tick_type), size=float(payload[1]))
    if name == "tickString" and len(payload) >= 2:
        return TickString(tick_type=tick_type_name(tick_type), value=str(payload[1]))
    if name == "tickGeneric" and len(payload) >= 2:
        return TickGeneric(tick_type=tick_type_name(tick_type), value=float(payload[1]))
    return None


def _contract_ref(contract: object) -> ContractRef:
    symbol = getattr(contract, "symbol", None) or getattr(contract, "localSymbol", None) or ""
    con_id = getattr(contract, "conId", None)
    try:
        con_id = int(con_id) if con_id else None
    except (TypeError, ValueError):
        con_id = None
    return ContractRef(
        symbol=str(symbol),
        sec_type=str(getattr(contract, "secType", None) or ""),
        exchange=str(getattr(contract, "exchange", None) or ""),
        currency=str(getattr(contract, "currency", None) or ""),
        con_id=con_id,
    )
