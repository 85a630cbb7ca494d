from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Awaitable, Optional

from plat_ibkr.adapters.broker._ib_client import IB_CLIENT_BACKEND, UNSET_DOUBLE

# IB TickType ids to their API names.
_TICK_TYPE_NAMES: dict[int, str] = {
    0: "BidSize",
    1: "Bid",
    2: "Ask",
    3: "AskSize",
    4: "Last",
    5: "LastSize",
    6: "High",
    7: "Low",
    8: "Volume",
    9: "Close",
    10: "BidOption",
    11: "AskOption",
    12: "LastOption",
    13: "ModelOption",
    14: "Open",
    15: "Low13Week",
    16: "High13Week",
    17: "Low26Week",
    18: "High26Week",
    19: "Low52Week",
    20: "High52Week",
    21: "AvgVolume",
    22: "OpenInterest",
    23: "OptionHistoricalVol",
    24: "OptionImpliedVol",
    27: "OptionCallOpenInterest",
    28: "OptionPutOpenInterest",
    29: "OptionCallVolume",
    30: "OptionPutVolume",
    31: "IndexFuturePremium",
    32: "BidExch",
    33: "AskExch",
    34: "AuctionVolume",
    35: "AuctionPrice",
    36: "AuctionImbalance",
    37: "MarkPrice",
    45: "LastTimestamp",
    46: "Shortable",
    48: "RtVolume",
    49: "Halted",
    54: "TradeCount",
    55: "TradeRate",
    56: "VolumeRate",
    57: "LastRthTrade",
    66: "DelayedBid",
    67: "DelayedAsk",
    68: "DelayedLast",
    69: "DelayedBidSize",
    70: "DelayedAskSize",
    71: "DelayedLastSize",
    72: "DelayedHigh",
    73: "DelayedLow",
    74: "DelayedVolume",
    75: "DelayedClose",
    76: "DelayedOpen",
}

# Price tick -> the size tick IB reports alongside it.
_SIZE_TICK_FOR_PRICE: dict[int, int] = {
    1: 0,
    2: 3,
    4: 5,
    66: 69,
    67: 70,
    68: 71,
}


def tick_type_name(tick_type: object) -> str:
    try:
        code = int(tick_type)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return str(tick_type)
    return _TICK_TYPE_NAMES.get(code, f"Tick{code}")


def size_tick_type_name(price_tick_type: object) -> str:
    try:
        code = int(price_tick_type)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return str(price_tick_type)
    return tick_type_name(_SIZE_TICK_FOR_PRICE.get(code, code))


def is_unset(value: object) -> bool:
    if value is None:
        return True
    try:
        as_float = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return True
    return as_float != as_float or as_float == UNSET_DOUBLE


def start_snapshot_request(
    ib: object,
    req_id: int,
    contract: object,
    *,
    generic_ticks: str = "",
    regulatory: bool = False,
) -> object:
    """Send a snapshot reqMktData under a request id this process controls.

    The ticker is registered with the IB wrapper so its own bookkeeping keeps
    working while the callbacks are also routed to us.
    """
    client = getattr(ib, "client", None)
    wrapper = getattr(ib, "wrapper", None)
    start_ticker = getattr(wrapper, "startTicker", None) if wrapper is not None else None
    req_mkt_data = getattr(client, "reqMktData", None) if client is not None else None
    if not callable(start_ticker) or not callable(req_mkt_data):
        raise RuntimeError("IB client does not support low-level market data requests")

    ticker = start_ticker(req_id, contract, "mktData")
    req_mkt_data(req_id, contract, generic_ticks, True, regulatory, [])
    return ticker


def end_snapshot_request(
    ib: object,
    req_id: int,
    ticker: object,
    *,
    cancel_on_wire: bool,
) -> None:
    wrapper = getattr(ib, "wrapper", None)
    end_ticker = getattr(wrapper, "endTicker", None) if wrapper is not None else None
    if callable(end_ticker) and ticker is not None:
        end_ticker(ticker, "mktData")
    if cancel_on_wire:
        client = getattr(ib, "client", None)
        cancel_mkt_data = getattr(client, "cancelMktData", None) if client is not None else None
        if callable(cancel_mkt_data):
            cancel_mkt_data(req_id)


def request_market_data_type(ib: object, market_data_type: Optional[int]) -> bool:
    if not market_data_type:
        return False
    req_type = getattr(ib, "reqMarketDataType", None)
    if not callable(req_type):
        return False
    req_type(int(market_data_type))
    return True


def silence_ib_client_loggers(*, logger_names: Iterable[str] | None = None) -> tuple[str, ...]:
    if logger_names is None:
        names: tuple[str, ...] = tuple(dict.fromkeys((IB_CLIENT_BACKEND, "ib_async", "ib_insync")))
    else:
        names = tuple(dict.fromkeys(str(name) for name in logger_names if str(name).strip()))

    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(logging.CRITICAL)
        logger.propagate = False
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
    return names


async def await_with_timeout(awaitable: Awaitable[object], *, timeout: float | None) -> object:
    if timeout is not None and timeout > 0:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    return await awaitable


__all__ = [
    "await_with_timeout",
    "end_snapshot_request",
    "is_unset",
    "request_market_data_type",
    "silence_ib_client_loggers",
    "size_tick_type_name",
    "start_snapshot_request",
    "tick_type_name",
]
