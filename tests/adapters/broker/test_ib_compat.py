from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from plat_ibkr.adapters.broker._ib_compat import (
    end_snapshot_request,
    is_unset,
    request_market_data_type,
    silence_ib_client_loggers,
    size_tick_type_name,
    start_snapshot_request,
    tick_type_name,
)


def test_tick_type_names_cover_live_and_delayed_ticks() -> None:
    assert tick_type_name(1) == "Bid"
    assert tick_type_name("4") == "Last"
    assert tick_type_name(75) == "DelayedClose"
    assert tick_type_name(1000) == "Tick1000"
    assert tick_type_name("bogus") == "bogus"


def test_size_tick_type_name_pairs_price_with_size() -> None:
    assert size_tick_type_name(1) == "BidSize"
    assert size_tick_type_name(67) == "DelayedAskSize"
    assert size_tick_type_name(9) == "Close"


def test_is_unset_recognizes_ib_sentinels() -> None:
    assert is_unset(None)
    assert is_unset(float("nan"))
    assert is_unset(1.7976931348623157e308)
    assert not is_unset(0.0)
    assert not is_unset(12.5)


def test_start_and_end_snapshot_request_use_low_level_client() -> None:
    calls: list[tuple] = []

    class _Client:
        def reqMktData(self, *args: object) -> None:
            calls.append(("reqMktData", *args))

        def cancelMktData(self, req_id: int) -> None:
            calls.append(("cancelMktData", req_id))

    class _Wrapper:
        def startTicker(self, req_id: int, contract: object, tick_type: str) -> object:
            calls.append(("startTicker", req_id, tick_type))
            return "ticker"

        def endTicker(self, ticker: object, tick_type: str) -> None:
            calls.append(("endTicker", ticker, tick_type))

    ib = SimpleNamespace(client=_Client(), wrapper=_Wrapper())
    contract = object()

    ticker = start_snapshot_request(ib, 7, contract)
    end_snapshot_request(ib, 7, ticker, cancel_on_wire=True)

    assert ticker == "ticker"
    assert calls == [
        ("startTicker", 7, "mktData"),
        ("reqMktData", 7, contract, "", True, False, []),
        ("endTicker", "ticker", "mktData"),
        ("cancelMktData", 7),
    ]


def test_start_snapshot_request_requires_low_level_api() -> None:
    with pytest.raises(RuntimeError):
        start_snapshot_request(SimpleNamespace(), 1, object())


def test_request_market_data_type_only_when_configured() -> None:
    requested: list[int] = []
    ib = SimpleNamespace(reqMarketDataType=requested.append)

    assert request_market_data_type(ib, None) is False
    assert request_market_data_type(ib, 3) is True
    assert requested == [3]


def test_silence_ib_client_loggers_applies_requested_logger_names() -> None:
    logger_name = "plat_ibkr.tests.ib_compat.logger"
    logger = logging.getLogger(logger_name)
    logger.handlers = []
    logger.setLevel(logging.INFO)
    logger.propagate = True

    applied = silence_ib_client_loggers(logger_names=[logger_name])

    assert applied == (logger_name,)
    assert logger.level == logging.CRITICAL
    assert logger.propagate is False
    assert logger.handlers
