from __future__ import annotations

import asyncio
from typing import Any

import pytest

from plat_ibkr.adapters.broker.ibkr_connection import (
    POSITIONS_ROUTE,
    IBKRConnection,
    IBKRConnectionConfig,
)
from plat_ibkr.core.ops.events import (
    IbGatewayLog,
    IbkrConnectionAttempt,
    IbkrConnectionClosed,
    IbkrConnectionEstablished,
    IbkrConnectionFailed,
)
from plat_ibkr.core.report.errors import GatewayConnectionError


class _FakeWrapper:
    def __init__(self) -> None:
        self.errors: list[tuple] = []
        self.positions: list[tuple] = []
        self.ticks: list[tuple] = []

    def error(self, *args: Any) -> None:
        self.errors.append(args)

    def position(self, *args: Any) -> None:
        self.positions.append(args)

    def tickSize(self, *args: Any) -> None:
        self.ticks.append(args)


class _FakeIb:
    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self.wrapper = _FakeWrapper()
        self._fail_with = fail_with
        self._connected = False
        self.connect_calls: list[tuple] = []

    async def connectAsync(self, host, port, *, clientId, timeout, readonly) -> None:
        self.connect_calls.append((host, port, clientId, timeout, readonly))
        if self._fail_with is not None:
            raise self._fail_with
        self._connected = True

    def isConnected(self) -> bool:
        return self._connected

    def disconnect(self) -> None:
        self._connected = False

    def serverVersion(self) -> int:
        return 176


def _config() -> IBKRConnectionConfig:
    return IBKRConnectionConfig(host="127.0.0.1", port=4002, client_id=100, readonly=True, timeout=2.0)


def test_config_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "IBKR_HOST",
        "IBKR_PORT",
        "IBKR_CLIENT_ID",
        "IBKR_READONLY",
        "IBKR_TIMEOUT",
        "IBKR_MARKET_DATA_TYPE",
    ):
        monkeypatch.delenv(name, raising=False)

    config = IBKRConnectionConfig.from_env()

    assert config.address == "127.0.0.1:4002"
    assert config.client_id == 100
    assert config.readonly is True
    assert config.market_data_type is None


def test_config_from_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IBKR_HOST", "10.0.0.5")
    monkeypatch.setenv("IBKR_PORT", "7497")
    monkeypatch.setenv("IBKR_MARKET_DATA_TYPE", "3")
    monkeypatch.setenv("IBKR_READONLY", "0")

    config = IBKRConnectionConfig.from_env()

    assert config.address == "10.0.0.5:7497"
    assert config.market_data_type == 3
    assert config.readonly is False


def test_connect_logs_attempt_and_established_then_disconnect() -> None:
    events: list[object] = []
    ib = _FakeIb()
    connection = IBKRConnection(_config(), ib=ib, event_logger=events.append)

    asyncio.run(connection.connect())
    connection.disconnect()

    assert ib.connect_calls == [("127.0.0.1", 4002, 100, 2.0, True)]
    assert [type(event) for event in events] == [
        IbkrConnectionAttempt,
        IbkrConnectionEstablished,
        IbkrConnectionClosed,
    ]
    assert events[1].server_version == 176


def test_connect_failure_raises_gateway_connection_error() -> None:
    events: list[object] = []
    ib = _FakeIb(fail_with=ConnectionRefusedError(111, "Connect call failed"))
    connection = IBKRConnection(_config(), ib=ib, event_logger=events.append)

    with pytest.raises(GatewayConnectionError) as excinfo:
        asyncio.run(connection.connect())

    assert "Connect call failed" in str(excinfo.value)
    assert isinstance(events[-1], IbkrConnectionFailed)
    assert events[-1].error_type == "ConnectionRefusedError"


def test_connect_timeout_message_falls_back_to_type_name() -> None:
    ib = _FakeIb(fail_with=TimeoutError())
    connection = IBKRConnection(_config(), ib=ib)

    with pytest.raises(GatewayConnectionError, match="TimeoutError"):
        asyncio.run(connection.connect())


def test_error_filter_logs_and_notifies_subscribers() -> None:
    gateway_events: list[object] = []
    seen: list[tuple] = []
    ib = _FakeIb()
    connection = IBKRConnection(_config(), ib=ib, gateway_logger=gateway_events.append)
    unsubscribe = connection.subscribe_gateway_messages(lambda *payload: seen.append(payload))

    ib.wrapper.error(7, 354, "Requested market data is not subscribed.", "")
    ib.wrapper.error(8, 162, "Historical Market Data Service error message:API historical data query cancelled: 8")
    unsubscribe()
    ib.wrapper.error(9, 200, "No security definition has been found")

    assert seen == [
        (7, 354, "Requested market data is not subscribed.", ""),
        (8, 162, "Historical Market Data Service error message:API historical data query cancelled: 8", None),
    ]
    assert isinstance(gateway_events[0], IbGatewayLog)
    assert len(gateway_events) == 3
    # 162 "query cancelled" is swallowed before reaching the IB wrapper.
    assert [args[1] for args in ib.wrapper.errors] == [354, 200]


def test_callback_router_dispatches_by_request_id_and_positions_route() -> None:
    ib = _FakeIb()
    connection = IBKRConnection(_config(), ib=ib)
    routed: list[tuple] = []
    unroute_tick = connection.route_callbacks(42, lambda name, payload: routed.append((name, payload)))
    connection.route_callbacks(POSITIONS_ROUTE, lambda name, payload: routed.append((name, payload)))

    ib.wrapper.tickSize(42, 8, 100.0)
    ib.wrapper.tickSize(43, 8, 200.0)
    ib.wrapper.position("DU1", "contract", 1.0, 2.0)
    unroute_tick()
    ib.wrapper.tickSize(42, 8, 300.0)

    assert routed == [
        ("tickSize", (8, 100.0)),
        ("position", ("DU1", "contract", 1.0, 2.0)),
    ]
    assert len(ib.wrapper.ticks) == 3
    assert len(ib.wrapper.positions) == 1


def test_router_is_installed_once_across_reconnects() -> None:
    ib = _FakeIb()
    connection = IBKRConnection(_config(), ib=ib)
    routed: list[str] = []
    connection.route_callbacks(1, lambda name, _payload: routed.append(name))

    asyncio.run(connection.connect())
    ib.wrapper.tickSize(1, 0, 5.0)

    assert routed == ["tickSize"]
    assert len(ib.wrapper.ticks) == 1


def test_route_conflict_raises() -> None:
    connection = IBKRConnection(_config(), ib=_FakeIb())
    connection.route_callbacks(5, lambda *_args: None)

    with pytest.raises(RuntimeError):
        connection.route_callbacks(5, lambda *_args: None)
