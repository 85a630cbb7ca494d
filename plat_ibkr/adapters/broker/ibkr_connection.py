from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Hashable, Optional, Tuple

from loguru import logger

from plat_ibkr.adapters.broker._ib_client import IB
from plat_ibkr.adapters.broker._ib_compat import silence_ib_client_loggers
from plat_ibkr.core.ops.events import (
    IbGatewayLog,
    IbkrConnectionAttempt,
    IbkrConnectionClosed,
    IbkrConnectionEstablished,
    IbkrConnectionFailed,
)
from plat_ibkr.core.report.errors import GatewayConnectionError

GatewayMessageHandler = Callable[[Optional[int], Optional[int], Optional[str], Optional[str]], None]
CallbackHandler = Callable[[str, tuple], None]

POSITIONS_ROUTE = "positions"

# Wrapper callbacks routed to subscriptions. True means the first argument is the request id.
_ROUTED_CALLBACKS: dict[str, bool] = {
    "accountSummary": True,
    "accountSummaryEnd": True,
    "position": False,
    "positionEnd": False,
    "priceSizeTick": True,
    "tickSize": True,
    "tickString": True,
    "tickGeneric": True,
    "tickSnapshotEnd": True,
}


@dataclass
class IBKRConnectionConfig:
    host: str
    port: int
    client_id: int
    readonly: bool
    timeout: float
    market_data_type: Optional[int] = None

    @classmethod
    def from_env(cls) -> "IBKRConnectionConfig":
        market_data_type = os.getenv("IBKR_MARKET_DATA_TYPE", "").strip()
        return cls(
            host=os.getenv("IBKR_HOST", "127.0.0.1"),
            port=int(os.getenv("IBKR_PORT", "4002")),
            client_id=int(os.getenv("IBKR_CLIENT_ID", "100")),
            readonly=os.getenv("IBKR_READONLY", "1") == "1",
            timeout=float(os.getenv("IBKR_TIMEOUT", "5")),
            market_data_type=int(market_data_type) if market_data_type else None,
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class IBKRConnection:
    def __init__(
        self,
        config: IBKRConnectionConfig,
        ib: Optional[IB] = None,
        *,
        gateway_logger: Optional[Callable[[object], None]] = None,
        event_logger: Optional[Callable[[object], None]] = None,
    ) -> None:
        self._config = config
        self._ib = ib or IB()
        self._gateway_logger = gateway_logger
        self._event_logger = event_logger
        self._gateway_message_subscribers: list[GatewayMessageHandler] = []
        self._callback_routes: dict[Hashable, CallbackHandler] = {}
        self._install_error_filter()
        self._install_callback_router()

    @property
    def ib(self) -> IB:
        return self._ib

    @property
    def config(self) -> IBKRConnectionConfig:
        return self._config

    def is_connected(self) -> bool:
        return bool(self._ib.isConnected())

    async def connect(self) -> IBKRConnectionConfig:
        config = self._config
        self._log_event(
            IbkrConnectionAttempt.now(
                host=config.host,
                port=config.port,
                client_id=config.client_id,
                readonly=config.readonly,
            )
        )
        try:
            await self._ib.connectAsync(
                config.host,
                config.port,
                clientId=config.client_id,
                timeout=config.timeout,
                readonly=config.readonly,
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            self._log_event(
                IbkrConnectionFailed.now(
                    host=config.host,
                    port=config.port,
                    client_id=config.client_id,
                    error_type=type(exc).__name__,
                    message=message,
                )
            )
            raise GatewayConnectionError(message) from exc

        self._install_error_filter()
        self._install_callback_router()
        server_version = None
        try:
            server_version = int(self._ib.serverVersion())
        except Exception:
            server_version = None
        logger.debug("Connected to {} (server version {})", config.address, server_version)
        self._log_event(
            IbkrConnectionEstablished.now(
                host=config.host,
                port=config.port,
                client_id=config.client_id,
                readonly=config.readonly,
                server_version=server_version,
            )
        )
        return config

    def disconnect(self) -> None:
        if self._ib.isConnected():
            self._ib.disconnect()
            self._log_event(
                IbkrConnectionClosed.now(
                    host=self._config.host,
                    port=self._config.port,
                    client_id=self._config.client_id,
                    reason="disconnect",
                )
            )

    def subscribe_gateway_messages(self, handler: GatewayMessageHandler) -> Callable[[], None]:
        self._gateway_message_subscribers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._gateway_message_subscribers:
                self._gateway_message_subscribers.remove(handler)

        return _unsubscribe

    def route_callbacks(self, key: Hashable, handler: CallbackHandler) -> Callable[[], None]:
        """Send wrapper callbacks for a request id (or POSITIONS_ROUTE) to handler."""
        if key in self._callback_routes:
            raise RuntimeError(f"Callbacks for {key!r} are already routed")
        self._callback_routes[key] = handler

        def _unroute() -> None:
            if self._callback_routes.get(key) is handler:
                del self._callback_routes[key]

        return _unroute

    def _install_error_filter(self) -> None:
        silence_ib_client_loggers()
        for wrapper in self._wrappers():
            current_error = getattr(wrapper, "error", None)
            if not callable(current_error):
                continue
            if getattr(current_error, "_plat_filtered", False):
                continue

            def _filtered_error(*args, _original=current_error, **kwargs) -> None:
                payload = _parse_gateway_error(args, kwargs)
                if self._gateway_logger:
                    self._gateway_logger(
                        IbGatewayLog.now(
                            code=payload[1],
                            message=payload[2],
                            req_id=payload[0],
                            advanced=payload[3],
                            host=self._config.host,
                            port=self._config.port,
                            client_id=self._config.client_id,
                        )
                    )
                self._notify_gateway_message_subscribers(payload)
                if _should_suppress_error(payload):
                    return
                _original(*args, **kwargs)

            _filtered_error._plat_filtered = True  # type: ignore[attr-defined]
            wrapper.error = _filtered_error

    def _install_callback_router(self) -> None:
        for wrapper in self._wrappers():
            for name, keyed in _ROUTED_CALLBACKS.items():
                current = getattr(wrapper, name, None)
                if not callable(current):
                    continue
                if getattr(current, "_plat_routed", False):
                    continue

                def _routed(*args, _original=current, _name=name, _keyed=keyed, **kwargs):
                    if _keyed:
                        key = _maybe_int(args[0]) if args else None
                        payload = tuple(args[1:])
                    else:
                        key = POSITIONS_ROUTE
                        payload = tuple(args)
                    handler = self._callback_routes.get(key)
                    if handler is not None:
                        try:
                            handler(_name, payload)
                        except Exception:
                            logger.exception("Callback handler failed for {} ({})", key, _name)
                    return _original(*args, **kwargs)

                _routed._plat_routed = True  # type: ignore[attr-defined]
                setattr(wrapper, name, _routed)

    def _wrappers(self) -> list[object]:
        wrappers = []
        wrapper = getattr(self._ib, "wrapper", None)
        if wrapper is not None:
            wrappers.append(wrapper)
        client = getattr(self._ib, "client", None)
        client_wrapper = getattr(client, "wrapper", None) if client else None
        if client_wrapper is not None and client_wrapper not in wrappers:
            wrappers.append(client_wrapper)
        return wrappers

    def _log_event(self, event: object) -> None:
        if self._event_logger:
            self._event_logger(event)

    def _notify_gateway_message_subscribers(
        self,
        payload: Tuple[Optional[int], Optional[int], Optional[str], Optional[str]],
    ) -> None:
        if not self._gateway_message_subscribers:
            return
        req_id, code, message, advanced = payload
        for handler in list(self._gateway_message_subscribers):
            try:
                handler(req_id, code, message, advanced)
            except Exception:
                logger.exception("Gateway message handler failed for reqId={}", req_id)


def _should_suppress_error(
    payload: Tuple[Optional[int], Optional[int], Optional[str], Optional[str]],
) -> bool:
    _req_id, code, message, _advanced = payload
    if code == 300:
        # "Can't find EId" after cancelling a snapshot that already ended.
        return True
    if code != 162:
        return False
    if not message:
        return True
    return "query cancelled" in message.lower()


def _parse_gateway_error(
    args: tuple[object, ...],
    kwargs: dict[str, object],
) -> Tuple[Optional[int], Optional[int], Optional[str], Optional[str]]:
    req_id: Optional[int] = None
    error_code: Optional[int] = None
    error_msg: Optional[str] = None
    advanced: Optional[str] = None

    if len(args) >= 3:
        req_id = _maybe_int(args[0])
        error_code = _maybe_int(args[1])
        error_msg = str(args[2]) if args[2] is not None else None
        if len(args) >= 4:
            advanced = str(args[3]) if args[3] is not None else None
    else:
        req_id = _maybe_int(kwargs.get("reqId"))
        error_code = _maybe_int(kwargs.get("errorCode"))
        error_msg = (
            str(kwargs.get("errorString"))
            if kwargs.get("errorString") is not None
            else None
        )
        if error_msg is None and kwargs.get("errorMsg") is not None:
            error_msg = str(kwargs.get("errorMsg"))
        if kwargs.get("advancedOrderRejectJson") is not None:
            advanced = str(kwargs.get("advancedOrderRejectJson"))

    return req_id, error_code, error_msg, advanced


def _maybe_int(value: object) -> Optional[int]:
    try:
        return int(value) if value is not None else None  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
