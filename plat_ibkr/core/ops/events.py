from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IbkrConnectionAttempt:
    host: str
    port: int
    client_id: int
    readonly: bool
    timestamp: datetime

    @classmethod
    def now(cls, *, host: str, port: int, client_id: int, readonly: bool) -> "IbkrConnectionAttempt":
        return cls(host=host, port=port, client_id=client_id, readonly=readonly, timestamp=_now())


@dataclass(frozen=True)
class IbkrConnectionEstablished:
    host: str
    port: int
    client_id: int
    readonly: bool
    timestamp: datetime
    server_version: Optional[int] = None

    @classmethod
    def now(
        cls,
        *,
        host: str,
        port: int,
        client_id: int,
        readonly: bool,
        server_version: Optional[int] = None,
    ) -> "IbkrConnectionEstablished":
        return cls(
            host=host,
            port=port,
            client_id=client_id,
            readonly=readonly,
            timestamp=_now(),
            server_version=server_version,
        )


@dataclass(frozen=True)
class IbkrConnectionFailed:
    host: str
    port: int
    client_id: int
    error_type: str
    message: str
    timestamp: datetime

    @classmethod
    def now(
        cls,
        *,
        host: str,
        port: int,
        client_id: int,
        error_type: str,
        message: str,
    ) -> "IbkrConnectionFailed":
        return cls(
            host=host,
            port=port,
            client_id=client_id,
            error_type=error_type,
            message=message,
            timestamp=_now(),
        )


@dataclass(frozen=True)
class IbkrConnectionClosed:
    host: str
    port: int
    client_id: int
    reason: str
    timestamp: datetime

    @classmethod
    def now(cls, *, host: str, port: int, client_id: int, reason: str) -> "IbkrConnectionClosed":
        return cls(host=host, port=port, client_id=client_id, reason=reason, timestamp=_now())


@dataclass(frozen=True)
class IbGatewayLog:
    code: Optional[int]
    message: Optional[str]
    req_id: Optional[int]
    timestamp: datetime
    host: Optional[str] = None
    port: Optional[int] = None
    client_id: Optional[int] = None
    advanced: Optional[str] = None

    @classmethod
    def now(
        cls,
        *,
        code: Optional[int],
        message: Optional[str],
        req_id: Optional[int],
        host: Optional[str] = None,
        port: Optional[int] = None,
        client_id: Optional[int] = None,
        advanced: Optional[str] = None,
    ) -> "IbGatewayLog":
        return cls(
            code=code,
            message=message,
            req_id=req_id,
            timestamp=_now(),
            host=host,
            port=port,
            client_id=client_id,
            advanced=advanced,
        )


@dataclass(frozen=True)
class SubscriptionOpened:
    kind: str
    timestamp: datetime
    req_id: Optional[int] = None
    symbol: Optional[str] = None

    @classmethod
    def now(
        cls,
        *,
        kind: str,
        req_id: Optional[int] = None,
        symbol: Optional[str] = None,
    ) -> "SubscriptionOpened":
        return cls(kind=kind, timestamp=_now(), req_id=req_id, symbol=symbol)


@dataclass(frozen=True)
class SubscriptionFailed:
    kind: str
    message: str
    timestamp: datetime
    code: Optional[int] = None
    rows_collected: int = 0

    @classmethod
    def now(
        cls,
        *,
        kind: str,
        message: str,
        code: Optional[int] = None,
        rows_collected: int = 0,
    ) -> "SubscriptionFailed":
        return cls(
            kind=kind,
            message=message,
            timestamp=_now(),
            code=code,
            rows_collected=rows_collected,
        )


@dataclass(frozen=True)
class SubscriptionCompleted:
    kind: str
    rows_collected: int
    timestamp: datetime

    @classmethod
    def now(cls, *, kind: str, rows_collected: int) -> "SubscriptionCompleted":
        return cls(kind=kind, rows_collected=rows_collected, timestamp=_now())
