from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ContractRef:
    symbol: str
    sec_type: str = ""
    exchange: str = ""
    currency: str = ""
    con_id: Optional[int] = None


@dataclass(frozen=True)
class AccountSummary:
    account: str
    tag: str
    value: str
    currency: str = ""


@dataclass(frozen=True)
class AccountSummaryEnd:
    pass


AccountSummaryMessage = Union[AccountSummary, AccountSummaryEnd]


@dataclass(frozen=True)
class PositionUpdate:
    account: str
    contract: ContractRef
    position: float
    average_cost: float


@dataclass(frozen=True)
class PositionEnd:
    pass


PositionMessage = Union[PositionUpdate, PositionEnd]


@dataclass(frozen=True)
class TickPrice:
    tick_type: str
    price: float


@dataclass(frozen=True)
class TickSize:
    tick_type: str
    size: float


@dataclass(frozen=True)
class TickPriceSize:
    tick_type: str
    price: float
    size_tick_type: str
    size: float


@dataclass(frozen=True)
class TickString:
    tick_type: str
    value: str


@dataclass(frozen=True)
class TickGeneric:
    tick_type: str
    value: float


@dataclass(frozen=True)
class TickNotice:
    """Informational gateway message tied to a market data request."""

    code: Optional[int]
    message: str


@dataclass(frozen=True)
class TickSnapshotEnd:
    pass


TickMessage = Union[
    TickPrice,
    TickSize,
    TickPriceSize,
    TickString,
    TickGeneric,
    TickNotice,
    TickSnapshotEnd,
]
