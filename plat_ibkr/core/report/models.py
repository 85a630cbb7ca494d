from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any

from plat_ibkr.core.report.messages import AccountSummary, PositionUpdate


@dataclass(frozen=True)
class AccountSummaryRow:
    account: str
    tag: str
    value: str
    currency: str = ""

    @classmethod
    def from_summary(cls, summary: AccountSummary) -> "AccountSummaryRow":
        return cls(
            account=summary.account,
            tag=summary.tag,
            value=summary.value,
            currency=summary.currency,
        )


@dataclass(frozen=True)
class PositionRow:
    account: str
    symbol: str
    position: float
    average_cost: float
    market_value: float

    @classmethod
    def from_update(cls, update: PositionUpdate) -> "PositionRow":
        # Notional value from cost basis, not a live mark.
        return cls(
            account=update.account,
            symbol=update.contract.symbol,
            position=update.position,
            average_cost=update.average_cost,
            market_value=update.position * update.average_cost,
        )


@dataclass(frozen=True)
class MarketDataRow:
    symbol: str
    tick_type: str
    value: float


@dataclass(frozen=True)
class ReportResult:
    account_summary: list[AccountSummaryRow] = field(default_factory=list)
    positions: list[PositionRow] = field(default_factory=list)
    market_data: list[MarketDataRow] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "account_summary": [asdict(row) for row in self.account_summary],
            "positions": [asdict(row) for row in self.positions],
            "market_data": [asdict(row) for row in self.market_data],
        }


def row_field_names(row_type: type) -> list[str]:
    return [item.name for item in fields(row_type)]
