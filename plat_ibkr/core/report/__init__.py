"""Report domain types, ports and collectors."""

from plat_ibkr.core.report.errors import (
    GatewayConnectionError,
    SubscriptionRequestError,
    SubscriptionTimeoutError,
)
from plat_ibkr.core.report.models import (
    AccountSummaryRow,
    MarketDataRow,
    PositionRow,
    ReportResult,
)
from plat_ibkr.core.report.ports import GatewaySession, Subscription
from plat_ibkr.core.report.service import ReportService

__all__ = [
    "AccountSummaryRow",
    "GatewayConnectionError",
    "GatewaySession",
    "MarketDataRow",
    "PositionRow",
    "ReportResult",
    "ReportService",
    "Subscription",
    "SubscriptionRequestError",
    "SubscriptionTimeoutError",
]
