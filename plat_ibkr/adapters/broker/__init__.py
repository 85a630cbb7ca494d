"""Broker adapters for plat_ibkr."""

from plat_ibkr.adapters.broker.ibkr_connection import (
    IBKRConnection,
    IBKRConnectionConfig,
)
from plat_ibkr.adapters.broker.ibkr_session import IBKRGatewaySession, IBKRSubscription

__all__ = [
    "IBKRConnection",
    "IBKRConnectionConfig",
    "IBKRGatewaySession",
    "IBKRSubscription",
]
