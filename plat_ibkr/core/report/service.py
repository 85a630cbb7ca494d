from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from plat_ibkr.core.report.drain import (
    DEFAULT_ACCOUNT_GROUP,
    DEFAULT_SUMMARY_TAGS,
    EventLogger,
    collect_account_summary,
    collect_market_data,
    collect_positions,
)
from plat_ibkr.core.report.models import MarketDataRow, ReportResult
from plat_ibkr.core.report.ports import GatewaySession


class ReportService:
    def __init__(
        self,
        session: GatewaySession,
        *,
        timeout: Optional[float] = None,
        event_logger: Optional[EventLogger] = None,
        account_group: str = DEFAULT_ACCOUNT_GROUP,
        summary_tags: Sequence[str] = DEFAULT_SUMMARY_TAGS,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._event_logger = event_logger
        self._account_group = account_group
        self._summary_tags = tuple(summary_tags)

    async def collect(
        self,
        symbol: str,
        *,
        include_market_data: bool = True,
        concurrent: bool = False,
    ) -> ReportResult:
        """Drain all three categories into one report.

        Each collector absorbs its own request errors, so a failed category
        leaves an empty collection without affecting the others.
        """
        if concurrent:
            account_summary, positions, market_data = await asyncio.gather(
                self._account_summary(),
                self._positions(),
                self._market_data(symbol, include_market_data),
            )
        else:
            account_summary = await self._account_summary()
            positions = await self._positions()
            market_data = await self._market_data(symbol, include_market_data)
        return ReportResult(
            account_summary=account_summary,
            positions=positions,
            market_data=market_data,
        )

    async def _account_summary(self):
        return await collect_account_summary(
            self._session,
            group=self._account_group,
            tags=self._summary_tags,
            timeout=self._timeout,
            event_logger=self._event_logger,
        )

    async def _positions(self):
        return await collect_positions(
            self._session,
            timeout=self._timeout,
            event_logger=self._event_logger,
        )

    async def _market_data(self, symbol: str, include: bool) -> list[MarketDataRow]:
        if not include:
            return []
        return await collect_market_data(
            self._session,
            symbol,
            timeout=self._timeout,
            event_logger=self._event_logger,
        )
