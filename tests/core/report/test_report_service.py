from __future__ import annotations

import asyncio
from typing import Optional

from plat_ibkr.core.report.errors import SubscriptionRequestError
from plat_ibkr.core.report.messages import (
    AccountSummary,
    AccountSummaryEnd,
    ContractRef,
    PositionEnd,
    PositionUpdate,
    TickPrice,
    TickSnapshotEnd,
)
from plat_ibkr.core.report.models import ReportResult
from plat_ibkr.core.report.service import ReportService


class _ScriptedSubscription:
    def __init__(self, name: str, messages: list[object], log: list[str]) -> None:
        self._name = name
        self._messages = list(messages)
        self._log = log
        self.cancel_calls = 0

    async def next(self) -> object:
        await asyncio.sleep(0)
        return self._messages.pop(0)

    def cancel(self) -> None:
        self.cancel_calls += 1
        self._log.append(f"cancel:{self._name}")


class _ScriptedSession:
    def __init__(self, *, reject: tuple[str, ...] = ()) -> None:
        self.log: list[str] = []
        self._reject = reject
        self.subscriptions: dict[str, _ScriptedSubscription] = {}

    async def open_account_summary(self, group, tags):
        return self._open(
            "account_summary",
            [
                AccountSummary("DU123", "NetLiquidation", "10000", "USD"),
                AccountSummaryEnd(),
            ],
        )

    async def open_positions(self):
        return self._open(
            "positions",
            [
                PositionUpdate("DU123", ContractRef("AAPL"), 10.0, 150.0),
                PositionEnd(),
            ],
        )

    async def open_market_data_snapshot(self, symbol):
        return self._open("market_data", [TickPrice("Last", 190.25), TickSnapshotEnd()])

    def _open(self, name: str, messages: list[object]) -> Optional[_ScriptedSubscription]:
        self.log.append(f"open:{name}")
        if name in self._reject:
            raise SubscriptionRequestError(f"{name} rejected", code=321)
        subscription = _ScriptedSubscription(name, messages, self.log)
        self.subscriptions[name] = subscription
        return subscription


def test_sequential_collect_drains_each_category_before_opening_the_next() -> None:
    session = _ScriptedSession()

    report = asyncio.run(ReportService(session).collect("AAPL"))

    assert session.log == [
        "open:account_summary",
        "cancel:account_summary",
        "open:positions",
        "cancel:positions",
        "open:market_data",
        "cancel:market_data",
    ]
    assert len(report.account_summary) == 1
    assert report.positions[0].market_value == 1500.0
    assert report.market_data[0].tick_type == "Last"
    assert report.market_data[0].symbol == "AAPL"


def test_skipping_market_data_opens_no_snapshot() -> None:
    session = _ScriptedSession()

    report = asyncio.run(ReportService(session).collect("AAPL", include_market_data=False))

    assert "open:market_data" not in session.log
    assert report.market_data == []
    assert len(report.positions) == 1


def test_rejected_positions_leave_other_categories_intact() -> None:
    session = _ScriptedSession(reject=("positions",))

    report = asyncio.run(ReportService(session).collect("AAPL"))

    assert report.positions == []
    assert len(report.account_summary) == 1
    assert len(report.market_data) == 1
    assert "positions" not in session.subscriptions


def test_concurrent_collect_matches_sequential_result() -> None:
    sequential = asyncio.run(ReportService(_ScriptedSession()).collect("AAPL"))
    session = _ScriptedSession()
    concurrent = asyncio.run(ReportService(session).collect("AAPL", concurrent=True))

    assert concurrent == sequential
    assert all(sub.cancel_calls == 1 for sub in session.subscriptions.values())


def test_concurrent_collect_survives_a_rejected_category() -> None:
    session = _ScriptedSession(reject=("account_summary", "market_data"))

    report = asyncio.run(ReportService(session).collect("AAPL", concurrent=True))

    assert report == ReportResult(
        account_summary=[],
        positions=report.positions,
        market_data=[],
    )
    assert len(report.positions) == 1
