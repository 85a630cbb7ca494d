from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Callable, Optional, Sequence, TextIO

from dotenv import load_dotenv
from loguru import logger

from plat_ibkr.adapters.broker.ibkr_connection import IBKRConnection, IBKRConnectionConfig
from plat_ibkr.adapters.broker.ibkr_session import IBKRGatewaySession
from plat_ibkr.adapters.logging.jsonl_logger import JsonlEventLogger
from plat_ibkr.cli.render import OutputFormat, render_report
from plat_ibkr.core.report.errors import GatewayConnectionError
from plat_ibkr.core.report.ports import GatewaySession
from plat_ibkr.core.report.service import ReportService

_CONNECTION_HELP = (
    "\nMake sure TWS or IB Gateway is running with API enabled:\n"
    "  - TWS: Configure > API > Settings > Enable ActiveX and Socket Clients\n"
    "  - Gateway: Port 4001 (live) or 4002 (paper)"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plat-ibkr",
        description="IBKR account summary, positions and market data report",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=[fmt.value for fmt in OutputFormat],
        default=OutputFormat.TEXT.value,
        help="output format (default: text)",
    )
    parser.add_argument(
        "-s",
        "--symbol",
        default="AAPL",
        help="symbol for market data (default: AAPL)",
    )
    parser.add_argument(
        "--no-market-data",
        action="store_true",
        help="skip the market data snapshot",
    )
    parser.add_argument(
        "--concurrent",
        action="store_true",
        help="collect account summary, positions and market data concurrently",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="seconds to wait for each subscription to finish; 0 waits forever "
        "(default: IBKR_REQUEST_TIMEOUT or 30)",
    )
    return parser


def configure_logging(level: Optional[str] = None) -> None:
    # stdout carries the report, so logs go to stderr.
    logger.remove()
    logger.add(sys.stderr, level=level or os.getenv("LOG_LEVEL", "WARNING"))


def resolve_timeout(value: Optional[float]) -> Optional[float]:
    if value is None:
        value = float(os.getenv("IBKR_REQUEST_TIMEOUT", "30"))
    if value <= 0:
        return None
    return value


async def run(
    args: argparse.Namespace,
    *,
    connection: Optional[IBKRConnection] = None,
    session_factory: Optional[Callable[..., GatewaySession]] = None,
    event_logger: Optional[Callable[[object], None]] = None,
    out: Optional[TextIO] = None,
    err: Optional[TextIO] = None,
) -> int:
    out = out or sys.stdout
    err = err or sys.stderr
    fmt = OutputFormat(args.format)
    narrate = fmt is OutputFormat.TEXT

    if connection is None:
        connection = IBKRConnection(
            IBKRConnectionConfig.from_env(),
            gateway_logger=event_logger,
            event_logger=event_logger,
        )
    if session_factory is None:
        session_factory = IBKRGatewaySession

    if narrate:
        print(f"Connecting to TWS/Gateway at {connection.config.address}...", file=err)
    try:
        await connection.connect()
    except GatewayConnectionError as exc:
        print(f"Connection failed: {exc}", file=err)
        print(_CONNECTION_HELP, file=err)
        return 1
    if narrate:
        print("Connected successfully!\n", file=err)

    include_market_data = not args.no_market_data
    try:
        service = ReportService(
            session_factory(connection, event_logger=event_logger),
            timeout=resolve_timeout(args.timeout),
            event_logger=event_logger,
        )
        report = await service.collect(
            args.symbol,
            include_market_data=include_market_data,
            concurrent=args.concurrent,
        )
    finally:
        connection.disconnect()

    try:
        render_report(
            report,
            fmt,
            symbol=args.symbol,
            market_data_requested=include_market_data,
            out=out,
            err=err,
        )
    except OSError as exc:
        logger.error("Failed to write report: {}", exc)
        return 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    configure_logging()
    args = build_parser().parse_args(argv)
    log_path = os.getenv("IBKR_EVENT_LOG_PATH")
    event_logger = JsonlEventLogger(log_path).handle if log_path else None
    return asyncio.run(run(args, event_logger=event_logger))


if __name__ == "__main__":
    sys.exit(main())
