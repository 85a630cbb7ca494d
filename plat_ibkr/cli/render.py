from __future__ import annotations

import csv
import json
import sys
from enum import Enum
from typing import Optional, Sequence, TextIO

from plat_ibkr.core.report.models import (
    AccountSummaryRow,
    MarketDataRow,
    PositionRow,
    ReportResult,
    row_field_names,
)

_BANNER = "=" * 50


class OutputFormat(str, Enum):
    TEXT = "text"
    JSON = "json"
    CSV = "csv"


def render_report(
    report: ReportResult,
    fmt: OutputFormat,
    *,
    symbol: str,
    market_data_requested: bool = True,
    out: Optional[TextIO] = None,
    err: Optional[TextIO] = None,
) -> None:
    """Write the report to ``out``; CSV section labels go to ``err``.

    Write errors propagate to the caller.
    """
    out = out or sys.stdout
    err = err or sys.stderr
    if fmt is OutputFormat.TEXT:
        lines = format_text_report(report, symbol=symbol, market_data_requested=market_data_requested)
        out.write("\n".join(lines))
        out.write("\n")
    elif fmt is OutputFormat.JSON:
        out.write(format_json_report(report))
        out.write("\n")
    elif fmt is OutputFormat.CSV:
        write_csv_report(report, out=out, err=err)
    else:
        raise ValueError(f"Unsupported output format: {fmt!r}")
    out.flush()


def format_text_report(
    report: ReportResult,
    *,
    symbol: str,
    market_data_requested: bool = True,
) -> list[str]:
    lines: list[str] = []

    lines.extend(_section_header("ACCOUNT SUMMARY"))
    if not report.account_summary:
        lines.append("  (no data)")
    for row in report.account_summary:
        lines.append(_account_summary_line(row))
    lines.append("")

    lines.extend(_section_header("POSITIONS"))
    if not report.positions:
        lines.append("  (no data - no open positions)")
    for row in report.positions:
        lines.append(
            f"  {row.position:>8.2f} {row.symbol} @ ${row.average_cost:.2f} avg "
            f"(value: ${row.market_value:.2f})"
        )
    lines.append("")

    lines.extend(_section_header(f"MARKET DATA: {symbol}"))
    if not report.market_data:
        if market_data_requested:
            lines.append("  (no data - may need market data subscription)")
        else:
            lines.append("  (no data - market data not requested)")
    for row in report.market_data:
        lines.append(f"  {row.tick_type}: {row.value:.2f}")
    lines.append("")

    lines.append("Done!")
    return lines


def format_json_report(report: ReportResult) -> str:
    return json.dumps(report.to_dict(), indent=2)


def write_csv_report(report: ReportResult, *, out: TextIO, err: TextIO) -> int:
    """Write one CSV table per non-empty collection and return the table count.

    Empty collections are skipped entirely so no header-only table or stray
    separator is produced.
    """
    sections: list[tuple[str, type, Sequence[object]]] = [
        ("Account Summary", AccountSummaryRow, report.account_summary),
        ("Positions", PositionRow, report.positions),
        ("Market Data", MarketDataRow, report.market_data),
    ]
    written = 0
    for label, row_type, rows in sections:
        if not rows:
            continue
        if written:
            out.write("\n")
        out.flush()
        err.write(f"# {label}\n")
        err.flush()
        _write_csv_table(out, row_type, rows)
        written += 1
    return written


def _write_csv_table(out: TextIO, row_type: type, rows: Sequence[object]) -> None:
    field_names = row_field_names(row_type)
    writer = csv.DictWriter(out, fieldnames=field_names, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({name: getattr(row, name) for name in field_names})


def _section_header(title: str) -> list[str]:
    return [_BANNER, title, _BANNER]


def _account_summary_line(row: AccountSummaryRow) -> str:
    if row.currency:
        return f"  {row.account}: {row.tag} = {row.value} {row.currency}"
    return f"  {row.account}: {row.tag} = {row.value}"
