"""
Output formatters for jar valuation reports.

This module renders a JarSnapshot as a text report and handles CSV file
generation with timestamp-based filenames.
"""

import csv
import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, TextIO

from .models import CSV_COLUMNS, EnrichedToken, JarSnapshot


def format_quantity(amount: Decimal) -> str:
    """
    Format a token amount with full precision, trimming trailing zeros.

    Examples:
        format_quantity(Decimal("1.000000")) -> "1"
        format_quantity(Decimal("1.500000")) -> "1.5"
        format_quantity(Decimal("1E-6")) -> "0.000001"
    """
    if amount == 0:
        return "0"

    formatted = format(amount, "f")

    # Remove trailing zeros after decimal point
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")

    return formatted


def format_usd(value: float, decimals: int = 2) -> str:
    """
    Format a dollar amount with thousands separators.

    Examples:
        format_usd(6000.01) -> "$6,000.01"
        format_usd(-13999.99) -> "-$13,999.99"
    """
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.{decimals}f}"


def short_address(address: str) -> str:
    """Abbreviate an address as 0x1234...abcd."""
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


def token_to_csv_row(token: EnrichedToken) -> List[str]:
    """Convert an enriched token to a CSV row (list of strings)."""
    return [
        token.symbol,
        token.token_address,
        format_quantity(token.human_balance),
        repr(token.usd_price) if token.price_available else "",
        repr(token.usd_value),
    ]


def render_report(snapshot: Optional[JarSnapshot], is_loading: bool = False) -> str:
    """
    Render a snapshot as a plain text report.

    Args:
        snapshot: Snapshot to render; None while holdings are unavailable
        is_loading: Whether any stage is still waiting for data

    Returns:
        Multi-line report
    """
    if snapshot is None:
        return "Jar holdings unavailable (loading)."

    lines = [
        f"Cost to burn ({snapshot.burn_quantity:,} UNI): {format_usd(snapshot.burn_cost, 0)}"
        f"  @ {format_usd(snapshot.burn_price)}/UNI",
        f"Jar value: {format_usd(snapshot.total_value, 0)}  across {len(snapshot.tokens)} tokens",
        f"Net profit: {format_usd(snapshot.net_profit, 0)}"
        f"  ({'PROFITABLE' if snapshot.is_profitable else 'not profitable'})",
    ]
    if is_loading:
        lines.append("(some data is still loading)")

    lines.append("")
    lines.append("Token breakdown:")
    for token in snapshot.tokens:
        value = format_usd(token.usd_value) if token.price_available else "price unavailable"
        lines.append(
            f"  {token.symbol:<12} {short_address(token.token_address):<14} "
            f"{format_quantity(token.human_balance):>28}  {value}"
        )

    return "\n".join(lines)


def generate_timestamp() -> str:
    """
    Generate a timestamp string for filenames.

    Returns:
        Timestamp in YYYYMMDD_HHMMSS format
    """
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def generate_filename(base_path: str, timestamp: Optional[str] = None) -> str:
    """
    Generate a timestamped filename for a CSV report.

    Examples:
        generate_filename("jar.csv", "20241214_153022") -> "jar_20241214_153022.csv"
    """
    if timestamp is None:
        timestamp = generate_timestamp()

    path = Path(base_path)
    suffix = path.suffix or ".csv"
    return str(path.parent / f"{path.stem}_{timestamp}{suffix}")


def write_csv_to_stream(tokens: List[EnrichedToken], stream: TextIO) -> None:
    """
    Write tokens to a CSV stream.

    Args:
        tokens: Enriched tokens to write
        stream: File-like object to write to
    """
    writer = csv.writer(stream)
    writer.writerow(CSV_COLUMNS)

    for token in tokens:
        writer.writerow(token_to_csv_row(token))


def write_csv(snapshot: JarSnapshot, output_path: Optional[str] = None) -> Optional[str]:
    """
    Write the snapshot's tokens to a timestamped CSV file or stdout.

    Args:
        snapshot: Snapshot to export
        output_path: Base output path. If None, writes to stdout.

    Returns:
        The file written, or None when writing to stdout
    """
    if output_path is None:
        write_csv_to_stream(snapshot.tokens, sys.stdout)
        return None

    filename = generate_filename(output_path)
    with open(filename, "w", newline="", encoding="utf-8") as f:
        write_csv_to_stream(snapshot.tokens, f)

    return filename
