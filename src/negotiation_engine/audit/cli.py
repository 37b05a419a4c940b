"""CLI query interface for the negotiation audit trail.

Provides an argparse-based command-line tool for querying audit entries
with filters by negotiation, actor, date range, event type, and a shorthand
``--last`` duration.  Output formats: table (default) or JSON.

Usage::

    negotiation-audit --negotiation 4b1f... --format json
    negotiation-audit --actor user-42 --last 7d
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from contextlib import closing
from datetime import UTC, date, datetime, time, timedelta
from pathlib import Path
from typing import Any

from negotiation_engine.audit.models import EventType
from negotiation_engine.audit.store import query_events
from negotiation_engine.storage.database import Database


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for audit trail queries.

    Returns:
        A configured :class:`argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(description="Query the negotiation audit trail")

    parser.add_argument("--negotiation", type=str, help="Filter by negotiation ID")
    parser.add_argument("--actor", type=str, help="Filter by acting user ID")
    parser.add_argument("--from-date", type=str, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--to-date", type=str, help="End date (YYYY-MM-DD)")
    parser.add_argument(
        "--event-type",
        type=str,
        choices=[e.value for e in EventType],
        help="Filter by event type",
    )
    parser.add_argument(
        "--last",
        type=str,
        help='Shorthand duration (e.g., "7d", "24h", "30d")',
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum results (default: 50)",
    )
    parser.add_argument(
        "--db",
        type=str,
        default="data/negotiations.db",
        help="Path to the database (default: data/negotiations.db)",
    )

    return parser


def parse_last_duration(last: str, now: datetime | None = None) -> str:
    """Convert a shorthand duration to an ISO 8601 timestamp.

    Supported formats:
        - ``Nd`` -- N days ago (e.g., ``7d``)
        - ``Nh`` -- N hours ago (e.g., ``24h``)

    Args:
        last: Duration string like ``"7d"`` or ``"24h"``.
        now: Reference time; defaults to the current UTC time.

    Returns:
        ISO 8601 timestamp for the computed past time.

    Raises:
        ValueError: If the format is not recognized.
    """
    if not last or len(last) < 2:
        msg = f"Unrecognized duration format: {last!r}"
        raise ValueError(msg)

    unit = last[-1]
    try:
        value = int(last[:-1])
    except ValueError:
        msg = f"Unrecognized duration format: {last!r}"
        raise ValueError(msg) from None

    now = now or datetime.now(tz=UTC)

    if unit == "d":
        result = now - timedelta(days=value)
    elif unit == "h":
        result = now - timedelta(hours=value)
    else:
        msg = f"Unrecognized duration format: {last!r}. Use 'd' for days or 'h' for hours."
        raise ValueError(msg)

    return result.isoformat()


def end_of_day(value: str) -> str:
    """Widen a bare ``YYYY-MM-DD`` upper bound to the last instant of that day.

    Full timestamps are returned unchanged.
    """
    try:
        day = date.fromisoformat(value)
    except ValueError:
        return value
    return datetime.combine(day, time.max, tzinfo=UTC).isoformat()


def format_table(results: list[dict[str, Any]]) -> str:
    """Format audit results as a human-readable table.

    Long fields are truncated to fit reasonable terminal width.

    Args:
        results: List of audit entry dicts from ``query_events``.

    Returns:
        Formatted table string with header row.
    """
    if not results:
        return "No results found."

    headers = ["Timestamp", "Event", "Negotiation", "Actor", "Status", "Amount"]
    widths = [26, 22, 36, 16, 22, 16]

    def truncate(value: str | None, width: int) -> str:
        s = str(value or "")
        if len(s) > width:
            return s[: width - 3] + "..."
        return s

    lines: list[str] = []

    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths, strict=True))
    lines.append(header_line)
    lines.append("-" * len(header_line))

    for row in results:
        status = row.get("to_status") or ""
        if row.get("from_status"):
            status = f"{row['from_status']}->{status}"
        amount = f"{row['amount']} {row['currency']}" if row.get("amount") else ""
        cells = [
            truncate(row.get("timestamp"), widths[0]),
            truncate(row.get("event_type"), widths[1]),
            truncate(row.get("negotiation_id"), widths[2]),
            truncate(row.get("actor_id"), widths[3]),
            truncate(status, widths[4]),
            truncate(amount, widths[5]),
        ]
        lines.append("  ".join(c.ljust(w) for c, w in zip(cells, widths, strict=True)))

    return "\n".join(lines)


def format_json(results: list[dict[str, Any]]) -> str:
    """Format audit results as a pretty-printed JSON string."""
    return json.dumps(results, indent=2)


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, query the audit trail, and print results."""
    parser = build_parser()
    args = parser.parse_args(argv)

    from_date = args.from_date
    if args.last:
        try:
            from_date = parse_last_duration(args.last)
        except ValueError as exc:
            parser.error(str(exc))

    db_path = Path(args.db)
    if not db_path.exists():
        print(f"Database not found: {db_path}", file=sys.stderr)
        return 1

    database = Database(db_path)
    with closing(database.connect()) as conn:
        results = query_events(
            conn,
            negotiation_id=args.negotiation,
            actor_id=args.actor,
            event_type=args.event_type,
            from_date=from_date,
            to_date=end_of_day(args.to_date) if args.to_date else None,
            limit=args.limit,
        )

    output = format_json(results) if args.output_format == "json" else format_table(results)
    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
