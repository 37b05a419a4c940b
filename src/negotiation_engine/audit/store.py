"""SQLite-backed audit trail store with indexed queries.

Unlike the negotiation tables, audit rows are never updated or deleted.
``insert_event`` does NOT commit: it is always called on a connection inside
an open unit of work, so the entry commits or rolls back together with the
mutation it describes.  Uses parameterized queries exclusively.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from typing import Any

from negotiation_engine.audit.models import AuditEntry


def init_audit_tables(conn: sqlite3.Connection) -> None:
    """Create the negotiation_events table and its indexes.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS negotiation_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL,
            event_type TEXT NOT NULL,
            negotiation_id TEXT NOT NULL,
            actor_id TEXT,
            offer_id TEXT,
            transaction_id TEXT,
            from_status TEXT,
            to_status TEXT,
            amount TEXT,
            currency TEXT,
            metadata TEXT
        )
    """)

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_events_negotiation ON negotiation_events (negotiation_id)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_events_actor ON negotiation_events (actor_id)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_events_timestamp ON negotiation_events (timestamp)"
    )

    conn.commit()


def insert_event(conn: sqlite3.Connection, entry: AuditEntry) -> int:
    """Insert an audit entry without committing.

    Args:
        conn: A connection inside the caller's unit of work.
        entry: The audit entry to insert.

    Returns:
        The row ID of the inserted entry.
    """
    metadata_json: str | None = None
    if entry.metadata is not None:
        metadata_json = json.dumps(entry.metadata)

    timestamp = datetime.now(tz=UTC).isoformat()

    cursor = conn.execute(
        """
        INSERT INTO negotiation_events (
            timestamp, event_type, negotiation_id, actor_id, offer_id,
            transaction_id, from_status, to_status, amount, currency, metadata
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            timestamp,
            entry.event_type.value,
            entry.negotiation_id,
            entry.actor_id,
            entry.offer_id,
            entry.transaction_id,
            entry.from_status,
            entry.to_status,
            entry.amount,
            entry.currency,
            metadata_json,
        ),
    )
    return cursor.lastrowid or 0


def query_events(
    conn: sqlite3.Connection,
    *,
    negotiation_id: str | None = None,
    actor_id: str | None = None,
    event_type: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Query the audit trail with flexible filtering.

    All filters are optional.  The newest *limit* matching entries are
    selected, then returned oldest first so a single negotiation's trail
    reads as its history.

    Args:
        conn: An open database connection.
        negotiation_id: Filter by negotiation (exact match).
        actor_id: Filter by acting user (exact match).
        event_type: Filter by event type (exact match).
        from_date: Filter entries on or after this ISO 8601 date.
        to_date: Filter entries on or before this ISO 8601 date.
        limit: Maximum number of results to return (default 50).

    Returns:
        A list of dicts, one per matching entry.
    """
    conditions: list[str] = []
    params: list[str | int] = []

    if negotiation_id is not None:
        conditions.append("negotiation_id = ?")
        params.append(negotiation_id)

    if actor_id is not None:
        conditions.append("actor_id = ?")
        params.append(actor_id)

    if event_type is not None:
        conditions.append("event_type = ?")
        params.append(event_type)

    if from_date is not None:
        conditions.append("timestamp >= ?")
        params.append(from_date)

    if to_date is not None:
        conditions.append("timestamp <= ?")
        params.append(to_date)

    where_clause = ""
    if conditions:
        where_clause = "WHERE " + " AND ".join(conditions)

    query = f"SELECT * FROM negotiation_events {where_clause} ORDER BY id DESC LIMIT ?"
    params.append(limit)

    cursor = conn.execute(query, params)
    columns = [col[0] for col in cursor.description]

    results: list[dict[str, Any]] = []
    for row in cursor.fetchall():
        row_dict = dict(zip(columns, row, strict=True))
        if row_dict.get("metadata") is not None:
            row_dict["metadata"] = json.loads(row_dict["metadata"])
        results.append(row_dict)

    results.reverse()
    return results
