"""Negotiation row persistence.

All methods run on the caller's unit-of-work connection and never commit.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any

from negotiation_engine.domain.errors import NegotiationNotFoundError
from negotiation_engine.domain.models import Negotiation
from negotiation_engine.domain.types import NegotiationStatus, NegotiationType, ParticipantRole


def _row_to_negotiation(row: sqlite3.Row) -> Negotiation:
    return Negotiation.model_validate(dict(row))


def _role_filter(user_id: str, role: ParticipantRole) -> tuple[str, list[Any]]:
    if role == ParticipantRole.BUYING:
        return "buyer_id = ?", [user_id]
    if role == ParticipantRole.SELLING:
        return "seller_id = ?", [user_id]
    return "(buyer_id = ? OR seller_id = ?)", [user_id, user_id]


class NegotiationRepository:
    """Read and write negotiation rows."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def insert(self, negotiation: Negotiation) -> None:
        """Insert a new negotiation.

        Raises:
            sqlite3.IntegrityError: If the buyer already has an ACTIVE
                negotiation of the same type on the property.
        """
        self._conn.execute(
            """
            INSERT INTO negotiations (
                id, property_id, buyer_id, seller_id, type, status,
                start_date, end_date, initial_message, created_at, last_action_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                negotiation.id,
                negotiation.property_id,
                negotiation.buyer_id,
                negotiation.seller_id,
                negotiation.type.value,
                negotiation.status.value,
                negotiation.start_date.isoformat() if negotiation.start_date else None,
                negotiation.end_date.isoformat() if negotiation.end_date else None,
                negotiation.initial_message,
                negotiation.created_at.isoformat(timespec="microseconds"),
                negotiation.last_action_at.isoformat(timespec="microseconds"),
            ),
        )

    def get(self, negotiation_id: str) -> Negotiation | None:
        row = self._conn.execute(
            "SELECT * FROM negotiations WHERE id = ?", (negotiation_id,)
        ).fetchone()
        return _row_to_negotiation(row) if row else None

    def load_for_update(self, negotiation_id: str) -> Negotiation:
        """Load a negotiation that the current unit of work is about to mutate.

        The unit of work already holds the write lock, so the row cannot
        change underneath the caller until it commits.

        Raises:
            NegotiationNotFoundError: If no such negotiation exists.
        """
        negotiation = self.get(negotiation_id)
        if negotiation is None:
            raise NegotiationNotFoundError(negotiation_id)
        return negotiation

    def find_active(
        self, property_id: str, buyer_id: str, negotiation_type: NegotiationType
    ) -> Negotiation | None:
        row = self._conn.execute(
            """
            SELECT * FROM negotiations
            WHERE property_id = ? AND buyer_id = ? AND type = ? AND status = ?
            """,
            (property_id, buyer_id, negotiation_type.value, NegotiationStatus.ACTIVE.value),
        ).fetchone()
        return _row_to_negotiation(row) if row else None

    def update_status(
        self, negotiation_id: str, status: NegotiationStatus, at: datetime
    ) -> None:
        self._conn.execute(
            "UPDATE negotiations SET status = ?, last_action_at = ? WHERE id = ?",
            (status.value, at.isoformat(timespec="microseconds"), negotiation_id),
        )

    def touch(self, negotiation_id: str, at: datetime) -> None:
        """Record activity on a negotiation without changing its status."""
        self._conn.execute(
            "UPDATE negotiations SET last_action_at = ? WHERE id = ?",
            (at.isoformat(timespec="microseconds"), negotiation_id),
        )

    def list_for_user(
        self,
        user_id: str,
        *,
        role: ParticipantRole = ParticipantRole.ALL,
        negotiation_type: NegotiationType | None = None,
        status: NegotiationStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Negotiation], int]:
        """List a user's negotiations, most recently active first.

        Returns:
            ``(page_of_negotiations, total_matching)``.
        """
        clause, params = _role_filter(user_id, role)
        conditions = [clause]

        if negotiation_type is not None:
            conditions.append("type = ?")
            params.append(negotiation_type.value)

        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)

        where_clause = " AND ".join(conditions)
        total = self._conn.execute(
            f"SELECT COUNT(*) FROM negotiations WHERE {where_clause}", params
        ).fetchone()[0]
        rows = self._conn.execute(
            f"""
            SELECT * FROM negotiations WHERE {where_clause}
            ORDER BY last_action_at DESC, id ASC LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        ).fetchall()
        return [_row_to_negotiation(row) for row in rows], int(total)
