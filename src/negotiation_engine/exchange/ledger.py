"""Append-only ledger of offers within a negotiation.

Offers are never deleted and their amounts never change; the only mutation
is the single move of an offer out of PENDING.  Within a negotiation offers
are totally ordered by ``seq`` and at most one of them is PENDING (the open
offer).  The ledger enforces turn ownership on the open offer; checking that
a sender participates in the negotiation is the caller's job.

Every method runs on the caller's unit-of-work connection and never commits.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import Any

from negotiation_engine.domain.errors import InvalidStateError, NoOpenOfferError, WrongTurnError
from negotiation_engine.domain.models import Offer, validate_money
from negotiation_engine.domain.types import OfferStatus
from negotiation_engine.state_machine.transitions import can_transition_offer
from negotiation_engine.storage.database import utcnow

RESOLUTION_OUTCOMES: frozenset[OfferStatus] = frozenset({OfferStatus.ACCEPTED, OfferStatus.REJECTED})


def _row_to_offer(row: sqlite3.Row) -> Offer:
    data = dict(row)
    terms_json = data.pop("terms_json", None)
    data["terms"] = json.loads(terms_json) if terms_json else None
    return Offer.model_validate(data)


class OfferLedger:
    """Offer history and open-offer transitions for negotiations.

    Args:
        conn: A connection inside an open unit of work.
        clock: Source of timestamps; defaults to the current UTC time.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._conn = conn
        self._clock = clock

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, offer_id: str) -> Offer | None:
        row = self._conn.execute("SELECT * FROM offers WHERE id = ?", (offer_id,)).fetchone()
        return _row_to_offer(row) if row else None

    def latest_offer(self, negotiation_id: str) -> Offer | None:
        """Return the most recent offer of a negotiation, or ``None``."""
        row = self._conn.execute(
            "SELECT * FROM offers WHERE negotiation_id = ? ORDER BY seq DESC LIMIT 1",
            (negotiation_id,),
        ).fetchone()
        return _row_to_offer(row) if row else None

    def open_offer(self, negotiation_id: str) -> Offer | None:
        """Return the PENDING offer of a negotiation, or ``None``."""
        row = self._conn.execute(
            "SELECT * FROM offers WHERE negotiation_id = ? AND status = ?",
            (negotiation_id, OfferStatus.PENDING.value),
        ).fetchone()
        return _row_to_offer(row) if row else None

    def history(self, negotiation_id: str) -> list[Offer]:
        """Return every offer of a negotiation in creation order."""
        rows = self._conn.execute(
            "SELECT * FROM offers WHERE negotiation_id = ? ORDER BY seq ASC",
            (negotiation_id,),
        ).fetchall()
        return [_row_to_offer(row) for row in rows]

    def latest_offers(self, negotiation_ids: list[str]) -> dict[str, Offer]:
        """Return the latest offer of each given negotiation that has one."""
        if not negotiation_ids:
            return {}
        placeholders = ", ".join("?" for _ in negotiation_ids)
        rows = self._conn.execute(
            f"""
            SELECT o.* FROM offers o
            JOIN (
                SELECT negotiation_id, MAX(seq) AS max_seq FROM offers
                WHERE negotiation_id IN ({placeholders})
                GROUP BY negotiation_id
            ) latest
            ON o.negotiation_id = latest.negotiation_id AND o.seq = latest.max_seq
            """,
            negotiation_ids,
        ).fetchall()
        offers = [_row_to_offer(row) for row in rows]
        return {offer.negotiation_id: offer for offer in offers}

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def append_opening_offer(
        self,
        negotiation_id: str,
        sender_id: str,
        amount: Decimal,
        currency: str,
        message: str | None = None,
        terms: dict[str, Any] | None = None,
    ) -> Offer:
        """Create the first offer of a negotiation.

        Raises:
            InvalidStateError: If the negotiation already has an offer.
            InvalidOfferError: If the amount or currency is invalid.
        """
        if self.latest_offer(negotiation_id) is not None:
            raise InvalidStateError("Negotiation already has an opening offer")
        return self._insert(negotiation_id, sender_id, amount, currency, message, terms)

    def append_counter_offer(
        self,
        negotiation_id: str,
        sender_id: str,
        amount: Decimal,
        currency: str,
        message: str | None = None,
        terms: dict[str, Any] | None = None,
    ) -> tuple[Offer, Offer]:
        """Counter the open offer: mark it COUNTERED and append a new PENDING one.

        Returns:
            ``(countered_offer, counter_offer)``.

        Raises:
            NoOpenOfferError: If no offer is PENDING.
            WrongTurnError: If *sender_id* sent the open offer.
        """
        open_offer = self.open_offer(negotiation_id)
        if open_offer is None:
            raise NoOpenOfferError(negotiation_id)
        if open_offer.sender_id == sender_id:
            raise WrongTurnError(sender_id)
        validate_money(amount, currency)

        countered = self._set_status(open_offer, OfferStatus.COUNTERED)
        counter = self._insert(
            negotiation_id,
            sender_id,
            amount,
            currency,
            message,
            terms,
            counter_to_id=open_offer.id,
        )
        return countered, counter

    def append_fresh_offer(
        self,
        negotiation_id: str,
        sender_id: str,
        amount: Decimal,
        currency: str,
        message: str | None = None,
        terms: dict[str, Any] | None = None,
    ) -> Offer:
        """Restart the offer cycle after the last offer was rejected.

        The sender must be the party that did not send the latest offer,
        which keeps senders strictly alternating.

        Raises:
            InvalidStateError: If an offer is still open or none exists yet.
            WrongTurnError: If *sender_id* sent the latest offer.
        """
        latest = self.latest_offer(negotiation_id)
        if latest is None:
            raise InvalidStateError("Negotiation has no offers; make an opening offer")
        if latest.is_open:
            raise InvalidStateError("Negotiation has an open offer; counter it instead")
        if latest.sender_id == sender_id:
            raise WrongTurnError(sender_id, "The other party must make the next offer")
        return self._insert(negotiation_id, sender_id, amount, currency, message, terms)

    def resolve_open_offer(
        self,
        negotiation_id: str,
        responder_id: str,
        outcome: OfferStatus,
    ) -> Offer:
        """Accept or reject the open offer on behalf of *responder_id*.

        Raises:
            ValueError: If *outcome* is not ACCEPTED or REJECTED.
            NoOpenOfferError: If no offer is PENDING.
            WrongTurnError: If *responder_id* sent the open offer.
        """
        if outcome not in RESOLUTION_OUTCOMES:
            raise ValueError(f"Open offers resolve to accepted or rejected, not {outcome}")
        open_offer = self.open_offer(negotiation_id)
        if open_offer is None:
            raise NoOpenOfferError(negotiation_id)
        if open_offer.sender_id == responder_id:
            raise WrongTurnError(responder_id, "Cannot respond to your own offer")
        return self._set_status(open_offer, outcome)

    def withdraw_open_offer(self, negotiation_id: str) -> Offer | None:
        """Reject the open offer, if any, because the negotiation is closing.

        No turn check: either participant may cancel a negotiation.
        """
        open_offer = self.open_offer(negotiation_id)
        if open_offer is None:
            return None
        return self._set_status(open_offer, OfferStatus.REJECTED)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(
        self,
        negotiation_id: str,
        sender_id: str,
        amount: Decimal,
        currency: str,
        message: str | None,
        terms: dict[str, Any] | None,
        counter_to_id: str | None = None,
    ) -> Offer:
        value, code = validate_money(amount, currency)
        seq = self._conn.execute(
            "SELECT COALESCE(MAX(seq), 0) + 1 FROM offers WHERE negotiation_id = ?",
            (negotiation_id,),
        ).fetchone()[0]
        offer = Offer(
            id=str(uuid.uuid4()),
            negotiation_id=negotiation_id,
            seq=seq,
            sender_id=sender_id,
            amount=value,
            currency=code,
            message=message,
            terms=terms,
            status=OfferStatus.PENDING,
            counter_to_id=counter_to_id,
            created_at=self._clock(),
        )
        self._conn.execute(
            """
            INSERT INTO offers (
                id, negotiation_id, seq, sender_id, amount, currency, message,
                terms_json, status, counter_to_id, created_at, responded_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL)
            """,
            (
                offer.id,
                offer.negotiation_id,
                offer.seq,
                offer.sender_id,
                str(offer.amount),
                offer.currency,
                offer.message,
                json.dumps(terms) if terms is not None else None,
                offer.status.value,
                offer.counter_to_id,
                offer.created_at.isoformat(timespec="microseconds"),
            ),
        )
        return offer

    def _set_status(self, offer: Offer, target: OfferStatus) -> Offer:
        if not can_transition_offer(offer.status, target):
            raise InvalidStateError(f"Offer {offer.id} cannot move from {offer.status} to {target}")
        responded_at = self._clock()
        cursor = self._conn.execute(
            "UPDATE offers SET status = ?, responded_at = ? WHERE id = ? AND status = ?",
            (
                target.value,
                responded_at.isoformat(timespec="microseconds"),
                offer.id,
                OfferStatus.PENDING.value,
            ),
        )
        if cursor.rowcount != 1:
            raise NoOpenOfferError(offer.negotiation_id, offer.status)
        return offer.model_copy(update={"status": target, "responded_at": responded_at})
