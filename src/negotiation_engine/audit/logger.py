"""Convenience class for inserting audit trail entries.

Each method creates a properly structured :class:`AuditEntry` for one kind
of negotiation event and inserts it via :func:`insert_event` on the caller's
unit-of-work connection.
"""

from __future__ import annotations

import sqlite3

from negotiation_engine.audit.models import AuditEntry, EventType
from negotiation_engine.audit.store import insert_event
from negotiation_engine.domain.models import Negotiation, Offer, Transaction
from negotiation_engine.domain.types import NegotiationStatus, OfferStatus


class AuditLogger:
    """Typed convenience API for inserting audit entries.

    Args:
        conn: A connection inside an open unit of work.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def log_negotiation_opened(self, negotiation: Negotiation, opening_offer: Offer | None) -> int:
        """Log a new negotiation, with its opening offer if one was made.

        Returns:
            The row ID of the inserted audit entry.
        """
        metadata = {"property_id": negotiation.property_id, "type": negotiation.type.value}
        entry = AuditEntry(
            event_type=EventType.NEGOTIATION_OPENED,
            negotiation_id=negotiation.id,
            actor_id=negotiation.buyer_id,
            offer_id=opening_offer.id if opening_offer else None,
            to_status=negotiation.status.value,
            amount=str(opening_offer.amount) if opening_offer else None,
            currency=opening_offer.currency if opening_offer else None,
            metadata=metadata,
        )
        return insert_event(self._conn, entry)

    def log_offer_submitted(self, offer: Offer) -> int:
        """Log an offer that did not counter anything (opening or fresh offer)."""
        entry = AuditEntry(
            event_type=EventType.OFFER_SUBMITTED,
            negotiation_id=offer.negotiation_id,
            actor_id=offer.sender_id,
            offer_id=offer.id,
            to_status=offer.status.value,
            amount=str(offer.amount),
            currency=offer.currency,
        )
        return insert_event(self._conn, entry)

    def log_offer_countered(self, countered: Offer, counter: Offer) -> int:
        """Log a counter-offer.

        ``offer_id`` is the new offer; the countered offer's id is kept in
        metadata.
        """
        entry = AuditEntry(
            event_type=EventType.OFFER_COUNTERED,
            negotiation_id=counter.negotiation_id,
            actor_id=counter.sender_id,
            offer_id=counter.id,
            from_status=OfferStatus.PENDING.value,
            to_status=countered.status.value,
            amount=str(counter.amount),
            currency=counter.currency,
            metadata={"countered_offer_id": countered.id},
        )
        return insert_event(self._conn, entry)

    def log_offer_accepted(self, offer: Offer, actor_id: str) -> int:
        """Log an accepted offer."""
        entry = AuditEntry(
            event_type=EventType.OFFER_ACCEPTED,
            negotiation_id=offer.negotiation_id,
            actor_id=actor_id,
            offer_id=offer.id,
            from_status=OfferStatus.PENDING.value,
            to_status=offer.status.value,
            amount=str(offer.amount),
            currency=offer.currency,
        )
        return insert_event(self._conn, entry)

    def log_offer_rejected(self, offer: Offer, actor_id: str, message: str | None = None) -> int:
        """Log a rejected offer, with the responder's message if any."""
        entry = AuditEntry(
            event_type=EventType.OFFER_REJECTED,
            negotiation_id=offer.negotiation_id,
            actor_id=actor_id,
            offer_id=offer.id,
            from_status=OfferStatus.PENDING.value,
            to_status=offer.status.value,
            amount=str(offer.amount),
            currency=offer.currency,
            metadata={"message": message} if message else None,
        )
        return insert_event(self._conn, entry)

    def log_negotiation_cancelled(
        self,
        negotiation: Negotiation,
        actor_id: str,
        withdrawn_offer: Offer | None,
    ) -> int:
        """Log a cancellation and the open offer it closed, if any."""
        entry = AuditEntry(
            event_type=EventType.NEGOTIATION_CANCELLED,
            negotiation_id=negotiation.id,
            actor_id=actor_id,
            offer_id=withdrawn_offer.id if withdrawn_offer else None,
            from_status=NegotiationStatus.ACTIVE.value,
            to_status=negotiation.status.value,
        )
        return insert_event(self._conn, entry)

    def log_transaction_minted(self, transaction: Transaction) -> int:
        """Log the settlement record created by an accept."""
        entry = AuditEntry(
            event_type=EventType.TRANSACTION_MINTED,
            negotiation_id=transaction.negotiation_id,
            actor_id=transaction.payer_id,
            transaction_id=transaction.id,
            to_status=transaction.status.value,
            amount=str(transaction.amount),
            currency=transaction.currency,
            metadata={
                "platform_fee": str(transaction.platform_fee),
                "platform_fee_rate": str(transaction.platform_fee_rate),
                "seller_amount": str(transaction.seller_amount),
            },
        )
        return insert_event(self._conn, entry)
