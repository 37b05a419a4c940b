"""Offer exchange: every negotiation mutation as one step on a locked snapshot.

:class:`OfferExchange` combines the status state machine, the offer ledger
and the transaction minter.  It runs on a connection that already holds the
write lock (see :meth:`Database.unit_of_work`), so each method sees the
negotiation and its offers exactly as they are when its writes land.

Check order for every mutation on an existing negotiation:

1. load the negotiation (``NegotiationNotFoundError``)
2. the caller participates (``NotParticipantError``)
3. the status machine accepts the event (``NegotiationClosedError``)
4. the ledger accepts the offer move (``NoOpenOfferError``, ``WrongTurnError``)
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from negotiation_engine.audit.logger import AuditLogger
from negotiation_engine.domain.errors import (
    DuplicateActiveNegotiationError,
    InvalidOfferError,
    NotParticipantError,
    SelfDealingError,
)
from negotiation_engine.domain.models import (
    AcceptOffer,
    CounterOffer,
    Negotiation,
    Offer,
    OpenResult,
    RejectOffer,
    ResponseAction,
    ResponseOutcome,
    validate_money,
)
from negotiation_engine.domain.types import NegotiationStatus, NegotiationType, OfferStatus
from negotiation_engine.exchange.ledger import OfferLedger
from negotiation_engine.exchange.minting import TransactionMinter
from negotiation_engine.exchange.negotiations import NegotiationRepository
from negotiation_engine.state_machine import NegotiationEvent, NegotiationStateMachine
from negotiation_engine.storage.database import utcnow


class OfferExchange:
    """Open, counter, respond to and cancel negotiations.

    Args:
        conn: A connection inside an open unit of work.
        minter: Transaction minter bound to the same connection.
        audit: Optional audit logger bound to the same connection.
        default_currency: Currency for offers that name none and have no
            earlier offer to inherit from.
        clock: Source of timestamps.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        minter: TransactionMinter,
        audit: AuditLogger | None = None,
        default_currency: str = "EUR",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._negotiations = NegotiationRepository(conn)
        self._ledger = OfferLedger(conn, clock=clock)
        self._minter = minter
        self._audit = audit
        self._default_currency = default_currency
        self._clock = clock

    @property
    def ledger(self) -> OfferLedger:
        return self._ledger

    @property
    def negotiations(self) -> NegotiationRepository:
        return self._negotiations

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    def open(
        self,
        property_id: str,
        buyer_id: str,
        seller_id: str,
        negotiation_type: NegotiationType,
        initial_amount: Decimal | None = None,
        currency: str | None = None,
        message: str | None = None,
        terms: dict[str, Any] | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> OpenResult:
        """Create an ACTIVE negotiation, with an opening offer from the buyer if priced.

        Raises:
            SelfDealingError: If the buyer owns the property.
            DuplicateActiveNegotiationError: If the buyer already has an
                ACTIVE negotiation of this type on the property.
            InvalidOfferError: If the amount, currency or dates are invalid.
        """
        if buyer_id == seller_id:
            raise SelfDealingError(property_id)
        if start_date and end_date and end_date <= start_date:
            raise InvalidOfferError("End date must be after start date")
        if initial_amount is not None:
            validate_money(initial_amount, currency or self._default_currency)

        existing = self._negotiations.find_active(property_id, buyer_id, negotiation_type)
        if existing is not None:
            raise DuplicateActiveNegotiationError(property_id, buyer_id, existing.id)

        now = self._clock()
        negotiation = Negotiation(
            id=str(uuid.uuid4()),
            property_id=property_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            type=negotiation_type,
            status=NegotiationStatus.ACTIVE,
            start_date=start_date,
            end_date=end_date,
            initial_message=message,
            created_at=now,
            last_action_at=now,
        )
        try:
            self._negotiations.insert(negotiation)
        except sqlite3.IntegrityError:
            raise DuplicateActiveNegotiationError(property_id, buyer_id) from None

        opening_offer = None
        if initial_amount is not None:
            opening_offer = self._ledger.append_opening_offer(
                negotiation.id,
                buyer_id,
                initial_amount,
                currency or self._default_currency,
                message,
                terms,
            )

        if self._audit is not None:
            self._audit.log_negotiation_opened(negotiation, opening_offer)
        return OpenResult(negotiation=negotiation, opening_offer=opening_offer)

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def submit_counter(
        self,
        negotiation_id: str,
        sender_id: str,
        amount: Decimal,
        currency: str | None = None,
        message: str | None = None,
        terms: dict[str, Any] | None = None,
    ) -> Offer:
        """Put a new PENDING offer on the table.

        With no offers yet this is the opening offer and either participant
        may make it.  With an open offer from the other party it counters
        that offer.  After a reject it restarts the cycle, and must come from
        the party that did not send the rejected offer.
        """
        negotiation = self._load_for_event(
            negotiation_id, sender_id, NegotiationEvent.SUBMIT_OFFER
        )
        latest = self._ledger.latest_offer(negotiation.id)
        code = currency or (latest.currency if latest else self._default_currency)

        if latest is None:
            offer = self._ledger.append_opening_offer(
                negotiation.id, sender_id, amount, code, message, terms
            )
            countered = None
        elif latest.is_open:
            countered, offer = self._ledger.append_counter_offer(
                negotiation.id, sender_id, amount, code, message, terms
            )
        else:
            offer = self._ledger.append_fresh_offer(
                negotiation.id, sender_id, amount, code, message, terms
            )
            countered = None

        self._negotiations.touch(negotiation.id, offer.created_at)
        if self._audit is not None:
            if countered is not None:
                self._audit.log_offer_countered(countered, offer)
            else:
                self._audit.log_offer_submitted(offer)
        return offer

    def respond(
        self, negotiation_id: str, responder_id: str, action: ResponseAction
    ) -> ResponseOutcome:
        """Apply a decoded response action to the negotiation's open offer."""
        if isinstance(action, AcceptOffer):
            return self.accept(negotiation_id, responder_id)
        if isinstance(action, RejectOffer):
            return self.reject(negotiation_id, responder_id, action.message)
        if isinstance(action, CounterOffer):
            return self.counter(
                negotiation_id,
                responder_id,
                action.amount,
                action.currency,
                action.message,
                action.terms,
            )
        raise TypeError(f"Unsupported response action: {action!r}")

    def accept(self, negotiation_id: str, responder_id: str) -> ResponseOutcome:
        """Accept the open offer, close the negotiation and mint its transaction."""
        negotiation = self._load_for_event(negotiation_id, responder_id, NegotiationEvent.ACCEPT)
        offer = self._ledger.resolve_open_offer(negotiation.id, responder_id, OfferStatus.ACCEPTED)

        at = offer.responded_at or self._clock()
        negotiation = self._set_status(negotiation, NegotiationStatus.ACCEPTED, at)
        if self._audit is not None:
            self._audit.log_offer_accepted(offer, responder_id)
        transaction = self._minter.mint(negotiation, offer)
        return ResponseOutcome(negotiation=negotiation, offer=offer, transaction=transaction)

    def reject(
        self, negotiation_id: str, responder_id: str, message: str | None = None
    ) -> ResponseOutcome:
        """Reject the open offer; the negotiation stays ACTIVE."""
        negotiation = self._load_for_event(
            negotiation_id, responder_id, NegotiationEvent.REJECT_OFFER
        )
        offer = self._ledger.resolve_open_offer(negotiation.id, responder_id, OfferStatus.REJECTED)

        at = offer.responded_at or self._clock()
        self._negotiations.touch(negotiation.id, at)
        negotiation = negotiation.model_copy(update={"last_action_at": at})
        if self._audit is not None:
            self._audit.log_offer_rejected(offer, responder_id, message)
        return ResponseOutcome(negotiation=negotiation, offer=offer)

    def counter(
        self,
        negotiation_id: str,
        responder_id: str,
        amount: Decimal,
        currency: str | None = None,
        message: str | None = None,
        terms: dict[str, Any] | None = None,
    ) -> ResponseOutcome:
        """Counter the open offer; unlike :meth:`submit_counter` one must exist."""
        negotiation = self._load_for_event(
            negotiation_id, responder_id, NegotiationEvent.SUBMIT_OFFER
        )
        open_offer = self._ledger.open_offer(negotiation.id)
        code = currency or (open_offer.currency if open_offer else self._default_currency)
        countered, counter_offer = self._ledger.append_counter_offer(
            negotiation.id, responder_id, amount, code, message, terms
        )

        self._negotiations.touch(negotiation.id, counter_offer.created_at)
        negotiation = negotiation.model_copy(update={"last_action_at": counter_offer.created_at})
        if self._audit is not None:
            self._audit.log_offer_countered(countered, counter_offer)
        return ResponseOutcome(negotiation=negotiation, offer=countered, counter_offer=counter_offer)

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    def cancel(self, negotiation_id: str, requester_id: str) -> tuple[Negotiation, Offer | None]:
        """Close the negotiation as REJECTED, withdrawing any open offer.

        Returns:
            ``(negotiation, withdrawn_offer_or_None)``.
        """
        negotiation = self._load_for_event(negotiation_id, requester_id, NegotiationEvent.CANCEL)
        withdrawn = self._ledger.withdraw_open_offer(negotiation.id)
        negotiation = self._set_status(negotiation, NegotiationStatus.REJECTED, self._clock())
        if self._audit is not None:
            self._audit.log_negotiation_cancelled(negotiation, requester_id, withdrawn)
        return negotiation, withdrawn

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_for_event(
        self, negotiation_id: str, user_id: str, event: NegotiationEvent
    ) -> Negotiation:
        negotiation = self._negotiations.load_for_update(negotiation_id)
        if not negotiation.is_participant(user_id):
            raise NotParticipantError(negotiation_id, user_id)
        NegotiationStateMachine(negotiation.status).trigger(event)
        return negotiation

    def _set_status(
        self, negotiation: Negotiation, status: NegotiationStatus, at: datetime
    ) -> Negotiation:
        self._negotiations.update_status(negotiation.id, status, at)
        return negotiation.model_copy(update={"status": status, "last_action_at": at})
