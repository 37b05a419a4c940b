"""Negotiation service: the transactional entry point for every operation.

Each mutating method runs in exactly one :meth:`Database.unit_of_work`:
the exchange engine, the audit entry and (on accept) the minted transaction
all commit together or not at all.  Metrics and structured logs are emitted
only after the commit succeeds.

Read methods use :meth:`Database.snapshot` and never take the write lock.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import structlog

from negotiation_engine.audit.logger import AuditLogger
from negotiation_engine.audit.store import query_events
from negotiation_engine.domain.errors import (
    InvalidStateError,
    NegotiationNotFoundError,
    NoOpenOfferError,
    NotParticipantError,
    OfferNotFoundError,
    OwnOfferResponseError,
    PropertyNotFoundError,
    PropertyUnavailableError,
    SelfDealingError,
    TransactionNotFoundError,
)
from negotiation_engine.domain.models import (
    AcceptOffer,
    CounterOffer,
    Negotiation,
    NegotiationDetail,
    NegotiationSummary,
    Offer,
    OpenResult,
    Page,
    RejectOffer,
    ResponseAction,
    ResponseOutcome,
    Transaction,
)
from negotiation_engine.domain.types import (
    NegotiationStatus,
    NegotiationType,
    OfferStatus,
    ParticipantRole,
)
from negotiation_engine.exchange.engine import OfferExchange
from negotiation_engine.exchange.ledger import OfferLedger
from negotiation_engine.exchange.minting import TransactionMinter, TransactionRepository
from negotiation_engine.exchange.negotiations import NegotiationRepository
from negotiation_engine.observability.metrics import (
    ACTIVE_NEGOTIATIONS,
    DEALS_CLOSED,
    NEGOTIATIONS_CANCELLED,
    NEGOTIATIONS_OPENED,
    OFFERS_SUBMITTED,
    TRANSACTIONS_MINTED,
)
from negotiation_engine.properties import PropertyDirectory
from negotiation_engine.storage.database import Database, utcnow

logger = structlog.get_logger()


@dataclass
class _UnitOfWork:
    """Collaborators bound to one locked connection."""

    exchange: OfferExchange
    ledger: OfferLedger
    negotiations: NegotiationRepository
    transactions: TransactionRepository
    minter: TransactionMinter


class NegotiationService:
    """Open, list, inspect, advance and close negotiations.

    Args:
        database: The SQLite database.
        properties: Property catalog collaborator.
        fee_rate: Platform fee rate applied when minting transactions.
        default_currency: Currency for offers that name none.
        audit: Write audit trail entries alongside each mutation.
        page_size_limit: Upper bound for ``limit`` on list operations.
        clock: Source of timestamps.
    """

    def __init__(
        self,
        database: Database,
        properties: PropertyDirectory,
        fee_rate: Decimal = Decimal("0.05"),
        default_currency: str = "EUR",
        audit: bool = True,
        page_size_limit: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._database = database
        self._properties = properties
        self._fee_rate = fee_rate
        self._default_currency = default_currency
        self._audit = audit
        self._page_size_limit = page_size_limit
        self._clock = clock

    @contextmanager
    def _unit_of_work(self) -> Iterator[_UnitOfWork]:
        with self._database.unit_of_work() as conn:
            audit = AuditLogger(conn) if self._audit else None
            minter = TransactionMinter(conn, self._fee_rate, audit=audit, clock=self._clock)
            exchange = OfferExchange(
                conn,
                minter,
                audit=audit,
                default_currency=self._default_currency,
                clock=self._clock,
            )
            yield _UnitOfWork(
                exchange=exchange,
                ledger=exchange.ledger,
                negotiations=exchange.negotiations,
                transactions=TransactionRepository(conn),
                minter=minter,
            )

    def _page_bounds(self, page: int, limit: int) -> tuple[int, int, int]:
        page = max(page, 1)
        limit = min(max(limit, 1), self._page_size_limit)
        return page, limit, (page - 1) * limit

    @staticmethod
    def _require_participant(negotiation: Negotiation, user_id: str) -> None:
        if not negotiation.is_participant(user_id):
            raise NotParticipantError(negotiation.id, user_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_negotiation(
        self,
        buyer_id: str,
        property_id: str,
        negotiation_type: NegotiationType,
        initial_amount: Decimal | None = None,
        currency: str | None = None,
        message: str | None = None,
        terms: dict[str, Any] | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> OpenResult:
        """Open a negotiation on *property_id* with *buyer_id* as the buyer.

        Raises:
            PropertyNotFoundError: If the catalog has no such property.
            PropertyUnavailableError: If the listing is not open for offers.
            SelfDealingError: If the buyer owns the property.
            DuplicateActiveNegotiationError: If the buyer already has an
                ACTIVE negotiation of this type on the property.
        """
        if not self._properties.exists(property_id):
            raise PropertyNotFoundError(property_id)
        if not self._properties.is_available(property_id):
            raise PropertyUnavailableError(property_id)
        seller_id = self._properties.get_owner_id(property_id)
        if seller_id == buyer_id:
            raise SelfDealingError(property_id)

        with self._unit_of_work() as uow:
            result = uow.exchange.open(
                property_id,
                buyer_id,
                seller_id,
                negotiation_type,
                initial_amount=initial_amount,
                currency=currency,
                message=message,
                terms=terms,
                start_date=start_date,
                end_date=end_date,
            )

        negotiation = result.negotiation
        NEGOTIATIONS_OPENED.labels(type=negotiation.type.value).inc()
        ACTIVE_NEGOTIATIONS.inc()
        if result.opening_offer is not None:
            OFFERS_SUBMITTED.inc()
        logger.info(
            "negotiation_opened",
            negotiation_id=negotiation.id,
            property_id=property_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            type=negotiation.type.value,
            opening_amount=str(result.opening_offer.amount) if result.opening_offer else None,
        )
        return result

    def submit_offer(
        self,
        negotiation_id: str,
        user_id: str,
        amount: Decimal,
        currency: str | None = None,
        message: str | None = None,
        terms: dict[str, Any] | None = None,
    ) -> Offer:
        """Place an offer: opening, counter to the open offer, or fresh after a reject."""
        with self._unit_of_work() as uow:
            offer = uow.exchange.submit_counter(
                negotiation_id, user_id, amount, currency, message, terms
            )

        OFFERS_SUBMITTED.inc()
        logger.info(
            "offer_submitted",
            negotiation_id=negotiation_id,
            offer_id=offer.id,
            sender_id=user_id,
            amount=str(offer.amount),
            currency=offer.currency,
            counter_to_id=offer.counter_to_id,
        )
        return offer

    def respond_to_offer(
        self, offer_id: str, user_id: str, action: ResponseAction
    ) -> ResponseOutcome:
        """Accept, reject or counter the offer *offer_id*.

        The offer is checked before the negotiation: a participant who
        responds to an offer that is no longer PENDING (for example the loser
        of two simultaneous accepts) gets :class:`NoOpenOfferError`.

        Raises:
            OfferNotFoundError: If no such offer exists.
            NotParticipantError: If *user_id* is not buyer or seller.
            OwnOfferResponseError: If *user_id* sent the offer.
            NoOpenOfferError: If the offer is no longer PENDING.
        """
        with self._unit_of_work() as uow:
            offer = uow.ledger.get(offer_id)
            if offer is None:
                raise OfferNotFoundError(offer_id)
            negotiation = uow.negotiations.load_for_update(offer.negotiation_id)
            self._require_participant(negotiation, user_id)
            if offer.sender_id == user_id:
                raise OwnOfferResponseError(user_id, offer_id)
            if offer.status != OfferStatus.PENDING:
                raise NoOpenOfferError(negotiation.id, offer.status)
            outcome = uow.exchange.respond(negotiation.id, user_id, action)

        log = logger.bind(
            negotiation_id=outcome.negotiation.id, offer_id=offer_id, responder_id=user_id
        )
        if isinstance(action, AcceptOffer):
            DEALS_CLOSED.inc()
            ACTIVE_NEGOTIATIONS.dec()
            TRANSACTIONS_MINTED.inc()
            log.info("offer_accepted", amount=str(outcome.offer.amount))
            if outcome.transaction is not None:
                log.info(
                    "transaction_minted",
                    transaction_id=outcome.transaction.id,
                    amount=str(outcome.transaction.amount),
                    platform_fee=str(outcome.transaction.platform_fee),
                    currency=outcome.transaction.currency,
                )
        elif isinstance(action, RejectOffer):
            log.info("offer_rejected")
        elif isinstance(action, CounterOffer) and outcome.counter_offer is not None:
            OFFERS_SUBMITTED.inc()
            log.info(
                "offer_countered",
                counter_offer_id=outcome.counter_offer.id,
                amount=str(outcome.counter_offer.amount),
            )
        return outcome

    def cancel_negotiation(self, negotiation_id: str, user_id: str) -> Negotiation:
        """Close an ACTIVE negotiation as REJECTED on a participant's request."""
        with self._unit_of_work() as uow:
            negotiation, withdrawn = uow.exchange.cancel(negotiation_id, user_id)

        NEGOTIATIONS_CANCELLED.inc()
        ACTIVE_NEGOTIATIONS.dec()
        logger.info(
            "negotiation_cancelled",
            negotiation_id=negotiation_id,
            cancelled_by=user_id,
            withdrawn_offer_id=withdrawn.id if withdrawn else None,
        )
        return negotiation

    def ensure_transaction(self, negotiation_id: str, user_id: str) -> Transaction:
        """Return the transaction of an ACCEPTED negotiation, minting it if missing.

        Safe to call any number of times.

        Raises:
            InvalidStateError: If the negotiation is not ACCEPTED.
        """
        minted = False
        with self._unit_of_work() as uow:
            negotiation = uow.negotiations.load_for_update(negotiation_id)
            self._require_participant(negotiation, user_id)
            if negotiation.status != NegotiationStatus.ACCEPTED:
                raise InvalidStateError(
                    f"Negotiation is not accepted (status '{negotiation.status}')"
                )
            transaction = uow.transactions.get_by_negotiation(negotiation_id)
            if transaction is None:
                accepted = [
                    o for o in uow.ledger.history(negotiation_id) if o.status == OfferStatus.ACCEPTED
                ]
                if not accepted:
                    raise InvalidStateError("Accepted negotiation has no accepted offer")
                transaction = uow.minter.mint(negotiation, accepted[-1])
                minted = True

        if minted:
            TRANSACTIONS_MINTED.inc()
            logger.warning(
                "transaction_minted_on_replay",
                negotiation_id=negotiation_id,
                transaction_id=transaction.id,
            )
        return transaction

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_negotiations(
        self,
        user_id: str,
        role: ParticipantRole = ParticipantRole.ALL,
        negotiation_type: NegotiationType | None = None,
        status: NegotiationStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[NegotiationSummary]:
        """List the user's negotiations, most recently active first, with latest offers."""
        page, limit, offset = self._page_bounds(page, limit)
        with self._database.snapshot() as conn:
            negotiations, total = NegotiationRepository(conn).list_for_user(
                user_id,
                role=role,
                negotiation_type=negotiation_type,
                status=status,
                limit=limit,
                offset=offset,
            )
            latest = OfferLedger(conn).latest_offers([n.id for n in negotiations])

        summaries = [
            NegotiationSummary(negotiation=n, latest_offer=latest.get(n.id)) for n in negotiations
        ]
        return Page[NegotiationSummary].build(summaries, total, page, limit)

    def get_negotiation(self, negotiation_id: str, user_id: str) -> NegotiationDetail:
        with self._database.snapshot() as conn:
            negotiation = NegotiationRepository(conn).get(negotiation_id)
            if negotiation is None:
                raise NegotiationNotFoundError(negotiation_id)
            self._require_participant(negotiation, user_id)
            offers = OfferLedger(conn).history(negotiation_id)
            transaction = TransactionRepository(conn).get_by_negotiation(negotiation_id)
        return NegotiationDetail(negotiation=negotiation, offers=offers, transaction=transaction)

    def get_transaction(self, negotiation_id: str, user_id: str) -> Transaction:
        with self._database.snapshot() as conn:
            negotiation = NegotiationRepository(conn).get(negotiation_id)
            if negotiation is None:
                raise NegotiationNotFoundError(negotiation_id)
            self._require_participant(negotiation, user_id)
            transaction = TransactionRepository(conn).get_by_negotiation(negotiation_id)
        if transaction is None:
            raise TransactionNotFoundError(negotiation_id)
        return transaction

    def list_transactions(self, user_id: str, page: int = 1, limit: int = 20) -> Page[Transaction]:
        """List transactions the user pays or receives, newest first."""
        page, limit, offset = self._page_bounds(page, limit)
        with self._database.snapshot() as conn:
            repository = TransactionRepository(conn)
            total = repository.count_for_user(user_id)
            transactions = repository.list_for_user(user_id, limit=limit, offset=offset)
        return Page[Transaction].build(transactions, total, page, limit)

    def list_events(
        self, negotiation_id: str, user_id: str, limit: int = 50
    ) -> list[dict[str, Any]]:
        """Return the audit trail of a negotiation, oldest first."""
        with self._database.snapshot() as conn:
            negotiation = NegotiationRepository(conn).get(negotiation_id)
            if negotiation is None:
                raise NegotiationNotFoundError(negotiation_id)
            self._require_participant(negotiation, user_id)
            return query_events(conn, negotiation_id=negotiation_id, limit=limit)

    def count_active(self) -> int:
        """Count ACTIVE negotiations across all users."""
        with self._database.snapshot() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM negotiations WHERE status = ?",
                (NegotiationStatus.ACTIVE.value,),
            ).fetchone()
        return int(row[0])

    def sync_active_gauge(self) -> None:
        """Set ``ACTIVE_NEGOTIATIONS`` from the database, e.g. after a restart."""
        ACTIVE_NEGOTIATIONS.set(self.count_active())
