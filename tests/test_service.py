"""Tests for NegotiationService: end-to-end scenarios, invariants and races.

Every test runs against a real file-backed SQLite database so unit-of-work
boundaries, locks and unique indexes behave as in production.
"""

from __future__ import annotations

import threading
from decimal import Decimal
from pathlib import Path

import pytest

from negotiation_engine.domain.errors import (
    DuplicateActiveNegotiationError,
    InvalidOfferError,
    InvalidStateError,
    NegotiationClosedError,
    NegotiationError,
    NegotiationNotFoundError,
    NoOpenOfferError,
    NotParticipantError,
    OfferNotFoundError,
    OwnOfferResponseError,
    PropertyNotFoundError,
    PropertyUnavailableError,
    SelfDealingError,
    TransactionNotFoundError,
    WrongTurnError,
)
from negotiation_engine.domain.models import AcceptOffer, CounterOffer, OpenResult, RejectOffer
from negotiation_engine.domain.types import (
    NegotiationStatus,
    NegotiationType,
    OfferStatus,
    ParticipantRole,
)
from negotiation_engine.properties import InMemoryPropertyDirectory
from negotiation_engine.service import NegotiationService
from negotiation_engine.storage.database import Database

BUYER = "buyer-1"
SELLER = "seller-1"
OUTSIDER = "outsider-1"
PROPERTY = "property-1"


def _count(database: Database, sql: str, *params: str) -> int:
    with database.snapshot() as conn:
        return int(conn.execute(sql, params).fetchone()[0])


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    """The four reference walkthroughs of the exchange."""

    def test_counter_counter_accept(self, service: NegotiationService, database: Database):
        """Open at 240000, counter 248000, counter 245000, accept."""
        opened = service.create_negotiation(
            BUYER, PROPERTY, NegotiationType.BUY, initial_amount=Decimal("240000")
        )
        negotiation_id = opened.negotiation.id
        assert opened.negotiation.status == NegotiationStatus.ACTIVE
        assert opened.opening_offer is not None
        assert opened.opening_offer.status == OfferStatus.PENDING

        seller_offer = service.submit_offer(negotiation_id, SELLER, Decimal("248000"))
        buyer_offer = service.submit_offer(negotiation_id, BUYER, Decimal("245000"))
        outcome = service.respond_to_offer(buyer_offer.id, SELLER, AcceptOffer())

        assert outcome.negotiation.status == NegotiationStatus.ACCEPTED
        assert outcome.offer.status == OfferStatus.ACCEPTED
        transaction = outcome.transaction
        assert transaction is not None
        assert transaction.amount == Decimal("245000")
        assert transaction.seller_amount == Decimal("245000") - transaction.platform_fee
        assert transaction.platform_fee == Decimal("12250.00")

        detail = service.get_negotiation(negotiation_id, BUYER)
        assert [o.status for o in detail.offers] == [
            OfferStatus.COUNTERED,
            OfferStatus.COUNTERED,
            OfferStatus.ACCEPTED,
        ]
        assert detail.offers[1].id == seller_offer.id
        assert detail.transaction == transaction
        assert _count(database, "SELECT COUNT(*) FROM transactions") == 1

    def test_duplicate_active_negotiation(self, service: NegotiationService, opened: OpenResult):
        with pytest.raises(DuplicateActiveNegotiationError):
            service.create_negotiation(BUYER, PROPERTY, NegotiationType.BUY)

    def test_concurrent_accepts(
        self, service: NegotiationService, database: Database, opened: OpenResult
    ):
        """Two simultaneous accepts: exactly one wins, one transaction row."""
        assert opened.opening_offer is not None
        offer_id = opened.opening_offer.id
        barrier = threading.Barrier(2)
        results: list[object] = []
        lock = threading.Lock()

        def accept() -> None:
            barrier.wait()
            try:
                outcome = service.respond_to_offer(offer_id, SELLER, AcceptOffer())
            except NegotiationError as exc:
                with lock:
                    results.append(exc)
            else:
                with lock:
                    results.append(outcome)

        threads = [threading.Thread(target=accept) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        errors = [r for r in results if isinstance(r, NegotiationError)]
        successes = [r for r in results if not isinstance(r, NegotiationError)]
        assert len(successes) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], NoOpenOfferError)
        assert (
            _count(
                database,
                "SELECT COUNT(*) FROM transactions WHERE negotiation_id = ?",
                opened.negotiation.id,
            )
            == 1
        )

    def test_cancel_twice(self, service: NegotiationService, opened: OpenResult):
        negotiation = service.cancel_negotiation(opened.negotiation.id, BUYER)
        assert negotiation.status == NegotiationStatus.REJECTED
        with pytest.raises(NegotiationClosedError):
            service.cancel_negotiation(opened.negotiation.id, BUYER)


# ---------------------------------------------------------------------------
# create_negotiation
# ---------------------------------------------------------------------------


class TestCreateNegotiation:
    def test_unknown_property(self, service: NegotiationService):
        with pytest.raises(PropertyNotFoundError):
            service.create_negotiation(BUYER, "nope", NegotiationType.BUY)

    def test_unavailable_property(self, service: NegotiationService):
        with pytest.raises(PropertyUnavailableError):
            service.create_negotiation(BUYER, "property-sold", NegotiationType.BUY)

    def test_owner_cannot_negotiate(self, service: NegotiationService):
        with pytest.raises(SelfDealingError):
            service.create_negotiation(BUYER, "property-buyer", NegotiationType.BUY)

    def test_seller_comes_from_catalog(self, service: NegotiationService, opened: OpenResult):
        assert opened.negotiation.seller_id == SELLER
        assert opened.negotiation.buyer_id == BUYER

    def test_default_currency(self, tmp_path: Path, properties: InMemoryPropertyDirectory):
        database = Database(tmp_path / "usd.db")
        database.initialize()
        service = NegotiationService(database, properties, default_currency="USD")
        result = service.create_negotiation(
            BUYER, PROPERTY, NegotiationType.RENT, initial_amount=Decimal("1500")
        )
        assert result.opening_offer is not None
        assert result.opening_offer.currency == "USD"

    def test_concurrent_opens_create_one(self, service: NegotiationService, database: Database):
        barrier = threading.Barrier(2)
        outcomes: list[object] = []

        def open_negotiation() -> None:
            barrier.wait()
            try:
                outcomes.append(service.create_negotiation(BUYER, PROPERTY, NegotiationType.BUY))
            except NegotiationError as exc:
                outcomes.append(exc)

        threads = [threading.Thread(target=open_negotiation) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sum(isinstance(o, DuplicateActiveNegotiationError) for o in outcomes) == 1
        assert _count(database, "SELECT COUNT(*) FROM negotiations WHERE status = 'active'") == 1


# ---------------------------------------------------------------------------
# submit_offer / respond_to_offer
# ---------------------------------------------------------------------------


class TestOffers:
    def test_wrong_turn(self, service: NegotiationService, opened: OpenResult):
        with pytest.raises(WrongTurnError):
            service.submit_offer(opened.negotiation.id, BUYER, Decimal("245000"))

    def test_outsider_cannot_offer(self, service: NegotiationService, opened: OpenResult):
        with pytest.raises(NotParticipantError):
            service.submit_offer(opened.negotiation.id, OUTSIDER, Decimal("1"))

    def test_invalid_amount(self, service: NegotiationService, opened: OpenResult):
        with pytest.raises(InvalidOfferError):
            service.submit_offer(opened.negotiation.id, SELLER, Decimal("10.123"))

    def test_oversized_amount_is_invalid_offer(self, service: NegotiationService, database: Database):
        with pytest.raises(InvalidOfferError):
            service.create_negotiation(
                BUYER, PROPERTY, NegotiationType.BUY, initial_amount=Decimal("1e30")
            )
        assert _count(database, "SELECT COUNT(*) FROM negotiations") == 0

    def test_unknown_offer(self, service: NegotiationService):
        with pytest.raises(OfferNotFoundError):
            service.respond_to_offer("missing", SELLER, AcceptOffer())

    def test_outsider_cannot_respond(self, service: NegotiationService, opened: OpenResult):
        assert opened.opening_offer is not None
        with pytest.raises(NotParticipantError):
            service.respond_to_offer(opened.opening_offer.id, OUTSIDER, AcceptOffer())

    def test_cannot_respond_to_own_offer(self, service: NegotiationService, opened: OpenResult):
        assert opened.opening_offer is not None
        with pytest.raises(OwnOfferResponseError) as exc_info:
            service.respond_to_offer(opened.opening_offer.id, BUYER, AcceptOffer())
        assert isinstance(exc_info.value, WrongTurnError)

    def test_respond_to_countered_offer(self, service: NegotiationService, opened: OpenResult):
        assert opened.opening_offer is not None
        service.submit_offer(opened.negotiation.id, SELLER, Decimal("260000"))
        with pytest.raises(NoOpenOfferError):
            service.respond_to_offer(opened.opening_offer.id, SELLER, AcceptOffer())

    def test_reject_then_rejecting_party_offers(
        self, service: NegotiationService, opened: OpenResult
    ):
        assert opened.opening_offer is not None
        outcome = service.respond_to_offer(
            opened.opening_offer.id, SELLER, RejectOffer(message="too low")
        )
        assert outcome.negotiation.status == NegotiationStatus.ACTIVE
        assert outcome.offer.status == OfferStatus.REJECTED

        with pytest.raises(WrongTurnError):
            service.submit_offer(opened.negotiation.id, BUYER, Decimal("255000"))
        fresh = service.submit_offer(opened.negotiation.id, SELLER, Decimal("265000"))
        assert fresh.status == OfferStatus.PENDING

    def test_counter_via_respond(self, service: NegotiationService, opened: OpenResult):
        assert opened.opening_offer is not None
        outcome = service.respond_to_offer(
            opened.opening_offer.id,
            SELLER,
            CounterOffer(amount=Decimal("262000"), terms={"closing": "60 days"}),
        )
        assert outcome.offer.status == OfferStatus.COUNTERED
        assert outcome.counter_offer is not None
        assert outcome.counter_offer.terms == {"closing": "60 days"}

    def test_respond_after_cancel(self, service: NegotiationService, opened: OpenResult):
        assert opened.opening_offer is not None
        service.cancel_negotiation(opened.negotiation.id, SELLER)
        with pytest.raises(NoOpenOfferError):
            service.respond_to_offer(opened.opening_offer.id, SELLER, AcceptOffer())


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------


class TestInvariants:
    def test_at_most_one_pending_offer(
        self, service: NegotiationService, database: Database, opened: OpenResult
    ):
        negotiation_id = opened.negotiation.id
        amounts = ["260000", "252000", "258000", "254000"]
        senders = [SELLER, BUYER, SELLER, BUYER]
        for sender, amount in zip(senders, amounts, strict=True):
            service.submit_offer(negotiation_id, sender, Decimal(amount))
            pending = _count(
                database,
                "SELECT COUNT(*) FROM offers WHERE negotiation_id = ? AND status = 'pending'",
                negotiation_id,
            )
            assert pending == 1

    def test_senders_alternate(self, service: NegotiationService, opened: OpenResult):
        negotiation_id = opened.negotiation.id
        service.submit_offer(negotiation_id, SELLER, Decimal("260000"))
        service.submit_offer(negotiation_id, BUYER, Decimal("252000"))
        offers = service.get_negotiation(negotiation_id, SELLER).offers
        senders = [o.sender_id for o in offers]
        assert all(a != b for a, b in zip(senders, senders[1:], strict=False))

    def test_no_transaction_without_accept(
        self, service: NegotiationService, opened: OpenResult
    ):
        with pytest.raises(TransactionNotFoundError):
            service.get_transaction(opened.negotiation.id, BUYER)
        service.cancel_negotiation(opened.negotiation.id, BUYER)
        with pytest.raises(TransactionNotFoundError):
            service.get_transaction(opened.negotiation.id, BUYER)

    def test_failed_operation_leaves_no_audit_event(
        self, service: NegotiationService, opened: OpenResult
    ):
        before = service.list_events(opened.negotiation.id, BUYER)
        with pytest.raises(WrongTurnError):
            service.submit_offer(opened.negotiation.id, BUYER, Decimal("1"))
        assert service.list_events(opened.negotiation.id, BUYER) == before


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestTransactions:
    def test_ensure_transaction_is_idempotent(
        self, service: NegotiationService, database: Database, opened: OpenResult
    ):
        assert opened.opening_offer is not None
        outcome = service.respond_to_offer(opened.opening_offer.id, SELLER, AcceptOffer())
        first = service.ensure_transaction(opened.negotiation.id, BUYER)
        second = service.ensure_transaction(opened.negotiation.id, SELLER)
        assert first == second == outcome.transaction
        assert _count(database, "SELECT COUNT(*) FROM transactions") == 1

    def test_ensure_transaction_mints_when_missing(
        self, service: NegotiationService, database: Database, opened: OpenResult
    ):
        assert opened.opening_offer is not None
        service.respond_to_offer(opened.opening_offer.id, SELLER, AcceptOffer())
        with database.unit_of_work() as conn:
            conn.execute("DELETE FROM transactions")

        transaction = service.ensure_transaction(opened.negotiation.id, BUYER)
        assert transaction.amount == Decimal("250000")
        assert _count(database, "SELECT COUNT(*) FROM transactions") == 1

    def test_ensure_transaction_requires_accepted(
        self, service: NegotiationService, opened: OpenResult
    ):
        with pytest.raises(InvalidStateError):
            service.ensure_transaction(opened.negotiation.id, BUYER)

    def test_outsider_cannot_see_transaction(
        self, service: NegotiationService, opened: OpenResult
    ):
        with pytest.raises(NotParticipantError):
            service.get_transaction(opened.negotiation.id, OUTSIDER)

    def test_list_transactions(self, service: NegotiationService, opened: OpenResult):
        assert opened.opening_offer is not None
        service.respond_to_offer(opened.opening_offer.id, SELLER, AcceptOffer())
        page = service.list_transactions(SELLER)
        assert page.meta.total == 1
        assert page.data[0].payee_id == SELLER
        assert service.list_transactions(OUTSIDER).meta.total == 0


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    def test_get_unknown(self, service: NegotiationService):
        with pytest.raises(NegotiationNotFoundError):
            service.get_negotiation("missing", BUYER)

    def test_get_by_outsider(self, service: NegotiationService, opened: OpenResult):
        with pytest.raises(NotParticipantError):
            service.get_negotiation(opened.negotiation.id, OUTSIDER)

    def test_list_by_role(self, service: NegotiationService, opened: OpenResult):
        assert service.list_negotiations(BUYER, role=ParticipantRole.BUYING).meta.total == 1
        assert service.list_negotiations(BUYER, role=ParticipantRole.SELLING).meta.total == 0
        assert service.list_negotiations(SELLER, role=ParticipantRole.SELLING).meta.total == 1
        assert service.list_negotiations(OUTSIDER).meta.total == 0

    def test_list_includes_latest_offer_only(
        self, service: NegotiationService, opened: OpenResult
    ):
        counter = service.submit_offer(opened.negotiation.id, SELLER, Decimal("260000"))
        page = service.list_negotiations(BUYER)
        assert page.data[0].latest_offer == counter

    def test_list_filters_and_orders(self, service: NegotiationService, opened: OpenResult):
        rental = service.create_negotiation(BUYER, PROPERTY, NegotiationType.RENT)
        service.cancel_negotiation(opened.negotiation.id, BUYER)

        everything = service.list_negotiations(BUYER)
        assert everything.meta.total == 2
        assert everything.data[0].negotiation.id == opened.negotiation.id

        active = service.list_negotiations(BUYER, status=NegotiationStatus.ACTIVE)
        assert [s.negotiation.id for s in active.data] == [rental.negotiation.id]

        rentals = service.list_negotiations(BUYER, negotiation_type=NegotiationType.RENT)
        assert rentals.meta.total == 1

    def test_pagination(self, service: NegotiationService, properties: InMemoryPropertyDirectory):
        for i in range(5):
            properties.add(f"p-{i}", SELLER)
            service.create_negotiation(BUYER, f"p-{i}", NegotiationType.BUY)
        page = service.list_negotiations(BUYER, page=2, limit=2)
        assert len(page.data) == 2
        assert page.meta.total == 5
        assert page.meta.total_pages == 3
        assert page.meta.page == 2

    def test_limit_is_capped(self, service: NegotiationService, opened: OpenResult):
        assert service.list_negotiations(BUYER, limit=10_000).meta.limit == 100

    def test_events(self, service: NegotiationService, opened: OpenResult):
        service.cancel_negotiation(opened.negotiation.id, SELLER)
        events = service.list_events(opened.negotiation.id, SELLER)
        assert [e["event_type"] for e in events] == [
            "negotiation_opened",
            "negotiation_cancelled",
        ]
        assert events[1]["actor_id"] == SELLER
        with pytest.raises(NotParticipantError):
            service.list_events(opened.negotiation.id, OUTSIDER)

    def test_events_limit_keeps_latest_offer(self, service: NegotiationService, opened: OpenResult):
        senders = [SELLER, BUYER] * 5
        for step, sender in enumerate(senders, start=1):
            service.submit_offer(opened.negotiation.id, sender, Decimal(250000 + step))

        events = service.list_events(opened.negotiation.id, BUYER, limit=5)
        assert len(events) == 5
        ids = [e["id"] for e in events]
        assert ids == sorted(ids)
        assert events[-1]["event_type"] == "offer_countered"
        assert Decimal(events[-1]["amount"]) == Decimal("250010")

    def test_count_active(self, service: NegotiationService, opened: OpenResult):
        assert service.count_active() == 1
        service.cancel_negotiation(opened.negotiation.id, BUYER)
        assert service.count_active() == 0
