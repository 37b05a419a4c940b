"""Tests for AuditLogger convenience methods covering every event type."""

import sqlite3
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from negotiation_engine.audit.logger import AuditLogger
from negotiation_engine.audit.store import query_events
from negotiation_engine.domain.models import Negotiation, Offer, Transaction
from negotiation_engine.domain.types import NegotiationStatus, NegotiationType, OfferStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _negotiation(status: NegotiationStatus = NegotiationStatus.ACTIVE) -> Negotiation:
    return Negotiation(
        id="neg-1",
        property_id="property-1",
        buyer_id="buyer-1",
        seller_id="seller-1",
        type=NegotiationType.BUY,
        status=status,
        created_at=NOW,
        last_action_at=NOW,
    )


def _offer(offer_id: str = "offer-1", sender: str = "buyer-1", **overrides) -> Offer:
    fields = {
        "id": offer_id,
        "negotiation_id": "neg-1",
        "seq": 1,
        "sender_id": sender,
        "amount": Decimal("250000"),
        "currency": "EUR",
        "created_at": NOW,
    }
    fields.update(overrides)
    return Offer(**fields)


@pytest.fixture
def audit(conn: sqlite3.Connection) -> AuditLogger:
    return AuditLogger(conn)


class TestAuditLogger:
    """Each method writes one entry with the right shape."""

    def test_log_negotiation_opened(self, audit: AuditLogger, conn: sqlite3.Connection) -> None:
        row_id = audit.log_negotiation_opened(_negotiation(), _offer())
        assert row_id > 0
        (row,) = query_events(conn)
        assert row["event_type"] == "negotiation_opened"
        assert row["actor_id"] == "buyer-1"
        assert row["offer_id"] == "offer-1"
        assert row["to_status"] == "active"
        assert row["amount"] == "250000"
        assert row["metadata"] == {"property_id": "property-1", "type": "buy"}

    def test_log_negotiation_opened_without_offer(
        self, audit: AuditLogger, conn: sqlite3.Connection
    ) -> None:
        audit.log_negotiation_opened(_negotiation(), None)
        (row,) = query_events(conn)
        assert row["offer_id"] is None
        assert row["amount"] is None

    def test_log_offer_submitted(self, audit: AuditLogger, conn: sqlite3.Connection) -> None:
        audit.log_offer_submitted(_offer())
        (row,) = query_events(conn)
        assert row["event_type"] == "offer_submitted"
        assert row["to_status"] == "pending"

    def test_log_offer_countered(self, audit: AuditLogger, conn: sqlite3.Connection) -> None:
        countered = _offer(status=OfferStatus.COUNTERED)
        counter = _offer("offer-2", sender="seller-1", seq=2, amount=Decimal("260000"))
        audit.log_offer_countered(countered, counter)
        (row,) = query_events(conn)
        assert row["event_type"] == "offer_countered"
        assert row["actor_id"] == "seller-1"
        assert row["offer_id"] == "offer-2"
        assert row["from_status"] == "pending"
        assert row["to_status"] == "countered"
        assert row["amount"] == "260000"
        assert row["metadata"] == {"countered_offer_id": "offer-1"}

    def test_log_offer_accepted(self, audit: AuditLogger, conn: sqlite3.Connection) -> None:
        audit.log_offer_accepted(_offer(status=OfferStatus.ACCEPTED), "seller-1")
        (row,) = query_events(conn)
        assert row["event_type"] == "offer_accepted"
        assert row["actor_id"] == "seller-1"
        assert row["to_status"] == "accepted"

    def test_log_offer_rejected_with_message(
        self, audit: AuditLogger, conn: sqlite3.Connection
    ) -> None:
        audit.log_offer_rejected(_offer(status=OfferStatus.REJECTED), "seller-1", "too low")
        (row,) = query_events(conn)
        assert row["event_type"] == "offer_rejected"
        assert row["metadata"] == {"message": "too low"}

    def test_log_offer_rejected_without_message(
        self, audit: AuditLogger, conn: sqlite3.Connection
    ) -> None:
        audit.log_offer_rejected(_offer(status=OfferStatus.REJECTED), "seller-1")
        (row,) = query_events(conn)
        assert row["metadata"] is None

    def test_log_negotiation_cancelled(
        self, audit: AuditLogger, conn: sqlite3.Connection
    ) -> None:
        audit.log_negotiation_cancelled(_negotiation(NegotiationStatus.REJECTED), "seller-1", None)
        (row,) = query_events(conn)
        assert row["event_type"] == "negotiation_cancelled"
        assert row["from_status"] == "active"
        assert row["to_status"] == "rejected"
        assert row["offer_id"] is None

    def test_log_transaction_minted(self, audit: AuditLogger, conn: sqlite3.Connection) -> None:
        transaction = Transaction(
            id="tx-1",
            negotiation_id="neg-1",
            payer_id="buyer-1",
            payee_id="seller-1",
            amount=Decimal("250000"),
            currency="EUR",
            platform_fee=Decimal("12500.00"),
            platform_fee_rate=Decimal("0.05"),
            seller_amount=Decimal("237500.00"),
            created_at=NOW,
        )
        audit.log_transaction_minted(transaction)
        (row,) = query_events(conn)
        assert row["event_type"] == "transaction_minted"
        assert row["transaction_id"] == "tx-1"
        assert row["to_status"] == "pending"
        assert row["metadata"] == {
            "platform_fee": "12500.00",
            "platform_fee_rate": "0.05",
            "seller_amount": "237500.00",
        }
