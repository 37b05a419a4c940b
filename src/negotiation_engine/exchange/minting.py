"""Fee split and idempotent transaction minting for accepted negotiations.

An accepted negotiation has exactly one transaction.  Minting is safe to
replay: a second call for the same negotiation returns the stored row, and
the unique index on ``transactions.negotiation_id`` turns a racing insert
into a re-read instead of a second row.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Callable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import structlog
from pydantic import BaseModel, ConfigDict

from negotiation_engine.audit.logger import AuditLogger
from negotiation_engine.domain.errors import InvalidOfferError, InvalidStateError
from negotiation_engine.domain.models import Negotiation, Offer, Transaction
from negotiation_engine.domain.types import (
    NegotiationStatus,
    OfferStatus,
    TransactionStatus,
    minor_unit_quantum,
)
from negotiation_engine.storage.database import utcnow

logger = structlog.get_logger()


class FeeSplit(BaseModel):
    """How an accepted amount divides between the platform and the seller."""

    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str
    platform_fee_rate: Decimal
    platform_fee: Decimal
    seller_amount: Decimal


def calculate_fee_split(amount: Decimal, currency: str, fee_rate: Decimal) -> FeeSplit:
    """Split *amount* into the platform fee and the seller's share.

    The fee is rounded half-up to the currency's minor unit, so the two
    parts always add back up to *amount* exactly.

    Args:
        amount: The accepted offer amount.
        currency: ISO 4217 code of *amount*.
        fee_rate: Platform fee as a fraction, e.g. ``Decimal("0.05")``.

    Returns:
        A :class:`FeeSplit`.

    Raises:
        InvalidOfferError: If *amount* cannot be represented at the
            currency's precision.
    """
    if isinstance(fee_rate, float):
        raise TypeError("Use Decimal or string, not float, for the fee rate")
    rate = Decimal(str(fee_rate))
    if rate < 0 or rate >= 1:
        raise ValueError(f"Fee rate must be in [0, 1), got {fee_rate}")
    try:
        fee = (amount * rate).quantize(minor_unit_quantum(currency), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidOfferError(f"Amount is too large to split: {amount}") from None
    return FeeSplit(
        amount=amount,
        currency=currency,
        platform_fee_rate=rate,
        platform_fee=fee,
        seller_amount=amount - fee,
    )


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction.model_validate(dict(row))


class TransactionRepository:
    """Read and write transaction rows on the caller's connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, transaction_id: str) -> Transaction | None:
        row = self._conn.execute(
            "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
        ).fetchone()
        return _row_to_transaction(row) if row else None

    def get_by_negotiation(self, negotiation_id: str) -> Transaction | None:
        row = self._conn.execute(
            "SELECT * FROM transactions WHERE negotiation_id = ?", (negotiation_id,)
        ).fetchone()
        return _row_to_transaction(row) if row else None

    def insert(self, transaction: Transaction) -> None:
        """Insert a transaction.

        Raises:
            sqlite3.IntegrityError: If the negotiation already has one.
        """
        self._conn.execute(
            """
            INSERT INTO transactions (
                id, negotiation_id, payer_id, payee_id, amount, currency,
                platform_fee, platform_fee_rate, seller_amount, status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                transaction.id,
                transaction.negotiation_id,
                transaction.payer_id,
                transaction.payee_id,
                str(transaction.amount),
                transaction.currency,
                str(transaction.platform_fee),
                str(transaction.platform_fee_rate),
                str(transaction.seller_amount),
                transaction.status.value,
                transaction.created_at.isoformat(timespec="microseconds"),
            ),
        )

    def count_for_user(self, user_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM transactions WHERE payer_id = ? OR payee_id = ?",
            (user_id, user_id),
        ).fetchone()
        return int(row[0])

    def list_for_user(self, user_id: str, *, limit: int = 20, offset: int = 0) -> list[Transaction]:
        """List transactions where *user_id* pays or is paid, newest first."""
        rows = self._conn.execute(
            """
            SELECT * FROM transactions WHERE payer_id = ? OR payee_id = ?
            ORDER BY created_at DESC, id ASC LIMIT ? OFFSET ?
            """,
            (user_id, user_id, limit, offset),
        ).fetchall()
        return [_row_to_transaction(row) for row in rows]


class TransactionMinter:
    """Mint the settlement record for an accepted negotiation.

    Args:
        conn: A connection inside an open unit of work.
        fee_rate: Platform fee rate applied at mint time.
        audit: Optional audit logger; a ``transaction_minted`` entry is
            written only when a new row is inserted.
        clock: Source of timestamps.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        fee_rate: Decimal,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._transactions = TransactionRepository(conn)
        self._fee_rate = fee_rate
        self._audit = audit
        self._clock = clock

    def mint(self, negotiation: Negotiation, accepted_offer: Offer) -> Transaction:
        """Return the negotiation's transaction, creating it if needed.

        Raises:
            InvalidStateError: If the negotiation or the offer is not
                ACCEPTED, or the offer belongs to another negotiation.
        """
        if negotiation.status != NegotiationStatus.ACCEPTED:
            raise InvalidStateError(
                f"Cannot mint a transaction for a negotiation in status '{negotiation.status}'"
            )
        if accepted_offer.negotiation_id != negotiation.id:
            raise InvalidStateError("Offer does not belong to this negotiation")
        if accepted_offer.status != OfferStatus.ACCEPTED:
            raise InvalidStateError(
                f"Cannot mint a transaction from an offer in status '{accepted_offer.status}'"
            )

        existing = self._transactions.get_by_negotiation(negotiation.id)
        if existing is not None:
            return existing

        split = calculate_fee_split(accepted_offer.amount, accepted_offer.currency, self._fee_rate)
        transaction = Transaction(
            id=str(uuid.uuid4()),
            negotiation_id=negotiation.id,
            payer_id=negotiation.buyer_id,
            payee_id=negotiation.seller_id,
            amount=split.amount,
            currency=split.currency,
            platform_fee=split.platform_fee,
            platform_fee_rate=split.platform_fee_rate,
            seller_amount=split.seller_amount,
            status=TransactionStatus.PENDING,
            created_at=self._clock(),
        )
        try:
            self._transactions.insert(transaction)
        except sqlite3.IntegrityError:
            stored = self._transactions.get_by_negotiation(negotiation.id)
            if stored is None:
                raise
            logger.info("transaction_already_minted", negotiation_id=negotiation.id)
            return stored

        if self._audit is not None:
            self._audit.log_transaction_minted(transaction)
        return transaction
