"""Pydantic v2 models for negotiations, offers, transactions and their views.

Monetary values are ``Decimal`` throughout; float inputs are rejected where a
caller can construct a model directly.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from negotiation_engine.domain.errors import InvalidOfferError
from negotiation_engine.domain.types import (
    NegotiationStatus,
    NegotiationType,
    OfferStatus,
    TransactionStatus,
    minor_unit_quantum,
    normalize_currency,
)

T = TypeVar("T")


def validate_money(amount: Decimal | int | str, currency: str) -> tuple[Decimal, str]:
    """Validate an offer amount against its currency.

    The amount must be a finite, strictly positive number with no more
    decimal places than the currency's minor unit allows.

    Args:
        amount: The proposed amount.  Floats are rejected.
        currency: ISO 4217 currency code (any case).

    Returns:
        ``(amount, currency)`` normalized.

    Raises:
        InvalidOfferError: If the amount or the currency is invalid.
    """
    if isinstance(amount, float):
        raise InvalidOfferError("Use Decimal or string, not float, for monetary values")
    try:
        code = normalize_currency(currency)
    except ValueError as exc:
        raise InvalidOfferError(str(exc)) from None
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise InvalidOfferError(f"Invalid amount: {amount!r}") from None
    if not value.is_finite() or value <= 0:
        raise InvalidOfferError(f"Amount must be positive, got {amount}")
    quantum = minor_unit_quantum(code)
    try:
        quantized = value.quantize(quantum)
    except InvalidOperation:
        raise InvalidOfferError(f"Amount is too large: {amount}") from None
    if value != quantized:
        places = -quantum.as_tuple().exponent
        raise InvalidOfferError(f"{code} amounts allow at most {places} decimal places")
    return value, code


class Negotiation(BaseModel):
    """The bounded back-and-forth between one buyer and one seller over one property."""

    model_config = ConfigDict(frozen=True)

    id: str
    property_id: str
    buyer_id: str
    seller_id: str
    type: NegotiationType
    status: NegotiationStatus = NegotiationStatus.ACTIVE
    start_date: date | None = None
    end_date: date | None = None
    initial_message: str | None = None
    created_at: datetime
    last_action_at: datetime

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.buyer_id, self.seller_id)


class Offer(BaseModel):
    """A single priced proposal within a negotiation."""

    model_config = ConfigDict(frozen=True)

    id: str
    negotiation_id: str
    seq: int
    sender_id: str
    amount: Decimal
    currency: str
    message: str | None = None
    terms: dict[str, Any] | None = None
    status: OfferStatus = OfferStatus.PENDING
    counter_to_id: str | None = None
    created_at: datetime
    responded_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == OfferStatus.PENDING


class Transaction(BaseModel):
    """Settlement record minted when a negotiation is accepted."""

    model_config = ConfigDict(frozen=True)

    id: str
    negotiation_id: str
    payer_id: str
    payee_id: str
    amount: Decimal
    currency: str
    platform_fee: Decimal
    platform_fee_rate: Decimal
    seller_amount: Decimal
    status: TransactionStatus = TransactionStatus.PENDING
    created_at: datetime


# ---------------------------------------------------------------------------
# Response actions: a closed variant decoded once at the API boundary
# ---------------------------------------------------------------------------


class AcceptOffer(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["accept"] = "accept"
    message: str | None = None


class RejectOffer(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["reject"] = "reject"
    message: str | None = None


class CounterOffer(BaseModel):
    """Counter the open offer with a new amount from the responder."""

    model_config = ConfigDict(frozen=True)

    action: Literal["counter"] = "counter"
    amount: Decimal
    currency: str | None = None
    message: str | None = None
    terms: dict[str, Any] | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        if isinstance(v, float):
            raise ValueError("Use Decimal or string, not float, for monetary values")
        return v


ResponseAction = Annotated[AcceptOffer | RejectOffer | CounterOffer, Field(discriminator="action")]


# ---------------------------------------------------------------------------
# Read views
# ---------------------------------------------------------------------------


class NegotiationSummary(BaseModel):
    """List entry: a negotiation plus its most recent offer."""

    negotiation: Negotiation
    latest_offer: Offer | None = None


class NegotiationDetail(BaseModel):
    """A negotiation with its full, ordered offer history."""

    negotiation: Negotiation
    offers: list[Offer]
    transaction: Transaction | None = None


class OpenResult(BaseModel):
    negotiation: Negotiation
    opening_offer: Offer | None = None


class ResponseOutcome(BaseModel):
    """Result of accepting, rejecting or countering an offer.

    ``offer`` is the offer that was responded to, now terminal.  ``counter_offer``
    is set only for counters and ``transaction`` only for accepts.
    """

    negotiation: Negotiation
    offer: Offer
    counter_offer: Offer | None = None
    transaction: Transaction | None = None


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class Page(BaseModel, Generic[T]):
    data: list[T]
    meta: PageMeta

    @classmethod
    def build(cls, data: list[T], total: int, page: int, limit: int) -> Page[T]:
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(
            data=data,
            meta=PageMeta(total=total, page=page, limit=limit, total_pages=total_pages),
        )
