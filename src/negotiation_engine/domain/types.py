"""Domain enumerations and currency precision rules for the negotiation engine."""

from decimal import Decimal
from enum import StrEnum


class NegotiationType(StrEnum):
    """Whether the parties negotiate a purchase or a rental."""

    BUY = "buy"
    RENT = "rent"


class NegotiationStatus(StrEnum):
    """Negotiation-level lifecycle states."""

    ACTIVE = "active"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class OfferStatus(StrEnum):
    """Per-offer lifecycle states."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"


class TransactionStatus(StrEnum):
    """Settlement states.  Only PENDING is ever written by this engine."""

    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class ParticipantRole(StrEnum):
    """Role filter for listing a user's negotiations."""

    ALL = "all"
    BUYING = "buying"
    SELLING = "selling"


# Offers that can no longer change status.
TERMINAL_OFFER_STATUSES: frozenset[OfferStatus] = frozenset(
    {OfferStatus.ACCEPTED, OfferStatus.REJECTED, OfferStatus.COUNTERED}
)

# ISO 4217 minor units for currencies that differ from the 2-decimal default.
CURRENCY_MINOR_UNITS: dict[str, int] = {
    "BHD": 3,
    "CLP": 0,
    "ISK": 0,
    "JOD": 3,
    "JPY": 0,
    "KRW": 0,
    "KWD": 3,
    "OMR": 3,
    "TND": 3,
    "UGX": 0,
    "VND": 0,
    "XAF": 0,
    "XOF": 0,
}

DEFAULT_MINOR_UNITS = 2


def normalize_currency(code: str) -> str:
    """Upper-case and validate a 3-letter ISO 4217 currency code.

    Args:
        code: The currency code as supplied by a caller.

    Returns:
        The normalized upper-case code.

    Raises:
        ValueError: If the code is not three ASCII letters.
    """
    normalized = code.strip().upper()
    if len(normalized) != 3 or not normalized.isascii() or not normalized.isalpha():
        raise ValueError(f"Invalid currency code: {code!r}")
    return normalized


def minor_unit_quantum(currency: str) -> Decimal:
    """Return the smallest representable amount for *currency*.

    ``EUR`` -> ``Decimal("0.01")``, ``JPY`` -> ``Decimal("1")``,
    ``KWD`` -> ``Decimal("0.001")``.
    """
    places = CURRENCY_MINOR_UNITS.get(currency.upper(), DEFAULT_MINOR_UNITS)
    return Decimal(1).scaleb(-places)
