"""Domain types, models, and errors for the negotiation engine."""

from negotiation_engine.domain.errors import (
    DuplicateActiveNegotiationError,
    InvalidActionError,
    InvalidOfferError,
    InvalidStateError,
    InvalidTransitionError,
    NegotiationClosedError,
    NegotiationError,
    NegotiationNotFoundError,
    NoOpenOfferError,
    NotFoundError,
    NotParticipantError,
    OfferNotFoundError,
    OwnOfferResponseError,
    PropertyNotFoundError,
    PropertyServiceError,
    PropertyUnavailableError,
    SelfDealingError,
    TransactionNotFoundError,
    WrongTurnError,
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
    validate_money,
)
from negotiation_engine.domain.types import (
    NegotiationStatus,
    NegotiationType,
    OfferStatus,
    ParticipantRole,
    TransactionStatus,
    minor_unit_quantum,
)

__all__ = [
    "AcceptOffer",
    "CounterOffer",
    "DuplicateActiveNegotiationError",
    "InvalidActionError",
    "InvalidOfferError",
    "InvalidStateError",
    "InvalidTransitionError",
    "Negotiation",
    "NegotiationClosedError",
    "NegotiationDetail",
    "NegotiationError",
    "NegotiationNotFoundError",
    "NegotiationStatus",
    "NegotiationSummary",
    "NegotiationType",
    "NoOpenOfferError",
    "NotFoundError",
    "NotParticipantError",
    "Offer",
    "OfferNotFoundError",
    "OfferStatus",
    "OpenResult",
    "OwnOfferResponseError",
    "Page",
    "ParticipantRole",
    "PropertyNotFoundError",
    "PropertyServiceError",
    "PropertyUnavailableError",
    "RejectOffer",
    "ResponseAction",
    "ResponseOutcome",
    "SelfDealingError",
    "Transaction",
    "TransactionNotFoundError",
    "TransactionStatus",
    "WrongTurnError",
    "minor_unit_quantum",
    "validate_money",
]
