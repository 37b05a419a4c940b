"""Domain-specific exception classes for the negotiation engine.

Every error carries a stable machine-readable ``code``.  HTTP status mapping
lives in :mod:`negotiation_engine.api.errors`, not here.
"""

from negotiation_engine.domain.types import NegotiationStatus, OfferStatus


class NegotiationError(Exception):
    """Base class for all domain errors in the negotiation engine."""

    code = "NEGOTIATION_ERROR"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class InvalidOfferError(NegotiationError):
    """Raised when an offer payload is malformed (amount, currency, dates)."""

    code = "INVALID_OFFER"


class InvalidActionError(NegotiationError):
    """Raised when a response action is not one of accept, reject, counter.

    Attributes:
        action: The unrecognized action value.
    """

    code = "INVALID_ACTION"

    def __init__(self, action: object) -> None:
        self.action = action
        super().__init__(
            f"Unrecognized action {action!r}; expected one of accept, reject, counter"
        )


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class SelfDealingError(NegotiationError):
    """Raised when a property owner tries to negotiate on their own listing."""

    code = "SELF_DEALING"

    def __init__(self, property_id: str | None = None) -> None:
        self.property_id = property_id
        super().__init__("Cannot negotiate on your own property")


class NotParticipantError(NegotiationError):
    """Raised when a user who is neither buyer nor seller touches a negotiation."""

    code = "FORBIDDEN"

    def __init__(self, negotiation_id: str, user_id: str) -> None:
        self.negotiation_id = negotiation_id
        self.user_id = user_id
        super().__init__("Access denied")


# ---------------------------------------------------------------------------
# State conflicts
# ---------------------------------------------------------------------------


class InvalidStateError(NegotiationError):
    """Raised when an operation's preconditions on stored state do not hold."""

    code = "INVALID_STATE"


class InvalidTransitionError(NegotiationError):
    """Raised when an invalid negotiation state transition is attempted.

    Attributes:
        current_state: The state the machine was in when the transition was attempted.
        event: The event that was rejected.
    """

    code = "INVALID_TRANSITION"

    def __init__(
        self, current_state: NegotiationStatus, event: str, message: str | None = None
    ) -> None:
        self.current_state = current_state
        self.event = event
        super().__init__(message or f"Cannot apply event '{event}' in state '{current_state}'")


class NegotiationClosedError(InvalidTransitionError):
    """Raised for any event applied to an ACCEPTED or REJECTED negotiation."""

    code = "NEGOTIATION_CLOSED"

    def __init__(self, current_state: NegotiationStatus, event: str) -> None:
        super().__init__(
            current_state, event, f"Negotiation is not active (status '{current_state}')"
        )


class DuplicateActiveNegotiationError(NegotiationError):
    """Raised when the buyer already has an ACTIVE negotiation of this type."""

    code = "DUPLICATE_ACTIVE_NEGOTIATION"

    def __init__(self, property_id: str, buyer_id: str, existing_id: str | None = None) -> None:
        self.property_id = property_id
        self.buyer_id = buyer_id
        self.existing_id = existing_id
        super().__init__("You already have an active negotiation for this property")


class WrongTurnError(NegotiationError):
    """Raised when the sender of the open offer tries to act on it again."""

    code = "WRONG_TURN"

    def __init__(self, user_id: str, message: str | None = None) -> None:
        self.user_id = user_id
        super().__init__(message or "Waiting for response to your previous offer")


class OwnOfferResponseError(WrongTurnError):
    """Raised when a user responds to an offer they sent themselves."""

    code = "OWN_OFFER"

    def __init__(self, user_id: str, offer_id: str) -> None:
        self.offer_id = offer_id
        super().__init__(user_id, "Cannot respond to your own offer")


class NoOpenOfferError(NegotiationError):
    """Raised when a response targets a negotiation with no PENDING offer."""

    code = "NO_OPEN_OFFER"

    def __init__(self, negotiation_id: str, offer_status: OfferStatus | None = None) -> None:
        self.negotiation_id = negotiation_id
        self.offer_status = offer_status
        if offer_status is None:
            msg = "Negotiation has no open offer"
        else:
            msg = f"Offer is not pending (status '{offer_status}')"
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Lookups and collaborators
# ---------------------------------------------------------------------------


class NotFoundError(NegotiationError):
    """Base class for missing-entity errors."""

    code = "NOT_FOUND"
    entity = "Entity"

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found")


class NegotiationNotFoundError(NotFoundError):
    entity = "Negotiation"


class OfferNotFoundError(NotFoundError):
    entity = "Offer"


class PropertyNotFoundError(NotFoundError):
    entity = "Property"


class TransactionNotFoundError(NotFoundError):
    entity = "Transaction"


class PropertyUnavailableError(NegotiationError):
    """Raised when the property is not listed as available."""

    code = "PROPERTY_UNAVAILABLE"

    def __init__(self, property_id: str) -> None:
        self.property_id = property_id
        super().__init__("Property is not available for negotiation")


class PropertyServiceError(NegotiationError):
    """Raised when the property catalog cannot be reached or answers garbage."""

    code = "PROPERTY_SERVICE_ERROR"
