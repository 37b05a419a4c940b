"""Transition maps for negotiation status and per-offer status."""

from enum import StrEnum

from negotiation_engine.domain.types import TERMINAL_OFFER_STATUSES, NegotiationStatus, OfferStatus


class NegotiationEvent(StrEnum):
    """Events that can be applied to a negotiation."""

    SUBMIT_OFFER = "submit_offer"
    REJECT_OFFER = "reject_offer"
    ACCEPT = "accept"
    CANCEL = "cancel"


# All valid (current_state, event_string) -> next_state mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[NegotiationStatus, str], NegotiationStatus] = {
    (NegotiationStatus.ACTIVE, NegotiationEvent.SUBMIT_OFFER): NegotiationStatus.ACTIVE,
    # Rejecting an offer leaves the negotiation open for a fresh offer.
    (NegotiationStatus.ACTIVE, NegotiationEvent.REJECT_OFFER): NegotiationStatus.ACTIVE,
    (NegotiationStatus.ACTIVE, NegotiationEvent.ACCEPT): NegotiationStatus.ACCEPTED,
    (NegotiationStatus.ACTIVE, NegotiationEvent.CANCEL): NegotiationStatus.REJECTED,
}

# States that reject all events -- no outgoing transitions allowed.
TERMINAL_STATES: frozenset[NegotiationStatus] = frozenset(
    {NegotiationStatus.ACCEPTED, NegotiationStatus.REJECTED}
)

# An offer leaves PENDING exactly once.
OFFER_TRANSITIONS: dict[OfferStatus, frozenset[OfferStatus]] = {
    OfferStatus.PENDING: TERMINAL_OFFER_STATUSES,
    **{status: frozenset() for status in TERMINAL_OFFER_STATUSES},
}


def can_transition_offer(current: OfferStatus, target: OfferStatus) -> bool:
    """Return True if an offer in *current* may move to *target*."""
    return target in OFFER_TRANSITIONS[current]
