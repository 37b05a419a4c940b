"""Negotiation state machine with transition validation."""

from negotiation_engine.state_machine.machine import NegotiationStateMachine
from negotiation_engine.state_machine.transitions import (
    OFFER_TRANSITIONS,
    TERMINAL_STATES,
    TRANSITIONS,
    NegotiationEvent,
    can_transition_offer,
)

__all__ = [
    "NegotiationEvent",
    "NegotiationStateMachine",
    "OFFER_TRANSITIONS",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "can_transition_offer",
]
