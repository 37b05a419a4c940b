"""NegotiationStateMachine class with trigger, history, and valid_events."""

from __future__ import annotations

from negotiation_engine.domain.errors import InvalidTransitionError, NegotiationClosedError
from negotiation_engine.domain.types import NegotiationStatus
from negotiation_engine.state_machine.transitions import TERMINAL_STATES, TRANSITIONS


class NegotiationStateMachine:
    """Finite state machine governing negotiation status.

    A negotiation starts ACTIVE and ends ACCEPTED or REJECTED.  Offer traffic
    (submitting, rejecting) keeps it ACTIVE; once terminal every event fails
    with :class:`NegotiationClosedError`.

    Usage::

        sm = NegotiationStateMachine()
        sm.trigger("submit_offer")    # -> ACTIVE
        sm.trigger("accept")          # -> ACCEPTED (terminal)
        sm.trigger("cancel")          # raises NegotiationClosedError
    """

    def __init__(
        self,
        initial_state: NegotiationStatus = NegotiationStatus.ACTIVE,
    ) -> None:
        self._state: NegotiationStatus = initial_state
        self._history: list[tuple[NegotiationStatus, str, NegotiationStatus]] = []

    @property
    def state(self) -> NegotiationStatus:
        """Return the current negotiation status."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Return True if the machine is in a terminal state (ACCEPTED or REJECTED)."""
        return self._state in TERMINAL_STATES

    @property
    def history(self) -> list[tuple[NegotiationStatus, str, NegotiationStatus]]:
        """Return a copy of the transition history.

        Each entry is a ``(from_state, event, to_state)`` tuple recorded in
        chronological order.
        """
        return list(self._history)

    def trigger(self, event: str) -> NegotiationStatus:
        """Apply an event to the current state and transition.

        Args:
            event: The event string (e.g. ``"accept"``).

        Returns:
            The new state after the transition.

        Raises:
            NegotiationClosedError: If the machine is in a terminal state.
            InvalidTransitionError: If the event is unknown for the current state.
        """
        if self.is_terminal:
            raise NegotiationClosedError(self._state, event)

        key = (self._state, event)
        if key not in TRANSITIONS:
            raise InvalidTransitionError(self._state, event)

        old_state = self._state
        new_state = TRANSITIONS[key]
        self._history.append((old_state, event, new_state))
        self._state = new_state
        return new_state

    def get_valid_events(self) -> list[str]:
        """Return a sorted list of events valid from the current state.

        Returns an empty list if the machine is in a terminal state.
        """
        if self.is_terminal:
            return []
        return sorted(event for state, event in TRANSITIONS if state == self._state)
