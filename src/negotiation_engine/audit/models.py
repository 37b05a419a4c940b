"""Audit trail models for the append-only negotiation event log.

Each committed mutation of a negotiation writes exactly one entry, in the
same database transaction as the mutation itself.
"""

from enum import StrEnum

from pydantic import BaseModel


class EventType(StrEnum):
    """Types of events tracked in the audit trail."""

    NEGOTIATION_OPENED = "negotiation_opened"
    OFFER_SUBMITTED = "offer_submitted"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
    OFFER_COUNTERED = "offer_countered"
    NEGOTIATION_CANCELLED = "negotiation_cancelled"
    TRANSACTION_MINTED = "transaction_minted"


class AuditEntry(BaseModel):
    """A single audit trail entry.

    All fields except event_type and negotiation_id are optional to
    accommodate different event types (e.g. a cancellation has no amount).
    """

    event_type: EventType
    negotiation_id: str
    actor_id: str | None = None
    offer_id: str | None = None
    transaction_id: str | None = None
    from_status: str | None = None
    to_status: str | None = None
    amount: str | None = None
    currency: str | None = None
    metadata: dict[str, str] | None = None
