"""Append-only audit trail of negotiation events."""

from negotiation_engine.audit.logger import AuditLogger
from negotiation_engine.audit.models import AuditEntry, EventType
from negotiation_engine.audit.store import init_audit_tables, insert_event, query_events

__all__ = [
    "AuditEntry",
    "AuditLogger",
    "EventType",
    "init_audit_tables",
    "insert_event",
    "query_events",
]
