"""SQLite persistence: schema, connections, and unit-of-work boundaries."""

from negotiation_engine.storage.database import Database, utcnow
from negotiation_engine.storage.schema import init_schema

__all__ = [
    "Database",
    "init_schema",
    "utcnow",
]
