"""SQLite schema for negotiations, offers, and transactions.

Uniqueness rules that must survive any lock-discipline bug are enforced by
the database itself:

- one ACTIVE negotiation per ``(property_id, buyer_id, type)``
- one PENDING offer per negotiation
- one transaction per negotiation
"""

from __future__ import annotations

import sqlite3


def init_schema(conn: sqlite3.Connection) -> None:
    """Create the negotiation tables and indexes if they do not already exist.

    Args:
        conn: An open sqlite3.Connection (WAL mode recommended).
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS negotiations (
            id TEXT PRIMARY KEY,
            property_id TEXT NOT NULL,
            buyer_id TEXT NOT NULL,
            seller_id TEXT NOT NULL,
            type TEXT NOT NULL CHECK (type IN ('buy', 'rent')),
            status TEXT NOT NULL DEFAULT 'active'
                CHECK (status IN ('active', 'accepted', 'rejected')),
            start_date TEXT,
            end_date TEXT,
            initial_message TEXT,
            created_at TEXT NOT NULL,
            last_action_at TEXT NOT NULL,
            CHECK (buyer_id <> seller_id)
        )
    """)
    conn.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_negotiations_active
        ON negotiations (property_id, buyer_id, type)
        WHERE status = 'active'
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_negotiations_buyer ON negotiations (buyer_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_negotiations_seller ON negotiations (seller_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_negotiations_status ON negotiations (status)")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS offers (
            id TEXT PRIMARY KEY,
            negotiation_id TEXT NOT NULL REFERENCES negotiations (id) ON DELETE CASCADE,
            seq INTEGER NOT NULL,
            sender_id TEXT NOT NULL,
            amount TEXT NOT NULL,
            currency TEXT NOT NULL,
            message TEXT,
            terms_json TEXT,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'accepted', 'rejected', 'countered')),
            counter_to_id TEXT REFERENCES offers (id),
            created_at TEXT NOT NULL,
            responded_at TEXT,
            UNIQUE (negotiation_id, seq)
        )
    """)
    conn.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_offers_open
        ON offers (negotiation_id)
        WHERE status = 'pending'
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_offers_sender ON offers (sender_id)")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS transactions (
            id TEXT PRIMARY KEY,
            negotiation_id TEXT NOT NULL UNIQUE REFERENCES negotiations (id),
            payer_id TEXT NOT NULL,
            payee_id TEXT NOT NULL,
            amount TEXT NOT NULL,
            currency TEXT NOT NULL,
            platform_fee TEXT NOT NULL,
            platform_fee_rate TEXT NOT NULL,
            seller_amount TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'completed', 'refunded')),
            created_at TEXT NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_transactions_payer ON transactions (payer_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_transactions_payee ON transactions (payee_id)")

    conn.commit()
