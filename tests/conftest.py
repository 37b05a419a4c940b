"""Shared pytest fixtures for the negotiation engine test suite."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from decimal import Decimal
from pathlib import Path

import pytest

from negotiation_engine.domain.types import NegotiationType
from negotiation_engine.exchange.engine import OfferExchange
from negotiation_engine.exchange.minting import TransactionMinter
from negotiation_engine.audit.logger import AuditLogger
from negotiation_engine.properties import InMemoryPropertyDirectory
from negotiation_engine.service import NegotiationService
from negotiation_engine.storage.database import Database

BUYER = "buyer-1"
SELLER = "seller-1"
OUTSIDER = "outsider-1"
PROPERTY = "property-1"
FEE_RATE = Decimal("0.05")


@pytest.fixture
def database(tmp_path: Path) -> Database:
    """A freshly initialized file-backed database."""
    db = Database(tmp_path / "negotiations.db")
    db.initialize()
    return db


@pytest.fixture
def conn(database: Database) -> Iterator[sqlite3.Connection]:
    """A connection inside an open unit of work, rolled back after the test."""
    connection = database.connect()
    connection.execute("BEGIN IMMEDIATE")
    yield connection
    if connection.in_transaction:
        connection.execute("ROLLBACK")
    connection.close()


@pytest.fixture
def exchange(conn: sqlite3.Connection) -> OfferExchange:
    """An exchange engine with auditing, bound to ``conn``."""
    audit = AuditLogger(conn)
    minter = TransactionMinter(conn, FEE_RATE, audit=audit)
    return OfferExchange(conn, minter, audit=audit)


@pytest.fixture
def properties() -> InMemoryPropertyDirectory:
    """A catalog with one available listing owned by SELLER."""
    directory = InMemoryPropertyDirectory()
    directory.add(PROPERTY, SELLER)
    directory.add("property-sold", SELLER, status="sold")
    directory.add("property-buyer", BUYER)
    return directory


@pytest.fixture
def service(database: Database, properties: InMemoryPropertyDirectory) -> NegotiationService:
    return NegotiationService(database, properties, fee_rate=FEE_RATE)


@pytest.fixture
def opened(service: NegotiationService):
    """An ACTIVE BUY negotiation with a 250000 EUR opening offer from BUYER."""
    return service.create_negotiation(
        BUYER, PROPERTY, NegotiationType.BUY, initial_amount=Decimal("250000")
    )
