"""Offer ledger, transaction minting and the negotiation exchange engine."""

from negotiation_engine.exchange.engine import OfferExchange
from negotiation_engine.exchange.ledger import OfferLedger
from negotiation_engine.exchange.minting import (
    FeeSplit,
    TransactionMinter,
    TransactionRepository,
    calculate_fee_split,
)
from negotiation_engine.exchange.negotiations import NegotiationRepository

__all__ = [
    "FeeSplit",
    "NegotiationRepository",
    "OfferExchange",
    "OfferLedger",
    "TransactionMinter",
    "TransactionRepository",
    "calculate_fee_split",
]
