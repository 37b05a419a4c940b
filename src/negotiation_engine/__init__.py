"""Negotiation and offer exchange engine for a real-estate marketplace."""

__version__ = "0.1.0"
