"""Request bodies accepted by the HTTP interface.

Field names are snake_case; the camelCase spellings used by the marketplace
frontend are accepted as aliases.  Amounts arrive as JSON numbers or strings
and are parsed straight into ``Decimal``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from negotiation_engine.domain.errors import InvalidActionError, InvalidOfferError
from negotiation_engine.domain.models import (
    AcceptOffer,
    CounterOffer,
    RejectOffer,
    ResponseAction,
)
from negotiation_engine.domain.types import NegotiationType


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateNegotiationRequest(_RequestModel):
    property_id: str = Field(min_length=1)
    type: NegotiationType
    initial_offer_amount: Decimal | None = Field(
        default=None,
        validation_alias=AliasChoices("initial_offer_amount", "initialOfferAmount", "initial_amount"),
    )
    currency: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    message: str | None = None
    terms: dict[str, Any] | None = None


class SubmitOfferRequest(_RequestModel):
    amount: Decimal
    currency: str | None = None
    message: str | None = None
    terms: dict[str, Any] | None = None


class RespondToOfferRequest(_RequestModel):
    """Raw respond body; :meth:`to_action` decodes it into one closed variant."""

    action: str
    counter_amount: Decimal | None = None
    currency: str | None = None
    message: str | None = None
    terms: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("terms", "counter_terms", "counterTerms"),
    )

    def to_action(self) -> ResponseAction:
        """Decode the body into an accept, reject or counter action.

        Raises:
            InvalidActionError: If ``action`` is not accept, reject or counter.
            InvalidOfferError: If a counter has no ``counter_amount``.
        """
        action = self.action.strip().lower()
        if action == "accept":
            return AcceptOffer(message=self.message)
        if action == "reject":
            return RejectOffer(message=self.message)
        if action == "counter":
            if self.counter_amount is None:
                raise InvalidOfferError("Counter amount is required")
            return CounterOffer(
                amount=self.counter_amount,
                currency=self.currency,
                message=self.message,
                terms=self.terms,
            )
        raise InvalidActionError(self.action)
