"""HTTP routes for negotiations, offers and transactions.

The service is synchronous (SQLite), so every call is pushed onto a worker
thread with ``asyncio.to_thread`` to keep the event loop free.
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Any

from fastapi import APIRouter, Query

from negotiation_engine.api.deps import CurrentUser, Service
from negotiation_engine.api.schemas import (
    CreateNegotiationRequest,
    RespondToOfferRequest,
    SubmitOfferRequest,
)
from negotiation_engine.domain.models import (
    Negotiation,
    NegotiationDetail,
    NegotiationSummary,
    Offer,
    OpenResult,
    Page,
    ResponseOutcome,
    Transaction,
)
from negotiation_engine.domain.types import NegotiationStatus, NegotiationType, ParticipantRole

router = APIRouter()

PageNumber = Annotated[int, Query(ge=1)]
# Upper bound is applied by the service from Settings.page_size_limit.
PageLimit = Annotated[int, Query(ge=1)]


@router.post("/negotiations", status_code=201)
async def create_negotiation(
    body: CreateNegotiationRequest, user_id: CurrentUser, service: Service
) -> OpenResult:
    """Open a negotiation on a property, optionally with an opening offer."""
    return await asyncio.to_thread(
        service.create_negotiation,
        user_id,
        body.property_id,
        body.type,
        initial_amount=body.initial_offer_amount,
        currency=body.currency,
        message=body.message,
        terms=body.terms,
        start_date=body.start_date,
        end_date=body.end_date,
    )


@router.get("/negotiations")
async def list_negotiations(
    user_id: CurrentUser,
    service: Service,
    role: ParticipantRole = ParticipantRole.ALL,
    type: NegotiationType | None = None,
    status: NegotiationStatus | None = None,
    page: PageNumber = 1,
    limit: PageLimit = 20,
) -> Page[NegotiationSummary]:
    return await asyncio.to_thread(
        service.list_negotiations,
        user_id,
        role=role,
        negotiation_type=type,
        status=status,
        page=page,
        limit=limit,
    )


@router.get("/negotiations/{negotiation_id}")
async def get_negotiation(
    negotiation_id: str, user_id: CurrentUser, service: Service
) -> NegotiationDetail:
    return await asyncio.to_thread(service.get_negotiation, negotiation_id, user_id)


@router.post("/negotiations/{negotiation_id}/offers", status_code=201)
async def submit_offer(
    negotiation_id: str, body: SubmitOfferRequest, user_id: CurrentUser, service: Service
) -> Offer:
    """Place an opening offer, a counter to the open offer, or a fresh offer after a reject."""
    return await asyncio.to_thread(
        service.submit_offer,
        negotiation_id,
        user_id,
        body.amount,
        body.currency,
        body.message,
        body.terms,
    )


@router.post("/negotiations/offers/{offer_id}/respond")
async def respond_to_offer(
    offer_id: str, body: RespondToOfferRequest, user_id: CurrentUser, service: Service
) -> ResponseOutcome:
    """Accept, reject or counter an offer sent by the other party."""
    action = body.to_action()
    return await asyncio.to_thread(service.respond_to_offer, offer_id, user_id, action)


@router.get("/negotiations/{negotiation_id}/transaction")
async def get_transaction(
    negotiation_id: str, user_id: CurrentUser, service: Service
) -> Transaction:
    return await asyncio.to_thread(service.get_transaction, negotiation_id, user_id)


@router.post("/negotiations/{negotiation_id}/transaction")
async def ensure_transaction(
    negotiation_id: str, user_id: CurrentUser, service: Service
) -> Transaction:
    """Return the transaction of an accepted negotiation, minting it if missing."""
    return await asyncio.to_thread(service.ensure_transaction, negotiation_id, user_id)


@router.delete("/negotiations/{negotiation_id}")
async def cancel_negotiation(
    negotiation_id: str, user_id: CurrentUser, service: Service
) -> Negotiation:
    return await asyncio.to_thread(service.cancel_negotiation, negotiation_id, user_id)


@router.get("/negotiations/{negotiation_id}/events")
async def list_events(
    negotiation_id: str,
    user_id: CurrentUser,
    service: Service,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[dict[str, Any]]:
    return await asyncio.to_thread(service.list_events, negotiation_id, user_id, limit)


@router.get("/transactions")
async def list_transactions(
    user_id: CurrentUser,
    service: Service,
    page: PageNumber = 1,
    limit: PageLimit = 20,
) -> Page[Transaction]:
    return await asyncio.to_thread(service.list_transactions, user_id, page, limit)
