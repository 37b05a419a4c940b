"""FastAPI dependencies: caller identity and the negotiation service."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from negotiation_engine.service import NegotiationService

USER_ID_HEADER = "X-User-ID"


def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias=USER_ID_HEADER)] = None,
) -> str:
    """Return the authenticated caller set by the upstream auth layer.

    Raises:
        HTTPException: 401 if the header is missing or blank.
    """
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=401, detail=f"Missing {USER_ID_HEADER} header")
    return x_user_id.strip()


def get_service(request: Request) -> NegotiationService:
    service: NegotiationService = request.app.state.services["negotiation_service"]
    return service


CurrentUser = Annotated[str, Depends(get_current_user_id)]
Service = Annotated[NegotiationService, Depends(get_service)]
