"""Property catalog collaborator.

The engine only needs three facts about a listing: that it exists, who owns
it and whether it is open for offers.  :class:`PropertyDirectory` names that
contract; :class:`HttpPropertyDirectory` answers it from the catalog service
and :class:`InMemoryPropertyDirectory` serves development and tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

from negotiation_engine.domain.errors import PropertyNotFoundError, PropertyServiceError

logger = structlog.get_logger()

# Catalog statuses under which a listing accepts new negotiations.
AVAILABLE_STATUSES: frozenset[str] = frozenset({"active"})


class PropertyDirectory(Protocol):
    """Read-only view of the property catalog."""

    def exists(self, property_id: str) -> bool: ...

    def get_owner_id(self, property_id: str) -> str:
        """Return the owner of *property_id*; raises ``PropertyNotFoundError``."""
        ...

    def is_available(self, property_id: str) -> bool: ...


@dataclass(frozen=True)
class PropertyRecord:
    id: str
    owner_id: str
    status: str = "active"


class InMemoryPropertyDirectory:
    """Dictionary-backed directory, used when no catalog URL is configured."""

    def __init__(self, records: list[PropertyRecord] | None = None) -> None:
        self._records: dict[str, PropertyRecord] = {r.id: r for r in records or []}

    def add(self, property_id: str, owner_id: str, status: str = "active") -> PropertyRecord:
        record = PropertyRecord(id=property_id, owner_id=owner_id, status=status)
        self._records[property_id] = record
        return record

    def exists(self, property_id: str) -> bool:
        return property_id in self._records

    def get_owner_id(self, property_id: str) -> str:
        record = self._records.get(property_id)
        if record is None:
            raise PropertyNotFoundError(property_id)
        return record.owner_id

    def is_available(self, property_id: str) -> bool:
        record = self._records.get(property_id)
        if record is None:
            raise PropertyNotFoundError(property_id)
        return record.status.lower() in AVAILABLE_STATUSES


class HttpPropertyDirectory:
    """Directory backed by the catalog service's ``GET /properties/{id}``.

    A 404 means the property does not exist.  Every other failure (network
    error, non-2xx status, malformed body) raises :class:`PropertyServiceError`
    so the caller can surface it as a gateway error.  There are no retries.

    Args:
        base_url: Catalog service root, e.g. ``https://catalog.internal``.
        token: Bearer token; empty for unauthenticated catalogs.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _fetch(self, property_id: str) -> PropertyRecord | None:
        try:
            response = self._client.get(f"/properties/{property_id}")
        except httpx.HTTPError as exc:
            logger.error("property_service_unreachable", property_id=property_id, error=str(exc))
            raise PropertyServiceError("Property service is unavailable") from exc

        if response.status_code == 404:
            return None
        if response.is_error:
            logger.error(
                "property_service_error",
                property_id=property_id,
                status_code=response.status_code,
            )
            raise PropertyServiceError(
                f"Property service answered with status {response.status_code}"
            )

        try:
            body: dict[str, Any] = response.json()
            owner_id = body.get("ownerId") or body.get("owner_id")
            if not owner_id:
                raise ValueError("missing owner id")
            return PropertyRecord(
                id=str(body.get("id", property_id)),
                owner_id=str(owner_id),
                status=str(body.get("status", "")),
            )
        except (ValueError, AttributeError) as exc:
            logger.error("property_service_bad_payload", property_id=property_id)
            raise PropertyServiceError("Property service returned an invalid payload") from exc

    def exists(self, property_id: str) -> bool:
        return self._fetch(property_id) is not None

    def get_owner_id(self, property_id: str) -> str:
        record = self._fetch(property_id)
        if record is None:
            raise PropertyNotFoundError(property_id)
        return record.owner_id

    def is_available(self, property_id: str) -> bool:
        record = self._fetch(property_id)
        if record is None:
            raise PropertyNotFoundError(property_id)
        return record.status.lower() in AVAILABLE_STATUSES
