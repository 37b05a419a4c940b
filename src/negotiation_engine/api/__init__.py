"""HTTP interface: FastAPI router, request schemas and error mapping."""

from negotiation_engine.api.errors import ERROR_STATUS_CODES, register_error_handlers
from negotiation_engine.api.routes import router

__all__ = ["ERROR_STATUS_CODES", "register_error_handlers", "router"]
