"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_runtime()``
startup gate that enforces collaborator configuration in production mode.

IMPORTANT: This module has ZERO imports from the ``negotiation_engine``
package to prevent circular imports.  Only stdlib, pydantic,
pydantic_settings, and structlog are used.
"""

from __future__ import annotations

import sys
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    ``SecretStr`` fields prevent accidental leaks in logs or error output.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    http_port: int = 8000

    # -- Storage ---------------------------------------------------------------
    database_path: Path = Path("data/negotiations.db")
    sqlite_busy_timeout_ms: int = 5000

    # -- Offers and settlement -------------------------------------------------
    platform_fee_rate: Decimal = Decimal("0.05")
    default_currency: str = "EUR"
    page_size_limit: int = 100

    # -- Property catalog collaborator ------------------------------------------
    property_service_url: str = ""
    property_service_token: SecretStr = SecretStr("")

    # -- Observability ---------------------------------------------------------
    sentry_dsn: SecretStr = SecretStr("")

    @field_validator("platform_fee_rate")
    @classmethod
    def fee_rate_must_be_fraction(cls, v: Decimal) -> Decimal:
        """Ensure the fee rate lies in ``[0, 1)``."""
        if v < 0 or v >= 1:
            raise ValueError(f"platform_fee_rate must be in [0, 1), got {v}")
        return v

    @field_validator("default_currency")
    @classmethod
    def currency_must_be_iso_code(cls, v: str) -> str:
        """Normalize the default currency to an upper-case 3-letter code."""
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"default_currency must be a 3-letter ISO code, got {v!r}")
        return code


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Log only the structured errors list -- never the full exception
        # which may contain raw SecretStr values.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def validate_runtime(settings: Settings) -> None:
    """Enforce collaborator configuration at startup.

    In **production** mode the process exits with a clear error block if the
    property catalog URL or the Sentry DSN is missing.  In **development**
    mode each gap is logged as a warning and startup continues with the
    in-memory property directory.

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not settings.property_service_url:
        errors.append("PROPERTY_SERVICE_URL is empty or not set")

    if not settings.sentry_dsn.get_secret_value():
        errors.append("SENTRY_DSN is empty or not set")

    if not errors:
        logger.info("runtime_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("runtime_config_missing", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Missing required configuration for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("runtime_config_missing_dev", detail=err)
