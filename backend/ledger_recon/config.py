"""
Ledger Reconciliation - Configuration Management

Centralized configuration for the matching engine and the manual override
workflow. This module ensures:
- Tolerances are declared once, with documented defaults
- Matching and mismatch tolerances stay independently configurable
- Inconsistent settings are rejected at load time
"""

from datetime import timedelta
from decimal import Decimal
from functools import lru_cache
from typing import List
import logging

from pydantic import Field
from pydantic_settings import BaseSettings

from ledger_recon.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )

    # ==================== MATCHING ====================
    AMOUNT_TOLERANCE: Decimal = Field(
        default=Decimal("0.01"),
        description="Maximum amount delta for two records to be matched"
    )
    DATE_WINDOW_DAYS: int = Field(
        default=7,
        description="Maximum absolute date delta (days) for two records to be matched"
    )
    AMOUNT_MISMATCH_TOLERANCE: Decimal = Field(
        default=Decimal("0.01"),
        description="Amount delta above which a matched pair is flagged as a mismatch"
    )

    # ==================== MANUAL OVERRIDE ====================
    MIN_SELECTION: int = Field(
        default=2,
        description="Minimum number of comparisons in a manual match selection"
    )
    MAX_SELECTION: int = Field(
        default=10,
        description="Maximum number of comparisons in a manual match selection"
    )

    # ==================== OBSERVABILITY ====================
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )
    LOG_JSON: bool = Field(
        default=False,
        description="Emit JSON formatted logs (for log aggregation)"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def date_window(self) -> timedelta:
        return timedelta(days=self.DATE_WINDOW_DAYS)

    def validate_config(self) -> List[str]:
        """
        Validate the engine configuration.
        Returns list of validation errors.
        """
        errors = []

        if self.AMOUNT_TOLERANCE < 0:
            errors.append("AMOUNT_TOLERANCE must not be negative")

        if self.AMOUNT_MISMATCH_TOLERANCE < 0:
            errors.append("AMOUNT_MISMATCH_TOLERANCE must not be negative")

        if self.DATE_WINDOW_DAYS < 0:
            errors.append("DATE_WINDOW_DAYS must not be negative")

        if self.MIN_SELECTION < 2:
            errors.append("MIN_SELECTION must be at least 2")

        if self.MAX_SELECTION < self.MIN_SELECTION:
            errors.append("MAX_SELECTION must be greater than or equal to MIN_SELECTION")

        return errors


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Settings are loaded once and cached for the process lifetime.
    """
    settings = Settings()

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(
        f"Matching tolerances: amount={settings.AMOUNT_TOLERANCE}, "
        f"window={settings.DATE_WINDOW_DAYS}d, mismatch={settings.AMOUNT_MISMATCH_TOLERANCE}"
    )

    errors = settings.validate_config()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise ConfigurationError(f"Reconciliation configuration invalid: {', '.join(errors)}")

    return settings
