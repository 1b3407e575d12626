"""Configuration management for the completion billing service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

from completion_billing.calculators.types import BudgetPolicy


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    host: str
    port: int
    debug: bool
    log_level: str
    upfront_rate: Decimal
    currency_quantum: Decimal
    currency: str
    rounding_tolerance: Decimal

    @property
    def HOST(self) -> str:
        """Alias for host."""
        return self.host

    @property
    def PORT(self) -> int:
        """Alias for port."""
        return self.port

    @property
    def DEBUG(self) -> bool:
        """Alias for debug."""
        return self.debug

    def budget_policy(self) -> BudgetPolicy:
        """Rates and rounding rules for project budgets."""
        return BudgetPolicy(
            upfront_rate=self.upfront_rate,
            quantum=self.currency_quantum,
            tolerance=self.rounding_tolerance,
        )

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv(
                "DATABASE_URL",
                "sqlite+aiosqlite:///./completion_billing.db",
            ),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            upfront_rate=Decimal(os.getenv("UPFRONT_RATE", "0.12")),
            currency_quantum=Decimal(os.getenv("CURRENCY_QUANTUM", "1")),
            currency=os.getenv("CURRENCY", "USD"),
            rounding_tolerance=Decimal(os.getenv("ROUNDING_TOLERANCE", "1")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()


settings = get_settings()
