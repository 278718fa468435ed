"""Application configuration via environment variables."""

import json
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Policy and infrastructure settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./leavecore.db"

    # App
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "info"

    # Entitlement
    STANDARD_WORKING_DAYS: int = 5
    COMPRESSED_FULL_TIME_HOURS: Decimal = Decimal("35")

    # Carry-forward — per leave type, optionally bounded by a global cap
    CARRY_FORWARD_GLOBAL_CAP: Optional[Decimal] = None
    CARRY_FORWARD_EXPIRY_MONTHS: int = 3

    # Conflict policy
    SELF_OVERLAP_BLOCKS: bool = True
    SUBSTITUTE_UNAVAILABLE_BLOCKS: bool = False
    OVERLAP_MEDIUM_THRESHOLD: int = 2
    OVERLAP_HIGH_THRESHOLD: int = 4
    COVERAGE_GAP_MIN_DAYS: int = 7

    # Escalation
    ESCALATION_SLA_DAYS: int = 3
    MAX_ESCALATION_LEVELS: int = 3

    # Calendar — JSON list of weekday numbers (0=Mon … 6=Sun)
    WEEKEND_DAYS: str = "[5, 6]"

    # Storage — "memory" or "sql"
    STORAGE_BACKEND: str = "memory"
    STORE_MAX_RETRIES: int = 3

    @property
    def weekend_days_set(self) -> set[int]:
        """Parse WEEKEND_DAYS JSON string into a set of weekday numbers."""
        try:
            return {int(d) for d in json.loads(self.WEEKEND_DAYS)}
        except (json.JSONDecodeError, TypeError, ValueError):
            return {5, 6}

    @property
    def log_level_name(self) -> str:
        return self.LOG_LEVEL.upper()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
