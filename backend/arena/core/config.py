"""Application settings for the arena service and its tests."""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

from pydantic import Field
from pydantic import model_validator
from pydantic_settings import BaseSettings

from matchroom.models import RoomRules

MIN_JWT_SECRET_BYTES = 32


class Settings(BaseSettings):
    """Typed settings loaded from ARENA_* environment variables or explicit kwargs."""

    arena_app_env: str = "dev"
    arena_app_host: str = "127.0.0.1"
    arena_app_port: int = Field(default=8000, ge=1)

    arena_jwt_secret: str = Field(min_length=1)
    arena_access_token_expire_seconds: int = Field(default=3600, ge=1)

    arena_sqlite_path: str = "arena.db"
    arena_ledger_sqlite_path: str = "arena_ledger.db"
    arena_evidence_dir: str = "evidence"

    arena_min_bet_amount: int = Field(default=10, ge=1)
    arena_service_rate: Decimal = Field(default=Decimal("0.05"), ge=0, lt=1)
    arena_join_timeout_seconds: int = Field(default=180, ge=1)
    arena_code_timeout_seconds: int = Field(default=180, ge=1)
    arena_supervisor_interval_seconds: float = Field(default=5.0, gt=0)
    arena_supervisor_enabled: bool = True
    arena_max_evidence_bytes: int = Field(default=5 * 1024 * 1024, ge=1)

    arena_log_level: str = "INFO"
    arena_log_file: str | None = None

    @model_validator(mode="after")
    def validate_secret_and_log_level(self) -> "Settings":
        """Reject short signing secrets and unknown log level names."""
        if len(self.arena_jwt_secret.encode("utf-8")) < MIN_JWT_SECRET_BYTES:
            raise ValueError(f"ARENA_JWT_SECRET must be at least {MIN_JWT_SECRET_BYTES} bytes")
        level = self.arena_log_level.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"ARENA_LOG_LEVEL is not a logging level: {self.arena_log_level}")
        self.arena_log_level = level
        return self

    def room_rules(self) -> RoomRules:
        return RoomRules(
            min_bet_amount=self.arena_min_bet_amount,
            service_rate=self.arena_service_rate,
            join_timeout=timedelta(seconds=self.arena_join_timeout_seconds),
            code_timeout=timedelta(seconds=self.arena_code_timeout_seconds),
        )


def load_settings() -> Settings:
    """Load settings from process environment."""
    return Settings()
