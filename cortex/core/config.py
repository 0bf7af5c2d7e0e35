# cortex/core/config.py
from __future__ import annotations

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings, loaded from environment variables and/or .env file.
    """

    # Environment settings
    APP_NAME: str = "Cortex Capability Orchestrator"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Comma-delimited list of allowed origins",
    )

    # Orchestrator settings
    ORCHESTRATOR_MAX_CONCURRENT_INTERVENTIONS: int = 3
    ORCHESTRATOR_INTERVENTION_COOLDOWN_MS: int = 1000
    ORCHESTRATOR_ADAPTIVE_PRIORITY: bool = True
    ORCHESTRATOR_LEARNING_ENABLED: bool = True
    ORCHESTRATOR_SELF_OPTIMIZATION_ENABLED: bool = True

    # History store settings
    HISTORY_STORE_MAX_RECORDS: int = 1000
    HISTORY_CONTEXT_LIMIT: int = 10  # Prior units handed to providers per pass

    @field_validator("CORS_ALLOW_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, value: str | List[str]) -> List[str]:
        """Allow comma-separated strings for origins env var."""
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("ORCHESTRATOR_MAX_CONCURRENT_INTERVENTIONS")
    @classmethod
    def _at_least_one_slot(cls, value: int) -> int:
        return max(1, value)

    @field_validator("ORCHESTRATOR_INTERVENTION_COOLDOWN_MS", "HISTORY_CONTEXT_LIMIT")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        return max(0, value)

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local", "test")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


settings = Settings()
