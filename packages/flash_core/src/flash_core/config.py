"""
Foundation settings for the Flash ecosystem.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlashSettings(BaseSettings):
    """
    Core settings for all Flash modules.
    Individual packages (like flash_flare) read their defaults from here.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # --- Basic Environment ---
    DEBUG: bool = True
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    LOG_LEVEL: str = "INFO"

    # --- Database Core ---
    DATABASE_URL: str | None = None
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # --- Hooks ---
    # These seed HookConfig for every registry created from settings
    FLARE_ENABLE_COLUMN_HOOKS: bool = True
    FLARE_MAX_REFETCH: int = Field(default=1000, ge=0)
    FLARE_WARN_ON_SKIP: bool = True
    FLARE_CALLBACKS_DIR: str | None = None

    # --- Pagination ---
    DEFAULT_PER_PAGE: int = 15
    MAX_PER_PAGE: int = 500

    @model_validator(mode="after")
    def validate_pagination(self) -> "FlashSettings":
        """Ensures the default page size fits inside the allowed maximum."""
        if self.DEFAULT_PER_PAGE < 1 or self.DEFAULT_PER_PAGE > self.MAX_PER_PAGE:
            raise ValueError("DEFAULT_PER_PAGE must be between 1 and MAX_PER_PAGE.")
        return self

    def is_development(self) -> bool:
        return self.DEBUG or self.ENVIRONMENT == "development"


# Singleton instance for core use
flash_settings = FlashSettings()
