"""Configuration management for the short link service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from app.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    length = settings.SHORT_CODE_LENGTH

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- Code length and retry bounds are configuration, never hardcoded in the engine.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlinks"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://shortlinks:shortlinks@db:5432/shortlinks"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_POOL_TIMEOUT_SECONDS: float = 5.0

    # Short code generation
    SHORT_CODE_LENGTH: int = Field(7, ge=1, le=20)
    MAX_CODE_GENERATION_ATTEMPTS: int = Field(10, ge=1)
    CREATE_RETRY_LIMIT: int = Field(3, ge=0)

    # Whether the anonymous delete path may remove a link that has an owner
    ANONYMOUS_DELETE_OWNED_LINKS: bool = True

    # Token introspection
    AUTH_SERVICE_URL: str = "http://auth:8081"
    AUTH_TIMEOUT_SECONDS: float = 2.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
