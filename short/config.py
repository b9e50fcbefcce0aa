"""Configuration management for the short key service.

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
    from short.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    store = KeyStore(max_len=settings.MAX_LEN, min_key_size=settings.MIN_KEY_SIZE)

**Step 3 — Override for tests**::
    settings = Settings(CREATE_RATE_BURST=1000)

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- Rate limits are expressed as requests per second plus a burst size.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "short"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # HTTP transport
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 8081

    # Key store
    MAX_LEN: int = 2083
    MIN_KEY_SIZE: int = 6

    # Endpoint rate limiting (requests per second / burst)
    CREATE_RATE_LIMIT: float = 50.0
    CREATE_RATE_BURST: int = 1
    LOOKUP_RATE_LIMIT: float = 100.0
    LOOKUP_RATE_BURST: int = 500

    # Endpoint circuit breaking
    BREAKER_FAILURE_THRESHOLD: int = 5
    BREAKER_RESET_TIMEOUT_SECONDS: float = 60.0

    # HTTP client library
    CLIENT_RATE_LIMIT: float = 50.0
    CLIENT_RATE_BURST: int = 100
    CLIENT_BREAKER_RESET_TIMEOUT_SECONDS: float = 5.0
    CLIENT_TIMEOUT_SECONDS: float = 2.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
