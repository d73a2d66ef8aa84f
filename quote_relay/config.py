# quote_relay/config.py
# Purpose: Explicit runtime configuration for the quote service.
# Why: The core takes one Settings object at construction; env parsing stays here.
# Pitfalls: ALPHA_VANTAGE_API_KEY is optional at load time (missing -> 500 per request).

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

DEFAULT_UPSTREAM_URL = "https://www.alphavantage.co/query"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str = "AAPL"
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    credential: SecretStr | None = None
    upstream_url: str = DEFAULT_UPSTREAM_URL
    upstream_timeout_s: float = Field(default=10.0, gt=0)
    # None -> blocked until next UTC midnight (daily quota reset)
    rate_limit_seconds: float | None = Field(default=None, gt=0)
    shared_cache_dir: str | None = None
    admin_token: SecretStr | None = None
    expose_debug: bool = True

    @field_validator("symbol")
    @classmethod
    def _symbol_not_blank(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be empty")
        return v

    @property
    def cache_key(self) -> str:
        return self.symbol.lower()


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def load_settings() -> Settings:
    """Build Settings from the process environment."""
    values: dict = {
        "symbol": os.getenv("STOCK_SYMBOL", "AAPL"),
        "credential": os.getenv("ALPHA_VANTAGE_API_KEY") or None,
        "upstream_url": os.getenv("QR_UPSTREAM_URL", DEFAULT_UPSTREAM_URL),
        "shared_cache_dir": os.getenv("QR_SHARED_CACHE_DIR") or None,
        "admin_token": os.getenv("QR_ADMIN_TOKEN") or None,
        "expose_debug": _env_bool("QR_EXPOSE_DEBUG", True),
        "rate_limit_seconds": _env_float("QR_RATE_LIMIT_SEC"),
    }
    ttl = _env_float("QR_CACHE_TTL_SEC")
    if ttl is not None:
        values["cache_ttl_seconds"] = ttl
    timeout = _env_float("QR_UPSTREAM_TIMEOUT_SEC")
    if timeout is not None:
        values["upstream_timeout_s"] = timeout
    return Settings(**values)
