from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# --- Quote payload (cached + served verbatim) ---
class QuoteResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: Literal["success"] = "success"
    symbol: str
    price: str  # "123.45"
    change: str | None = None  # "1.23"
    change_percent: str | None = Field(default=None, alias="changePercent")  # "1.01%"
    last_trading_day: str | None = Field(default=None, alias="lastTradingDay")
    timestamp: str  # UTC ISO
    last_refreshed: str = Field(alias="lastRefreshed")
    # Only set on copies served past expiry
    stale: bool | None = None
    message: str | None = None

    def as_stale(self, message: str) -> "QuoteResult":
        """Annotated copy for degraded serving; self is left untouched."""
        return self.model_copy(update={"stale": True, "message": message})

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- Error taxonomy ---
class ErrorKind(str, Enum):
    CONFIG = "CONFIG"
    RATE_LIMIT = "RATE_LIMIT"
    UPSTREAM = "UPSTREAM"
    MALFORMED = "MALFORMED"
    INTERNAL = "INTERNAL"


class ErrorResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["error"] = "error"
    message: str
    debug: dict[str, Any] | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


# --- Admin reset payload ---
class ResetResponse(BaseModel):
    status: Literal["success"] = "success"
    message: str = "Rate limit flag cleared"


# --- Health payload ---
class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    as_of: str
    service: str = "quote-relay"
    rate_limited: bool
    rate_limited_until: str | None = None


# --- Version payload ---
class VersionResponse(BaseModel):
    service: str  # "quote-relay:0.3.0"
    service_version: str
