# quote_relay/routers/ticker.py
from __future__ import annotations

import hmac

from fastapi import APIRouter, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from quote_relay.schemas import ResetResponse
from quote_relay.service import QuoteService

router = APIRouter(prefix="/api", tags=["ticker"])


def _service(request: Request) -> QuoteService:
    return request.app.state.quote_service


@router.get("/stock-ticker")
async def stock_ticker(request: Request) -> JSONResponse:
    """Latest quote for the configured symbol (fresh, cached, or stale)."""
    resp = await _service(request).get_quote()
    return JSONResponse(status_code=resp.status_code, content=resp.body)


@router.api_route("/admin/clear-rate-limit", methods=["GET", "POST"], response_model=ResetResponse)
def clear_rate_limit(
    request: Request,
    x_admin_token: str | None = Header(default=None),
) -> ResetResponse:
    """Manual recovery from a false-positive throttle signal."""
    svc = _service(request)
    expected = svc.settings.admin_token
    if expected is not None and not hmac.compare_digest(
        x_admin_token or "", expected.get_secret_value()
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="invalid admin token")
    svc.reset_rate_limit()
    return ResetResponse()
