"""Public affiliate click tracking endpoints."""

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, Field

from partnerpay.affiliates.attribution import (
    AFFILIATE_COOKIE_NAME,
    AFFILIATE_REF_COOKIE_NAME,
    AFFILIATE_SESSION_COOKIE_NAME,
    AttributionToken,
    VisitorMeta,
    attribution_store,
    shop_fallback_url,
)
from partnerpay.api.rate_limit import CLICK_LIMIT, client_ip, limiter
from partnerpay.logging_config import get_logger
from partnerpay.settings import settings

logger = get_logger(__name__)

router = APIRouter(prefix="/affiliate", tags=["affiliate"])


# ==================== MODELS ====================


class ClickRequest(BaseModel):
    """Click reported by the storefront when a visitor lands with ?ref=CODE."""
    code: str = Field(..., max_length=64)
    session_id: str | None = Field(default=None, max_length=64)
    referrer: str | None = None
    url: str | None = None


class ClickResponse(BaseModel):
    success: bool = True
    tracked: bool


# ==================== HELPERS ====================


def set_attribution_cookies(response: Response, token: AttributionToken) -> None:
    """Write (or overwrite) the last-touch attribution cookies."""
    secure = settings.env == "production"
    for name, value, http_only in (
        (AFFILIATE_COOKIE_NAME, token.code, True),
        (AFFILIATE_SESSION_COOKIE_NAME, token.session_id, True),
        (AFFILIATE_REF_COOKIE_NAME, token.code, False),
    ):
        response.set_cookie(
            key=name,
            value=value,
            max_age=token.max_age,
            httponly=http_only,
            secure=secure,
            samesite="lax",
            path="/",
        )


# ==================== ENDPOINTS ====================


@router.post("/click", response_model=ClickResponse)
@limiter.limit(CLICK_LIMIT)
async def track_click(request: Request, body: ClickRequest):
    """Track a referral link click.

    Always answers 200: tracking must never break browsing.
    """
    result = attribution_store.record_click(
        body.code,
        VisitorMeta(
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            referrer=body.referrer or request.headers.get("referer"),
            landing_url=body.url,
        ),
        existing_session_id=body.session_id or request.cookies.get(AFFILIATE_SESSION_COOKIE_NAME),
    )

    response = JSONResponse(content=ClickResponse(tracked=result.tracked).model_dump())
    if result.tracked:
        set_attribution_cookies(response, result.token)
    return response


@router.get("/track")
@limiter.limit(CLICK_LIMIT)
async def track_and_redirect(
    request: Request,
    code: str | None = Query(default=None, max_length=64),
    session: str | None = Query(default=None, max_length=64),
):
    """Record a click and redirect to the link's destination.

    Unknown or inactive codes redirect to the shop without cookies.
    """
    result = attribution_store.record_click(
        code,
        VisitorMeta(
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            referrer=request.headers.get("referer"),
            landing_url=str(request.url),
        ),
        existing_session_id=session or request.cookies.get(AFFILIATE_SESSION_COOKIE_NAME),
    )

    if not result.tracked:
        return RedirectResponse(url=shop_fallback_url(), status_code=302)

    response = RedirectResponse(url=result.target_url or shop_fallback_url(), status_code=302)
    set_attribution_cookies(response, result.token)
    return response
