"""Conversion event intake.

Machine callers (storefront checkout, MotoRev backend) post events with the
shared X-API-Key. Service-lead conversions are entered by admins.
"""

from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from partnerpay.affiliates.attribution import AFFILIATE_COOKIE_NAME
from partnerpay.affiliates.conversions import ConversionEvent, ConversionResult, conversion_recorder
from partnerpay.affiliates.models import EventType, Platform
from partnerpay.api.rate_limit import CONVERSION_LIMIT, limiter
from partnerpay.auth.middleware import require_admin, require_service_key
from partnerpay.auth.models import Actor
from partnerpay.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/conversions", tags=["conversions"])


# ==================== MODELS ====================


class ConversionRequest(BaseModel):
    platform: Platform
    event_type: EventType
    external_reference: str = Field(..., min_length=1, max_length=255)
    affiliate_code: str | None = Field(default=None, max_length=64)
    amount: Decimal | None = Field(default=None, ge=0)
    customer_email: str | None = None
    signup_at: datetime | None = None
    converted_at: datetime | None = None
    session_id: str | None = Field(default=None, max_length=64)


class LeadCloseRequest(BaseModel):
    partner_id: int
    lead_reference: str = Field(..., min_length=1, max_length=255)
    contract_value: Decimal | None = Field(default=None, ge=0)
    customer_email: str | None = None
    closed_at: datetime | None = None


class RecurringCycleRequest(BaseModel):
    billing_reference: str = Field(..., min_length=1, max_length=100)
    monthly_amount: Decimal = Field(..., gt=0)


class ConversionResponse(BaseModel):
    referral_id: int
    partner_id: int
    commission_id: int | None = None
    amount: Decimal | None = None
    status: str | None = None
    duplicate: bool = False
    eligible: bool = True


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _to_response(result: ConversionResult) -> ConversionResponse:
    commission = result.commission
    return ConversionResponse(
        referral_id=result.referral.id,
        partner_id=result.referral.partner_id,
        commission_id=commission.id if commission else None,
        amount=commission.amount if commission else None,
        status=commission.status.value if commission else None,
        duplicate=result.duplicate,
        eligible=result.eligible,
    )


# ==================== ENDPOINTS ====================


@router.post("", response_model=ConversionResponse)
@limiter.limit(CONVERSION_LIMIT)
async def record_conversion(
    request: Request,
    body: ConversionRequest,
    actor: Actor = Depends(require_service_key),
):
    """Record an order, app signup or Pro conversion.

    The affiliate code comes from the body, or from the attribution cookie
    when the caller forwards the visitor's cookies. Re-posting an event
    returns the original result with ``duplicate=true``.
    """
    result = conversion_recorder.record(
        ConversionEvent(
            platform=body.platform,
            event_type=body.event_type,
            external_reference=body.external_reference,
            affiliate_code=body.affiliate_code or request.cookies.get(AFFILIATE_COOKIE_NAME),
            amount=body.amount,
            customer_email=body.customer_email,
            signup_at=_naive_utc(body.signup_at),
            converted_at=_naive_utc(body.converted_at),
            session_id=body.session_id,
        )
    )
    return _to_response(result)


@router.post("/leads", response_model=ConversionResponse)
async def record_lead_close(body: LeadCloseRequest, actor: Actor = Depends(require_admin)):
    """Record a service lead closed into a deal (first-sale commission)."""
    result = conversion_recorder.record_lead_close(
        actor,
        partner_id=body.partner_id,
        lead_reference=body.lead_reference,
        contract_value=body.contract_value,
        customer_email=body.customer_email,
        closed_at=_naive_utc(body.closed_at),
    )
    return _to_response(result)


@router.post("/leads/{referral_id}/cycles", response_model=ConversionResponse)
async def record_recurring_cycle(
    referral_id: int,
    body: RecurringCycleRequest,
    actor: Actor = Depends(require_admin),
):
    """Credit one billing cycle of a referred client's recurring fee."""
    result = conversion_recorder.record_recurring_cycle(
        actor,
        referral_id=referral_id,
        billing_reference=body.billing_reference,
        monthly_amount=body.monthly_amount,
    )
    return _to_response(result)
