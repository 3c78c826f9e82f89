"""Admin payout endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from partnerpay.affiliates.models import PayoutMethod, PayoutStatus
from partnerpay.affiliates.payouts import payout_batcher
from partnerpay.affiliates.reporting import reporting_service
from partnerpay.api.v1.schemas import PayoutListResponse, PayoutResponse
from partnerpay.auth.middleware import require_admin, require_super_admin
from partnerpay.auth.models import Actor
from partnerpay.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/payouts", tags=["admin-payouts"])


# ==================== MODELS ====================


class CreatePayoutRequest(BaseModel):
    """Create a payout; omit commission_ids to take every eligible commission."""
    partner_id: int
    commission_ids: list[int] | None = None
    method: PayoutMethod | None = None
    reference: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    mark_as_paid: bool = False


class MarkPaidRequest(BaseModel):
    method: PayoutMethod
    reference: str | None = Field(default=None, max_length=255)
    paid_at: datetime | None = None
    notes: str | None = None


# ==================== ENDPOINTS ====================


@router.get("", response_model=PayoutListResponse)
async def list_payouts(
    status_filter: PayoutStatus | None = Query(default=None, alias="status"),
    partner_id: int | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    actor: Actor = Depends(require_admin),
):
    return reporting_service.list_payouts(status=status_filter, partner_id=partner_id, page=page, limit=limit)


@router.post("", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
async def create_payout(body: CreatePayoutRequest, actor: Actor = Depends(require_admin)):
    """Batch a partner's commissions into a payout.

    The payout amount is the sum of the selected commissions at this moment
    and never changes afterwards.
    """
    return payout_batcher.create_payout(
        body.partner_id,
        actor,
        commission_ids=body.commission_ids,
        method=body.method,
        reference=body.reference,
        notes=body.notes,
        mark_as_paid=body.mark_as_paid,
    )


@router.get("/{payout_id}", response_model=PayoutResponse)
async def get_payout(payout_id: int, actor: Actor = Depends(require_admin)):
    return payout_batcher.get_payout(payout_id)


@router.post("/{payout_id}/execute", response_model=PayoutResponse)
async def execute_payout(payout_id: int, actor: Actor = Depends(require_super_admin)):
    """Send the payout to the partner's connected Stripe account."""
    return payout_batcher.execute_payout(payout_id, actor)


@router.post("/{payout_id}/mark-paid", response_model=PayoutResponse)
async def mark_payout_paid(payout_id: int, body: MarkPaidRequest, actor: Actor = Depends(require_admin)):
    """Record a payment made outside Stripe (check, Zelle, bank transfer...)."""
    paid_at = body.paid_at
    if paid_at is not None and paid_at.tzinfo is not None:
        paid_at = paid_at.astimezone(timezone.utc).replace(tzinfo=None)
    return payout_batcher.mark_paid(
        payout_id,
        actor,
        method=body.method,
        reference=body.reference,
        paid_at=paid_at,
        notes=body.notes,
    )


@router.delete("/{payout_id}", response_model=PayoutResponse)
async def cancel_payout(payout_id: int, actor: Actor = Depends(require_admin)):
    """Cancel a pending payout; its commissions return to PENDING."""
    return payout_batcher.cancel_payout(payout_id, actor)
