"""Admin commission management endpoints."""

from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from partnerpay.affiliates.ledger import commission_ledger
from partnerpay.affiliates.models import CommissionStatus, CommissionType
from partnerpay.affiliates.reporting import reporting_service
from partnerpay.api.v1.schemas import CommissionListResponse, CommissionResponse
from partnerpay.auth.middleware import require_admin
from partnerpay.auth.models import Actor
from partnerpay.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/commissions", tags=["admin-commissions"])


# ==================== MODELS ====================


class BulkActionRequest(BaseModel):
    commission_ids: list[int] = Field(..., min_length=1)
    notes: str | None = None


class BulkActionResponse(BaseModel):
    success: bool = True
    count: int


class CommissionUpdateRequest(BaseModel):
    amount: Decimal | None = Field(default=None, ge=0)
    status: CommissionStatus | None = None
    notes: str | None = None


class ManualCommissionRequest(BaseModel):
    partner_id: int
    referral_id: int
    type: CommissionType
    base_amount: Decimal = Field(..., ge=0)
    rate: Decimal | None = Field(default=None, ge=0, le=100)
    amount: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None


# ==================== ENDPOINTS ====================


@router.get("", response_model=CommissionListResponse)
async def list_commissions(
    status_filter: CommissionStatus | None = Query(default=None, alias="status"),
    partner_id: int | None = None,
    type: CommissionType | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    actor: Actor = Depends(require_admin),
):
    """List commissions with filters and per-status totals."""
    return reporting_service.list_commissions(
        status=status_filter,
        partner_id=partner_id,
        type=type,
        page=page,
        limit=limit,
    )


@router.post("", response_model=CommissionResponse, status_code=status.HTTP_201_CREATED)
async def create_commission(body: ManualCommissionRequest, actor: Actor = Depends(require_admin)):
    """Enter a commission by hand against an existing referral."""
    return commission_ledger.create_manual(
        actor,
        partner_id=body.partner_id,
        referral_id=body.referral_id,
        type=body.type,
        base_amount=body.base_amount,
        rate=body.rate,
        amount=body.amount,
        notes=body.notes,
    )


@router.put("/approve", response_model=BulkActionResponse)
async def approve_commissions(body: BulkActionRequest, actor: Actor = Depends(require_admin)):
    """Approve pending commissions (others in the list are skipped)."""
    count = commission_ledger.approve(body.commission_ids, actor, notes=body.notes)
    return BulkActionResponse(count=count)


@router.put("/reject", response_model=BulkActionResponse)
async def reject_commissions(body: BulkActionRequest, actor: Actor = Depends(require_admin)):
    """Flag commissions as rejected; they stay out of payouts until re-approved."""
    count = commission_ledger.reject(body.commission_ids, actor, notes=body.notes)
    return BulkActionResponse(count=count)


@router.get("/{commission_id}", response_model=CommissionResponse)
async def get_commission(commission_id: int, actor: Actor = Depends(require_admin)):
    return commission_ledger.get(commission_id)


@router.put("/{commission_id}", response_model=CommissionResponse)
async def update_commission(
    commission_id: int,
    body: CommissionUpdateRequest,
    actor: Actor = Depends(require_admin),
):
    """Edit amount, status or notes. Payout-linked rows only accept notes."""
    return commission_ledger.update(
        commission_id,
        actor,
        amount=body.amount,
        status=body.status,
        notes=body.notes,
    )


@router.delete("/{commission_id}")
async def delete_commission(commission_id: int, actor: Actor = Depends(require_admin)):
    commission_ledger.delete(commission_id, actor)
    return {"success": True}
