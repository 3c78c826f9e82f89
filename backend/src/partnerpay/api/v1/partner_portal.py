"""Partner self-service endpoints.

Every query is scoped to the partner in the caller's token.
"""

from fastapi import APIRouter, Depends, Query, status

from partnerpay.affiliates.models import CommissionStatus
from partnerpay.affiliates.partners import partner_service
from partnerpay.affiliates.reporting import reporting_service
from partnerpay.api.v1.partners import CreateLinkRequest, link_response
from partnerpay.api.v1.schemas import CommissionListResponse, LinkResponse, PayoutListResponse
from partnerpay.auth.middleware import require_partner
from partnerpay.auth.models import Actor

router = APIRouter(prefix="/partner", tags=["partner"])


@router.get("/dashboard")
async def get_dashboard(actor: Actor = Depends(require_partner)):
    """Clicks, referrals, earnings by status and links."""
    return reporting_service.partner_dashboard(actor.partner_id)


@router.get("/commissions", response_model=CommissionListResponse)
async def list_my_commissions(
    status_filter: CommissionStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    actor: Actor = Depends(require_partner),
):
    return reporting_service.list_commissions(
        status=status_filter,
        partner_id=actor.partner_id,
        page=page,
        limit=limit,
    )


@router.get("/payouts", response_model=PayoutListResponse)
async def list_my_payouts(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    actor: Actor = Depends(require_partner),
):
    return reporting_service.list_payouts(partner_id=actor.partner_id, page=page, limit=limit)


@router.post("/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_my_link(body: CreateLinkRequest, actor: Actor = Depends(require_partner)):
    link = partner_service.create_link(actor, actor.partner_id, **body.model_dump())
    return link_response(link)


@router.delete("/links/{link_id}", response_model=LinkResponse)
async def deactivate_my_link(link_id: int, actor: Actor = Depends(require_partner)):
    link = partner_service.deactivate_link(actor, link_id)
    return link_response(link)
