"""Admin partner and affiliate link management."""

from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from partnerpay.affiliates.codes import affiliate_url
from partnerpay.affiliates.models import AffiliateLink, PartnerStatus, Platform, TargetType
from partnerpay.affiliates.partners import partner_service
from partnerpay.api.v1.schemas import LinkResponse, PartnerResponse
from partnerpay.auth.middleware import require_admin
from partnerpay.auth.models import Actor
from partnerpay.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin-partners"])


# ==================== MODELS ====================


class CreatePartnerRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255)
    affiliate_code: str | None = Field(default=None, max_length=32)
    status: PartnerStatus = PartnerStatus.ACTIVE
    first_sale_rate: Decimal | None = Field(default=None, ge=0, le=100)
    recurring_rate: Decimal | None = Field(default=None, ge=0, le=100)
    shop_commission_rate: Decimal | None = Field(default=None, ge=0, le=100)
    motorev_pro_bonus: Decimal | None = Field(default=None, ge=0)
    motorev_pro_window_days: int | None = Field(default=None, ge=0)
    stripe_connect_id: str | None = None


class StripeDestinationRequest(BaseModel):
    stripe_connect_id: str | None = None
    status: str | None = None


class CreateLinkRequest(BaseModel):
    platform: Platform = Platform.SHOP
    target_type: TargetType = TargetType.STORE
    target_id: str | None = None
    name: str | None = Field(default=None, max_length=255)
    custom_url: str | None = Field(default=None, max_length=500)
    code: str | None = Field(default=None, max_length=32)


def link_response(link: AffiliateLink) -> LinkResponse:
    """Serialize a link with its shareable URL."""
    response = LinkResponse.model_validate(link)
    response.url = affiliate_url(link.platform.value, link.code, link.target_id)
    return response


# ==================== ENDPOINTS ====================


@router.post("/partners", response_model=PartnerResponse, status_code=status.HTTP_201_CREATED)
async def create_partner(body: CreatePartnerRequest, actor: Actor = Depends(require_admin)):
    """Create a partner; rates default to the program settings."""
    return partner_service.create_partner(actor, **body.model_dump())


@router.get("/partners/{partner_id}", response_model=PartnerResponse)
async def get_partner(partner_id: int, actor: Actor = Depends(require_admin)):
    return partner_service.get_partner(partner_id)


@router.put("/partners/{partner_id}/stripe", response_model=PartnerResponse)
async def set_stripe_destination(
    partner_id: int,
    body: StripeDestinationRequest,
    actor: Actor = Depends(require_admin),
):
    """Record the partner's connected Stripe account (payout destination)."""
    return partner_service.set_stripe_destination(actor, partner_id, body.stripe_connect_id, body.status)


@router.post("/partners/{partner_id}/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(partner_id: int, body: CreateLinkRequest, actor: Actor = Depends(require_admin)):
    link = partner_service.create_link(actor, partner_id, **body.model_dump())
    return link_response(link)


@router.delete("/links/{link_id}", response_model=LinkResponse)
async def deactivate_link(link_id: int, actor: Actor = Depends(require_admin)):
    """Deactivate a link. The code is never reassigned."""
    link = partner_service.deactivate_link(actor, link_id)
    return link_response(link)
