"""Response models shared by the admin and partner routers."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from partnerpay.affiliates.models import (
    CommissionStatus,
    CommissionType,
    PartnerStatus,
    PayoutMethod,
    PayoutStatus,
    Platform,
    TargetType,
)


class CommissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    partner_id: int
    referral_id: int
    type: CommissionType
    base_amount: Decimal
    rate_applied: Decimal | None = None
    amount: Decimal
    status: CommissionStatus
    payout_id: int | None = None
    billing_reference: str | None = None
    notes: str | None = None
    created_at: datetime


class StatusTotal(BaseModel):
    count: int
    amount: Decimal


class CommissionListResponse(BaseModel):
    commissions: list[CommissionResponse]
    total: int
    page: int
    limit: int
    totals: dict[str, StatusTotal]


class PayoutPartnerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    partner_number: str
    name: str
    email: str
    stripe_connect_id: str | None = None


class PayoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    payout_number: str
    partner_id: int
    partner: PayoutPartnerSummary | None = None
    amount: Decimal
    status: PayoutStatus
    method: PayoutMethod | None = None
    reference: str | None = None
    transfer_reference: str | None = None
    notes: str | None = None
    created_by: str | None = None
    paid_by: str | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    commissions: list[CommissionResponse] = []


class PayoutStats(BaseModel):
    total_amount: Decimal
    pending_amount: Decimal
    paid_amount: Decimal


class PayoutListResponse(BaseModel):
    payouts: list[PayoutResponse]
    total: int
    page: int
    limit: int
    stats: PayoutStats


class PartnerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    partner_number: str
    name: str
    email: str
    affiliate_code: str | None = None
    status: PartnerStatus
    first_sale_rate: Decimal
    recurring_rate: Decimal
    shop_commission_rate: Decimal
    motorev_pro_bonus: Decimal
    motorev_pro_window_days: int
    stripe_connect_id: str | None = None
    created_at: datetime


class LinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    partner_id: int
    code: str
    name: str | None = None
    platform: Platform
    target_type: TargetType
    target_id: str | None = None
    custom_url: str | None = None
    is_active: bool
    total_clicks: int
    total_referrals: int
    url: str | None = None
