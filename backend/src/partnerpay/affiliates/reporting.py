"""Read-only aggregates for admin and partner dashboards."""

from decimal import Decimal
from typing import Any

from sqlalchemy import func

from partnerpay.affiliates.codes import affiliate_url, to_money
from partnerpay.affiliates.errors import NotFoundError, ValidationError
from partnerpay.affiliates.models import (
    AffiliateClick,
    AffiliateLink,
    Commission,
    CommissionStatus,
    CommissionType,
    EventType,
    Partner,
    Payout,
    PayoutStatus,
    Platform,
    Referral,
)
from partnerpay.logging_config import get_logger
from partnerpay.storage.db import db

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


def _money(value) -> Decimal:
    return to_money(value or 0)


def _page(page: int, limit: int) -> tuple[int, int]:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    return page, min(limit, MAX_PAGE_SIZE)


class ReportingService:
    """Commission, payout and partner statistics."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def list_commissions(
        self,
        status: CommissionStatus | None = None,
        partner_id: int | None = None,
        type: CommissionType | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict[str, Any]:
        """Paginated commission list plus amount totals per status.

        Totals cover the partner filter only, so they stay stable while the
        operator flips between status tabs.
        """
        page, limit = _page(page, limit)

        with db.session() as session:
            query = session.query(Commission)
            if status:
                query = query.filter(Commission.status == status)
            if partner_id:
                query = query.filter(Commission.partner_id == partner_id)
            if type:
                query = query.filter(Commission.type == type)

            total = query.count()
            commissions = query.order_by(
                Commission.created_at.desc(), Commission.id.desc()
            ).offset((page - 1) * limit).limit(limit).all()

            totals_query = session.query(
                Commission.status,
                func.count(Commission.id),
                func.sum(Commission.amount),
            )
            if partner_id:
                totals_query = totals_query.filter(Commission.partner_id == partner_id)
            rows = totals_query.group_by(Commission.status).all()

            totals = {s.value.lower(): {"count": 0, "amount": Decimal("0.00")} for s in CommissionStatus}
            for row_status, count, amount in rows:
                totals[row_status.value.lower()] = {"count": count, "amount": _money(amount)}

            return {
                "commissions": commissions,
                "total": total,
                "page": page,
                "limit": limit,
                "totals": totals,
            }

    def list_payouts(
        self,
        status: PayoutStatus | None = None,
        partner_id: int | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict[str, Any]:
        """Paginated payout list with amount statistics."""
        page, limit = _page(page, limit)

        with db.session() as session:
            query = session.query(Payout)
            if status:
                query = query.filter(Payout.status == status)
            if partner_id:
                query = query.filter(Payout.partner_id == partner_id)

            total = query.count()
            payouts = query.order_by(
                Payout.created_at.desc(), Payout.id.desc()
            ).offset((page - 1) * limit).limit(limit).all()

            stats_query = session.query(Payout.status, func.sum(Payout.amount))
            if partner_id:
                stats_query = stats_query.filter(Payout.partner_id == partner_id)
            sums = {row_status: _money(amount) for row_status, amount in stats_query.group_by(Payout.status).all()}

            pending = sums.get(PayoutStatus.PENDING, Decimal("0.00"))
            paid = sums.get(PayoutStatus.PAID, Decimal("0.00"))

            return {
                "payouts": payouts,
                "total": total,
                "page": page,
                "limit": limit,
                "stats": {
                    "total_amount": pending + paid,
                    "pending_amount": pending,
                    "paid_amount": paid,
                },
            }

    def partner_dashboard(self, partner_id: int) -> dict[str, Any]:
        """Everything the partner's own dashboard shows."""
        with db.session() as session:
            partner = session.get(Partner, partner_id)
            if not partner:
                raise NotFoundError("Partner", partner_id)

            total_clicks = session.query(func.count(AffiliateClick.id)).join(
                AffiliateLink, AffiliateClick.link_id == AffiliateLink.id
            ).filter(AffiliateLink.partner_id == partner_id).scalar() or 0

            referral_counts = dict(
                session.query(Referral.event_type, func.count(Referral.id))
                .filter(Referral.partner_id == partner_id)
                .group_by(Referral.event_type)
                .all()
            )

            shop_revenue = session.query(func.sum(Referral.amount)).filter(
                Referral.partner_id == partner_id,
                Referral.platform == Platform.SHOP,
            ).scalar()

            earnings = {s: Decimal("0.00") for s in CommissionStatus}
            for row_status, amount in (
                session.query(Commission.status, func.sum(Commission.amount))
                .filter(Commission.partner_id == partner_id)
                .group_by(Commission.status)
                .all()
            ):
                earnings[row_status] = _money(amount)

            links = session.query(AffiliateLink).filter(
                AffiliateLink.partner_id == partner_id,
            ).order_by(AffiliateLink.created_at.desc(), AffiliateLink.id.desc()).all()

            return {
                "partner": {
                    "id": partner.id,
                    "partner_number": partner.partner_number,
                    "name": partner.name,
                    "affiliate_code": partner.affiliate_code,
                    "shop_commission_rate": partner.shop_commission_rate,
                    "motorev_pro_bonus": partner.motorev_pro_bonus,
                    "motorev_pro_window_days": partner.motorev_pro_window_days,
                    "stripe_connected": bool(partner.stripe_connect_id),
                },
                "summary": {
                    "total_clicks": total_clicks,
                    "total_referrals": sum(referral_counts.values()),
                    "pending_commissions": earnings[CommissionStatus.PENDING],
                    "approved_commissions": earnings[CommissionStatus.APPROVED],
                    "paid_commissions": earnings[CommissionStatus.PAID],
                    "total_commissions": sum(earnings.values(), Decimal("0.00")),
                },
                "referrals_by_event": {e.value: referral_counts.get(e, 0) for e in EventType},
                "shop_revenue": _money(shop_revenue),
                "links": [
                    {
                        "id": link.id,
                        "code": link.code,
                        "name": link.name,
                        "platform": link.platform.value,
                        "target_type": link.target_type.value,
                        "is_active": link.is_active,
                        "total_clicks": link.total_clicks,
                        "total_referrals": link.total_referrals,
                        "url": affiliate_url(link.platform.value, link.code, link.target_id),
                    }
                    for link in links
                ],
            }


# Singleton instance
reporting_service = ReportingService()
