from datetime import datetime
from decimal import Decimal

import pytest

from partnerpay.affiliates.conversions import ConversionEvent, conversion_recorder
from partnerpay.affiliates.errors import NotFoundError, PermissionDeniedError, ValidationError
from partnerpay.affiliates.models import (
    AffiliateLink,
    Commission,
    CommissionStatus,
    CommissionType,
    EventType,
    Partner,
    PartnerStatus,
    Platform,
    Referral,
)
from partnerpay.affiliates.partners import partner_service
from partnerpay.storage.db import db


def _count(model) -> int:
    with db.session() as session:
        return session.query(model).count()


def _pro_event(reference: str, signup_at=None, converted_at=None, code="PATCODE") -> ConversionEvent:
    return ConversionEvent(
        platform=Platform.MOTOREV,
        event_type=EventType.PRO_CONVERSION,
        external_reference=reference,
        affiliate_code=code,
        signup_at=signup_at,
        converted_at=converted_at,
    )


class TestShopOrders:

    def test_order_earns_percentage_commission(self, partner, shop_link, order):
        result = order("PAT-SHOP", "ORD-1", "200.00")

        assert not result.duplicate
        assert result.commission.amount == Decimal("10.00")
        assert result.commission.status == CommissionStatus.PENDING
        assert result.commission.type == CommissionType.SHOP_ORDER
        assert result.commission.rate_applied == Decimal("5.00")
        assert result.commission.base_amount == Decimal("200.00")
        assert result.referral.link_id == shop_link.id

    def test_resubmitting_an_order_is_idempotent(self, partner, shop_link, order):
        first = order("PAT-SHOP", "ORD-1", "200.00")
        second = order("PAT-SHOP", "ORD-1", "200.00")

        assert second.duplicate
        assert second.referral.id == first.referral.id
        assert second.commission.id == first.commission.id
        assert _count(Referral) == 1
        assert _count(Commission) == 1

    def test_concurrent_insert_is_reported_as_duplicate(self, partner, shop_link, order, monkeypatch):
        first = order("PAT-SHOP", "ORD-1", "200.00")

        # Simulate a second delivery that passed the up-front check before the first committed
        original = conversion_recorder._find_referral
        calls = {"n": 0}

        def stale_lookup(session, platform, event_type, reference):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return original(session, platform, event_type, reference)

        monkeypatch.setattr(conversion_recorder, "_find_referral", stale_lookup)

        second = order("PAT-SHOP", "ORD-1", "200.00")

        assert second.duplicate
        assert second.referral.id == first.referral.id
        assert _count(Referral) == 1
        assert _count(Commission) == 1

    def test_rate_is_snapshotted(self, partner, shop_link, order):
        first = order("PAT-SHOP", "ORD-1", "200.00")

        with db.session() as session:
            session.get(Partner, partner.id).shop_commission_rate = Decimal("10.00")

        second = order("PAT-SHOP", "ORD-2", "200.00")

        with db.session() as session:
            assert session.get(Commission, first.commission.id).amount == Decimal("10.00")
            assert session.get(Commission, first.commission.id).rate_applied == Decimal("5.00")
        assert second.commission.amount == Decimal("20.00")

    def test_zero_total_records_referral_only(self, partner, shop_link, order):
        result = order("PAT-SHOP", "ORD-FREE", "0.00")

        assert result.commission is None
        assert _count(Referral) == 1
        assert _count(Commission) == 0

    def test_referral_counter_is_incremented(self, partner, shop_link, order):
        order("PAT-SHOP", "ORD-1", "50.00")
        order("PAT-SHOP", "ORD-1", "50.00")
        order("PAT-SHOP", "ORD-2", "50.00")

        with db.session() as session:
            assert session.get(AffiliateLink, shop_link.id).total_referrals == 2

    def test_deactivated_link_is_not_credited(self, admin, partner, shop_link, order):
        partner_service.deactivate_link(admin, shop_link.id)
        fresh = partner_service.create_link(admin, partner.id, code="PAT-SHOP-2")

        result = order("PAT-SHOP", "ORD-1", "100.00")

        assert result.referral.partner_id == partner.id
        assert result.referral.link_id == fresh.id
        with db.session() as session:
            assert session.get(AffiliateLink, shop_link.id).total_referrals == 0
            assert session.get(AffiliateLink, fresh.id).total_referrals == 1

    def test_deactivated_link_without_replacement_credits_no_link(self, admin, partner, shop_link, order):
        partner_service.deactivate_link(admin, shop_link.id)

        result = order("PAT-SHOP", "ORD-1", "100.00")

        assert result.commission.amount == Decimal("5.00")
        assert result.referral.link_id is None
        with db.session() as session:
            assert session.get(AffiliateLink, shop_link.id).total_referrals == 0

    def test_unknown_code(self, partner, order):
        with pytest.raises(NotFoundError):
            order("NOPE", "ORD-1", "200.00")
        assert _count(Referral) == 0

    def test_missing_code(self, partner):
        with pytest.raises(ValidationError):
            conversion_recorder.record(ConversionEvent(
                platform=Platform.SHOP,
                event_type=EventType.ORDER,
                external_reference="ORD-1",
                amount=Decimal("10.00"),
            ))

    def test_order_requires_total(self, partner, shop_link):
        with pytest.raises(ValidationError):
            conversion_recorder.record(ConversionEvent(
                platform=Platform.SHOP,
                event_type=EventType.ORDER,
                external_reference="ORD-1",
                affiliate_code="PAT-SHOP",
            ))

    def test_negative_total_rejected(self, partner, shop_link, order):
        with pytest.raises(ValidationError):
            order("PAT-SHOP", "ORD-1", "-5.00")


class TestProConversions:

    @pytest.fixture(autouse=True)
    def motorev_link(self, admin, partner):
        return partner_service.create_link(admin, partner.id, platform=Platform.MOTOREV, code="PAT-APP")

    def test_conversion_on_last_window_day_earns_bonus(self, partner):
        result = conversion_recorder.record(_pro_event(
            "user-1",
            signup_at=datetime(2026, 1, 1, 9, 0),
            converted_at=datetime(2026, 1, 31, 22, 0),
        ))

        assert result.eligible
        assert result.commission.amount == Decimal("2.50")
        assert result.commission.rate_applied is None
        assert result.commission.type == CommissionType.PRO_CONVERSION

    def test_conversion_one_day_late_earns_nothing(self, partner):
        result = conversion_recorder.record(_pro_event(
            "user-1",
            signup_at=datetime(2026, 1, 1, 9, 0),
            converted_at=datetime(2026, 2, 1, 0, 30),
        ))

        assert not result.eligible
        assert result.commission is None
        assert _count(Referral) == 1
        assert _count(Commission) == 0

    def test_signup_date_taken_from_earlier_signup_event(self, partner, motorev_link):
        signup = conversion_recorder.record(ConversionEvent(
            platform=Platform.MOTOREV,
            event_type=EventType.SIGNUP,
            external_reference="user-7",
            affiliate_code="PAT-APP",
            converted_at=datetime(2026, 1, 1, 12, 0),
        ))
        assert signup.commission is None
        assert signup.referral.signup_at == datetime(2026, 1, 1, 12, 0)

        late = conversion_recorder.record(_pro_event("user-7", converted_at=datetime(2026, 2, 15)))

        assert not late.eligible
        assert late.commission is None
        with db.session() as session:
            assert session.get(AffiliateLink, motorev_link.id).total_referrals == 2

    def test_without_any_signup_date_conversion_counts(self, partner):
        result = conversion_recorder.record(_pro_event("user-9", converted_at=datetime(2026, 3, 1)))

        assert result.eligible
        assert result.commission.amount == Decimal("2.50")

    def test_partner_code_credits_platform_link(self, partner, motorev_link):
        result = conversion_recorder.record(_pro_event("user-3"))
        assert result.referral.link_id == motorev_link.id


class TestServiceLeads:

    def test_lead_close_earns_first_sale_commission(self, admin, partner):
        result = conversion_recorder.record_lead_close(admin, partner.id, "LEAD-001", Decimal("1000.00"))

        assert result.referral.platform == Platform.SERVICES
        assert result.referral.event_type == EventType.LEAD
        assert result.commission.type == CommissionType.LEAD_FIRST_SALE
        assert result.commission.amount == Decimal("500.00")
        assert result.commission.rate_applied == Decimal("50.00")

    def test_lead_close_is_idempotent(self, admin, partner):
        first = conversion_recorder.record_lead_close(admin, partner.id, "LEAD-001", Decimal("1000.00"))
        second = conversion_recorder.record_lead_close(admin, partner.id, "LEAD-001", Decimal("1000.00"))

        assert second.duplicate
        assert second.commission.id == first.commission.id

    def test_recurring_cycles(self, admin, partner):
        lead = conversion_recorder.record_lead_close(admin, partner.id, "LEAD-001", Decimal("1000.00"))

        october = conversion_recorder.record_recurring_cycle(admin, lead.referral.id, "2026-10", Decimal("200.00"))
        replay = conversion_recorder.record_recurring_cycle(admin, lead.referral.id, "2026-10", Decimal("200.00"))
        november = conversion_recorder.record_recurring_cycle(admin, lead.referral.id, "2026-11", Decimal("200.00"))

        assert october.commission.amount == Decimal("60.00")
        assert october.commission.type == CommissionType.LEAD_RECURRING
        assert replay.duplicate
        assert replay.commission.id == october.commission.id
        assert november.commission.id != october.commission.id
        assert _count(Commission) == 3

    def test_recurring_requires_lead_referral(self, admin, partner, shop_link, order):
        shop = order("PAT-SHOP", "ORD-1", "100.00")
        with pytest.raises(ValidationError):
            conversion_recorder.record_recurring_cycle(admin, shop.referral.id, "2026-10", Decimal("50.00"))

    def test_partners_cannot_record_leads(self, partner, partner_actor):
        with pytest.raises(PermissionDeniedError):
            conversion_recorder.record_lead_close(partner_actor, partner.id, "LEAD-001", Decimal("1000.00"))

    def test_suspended_partner_cannot_close_leads(self, admin):
        suspended = partner_service.create_partner(
            admin, name="Sam Suspended", email="sam@example.com", status=PartnerStatus.SUSPENDED
        )

        with pytest.raises(NotFoundError):
            conversion_recorder.record_lead_close(admin, suspended.id, "LEAD-001", Decimal("1000.00"))
        assert _count(Referral) == 0
        assert _count(Commission) == 0
