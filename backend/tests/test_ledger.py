from decimal import Decimal

import pytest

from partnerpay.affiliates.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from partnerpay.affiliates.ledger import can_transition, commission_ledger
from partnerpay.affiliates.models import Commission, CommissionStatus, CommissionType
from partnerpay.affiliates.payouts import payout_batcher
from partnerpay.storage.db import db


def _reload(commission_id: int) -> Commission:
    with db.session() as session:
        return session.get(Commission, commission_id)


@pytest.fixture
def commissions(partner, shop_link, order):
    return [order("PAT-SHOP", f"ORD-{i}", "100.00").commission for i in range(1, 4)]


def test_transition_table():
    assert can_transition(CommissionStatus.PENDING, CommissionStatus.APPROVED)
    assert can_transition(CommissionStatus.APPROVED, CommissionStatus.PENDING)
    assert not can_transition(CommissionStatus.PENDING, CommissionStatus.PAID)
    assert can_transition(CommissionStatus.PENDING, CommissionStatus.PAID, by_payout=True)
    assert can_transition(CommissionStatus.APPROVED, CommissionStatus.PAID, by_payout=True)
    assert not can_transition(CommissionStatus.PAID, CommissionStatus.PENDING)
    assert not can_transition(CommissionStatus.PAID, CommissionStatus.APPROVED)


class TestApproveReject:

    def test_approve_moves_pending_only(self, admin, commissions):
        ids = [c.id for c in commissions]

        assert commission_ledger.approve(ids[:2] + [9999], admin) == 2
        assert commission_ledger.approve(ids, admin) == 1

        assert all(_reload(cid).status == CommissionStatus.APPROVED for cid in ids)

    def test_approve_skips_payout_linked(self, admin, partner, commissions):
        payout_batcher.create_payout(partner.id, admin, commission_ids=[commissions[0].id])

        assert commission_ledger.approve([c.id for c in commissions], admin) == 2
        assert _reload(commissions[0].id).status == CommissionStatus.PENDING

    def test_reject_returns_to_pending_with_note(self, admin, commissions):
        commission_ledger.approve([commissions[0].id], admin)

        assert commission_ledger.reject([commissions[0].id, commissions[1].id], admin, notes="self-referral") == 2

        rejected = _reload(commissions[0].id)
        assert rejected.status == CommissionStatus.PENDING
        assert rejected.notes == "REJECTED: self-referral"

    def test_empty_id_list(self, admin):
        with pytest.raises(ValidationError):
            commission_ledger.approve([], admin)

    def test_partners_cannot_approve(self, partner_actor, commissions):
        with pytest.raises(PermissionDeniedError):
            commission_ledger.approve([commissions[0].id], partner_actor)


class TestUpdateDelete:

    def test_update_status_and_amount(self, admin, commissions):
        updated = commission_ledger.update(
            commissions[0].id, admin, amount=Decimal("7.505"), status=CommissionStatus.APPROVED
        )

        assert updated.status == CommissionStatus.APPROVED
        assert _reload(commissions[0].id).amount == Decimal("7.51")

    def test_paid_cannot_be_written_directly(self, admin, commissions):
        with pytest.raises(InvalidStateError):
            commission_ledger.update(commissions[0].id, admin, status=CommissionStatus.PAID)

    def test_linked_commission_is_locked(self, admin, partner, commissions):
        payout = payout_batcher.create_payout(partner.id, admin)
        target = commissions[0].id

        with pytest.raises(InvalidStateError):
            commission_ledger.update(target, admin, amount=Decimal("999.00"))
        with pytest.raises(InvalidStateError):
            commission_ledger.update(target, admin, status=CommissionStatus.APPROVED)
        with pytest.raises(InvalidStateError):
            commission_ledger.delete(target, admin)

        # Notes stay editable
        assert commission_ledger.update(target, admin, notes="checked").notes == "checked"
        assert _reload(target).amount == Decimal("5.00")
        assert payout_batcher.get_payout(payout.id).amount == Decimal("15.00")

    def test_delete_unlinked(self, admin, commissions):
        commission_ledger.delete(commissions[0].id, admin)

        with pytest.raises(NotFoundError):
            commission_ledger.get(commissions[0].id)

    def test_update_missing(self, admin):
        with pytest.raises(NotFoundError):
            commission_ledger.update(404, admin, notes="x")


class TestManualEntry:

    def test_manual_commission_from_rate(self, admin, partner, commissions):
        referral_id = commissions[0].referral_id

        manual = commission_ledger.create_manual(
            admin,
            partner_id=partner.id,
            referral_id=referral_id,
            type=CommissionType.SHOP_ORDER,
            base_amount=Decimal("80.00"),
            rate=Decimal("12.5"),
            notes="make-good for missed tracking",
        )

        assert manual.amount == Decimal("10.00")
        assert manual.status == CommissionStatus.PENDING
        assert manual.rate_applied == Decimal("12.5")

    def test_manual_commission_needs_matching_partner(self, admin, other_partner, commissions):
        with pytest.raises(ValidationError):
            commission_ledger.create_manual(
                admin,
                partner_id=other_partner.id,
                referral_id=commissions[0].referral_id,
                type=CommissionType.SHOP_ORDER,
                base_amount=Decimal("10.00"),
                amount=Decimal("1.00"),
            )

    def test_manual_commission_needs_rate_or_amount(self, admin, partner, commissions):
        with pytest.raises(ValidationError):
            commission_ledger.create_manual(
                admin,
                partner_id=partner.id,
                referral_id=commissions[0].referral_id,
                type=CommissionType.SHOP_ORDER,
                base_amount=Decimal("10.00"),
            )
