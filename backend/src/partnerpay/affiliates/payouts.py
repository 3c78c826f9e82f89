"""Payout batching, execution and reconciliation.

Every operation here is one transaction: the payout row and all of its
commission rows change together or not at all.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from partnerpay.affiliates.codes import to_money
from partnerpay.affiliates.errors import (
    ExternalDependencyError,
    InvalidStateError,
    NoEligibleCommissions,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from partnerpay.affiliates.ledger import PAYABLE_STATUSES, commission_ledger
from partnerpay.affiliates.models import Commission, CommissionStatus, Partner, Payout, PayoutMethod, PayoutStatus
from partnerpay.auth.models import Actor
from partnerpay.logging_config import get_logger
from partnerpay.payments.transfers import StripeConnectRail, TransferError, TransferRail
from partnerpay.storage.db import db, utcnow

logger = get_logger(__name__)


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError("Admin access required")


class PayoutBatcher:
    """Groups commissions into payouts and settles them."""

    def __init__(self, rail: TransferRail | None = None):
        self.rail = rail or StripeConnectRail()
        self.logger = get_logger(__name__)

    def _next_payout_number(self, session) -> str:
        """PAY-YYYYMMDD-NNNN, NNNN being the running payout count."""
        count = session.query(func.count(Payout.id)).scalar() or 0
        return f"PAY-{utcnow():%Y%m%d}-{count + 1:04d}"

    def _lock_payout(self, session, payout_id: int) -> Payout:
        payout = session.query(Payout).filter(Payout.id == payout_id).with_for_update().first()
        if not payout:
            raise NotFoundError("Payout", payout_id)
        return payout

    def _select_commissions(self, session, partner_id: int, commission_ids: list[int] | None) -> list[Commission]:
        if commission_ids is None:
            return session.query(Commission).filter(
                Commission.partner_id == partner_id,
                Commission.status.in_(PAYABLE_STATUSES),
                Commission.payout_id.is_(None),
            ).order_by(Commission.id).with_for_update().all()

        ids = sorted({int(cid) for cid in commission_ids})
        if not ids:
            return []
        commissions = session.query(Commission).filter(
            Commission.id.in_(ids),
        ).order_by(Commission.id).with_for_update().all()

        found = {c.id for c in commissions}
        missing = [cid for cid in ids if cid not in found]
        if missing:
            raise NotFoundError("Commission", missing[0])
        for commission in commissions:
            if commission.partner_id != partner_id:
                raise ValidationError(f"Commission {commission.id} does not belong to partner {partner_id}")
            if commission.payout_id is not None:
                raise InvalidStateError(f"Commission {commission.id} is already part of a payout")
            if commission.status not in PAYABLE_STATUSES:
                raise InvalidStateError(f"Commission {commission.id} is {commission.status.value}")
        return commissions

    def _settle(
        self,
        session,
        payout: Payout,
        actor: Actor,
        method: PayoutMethod,
        reference: str | None = None,
        transfer_reference: str | None = None,
        paid_at: datetime | None = None,
        notes: str | None = None,
    ) -> int:
        """Mark a payout PAID and cascade its commissions. Caller commits."""
        payout.status = PayoutStatus.PAID
        payout.method = method
        payout.reference = reference or payout.reference
        payout.transfer_reference = transfer_reference
        payout.paid_at = paid_at or utcnow()
        payout.paid_by = actor.user_id
        if notes:
            payout.notes = notes
        return commission_ledger.mark_paid_for_payout(session, payout)

    def create_payout(
        self,
        partner_id: int,
        actor: Actor,
        commission_ids: list[int] | None = None,
        method: PayoutMethod | None = None,
        reference: str | None = None,
        notes: str | None = None,
        mark_as_paid: bool = False,
    ) -> Payout:
        """Create a payout over a partner's eligible commissions.

        Args:
            partner_id: Partner to pay
            actor: Acting admin
            commission_ids: Explicit selection; every eligible commission when None.
                An empty list selects nothing
            method: Payment method (required with mark_as_paid)
            reference: External reference (check number, confirmation...)
            notes: Free text
            mark_as_paid: Record a manual payment in the same transaction

        Returns:
            Created payout with its commissions

        Raises:
            NoEligibleCommissions: Nothing to pay
        """
        _require_admin(actor)
        if mark_as_paid and method is None:
            raise ValidationError("A payment method is required to mark the payout as paid")

        with db.session() as session:
            partner = session.get(Partner, partner_id)
            if not partner:
                raise NotFoundError("Partner", partner_id)

            commissions = self._select_commissions(session, partner_id, commission_ids)
            if not commissions:
                raise NoEligibleCommissions(partner_id)

            total = to_money(sum((Decimal(str(c.amount)) for c in commissions), Decimal(0)))

            payout = Payout(
                payout_number=self._next_payout_number(session),
                partner=partner,
                amount=total,
                status=PayoutStatus.PENDING,
                method=method,
                reference=reference,
                notes=notes,
                created_by=actor.user_id,
                commissions=commissions,
            )
            session.add(payout)
            session.flush()

            if mark_as_paid:
                self._settle(session, payout, actor, method, reference=reference)

            session.commit()

            self.logger.info(
                "payout_created",
                payout_id=payout.id,
                payout_number=payout.payout_number,
                partner_id=partner_id,
                amount=str(total),
                commission_count=len(commissions),
                status=payout.status.value,
                created_by=actor.user_id,
            )
            return payout

    def execute_payout(self, payout_id: int, actor: Actor) -> Payout:
        """Send a pending payout through the transfer rail.

        Raises:
            PermissionDeniedError: Actor is not a super admin
            InvalidStateError: Payout is not PENDING
            ExternalDependencyError: No destination, or the rail failed; nothing changed
        """
        if not actor.is_super_admin:
            raise PermissionDeniedError("Only super admins can execute payouts")

        with db.session() as session:
            payout = self._lock_payout(session, payout_id)
            if payout.status != PayoutStatus.PENDING:
                raise InvalidStateError(f"Payout is already {payout.status.value.lower()}")

            partner = payout.partner
            if not partner.stripe_connect_id:
                self.logger.warning("payout_execute_no_destination", payout_id=payout_id, partner_id=partner.id)
                raise ExternalDependencyError("Partner has not connected a Stripe account")

            try:
                result = self.rail.transfer(
                    destination=partner.stripe_connect_id,
                    amount=Decimal(str(payout.amount)),
                    description=f"Payout {payout.payout_number} - {partner.name}",
                    metadata={
                        "payout_id": str(payout.id),
                        "payout_number": payout.payout_number,
                        "partner_id": str(partner.id),
                        "partner_number": partner.partner_number,
                    },
                    idempotency_key=payout.payout_number,
                )
            except TransferError as e:
                self.logger.error("payout_execute_failed", payout_id=payout_id, error=str(e))
                raise ExternalDependencyError(f"Transfer failed: {e}") from e

            count = self._settle(
                session,
                payout,
                actor,
                PayoutMethod.STRIPE_CONNECT,
                transfer_reference=result.transfer_id,
            )
            session.commit()

            self.logger.info(
                "payout_executed",
                payout_id=payout_id,
                payout_number=payout.payout_number,
                transfer_id=result.transfer_id,
                amount=str(payout.amount),
                commissions_paid=count,
                executed_by=actor.user_id,
            )
            return payout

    def mark_paid(
        self,
        payout_id: int,
        actor: Actor,
        method: PayoutMethod,
        reference: str | None = None,
        paid_at: datetime | None = None,
        notes: str | None = None,
    ) -> Payout:
        """Record a payment made outside the rail (check, Zelle, ...)."""
        _require_admin(actor)
        if method is None:
            raise ValidationError("A payment method is required")

        with db.session() as session:
            payout = self._lock_payout(session, payout_id)
            if payout.status != PayoutStatus.PENDING:
                raise InvalidStateError(f"Payout is already {payout.status.value.lower()}")

            count = self._settle(session, payout, actor, method, reference=reference, paid_at=paid_at, notes=notes)
            session.commit()

            self.logger.info(
                "payout_marked_paid",
                payout_id=payout_id,
                method=method.value,
                commissions_paid=count,
                paid_by=actor.user_id,
            )
            return payout

    def cancel_payout(self, payout_id: int, actor: Actor) -> Payout:
        """Cancel a pending payout and return its commissions to review.

        Every linked commission is unlinked and reset to PENDING, including
        ones that were APPROVED. The payout row is kept as CANCELLED.
        """
        _require_admin(actor)

        with db.session() as session:
            payout = self._lock_payout(session, payout_id)
            if payout.status == PayoutStatus.PAID:
                raise InvalidStateError("Cannot cancel a payout that has been paid")
            if payout.status == PayoutStatus.CANCELLED:
                raise InvalidStateError("Payout is already cancelled")

            # Lock the linked rows before releasing them
            session.query(Commission).filter(Commission.payout_id == payout.id).with_for_update().all()

            released = list(payout.commissions)
            for commission in released:
                commission.payout = None
                commission.status = CommissionStatus.PENDING

            payout.status = PayoutStatus.CANCELLED
            payout.cancelled_at = utcnow()
            session.commit()

            self.logger.info(
                "payout_cancelled",
                payout_id=payout_id,
                payout_number=payout.payout_number,
                commissions_released=len(released),
                cancelled_by=actor.user_id,
            )
            return payout

    def get_payout(self, payout_id: int) -> Payout:
        with db.session() as session:
            payout = session.get(Payout, payout_id)
            if not payout:
                raise NotFoundError("Payout", payout_id)
            return payout


# Singleton instance
payout_batcher = PayoutBatcher()
