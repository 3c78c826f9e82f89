"""Commission ledger.

Commission status changes go through one transition table. PAID is never
written directly: it is reached only when the payout a commission belongs
to completes.
"""

from decimal import Decimal

from partnerpay.affiliates.codes import percentage_of, to_money
from partnerpay.affiliates.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from partnerpay.affiliates.models import Commission, CommissionStatus, CommissionType, Payout, Referral
from partnerpay.auth.models import Actor
from partnerpay.logging_config import get_logger
from partnerpay.storage.db import db

logger = get_logger(__name__)

# Transitions an operator may request
OPERATOR_TRANSITIONS: dict[CommissionStatus, set[CommissionStatus]] = {
    CommissionStatus.PENDING: {CommissionStatus.APPROVED},
    CommissionStatus.APPROVED: {CommissionStatus.PENDING},
    CommissionStatus.PAID: set(),
}

# Transitions applied by the payout completion cascade
PAYOUT_TRANSITIONS: dict[CommissionStatus, set[CommissionStatus]] = {
    CommissionStatus.PENDING: {CommissionStatus.PAID},
    CommissionStatus.APPROVED: {CommissionStatus.PAID},
    CommissionStatus.PAID: set(),
}

PAYABLE_STATUSES = (CommissionStatus.PENDING, CommissionStatus.APPROVED)


def can_transition(current: CommissionStatus, target: CommissionStatus, by_payout: bool = False) -> bool:
    table = PAYOUT_TRANSITIONS if by_payout else OPERATOR_TRANSITIONS
    return target in table.get(current, set())


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError("Admin access required")


def _clean_ids(commission_ids: list[int]) -> list[int]:
    if not commission_ids:
        raise ValidationError("No commission IDs provided")
    return sorted({int(cid) for cid in commission_ids})


class CommissionLedger:
    """Operator actions on commissions."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def approve(self, commission_ids: list[int], actor: Actor, notes: str | None = None) -> int:
        """Approve pending commissions.

        Only PENDING rows that are not part of a payout move; anything else
        in the list is left untouched.

        Returns:
            Number of commissions approved
        """
        _require_admin(actor)
        ids = _clean_ids(commission_ids)

        with db.session() as session:
            commissions = session.query(Commission).filter(
                Commission.id.in_(ids),
                Commission.status == CommissionStatus.PENDING,
                Commission.payout_id.is_(None),
            ).with_for_update().all()

            for commission in commissions:
                commission.status = CommissionStatus.APPROVED
                if notes:
                    commission.notes = notes
            session.commit()

            self.logger.info(
                "commissions_approved",
                requested=len(ids),
                approved=len(commissions),
                approved_by=actor.user_id,
            )
            return len(commissions)

    def reject(self, commission_ids: list[int], actor: Actor, notes: str | None = None) -> int:
        """Flag commissions as rejected.

        Rejected rows stay (or go back to) PENDING with a ``REJECTED:`` note so
        they are excluded from review queues without losing history.

        Returns:
            Number of commissions flagged
        """
        _require_admin(actor)
        ids = _clean_ids(commission_ids)
        note = f"REJECTED: {notes or 'No reason provided'}"

        with db.session() as session:
            commissions = session.query(Commission).filter(
                Commission.id.in_(ids),
                Commission.status.in_(PAYABLE_STATUSES),
                Commission.payout_id.is_(None),
            ).with_for_update().all()

            for commission in commissions:
                commission.status = CommissionStatus.PENDING
                commission.notes = note
            session.commit()

            self.logger.info(
                "commissions_rejected",
                requested=len(ids),
                rejected=len(commissions),
                rejected_by=actor.user_id,
            )
            return len(commissions)

    def get(self, commission_id: int) -> Commission:
        with db.session() as session:
            commission = session.get(Commission, commission_id)
            if not commission:
                raise NotFoundError("Commission", commission_id)
            return commission

    def update(
        self,
        commission_id: int,
        actor: Actor,
        amount: Decimal | None = None,
        status: CommissionStatus | None = None,
        notes: str | None = None,
    ) -> Commission:
        """Edit a single commission.

        Raises:
            InvalidStateError: Amount/status edit on a payout-linked row, or a
                transition the ledger does not allow
            ValidationError: Negative amount
        """
        _require_admin(actor)

        with db.session() as session:
            commission = session.query(Commission).filter(
                Commission.id == commission_id,
            ).with_for_update().first()
            if not commission:
                raise NotFoundError("Commission", commission_id)

            if commission.payout_id is not None and (amount is not None or status is not None):
                raise InvalidStateError(
                    f"Commission {commission_id} is part of a payout; amount and status are locked"
                )

            if status is not None and status != commission.status:
                if status == CommissionStatus.PAID:
                    raise InvalidStateError("Commissions are marked paid through their payout")
                if not can_transition(commission.status, status):
                    raise InvalidStateError(
                        f"Cannot move commission from {commission.status.value} to {status.value}"
                    )
                commission.status = status

            if amount is not None:
                amount = to_money(amount)
                if amount < 0:
                    raise ValidationError("Commission amount must not be negative")
                commission.amount = amount

            if notes is not None:
                commission.notes = notes

            session.commit()

            self.logger.info(
                "commission_updated",
                commission_id=commission_id,
                status=commission.status.value,
                amount=str(commission.amount),
                updated_by=actor.user_id,
            )
            return commission

    def delete(self, commission_id: int, actor: Actor) -> None:
        """Delete a commission that is not part of any payout."""
        _require_admin(actor)

        with db.session() as session:
            commission = session.query(Commission).filter(
                Commission.id == commission_id,
            ).with_for_update().first()
            if not commission:
                raise NotFoundError("Commission", commission_id)
            if commission.payout_id is not None:
                raise InvalidStateError("Cannot delete commission that is part of a payout")

            session.delete(commission)
            session.commit()

            self.logger.info("commission_deleted", commission_id=commission_id, deleted_by=actor.user_id)

    def create_manual(
        self,
        actor: Actor,
        partner_id: int,
        referral_id: int,
        type: CommissionType,
        base_amount: Decimal,
        rate: Decimal | None = None,
        amount: Decimal | None = None,
        notes: str | None = None,
    ) -> Commission:
        """Enter a commission by hand against an existing referral.

        Either ``rate`` (percent of base_amount) or ``amount`` must be given;
        an explicit amount wins.
        """
        _require_admin(actor)
        if base_amount is None or to_money(base_amount) < 0:
            raise ValidationError("base_amount must not be negative")
        if amount is None and rate is None:
            raise ValidationError("Either rate or amount is required")
        if rate is not None and not Decimal(0) <= Decimal(str(rate)) <= Decimal(100):
            raise ValidationError("rate must be between 0 and 100")

        value = to_money(amount) if amount is not None else percentage_of(base_amount, rate)
        if value < 0:
            raise ValidationError("Commission amount must not be negative")

        with db.session() as session:
            referral = session.get(Referral, referral_id)
            if not referral:
                raise NotFoundError("Referral", referral_id)
            if referral.partner_id != partner_id:
                raise ValidationError("Referral does not belong to this partner")

            commission = Commission(
                partner_id=partner_id,
                referral_id=referral_id,
                type=type,
                base_amount=to_money(base_amount),
                rate_applied=Decimal(str(rate)) if rate is not None else None,
                amount=value,
                status=CommissionStatus.PENDING,
                notes=notes,
            )
            session.add(commission)
            session.commit()

            self.logger.info(
                "commission_created_manually",
                commission_id=commission.id,
                partner_id=partner_id,
                referral_id=referral_id,
                amount=str(value),
                created_by=actor.user_id,
            )
            return commission

    def mark_paid_for_payout(self, session, payout: Payout) -> int:
        """Cascade a completed payout onto its commissions.

        Runs inside the caller's transaction; never commits.
        """
        count = 0
        for commission in payout.commissions:
            if commission.status == CommissionStatus.PAID:
                continue
            if not can_transition(commission.status, CommissionStatus.PAID, by_payout=True):
                raise InvalidStateError(
                    f"Commission {commission.id} cannot be paid from {commission.status.value}"
                )
            commission.status = CommissionStatus.PAID
            count += 1
        session.flush()
        return count


# Singleton instance
commission_ledger = CommissionLedger()
