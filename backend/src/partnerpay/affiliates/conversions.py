"""Conversion recording.

Turns one upstream business event into at most one Referral and, where the
event earns money, one PENDING Commission:

    RECEIVED -> dedupe -> DUPLICATE (existing rows returned)
                       -> NEW -> Referral -> compute -> Commission(PENDING)

The idempotency key is (platform, event_type, external_reference). It is
checked up front and backed by a unique constraint, so two concurrent
deliveries of the same event still produce one Referral.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from partnerpay.affiliates.attribution import attribution_store
from partnerpay.affiliates.codes import is_within_window, normalize_code, percentage_of, to_money
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
from partnerpay.auth.models import Actor
from partnerpay.logging_config import get_logger
from partnerpay.storage.db import db, utcnow

logger = get_logger(__name__)


@dataclass
class ConversionEvent:
    """Inbound business event."""
    platform: Platform
    event_type: EventType
    external_reference: str
    affiliate_code: str | None = None  # link/partner code or attribution cookie value
    amount: Decimal | None = None      # order total; optional product price for Pro upgrades
    customer_email: str | None = None
    signup_at: datetime | None = None
    converted_at: datetime | None = None
    session_id: str | None = None


@dataclass
class ConversionResult:
    """What the recorder did with an event."""
    referral: Referral
    commission: Commission | None
    duplicate: bool = False
    eligible: bool = True


class ConversionRecorder:
    """Records referrals and their commissions."""

    def __init__(self):
        self.logger = get_logger(__name__)

    # ==================== LOOKUPS ====================

    def _find_referral(self, session, platform: Platform, event_type: EventType, reference: str) -> Referral | None:
        return session.query(Referral).filter(
            Referral.platform == platform,
            Referral.event_type == event_type,
            Referral.external_reference == reference,
        ).first()

    def _first_commission(self, session, referral_id: int) -> Commission | None:
        return session.query(Commission).filter(
            Commission.referral_id == referral_id,
            Commission.billing_reference.is_(None),
        ).order_by(Commission.id).first()

    def _duplicate(self, session, referral: Referral) -> ConversionResult:
        commission = self._first_commission(session, referral.id)
        self.logger.info(
            "conversion_duplicate",
            referral_id=referral.id,
            platform=referral.platform.value,
            event_type=referral.event_type.value,
            external_reference=referral.external_reference,
        )
        return ConversionResult(referral=referral, commission=commission, duplicate=True)

    def _resolve_partner(self, session, code: str, platform: Platform) -> tuple[Partner, AffiliateLink | None]:
        """Active partner for a code, plus the active link to credit."""
        partner, link = attribution_store.lookup(session, code)
        if partner is None:
            raise NotFoundError("Affiliate code", code)

        if link is None or not link.is_active or link.platform != platform:
            link = session.query(AffiliateLink).filter(
                AffiliateLink.partner_id == partner.id,
                AffiliateLink.platform == platform,
                AffiliateLink.is_active == True,  # noqa: E712
            ).order_by(AffiliateLink.created_at.desc(), AffiliateLink.id.desc()).first()

        return partner, link

    def _signup_date(self, session, event: ConversionEvent) -> datetime | None:
        if event.signup_at:
            return event.signup_at
        signup = self._find_referral(session, event.platform, EventType.SIGNUP, event.external_reference)
        return signup.signup_at if signup else None

    # ==================== VALIDATION ====================

    def _validate(self, event: ConversionEvent) -> None:
        if not isinstance(event.platform, Platform):
            raise ValidationError("Invalid platform")
        if not isinstance(event.event_type, EventType):
            raise ValidationError("Invalid event type")
        if event.event_type == EventType.LEAD:
            raise ValidationError("Lead conversions are recorded through record_lead_close")
        if not event.external_reference or not event.external_reference.strip():
            raise ValidationError("external_reference is required")
        if len(event.external_reference) > 255:
            raise ValidationError("external_reference is too long")
        if event.event_type == EventType.ORDER:
            if event.platform != Platform.SHOP:
                raise ValidationError("ORDER events must come from the SHOP platform")
            if event.amount is None:
                raise ValidationError("ORDER events require the order total")
        if event.amount is not None and Decimal(str(event.amount)) < 0:
            raise ValidationError("amount must not be negative")
        if event.signup_at and event.converted_at and event.converted_at < event.signup_at:
            raise ValidationError("converted_at is before signup_at")

    # ==================== COMPUTATION ====================

    def _compute_commission(
        self,
        session,
        event: ConversionEvent,
        partner: Partner,
        signup_at: datetime | None,
        converted_at: datetime,
    ) -> tuple[Commission | None, bool]:
        """Build the commission for an event, using the partner's current rates.

        Returns:
            (commission or None, eligible)
        """
        if event.event_type == EventType.ORDER:
            rate = Decimal(str(partner.shop_commission_rate))
            amount = percentage_of(event.amount, rate)
            if amount <= 0:
                return None, True
            return Commission(
                partner_id=partner.id,
                type=CommissionType.SHOP_ORDER,
                base_amount=to_money(event.amount),
                rate_applied=rate,
                amount=amount,
                status=CommissionStatus.PENDING,
            ), True

        if event.event_type == EventType.PRO_CONVERSION:
            window_days = partner.motorev_pro_window_days
            if signup_at and not is_within_window(signup_at, converted_at, window_days):
                return None, False
            bonus = to_money(partner.motorev_pro_bonus)
            if bonus <= 0:
                return None, True
            return Commission(
                partner_id=partner.id,
                type=CommissionType.PRO_CONVERSION,
                base_amount=to_money(event.amount or 0),
                rate_applied=None,
                amount=bonus,
                status=CommissionStatus.PENDING,
                notes=f"Pro conversion - external user {event.external_reference}",
            ), True

        # SIGNUP events are recorded for reporting only
        return None, True

    # ==================== RECORDING ====================

    def record(self, event: ConversionEvent) -> ConversionResult:
        """Record a storefront order, app signup or Pro conversion.

        Args:
            event: Inbound event

        Returns:
            ConversionResult; ``duplicate=True`` when the event was seen before

        Raises:
            ValidationError: Malformed event
            NotFoundError: Unknown or inactive affiliate code
        """
        self._validate(event)
        reference = event.external_reference.strip()

        with db.session() as session:
            existing = self._find_referral(session, event.platform, event.event_type, reference)
            if existing:
                return self._duplicate(session, existing)

            code = normalize_code(event.affiliate_code)
            if not code:
                raise ValidationError("An affiliate code or attribution token is required")
            partner, link = self._resolve_partner(session, code, event.platform)

            converted_at = event.converted_at or utcnow()
            signup_at = event.signup_at
            if event.event_type == EventType.PRO_CONVERSION:
                signup_at = self._signup_date(session, event)
            elif event.event_type == EventType.SIGNUP:
                signup_at = signup_at or converted_at

            referral = Referral(
                partner_id=partner.id,
                link_id=link.id if link else None,
                platform=event.platform,
                event_type=event.event_type,
                external_reference=reference,
                customer_email=event.customer_email,
                amount=to_money(event.amount) if event.amount is not None else None,
                session_id=event.session_id,
                signup_at=signup_at,
                converted_at=converted_at,
            )
            session.add(referral)
            try:
                session.flush()
            except IntegrityError:
                # Lost the race against a concurrent delivery of the same event
                session.rollback()
                existing = self._find_referral(session, event.platform, event.event_type, reference)
                if existing is None:
                    raise
                return self._duplicate(session, existing)

            commission, eligible = self._compute_commission(session, event, partner, signup_at, converted_at)
            if commission is not None:
                commission.referral_id = referral.id
                session.add(commission)

            if link is not None:
                link.total_referrals = (link.total_referrals or 0) + 1

            session.commit()

            self.logger.info(
                "conversion_recorded",
                referral_id=referral.id,
                partner_id=partner.id,
                platform=event.platform.value,
                event_type=event.event_type.value,
                external_reference=reference,
                commission_id=commission.id if commission else None,
                commission_amount=str(commission.amount) if commission else None,
                eligible=eligible,
            )
            if not eligible:
                self.logger.info(
                    "pro_conversion_outside_window",
                    referral_id=referral.id,
                    window_days=partner.motorev_pro_window_days,
                )

            return ConversionResult(referral=referral, commission=commission, eligible=eligible)

    def record_lead_close(
        self,
        actor: Actor,
        partner_id: int,
        lead_reference: str,
        contract_value: Decimal | None,
        customer_email: str | None = None,
        closed_at: datetime | None = None,
    ) -> ConversionResult:
        """Record a service lead closed into a deal.

        Creates a SERVICES/LEAD referral and, when the contract has a value,
        a first-sale commission at the partner's first-sale rate.
        """
        if not actor.is_admin:
            raise PermissionDeniedError("Admin access required")
        if not lead_reference or not lead_reference.strip():
            raise ValidationError("lead_reference is required")
        if contract_value is not None and Decimal(str(contract_value)) < 0:
            raise ValidationError("contract_value must not be negative")
        reference = lead_reference.strip()

        with db.session() as session:
            existing = self._find_referral(session, Platform.SERVICES, EventType.LEAD, reference)
            if existing:
                return self._duplicate(session, existing)

            partner = session.get(Partner, partner_id)
            if not partner or partner.status != PartnerStatus.ACTIVE:
                raise NotFoundError("Partner", partner_id)

            closed_at = closed_at or utcnow()
            referral = Referral(
                partner_id=partner.id,
                platform=Platform.SERVICES,
                event_type=EventType.LEAD,
                external_reference=reference,
                customer_email=customer_email,
                amount=to_money(contract_value) if contract_value is not None else None,
                converted_at=closed_at,
            )
            session.add(referral)
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                existing = self._find_referral(session, Platform.SERVICES, EventType.LEAD, reference)
                if existing is None:
                    raise
                return self._duplicate(session, existing)

            commission = None
            if contract_value is not None and Decimal(str(contract_value)) > 0:
                rate = Decimal(str(partner.first_sale_rate))
                commission = Commission(
                    partner_id=partner.id,
                    referral_id=referral.id,
                    type=CommissionType.LEAD_FIRST_SALE,
                    base_amount=to_money(contract_value),
                    rate_applied=rate,
                    amount=percentage_of(contract_value, rate),
                    status=CommissionStatus.PENDING,
                )
                session.add(commission)

            session.commit()

            self.logger.info(
                "lead_conversion_recorded",
                referral_id=referral.id,
                partner_id=partner.id,
                lead_reference=reference,
                commission_id=commission.id if commission else None,
                closed_by=actor.user_id,
            )
            return ConversionResult(referral=referral, commission=commission)

    def record_recurring_cycle(
        self,
        actor: Actor,
        referral_id: int,
        billing_reference: str,
        monthly_amount: Decimal,
    ) -> ConversionResult:
        """Credit one billing cycle of a referred client's recurring fee.

        Each cycle is its own PENDING commission tied to the lead referral;
        replaying the same billing_reference returns the existing entry.
        """
        if not actor.is_admin:
            raise PermissionDeniedError("Admin access required")
        if not billing_reference or not billing_reference.strip():
            raise ValidationError("billing_reference is required")
        if monthly_amount is None or Decimal(str(monthly_amount)) <= 0:
            raise ValidationError("monthly_amount must be positive")
        billing_reference = billing_reference.strip()

        with db.session() as session:
            referral = session.get(Referral, referral_id)
            if not referral:
                raise NotFoundError("Referral", referral_id)
            if referral.event_type != EventType.LEAD:
                raise ValidationError("Recurring commissions only apply to lead referrals")

            def find_cycle():
                return session.query(Commission).filter(
                    Commission.referral_id == referral_id,
                    Commission.type == CommissionType.LEAD_RECURRING,
                    Commission.billing_reference == billing_reference,
                ).first()

            existing = find_cycle()
            if existing:
                self.logger.info("recurring_cycle_duplicate", referral_id=referral_id, billing_reference=billing_reference)
                return ConversionResult(referral=referral, commission=existing, duplicate=True)

            partner = session.get(Partner, referral.partner_id)
            rate = Decimal(str(partner.recurring_rate))
            commission = Commission(
                partner_id=partner.id,
                referral_id=referral.id,
                type=CommissionType.LEAD_RECURRING,
                base_amount=to_money(monthly_amount),
                rate_applied=rate,
                amount=percentage_of(monthly_amount, rate),
                status=CommissionStatus.PENDING,
                billing_reference=billing_reference,
            )
            session.add(commission)
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                existing = find_cycle()
                if existing is None:
                    raise
                return ConversionResult(referral=referral, commission=existing, duplicate=True)

            session.commit()

            self.logger.info(
                "recurring_commission_recorded",
                referral_id=referral_id,
                commission_id=commission.id,
                billing_reference=billing_reference,
                amount=str(commission.amount),
            )
            return ConversionResult(referral=referral, commission=commission)


# Singleton instance
conversion_recorder = ConversionRecorder()
