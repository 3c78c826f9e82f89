"""Partner and affiliate link management."""

from decimal import Decimal

from sqlalchemy import func

from partnerpay.affiliates.codes import generate_code, is_valid_custom_code, normalize_code
from partnerpay.affiliates.errors import NotFoundError, PermissionDeniedError, ValidationError
from partnerpay.affiliates.models import AffiliateLink, Partner, PartnerStatus, Platform, TargetType
from partnerpay.auth.models import Actor
from partnerpay.logging_config import get_logger
from partnerpay.settings import settings
from partnerpay.storage.db import db

logger = get_logger(__name__)


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError("Admin access required")


class PartnerService:
    """Creates partners and their links.

    Rate editing lives in the admin settings surface and is not handled here.
    """

    def __init__(self):
        self.logger = get_logger(__name__)

    def _code_taken(self, session, code: str) -> bool:
        link = session.query(AffiliateLink.id).filter(AffiliateLink.code == code).first()
        partner = session.query(Partner.id).filter(Partner.affiliate_code == code).first()
        return link is not None or partner is not None

    def _unique_code(self, session) -> str:
        for _ in range(10):
            code = generate_code()
            if not self._code_taken(session, code):
                return code
        raise ValidationError("Could not generate a unique affiliate code")

    def _next_partner_number(self, session) -> str:
        count = session.query(func.count(Partner.id)).scalar() or 0
        return f"PTR-{count + 1:04d}"

    def create_partner(
        self,
        actor: Actor,
        name: str,
        email: str,
        affiliate_code: str | None = None,
        status: PartnerStatus = PartnerStatus.ACTIVE,
        first_sale_rate: Decimal | None = None,
        recurring_rate: Decimal | None = None,
        shop_commission_rate: Decimal | None = None,
        motorev_pro_bonus: Decimal | None = None,
        motorev_pro_window_days: int | None = None,
        stripe_connect_id: str | None = None,
    ) -> Partner:
        """Create a partner with its rate configuration.

        Args:
            actor: Acting admin
            name: Display name
            email: Contact e-mail (unique)
            affiliate_code: Optional partner-level code; generated when omitted

        Returns:
            Created partner
        """
        _require_admin(actor)
        if not name or not name.strip():
            raise ValidationError("Partner name is required")
        if not email or "@" not in email:
            raise ValidationError("A valid e-mail is required")

        rates = {
            "first_sale_rate": first_sale_rate if first_sale_rate is not None else settings.default_first_sale_rate,
            "recurring_rate": recurring_rate if recurring_rate is not None else settings.default_recurring_rate,
            "shop_commission_rate": shop_commission_rate if shop_commission_rate is not None else settings.default_shop_commission_rate,
        }
        for field, value in rates.items():
            if not Decimal(0) <= Decimal(str(value)) <= Decimal(100):
                raise ValidationError(f"{field} must be between 0 and 100")

        bonus = motorev_pro_bonus if motorev_pro_bonus is not None else settings.default_motorev_pro_bonus
        window = motorev_pro_window_days if motorev_pro_window_days is not None else settings.default_motorev_pro_window_days
        if Decimal(str(bonus)) < 0 or window < 0:
            raise ValidationError("Pro bonus and window must not be negative")

        with db.session() as session:
            if session.query(Partner.id).filter(Partner.email == email.lower()).first():
                raise ValidationError(f"Partner with e-mail {email} already exists")

            code = normalize_code(affiliate_code)
            if code:
                if not is_valid_custom_code(code):
                    raise ValidationError("Affiliate code must be 3-32 letters, digits, '-' or '_'")
                if self._code_taken(session, code):
                    raise ValidationError(f"Affiliate code {code} is already taken")
            else:
                code = self._unique_code(session)

            partner = Partner(
                partner_number=self._next_partner_number(session),
                name=name.strip(),
                email=email.lower(),
                affiliate_code=code,
                status=status,
                motorev_pro_bonus=bonus,
                motorev_pro_window_days=window,
                stripe_connect_id=stripe_connect_id,
                **rates,
            )
            session.add(partner)
            session.commit()

            self.logger.info(
                "partner_created",
                partner_id=partner.id,
                partner_number=partner.partner_number,
                affiliate_code=code,
                created_by=actor.user_id,
            )
            return partner

    def get_partner(self, partner_id: int) -> Partner:
        with db.session() as session:
            partner = session.get(Partner, partner_id)
            if not partner:
                raise NotFoundError("Partner", partner_id)
            return partner

    def set_stripe_destination(self, actor: Actor, partner_id: int, stripe_connect_id: str | None, status: str | None = None) -> Partner:
        """Record (or clear) the partner's Stripe Connect account."""
        _require_admin(actor)
        with db.session() as session:
            partner = session.get(Partner, partner_id)
            if not partner:
                raise NotFoundError("Partner", partner_id)
            partner.stripe_connect_id = stripe_connect_id
            partner.stripe_connect_status = status
            session.commit()
            self.logger.info("partner_stripe_destination_set", partner_id=partner_id, connected=bool(stripe_connect_id))
            return partner

    def create_link(
        self,
        actor: Actor,
        partner_id: int,
        platform: Platform = Platform.SHOP,
        target_type: TargetType = TargetType.STORE,
        target_id: str | None = None,
        name: str | None = None,
        custom_url: str | None = None,
        code: str | None = None,
    ) -> AffiliateLink:
        """Create an affiliate link for a partner.

        Partners may create their own links; admins may create links for anyone.
        """
        if not actor.is_admin and actor.partner_id != partner_id:
            raise PermissionDeniedError("Cannot create links for another partner")
        if platform not in (Platform.SHOP, Platform.MOTOREV):
            raise ValidationError("Invalid platform. Must be SHOP or MOTOREV")
        if target_type != TargetType.STORE and not target_id:
            raise ValidationError(f"target_id is required for {target_type.value} links")

        with db.session() as session:
            partner = session.get(Partner, partner_id)
            if not partner:
                raise NotFoundError("Partner", partner_id)
            if partner.status != PartnerStatus.ACTIVE:
                raise ValidationError("Links can only be created for active partners")

            link_code = normalize_code(code)
            if link_code:
                if not is_valid_custom_code(link_code):
                    raise ValidationError("Link code must be 3-32 letters, digits, '-' or '_'")
                # A partner may reuse its own partner-level code for one link
                owned_by_partner = link_code == partner.affiliate_code
                link_exists = session.query(AffiliateLink.id).filter(AffiliateLink.code == link_code).first()
                if link_exists or (self._code_taken(session, link_code) and not owned_by_partner):
                    raise ValidationError(f"Code {link_code} is already taken")
            else:
                link_code = self._unique_code(session)

            link = AffiliateLink(
                partner_id=partner_id,
                code=link_code,
                name=name,
                platform=platform,
                target_type=target_type,
                target_id=target_id,
                custom_url=custom_url,
            )
            session.add(link)
            session.commit()

            self.logger.info(
                "affiliate_link_created",
                partner_id=partner_id,
                link_id=link.id,
                code=link_code,
                platform=platform.value,
            )
            return link

    def deactivate_link(self, actor: Actor, link_id: int) -> AffiliateLink:
        """Retire a link. Its code stays reserved for its partner."""
        with db.session() as session:
            link = session.get(AffiliateLink, link_id)
            if not link:
                raise NotFoundError("Affiliate link", link_id)
            if not actor.is_admin and actor.partner_id != link.partner_id:
                raise PermissionDeniedError("Cannot modify another partner's link")

            link.is_active = False
            session.commit()
            self.logger.info("affiliate_link_deactivated", link_id=link_id, code=link.code)
            return link


# Singleton instance
partner_service = PartnerService()
