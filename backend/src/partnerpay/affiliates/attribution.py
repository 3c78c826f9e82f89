"""Click tracking and last-touch attribution.

A visit to a referral link records one click and hands back a fresh
attribution token. The API layer writes the token as cookies; a later click
with another code simply overwrites them (last touch). The expiry is fixed
at the moment of the click and never extended.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from partnerpay.affiliates.codes import generate_session_id, normalize_code, parse_utm
from partnerpay.affiliates.models import (
    AffiliateClick,
    AffiliateLink,
    Partner,
    PartnerStatus,
    Platform,
    TargetType,
)
from partnerpay.logging_config import get_logger
from partnerpay.settings import settings
from partnerpay.storage.db import db, utcnow

logger = get_logger(__name__)

AFFILIATE_COOKIE_NAME = "affiliate_code"
AFFILIATE_SESSION_COOKIE_NAME = "affiliate_session"
AFFILIATE_REF_COOKIE_NAME = "affiliate_ref"  # readable by client-side scripts


@dataclass(frozen=True)
class AttributionToken:
    """Value written into the attribution cookies."""
    code: str
    session_id: str
    expires_at: datetime

    @property
    def max_age(self) -> int:
        """Cookie lifetime in seconds."""
        return settings.affiliate_cookie_days * 24 * 60 * 60


@dataclass
class VisitorMeta:
    """Request metadata captured with a click."""
    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    landing_url: str | None = None


@dataclass
class ClickResult:
    """Outcome of a click. ``tracked=False`` is the neutral result."""
    tracked: bool
    session_id: str | None = None
    partner_id: int | None = None
    link_id: int | None = None
    token: AttributionToken | None = None
    target_url: str | None = None
    reason: str | None = None


def target_url_for(link: AffiliateLink, partner_code: str | None) -> str:
    """Where the tracking redirect sends the visitor."""
    if link.custom_url:
        return link.custom_url
    if link.platform == Platform.MOTOREV:
        return f"{settings.motorev_signup_url}?ref={partner_code or link.code}"

    base_url = settings.app_url.rstrip("/")
    if link.target_type == TargetType.PRODUCT and link.target_id:
        return f"{base_url}/shop/{link.target_id}"
    if link.target_type == TargetType.CATEGORY and link.target_id:
        return f"{base_url}/shop?category={link.target_id}"
    return f"{base_url}/shop"


def shop_fallback_url() -> str:
    return f"{settings.app_url.rstrip('/')}/shop"


class AttributionStore:
    """Records clicks and resolves attribution cookies to partners."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def _resolve_link(self, session, code: str) -> tuple[AffiliateLink | None, Partner | None]:
        """Find the link for a code.

        A specific link code wins; otherwise a partner-level code maps to that
        partner's most recent active SHOP link.
        """
        link = session.query(AffiliateLink).filter(AffiliateLink.code == code).first()
        if link:
            return link, session.get(Partner, link.partner_id)

        partner = session.query(Partner).filter(
            Partner.affiliate_code == code,
            Partner.status == PartnerStatus.ACTIVE,
        ).first()
        if not partner:
            return None, None

        link = session.query(AffiliateLink).filter(
            AffiliateLink.partner_id == partner.id,
            AffiliateLink.platform == Platform.SHOP,
            AffiliateLink.is_active == True,  # noqa: E712
        ).order_by(AffiliateLink.created_at.desc(), AffiliateLink.id.desc()).first()
        return link, partner

    def record_click(
        self,
        code: str | None,
        visitor: VisitorMeta | None = None,
        existing_session_id: str | None = None,
    ) -> ClickResult:
        """Record a click on a referral link.

        Never raises: bad codes, inactive links and storage failures are
        logged and reported as ``tracked=False``.

        Args:
            code: Link code or partner affiliate code
            visitor: Request metadata
            existing_session_id: Session id already held by the browser

        Returns:
            ClickResult with the attribution token when tracked
        """
        visitor = visitor or VisitorMeta()
        code = normalize_code(code)
        if not code:
            return ClickResult(tracked=False, reason="missing_code")

        try:
            with db.session() as session:
                link, partner = self._resolve_link(session, code)

                if not link and partner:
                    self.logger.info("affiliate_click_no_shop_link", code=code, partner_id=partner.id)
                    return ClickResult(tracked=False, partner_id=partner.id, reason="no_shop_link")
                if not link:
                    self.logger.info("affiliate_click_ignored", code=code, reason="invalid_code")
                    return ClickResult(tracked=False, reason="invalid_code")
                if not link.is_active or not partner or partner.status != PartnerStatus.ACTIVE:
                    self.logger.info("affiliate_click_ignored", code=code, reason="inactive")
                    return ClickResult(tracked=False, reason="inactive")

                session_id = (existing_session_id or "").strip()[:64] or generate_session_id()
                utm = parse_utm(visitor.landing_url)

                session.add(AffiliateClick(
                    link_id=link.id,
                    session_id=session_id,
                    ip_address=visitor.ip_address,
                    user_agent=(visitor.user_agent or "")[:500] or None,
                    referrer=(visitor.referrer or "")[:500] or None,
                    **utm,
                ))
                link.total_clicks = (link.total_clicks or 0) + 1
                session.commit()

                token = AttributionToken(
                    code=code,
                    session_id=session_id,
                    expires_at=utcnow() + timedelta(days=settings.affiliate_cookie_days),
                )

                self.logger.info(
                    "affiliate_click_tracked",
                    code=code,
                    link_id=link.id,
                    partner_id=partner.id,
                    session_id=session_id,
                )

                return ClickResult(
                    tracked=True,
                    session_id=session_id,
                    partner_id=partner.id,
                    link_id=link.id,
                    token=token,
                    target_url=target_url_for(link, partner.affiliate_code),
                )
        except SQLAlchemyError as e:
            self.logger.error("affiliate_click_error", code=code, error=str(e))
            return ClickResult(tracked=False, reason="error")

    def resolve_attribution(self, cookie_value: str | None) -> int | None:
        """Map an attribution cookie value to an active partner id.

        Pure lookup, no side effects.
        """
        code = normalize_code(cookie_value)
        if not code:
            return None

        with db.session() as session:
            partner, _ = self.lookup(session, code)
            return partner.id if partner else None

    def lookup(self, session, code: str) -> tuple[Partner | None, AffiliateLink | None]:
        """Resolve a normalized code inside the caller's session.

        Returns the ACTIVE partner behind a link code or partner code, and the
        link carrying the code when it is a link code. A deactivated link still
        attributes to its partner; whether to credit the link is up to the caller.
        """
        link = session.query(AffiliateLink).filter(AffiliateLink.code == code).first()
        if link:
            partner = session.get(Partner, link.partner_id)
        else:
            partner = session.query(Partner).filter(Partner.affiliate_code == code).first()

        if not partner or partner.status != PartnerStatus.ACTIVE:
            return None, None
        return partner, link


# Singleton instance
attribution_store = AttributionStore()
