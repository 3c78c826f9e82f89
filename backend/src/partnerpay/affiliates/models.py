"""Partner program database models.

Covers the whole attribution and payout chain:
- partners and their affiliate links
- append-only click log
- referrals (one per attributed business event)
- commissions (ledger entries owned by one referral)
- payouts (batched disbursements over commissions)
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from partnerpay.storage.db import Base, utcnow


class PartnerStatus(str, Enum):
    """Partner account status."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    INACTIVE = "INACTIVE"


class Platform(str, Enum):
    """Where a referral originates."""
    SHOP = "SHOP"            # 47 Industries storefront
    MOTOREV = "MOTOREV"      # MotoRev mobile app
    SERVICES = "SERVICES"    # Agency service leads


class TargetType(str, Enum):
    """What a storefront link points at."""
    STORE = "STORE"
    PRODUCT = "PRODUCT"
    CATEGORY = "CATEGORY"


class EventType(str, Enum):
    """Business event that produced a referral."""
    SIGNUP = "SIGNUP"
    ORDER = "ORDER"
    PRO_CONVERSION = "PRO_CONVERSION"
    LEAD = "LEAD"


class CommissionType(str, Enum):
    """How a commission was computed."""
    SHOP_ORDER = "SHOP_ORDER"
    PRO_CONVERSION = "PRO_CONVERSION"
    LEAD_FIRST_SALE = "LEAD_FIRST_SALE"
    LEAD_RECURRING = "LEAD_RECURRING"


class CommissionStatus(str, Enum):
    """Commission ledger status."""
    PENDING = "PENDING"      # Awaiting review
    APPROVED = "APPROVED"    # Approved for payout
    PAID = "PAID"            # Paid through a completed payout


class PayoutStatus(str, Enum):
    """Payout status."""
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PayoutMethod(str, Enum):
    """How a payout was disbursed."""
    STRIPE_CONNECT = "STRIPE_CONNECT"
    ZELLE = "ZELLE"
    VENMO = "VENMO"
    CASH_APP = "CASH_APP"
    CHECK = "CHECK"
    BANK_TRANSFER = "BANK_TRANSFER"
    OTHER = "OTHER"


class Partner(Base):
    """Referral partner.

    Rates are percentages (5.00 = 5%). They are copied onto every commission
    when it is created, so editing them never touches history.
    """
    __tablename__ = "partners"

    id = Column(Integer, primary_key=True)
    partner_number = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)

    # Partner-level code, also accepted in place of a link code
    affiliate_code = Column(String(20), unique=True, nullable=True, index=True)
    status = Column(SQLEnum(PartnerStatus, native_enum=False), default=PartnerStatus.ACTIVE, nullable=False)

    # Service referral rates
    first_sale_rate = Column(Numeric(5, 2), nullable=False, default=50)
    recurring_rate = Column(Numeric(5, 2), nullable=False, default=30)

    # Storefront / app affiliate rates
    shop_commission_rate = Column(Numeric(5, 2), nullable=False, default=5)
    motorev_pro_bonus = Column(Numeric(10, 2), nullable=False, default=2.5)
    motorev_pro_window_days = Column(Integer, nullable=False, default=30)

    # Transfer destination
    stripe_connect_id = Column(String(255), nullable=True)
    stripe_connect_status = Column(String(50), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    links = relationship("AffiliateLink", back_populates="partner", order_by="AffiliateLink.created_at.desc()")

    def __repr__(self):
        return f"<Partner(id={self.id}, number={self.partner_number}, status={self.status})>"


class AffiliateLink(Base):
    """Shareable referral link.

    The code is globally unique and the owning partner never changes.
    Retired links are deactivated, not reassigned.
    """
    __tablename__ = "affiliate_links"

    id = Column(Integer, primary_key=True)
    partner_id = Column(Integer, ForeignKey("partners.id"), nullable=False, index=True)
    code = Column(String(32), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)

    platform = Column(SQLEnum(Platform, native_enum=False), default=Platform.SHOP, nullable=False)
    target_type = Column(SQLEnum(TargetType, native_enum=False), default=TargetType.STORE, nullable=False)
    target_id = Column(String(255), nullable=True)  # product slug or category
    custom_url = Column(String(500), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Statistics
    total_clicks = Column(Integer, default=0, nullable=False)
    total_referrals = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utcnow)

    partner = relationship("Partner", back_populates="links")

    def __repr__(self):
        return f"<AffiliateLink(code={self.code}, platform={self.platform}, clicks={self.total_clicks})>"


class AffiliateClick(Base):
    """Append-only click event. Reporting only, no financial weight."""
    __tablename__ = "affiliate_clicks"

    id = Column(Integer, primary_key=True)
    link_id = Column(Integer, ForeignKey("affiliate_links.id"), nullable=False, index=True)
    session_id = Column(String(64), nullable=True, index=True)

    # Visitor metadata
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    referrer = Column(String(500), nullable=True)
    utm_source = Column(String(100), nullable=True)
    utm_medium = Column(String(100), nullable=True)
    utm_campaign = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)


class Referral(Base):
    """One attributed conversion.

    (platform, event_type, external_reference) is the idempotency key of the
    upstream event; redelivery never creates a second row.
    """
    __tablename__ = "affiliate_referrals"
    __table_args__ = (
        UniqueConstraint("platform", "event_type", "external_reference", name="uq_referral_event"),
    )

    id = Column(Integer, primary_key=True)
    partner_id = Column(Integer, ForeignKey("partners.id"), nullable=False, index=True)
    link_id = Column(Integer, ForeignKey("affiliate_links.id"), nullable=True)

    platform = Column(SQLEnum(Platform, native_enum=False), nullable=False)
    event_type = Column(SQLEnum(EventType, native_enum=False), nullable=False)
    external_reference = Column(String(255), nullable=False)  # order id, app user id, lead number

    customer_email = Column(String(255), nullable=True)
    amount = Column(Numeric(10, 2), nullable=True)  # order total / contract value
    session_id = Column(String(64), nullable=True)

    signup_at = Column(DateTime, nullable=True)
    converted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    partner = relationship("Partner")
    link = relationship("AffiliateLink")
    commissions = relationship("Commission", back_populates="referral", lazy="selectin")

    def __repr__(self):
        return f"<Referral(id={self.id}, {self.platform}/{self.event_type}, ref={self.external_reference})>"


class Commission(Base):
    """Commission ledger entry.

    rate_applied is the partner rate at event time (None for flat bonuses).
    Once payout_id is set, amount and status only change through the payout.
    """
    __tablename__ = "affiliate_commissions"
    __table_args__ = (
        UniqueConstraint("referral_id", "type", "billing_reference", name="uq_commission_cycle"),
    )

    id = Column(Integer, primary_key=True)
    partner_id = Column(Integer, ForeignKey("partners.id"), nullable=False, index=True)
    referral_id = Column(Integer, ForeignKey("affiliate_referrals.id"), nullable=False, index=True)

    type = Column(SQLEnum(CommissionType, native_enum=False), nullable=False)
    base_amount = Column(Numeric(10, 2), nullable=False, default=0)
    rate_applied = Column(Numeric(5, 2), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)

    status = Column(SQLEnum(CommissionStatus, native_enum=False), default=CommissionStatus.PENDING, nullable=False)
    payout_id = Column(Integer, ForeignKey("affiliate_payouts.id"), nullable=True, index=True)

    # Recurring cycle key (e.g. invoice number or "2026-10"); NULL otherwise
    billing_reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    referral = relationship("Referral", back_populates="commissions")
    payout = relationship("Payout", back_populates="commissions")

    def __repr__(self):
        return f"<Commission(id={self.id}, type={self.type}, amount={self.amount}, status={self.status})>"


class Payout(Base):
    """Batched disbursement to one partner.

    amount is the sum of the linked commissions at creation and is never
    recomputed.
    """
    __tablename__ = "affiliate_payouts"

    id = Column(Integer, primary_key=True)
    payout_number = Column(String(30), unique=True, nullable=False, index=True)
    partner_id = Column(Integer, ForeignKey("partners.id"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(PayoutStatus, native_enum=False), default=PayoutStatus.PENDING, nullable=False)

    method = Column(SQLEnum(PayoutMethod, native_enum=False), nullable=True)
    reference = Column(String(255), nullable=True)  # check number, Zelle confirmation...
    transfer_reference = Column(String(255), nullable=True)  # Stripe transfer id
    notes = Column(Text, nullable=True)

    created_by = Column(String(64), nullable=True)
    paid_by = Column(String(64), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    partner = relationship("Partner", lazy="selectin")
    commissions = relationship("Commission", back_populates="payout", lazy="selectin")

    def __repr__(self):
        return f"<Payout(number={self.payout_number}, amount={self.amount}, status={self.status})>"
