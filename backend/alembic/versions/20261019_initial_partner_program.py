"""Create partner program tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Adds tables for:
- partners: Partner identity and rate configuration
- affiliate_links: Shareable referral links
- affiliate_clicks: Append-only click log
- affiliate_referrals: Attributed conversions (one per upstream event)
- affiliate_payouts: Batched disbursements
- affiliate_commissions: Commission ledger
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> sa.Enum:
    # Stored as VARCHAR + CHECK, matching SQLEnum(native_enum=False)
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    """Create partner program tables."""

    op.create_table(
        "partners",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("partner_number", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("affiliate_code", sa.String(20), nullable=True),
        sa.Column("status", _enum("partnerstatus", "PENDING", "ACTIVE", "SUSPENDED", "INACTIVE"), nullable=False),
        sa.Column("first_sale_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("recurring_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("shop_commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("motorev_pro_bonus", sa.Numeric(10, 2), nullable=False),
        sa.Column("motorev_pro_window_days", sa.Integer(), nullable=False),
        sa.Column("stripe_connect_id", sa.String(255), nullable=True),
        sa.Column("stripe_connect_status", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_partners_partner_number", "partners", ["partner_number"], unique=True)
    op.create_index("ix_partners_email", "partners", ["email"], unique=True)
    op.create_index("ix_partners_affiliate_code", "partners", ["affiliate_code"], unique=True)

    op.create_table(
        "affiliate_links",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("partner_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("platform", _enum("platform", "SHOP", "MOTOREV", "SERVICES"), nullable=False),
        sa.Column("target_type", _enum("targettype", "STORE", "PRODUCT", "CATEGORY"), nullable=False),
        sa.Column("target_id", sa.String(255), nullable=True),
        sa.Column("custom_url", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("total_clicks", sa.Integer(), nullable=False),
        sa.Column("total_referrals", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_affiliate_links_partner_id", "affiliate_links", ["partner_id"], unique=False)
    op.create_index("ix_affiliate_links_code", "affiliate_links", ["code"], unique=True)

    op.create_table(
        "affiliate_clicks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("link_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("referrer", sa.String(500), nullable=True),
        sa.Column("utm_source", sa.String(100), nullable=True),
        sa.Column("utm_medium", sa.String(100), nullable=True),
        sa.Column("utm_campaign", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["link_id"], ["affiliate_links.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_affiliate_clicks_link_id", "affiliate_clicks", ["link_id"], unique=False)
    op.create_index("ix_affiliate_clicks_session_id", "affiliate_clicks", ["session_id"], unique=False)

    op.create_table(
        "affiliate_referrals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("partner_id", sa.Integer(), nullable=False),
        sa.Column("link_id", sa.Integer(), nullable=True),
        sa.Column("platform", _enum("platform", "SHOP", "MOTOREV", "SERVICES"), nullable=False),
        sa.Column("event_type", _enum("eventtype", "SIGNUP", "ORDER", "PRO_CONVERSION", "LEAD"), nullable=False),
        sa.Column("external_reference", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("signup_at", sa.DateTime(), nullable=True),
        sa.Column("converted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"]),
        sa.ForeignKeyConstraint(["link_id"], ["affiliate_links.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("platform", "event_type", "external_reference", name="uq_referral_event"),
    )
    op.create_index("ix_affiliate_referrals_partner_id", "affiliate_referrals", ["partner_id"], unique=False)

    op.create_table(
        "affiliate_payouts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payout_number", sa.String(30), nullable=False),
        sa.Column("partner_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", _enum("payoutstatus", "PENDING", "PAID", "CANCELLED"), nullable=False),
        sa.Column(
            "method",
            _enum("payoutmethod", "STRIPE_CONNECT", "ZELLE", "VENMO", "CASH_APP", "CHECK", "BANK_TRANSFER", "OTHER"),
            nullable=True,
        ),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("transfer_reference", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("paid_by", sa.String(64), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_affiliate_payouts_payout_number", "affiliate_payouts", ["payout_number"], unique=True)
    op.create_index("ix_affiliate_payouts_partner_id", "affiliate_payouts", ["partner_id"], unique=False)

    op.create_table(
        "affiliate_commissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("partner_id", sa.Integer(), nullable=False),
        sa.Column("referral_id", sa.Integer(), nullable=False),
        sa.Column(
            "type",
            _enum("commissiontype", "SHOP_ORDER", "PRO_CONVERSION", "LEAD_FIRST_SALE", "LEAD_RECURRING"),
            nullable=False,
        ),
        sa.Column("base_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("rate_applied", sa.Numeric(5, 2), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", _enum("commissionstatus", "PENDING", "APPROVED", "PAID"), nullable=False),
        sa.Column("payout_id", sa.Integer(), nullable=True),
        sa.Column("billing_reference", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"]),
        sa.ForeignKeyConstraint(["referral_id"], ["affiliate_referrals.id"]),
        sa.ForeignKeyConstraint(["payout_id"], ["affiliate_payouts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("referral_id", "type", "billing_reference", name="uq_commission_cycle"),
    )
    op.create_index("ix_affiliate_commissions_partner_id", "affiliate_commissions", ["partner_id"], unique=False)
    op.create_index("ix_affiliate_commissions_referral_id", "affiliate_commissions", ["referral_id"], unique=False)
    op.create_index("ix_affiliate_commissions_payout_id", "affiliate_commissions", ["payout_id"], unique=False)


def downgrade() -> None:
    """Drop partner program tables."""
    op.drop_table("affiliate_commissions")
    op.drop_table("affiliate_payouts")
    op.drop_table("affiliate_referrals")
    op.drop_table("affiliate_clicks")
    op.drop_table("affiliate_links")
    op.drop_table("partners")
