"""Shared fixtures: a fresh in-memory database per test."""

import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"
os.environ["CONVERSION_API_KEY"] = "test-conversion-key"
os.environ["JWT_SECRET_KEY"] = "partnerpay-test-secret-key-0123456789abcdef"
os.environ.pop("STRIPE_SECRET_KEY", None)

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402

from partnerpay.affiliates.conversions import ConversionEvent, conversion_recorder  # noqa: E402
from partnerpay.affiliates.models import EventType, Platform  # noqa: E402
from partnerpay.affiliates.partners import partner_service  # noqa: E402
from partnerpay.auth.models import Actor, Role  # noqa: E402
from partnerpay.payments.transfers import TransferError, TransferResult, to_cents  # noqa: E402
from partnerpay.storage.db import db  # noqa: E402


@pytest.fixture(autouse=True)
def database():
    db.configure("sqlite://")
    db.create_tables()
    yield db
    db.drop_tables()
    db.engine.dispose()


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def super_admin() -> Actor:
    return Actor(user_id="root-1", role=Role.SUPER_ADMIN)


@pytest.fixture
def partner(admin):
    """Partner with the default rates: 5% shop, 2.50 Pro bonus, 30-day window."""
    return partner_service.create_partner(admin, name="Pat Partner", email="pat@example.com", affiliate_code="PATCODE")


@pytest.fixture
def other_partner(admin):
    return partner_service.create_partner(admin, name="Olly Other", email="olly@example.com", affiliate_code="OLLY")


@pytest.fixture
def shop_link(admin, partner):
    return partner_service.create_link(admin, partner.id, code="PAT-SHOP", name="Instagram bio")


@pytest.fixture
def partner_actor(partner) -> Actor:
    return Actor(user_id="user-pat", role=Role.PARTNER, partner_id=partner.id)


def record_order(code: str, reference: str, total: str):
    return conversion_recorder.record(
        ConversionEvent(
            platform=Platform.SHOP,
            event_type=EventType.ORDER,
            external_reference=reference,
            affiliate_code=code,
            amount=Decimal(total),
        )
    )


@pytest.fixture
def order():
    """Record a storefront order: order(code, reference, total)."""
    return record_order


class FakeRail:
    """Transfer rail double recording every call."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[dict] = []

    def transfer(self, destination, amount, description, metadata, idempotency_key):
        self.calls.append({
            "destination": destination,
            "amount": amount,
            "description": description,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        })
        if self.fail:
            raise TransferError("Your card was declined")
        return TransferResult(
            transfer_id=f"tr_test_{len(self.calls)}",
            amount_cents=to_cents(amount),
            destination=destination,
        )


@pytest.fixture
def fake_rail() -> FakeRail:
    return FakeRail()


@pytest.fixture
def failing_rail() -> FakeRail:
    return FakeRail(fail=True)
