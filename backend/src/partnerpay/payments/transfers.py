"""Transfer rail for partner payouts (Stripe Connect)."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

import stripe

from partnerpay.logging_config import get_logger
from partnerpay.settings import settings

logger = get_logger(__name__)


class TransferError(Exception):
    """The rail refused or failed a transfer. Nothing was moved."""


@dataclass
class TransferResult:
    transfer_id: str
    amount_cents: int
    destination: str


class TransferRail(Protocol):
    def transfer(
        self,
        destination: str,
        amount: Decimal,
        description: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> TransferResult:
        ...


def to_cents(amount: Decimal) -> int:
    return int((Decimal(str(amount)) * 100).to_integral_value())


class StripeConnectRail:
    """Sends payouts to connected Stripe accounts."""

    def __init__(self, api_key: str | None = None, currency: str = "usd"):
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key
        self.currency = currency

    def transfer(
        self,
        destination: str,
        amount: Decimal,
        description: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> TransferResult:
        """Transfer ``amount`` to a connected account.

        The idempotency key makes a retried call after a timeout return the
        original transfer instead of paying twice.

        Raises:
            TransferError: Stripe not configured, account not ready, or API failure
        """
        if not self.api_key:
            raise TransferError("Stripe is not configured")

        try:
            account = stripe.Account.retrieve(destination, api_key=self.api_key)
            if not account.get("payouts_enabled"):
                raise TransferError("Partner Stripe account is not fully set up for payouts")

            transfer = stripe.Transfer.create(
                amount=to_cents(amount),
                currency=self.currency,
                destination=destination,
                description=description,
                metadata=metadata,
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        except stripe.error.StripeError as e:
            logger.error("stripe_transfer_failed", destination=destination, error=str(e))
            raise TransferError(str(e)) from e

        logger.info(
            "stripe_transfer_created",
            transfer_id=transfer.id,
            destination=destination,
            amount_cents=transfer.amount,
        )
        return TransferResult(transfer_id=transfer.id, amount_cents=transfer.amount, destination=destination)
