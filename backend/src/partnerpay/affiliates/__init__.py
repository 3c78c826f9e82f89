"""Partner program: attribution, conversions, commission ledger and payouts.

Flow:
- a click on a referral link sets a 30-day last-touch attribution token
- an order / signup / Pro upgrade / closed lead becomes a Referral
- the Referral earns a PENDING Commission at the partner's snapshotted rate
- operators approve commissions and batch them into Payouts
"""

from partnerpay.affiliates.models import AffiliateLink, Commission, Partner, Payout, Referral
from partnerpay.affiliates.attribution import AttributionStore, attribution_store
from partnerpay.affiliates.conversions import ConversionEvent, ConversionRecorder, conversion_recorder
from partnerpay.affiliates.ledger import CommissionLedger, commission_ledger
from partnerpay.affiliates.payouts import PayoutBatcher, payout_batcher
from partnerpay.affiliates.partners import PartnerService, partner_service
from partnerpay.affiliates.reporting import ReportingService, reporting_service

__all__ = [
    "AffiliateLink",
    "Commission",
    "Partner",
    "Payout",
    "Referral",
    "AttributionStore",
    "attribution_store",
    "ConversionEvent",
    "ConversionRecorder",
    "conversion_recorder",
    "CommissionLedger",
    "commission_ledger",
    "PayoutBatcher",
    "payout_batcher",
    "PartnerService",
    "partner_service",
    "ReportingService",
    "reporting_service",
]
