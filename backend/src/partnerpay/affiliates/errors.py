"""Errors raised by the partner program services.

Every error carries a stable ``code`` so the API layer can translate it
without inspecting messages. Duplicate conversion events are not errors:
the recorder returns the existing rows instead.
"""


class AffiliateError(Exception):
    """Base class for partner program errors."""

    code = "AFFILIATE_ERROR"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(AffiliateError):
    """Malformed input. Nothing was written."""

    code = "VALIDATION"
    status_code = 400


class NoEligibleCommissions(AffiliateError):
    """A payout was requested but no commission qualifies."""

    code = "NO_ELIGIBLE_COMMISSIONS"
    status_code = 400

    def __init__(self, partner_id: int):
        self.partner_id = partner_id
        super().__init__(f"No pending or approved commissions to pay out for partner {partner_id}")


class NotFoundError(AffiliateError):
    """A referenced partner, link, commission or payout does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier} not found")


class InvalidStateError(AffiliateError):
    """The entity's current status forbids the operation."""

    code = "INVALID_STATE"
    status_code = 409


class PermissionDeniedError(AffiliateError):
    """The acting user may not perform the operation."""

    code = "FORBIDDEN"
    status_code = 403


class ExternalDependencyError(AffiliateError):
    """The transfer rail failed. Ledger state is unchanged; safe to retry."""

    code = "EXTERNAL_DEPENDENCY_FAILURE"
    status_code = 502
