"""Affiliate codes, URLs and commission arithmetic."""

import re
import secrets
import string
import time
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from urllib.parse import parse_qs, urlencode, urlparse

from partnerpay.settings import settings

# Exclude confusing characters: 0, O, I, l, 1
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CUSTOM_CODE_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9_-]{2,31}$")

CENT = Decimal("0.01")


def generate_code(length: int = 8) -> str:
    """Generate a readable affiliate code.

    Format: ABC12XYZ (8 chars by default)
    """
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str | None) -> str | None:
    """Uppercase and strip a user-typed code; empty input gives None."""
    if not code:
        return None
    code = code.strip().upper()
    return code or None


def is_valid_custom_code(code: str) -> bool:
    """Custom codes: 3-32 chars, letters/digits/dash/underscore."""
    return bool(CUSTOM_CODE_PATTERN.match(code))


def generate_session_id() -> str:
    """Session id correlating a click with a later conversion."""
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(8))
    return f"aff_{int(time.time() * 1000)}_{suffix}"


def affiliate_url(platform: str, code: str, target_id: str | None = None) -> str:
    """Build the shareable URL for a link.

    Args:
        platform: SHOP or MOTOREV
        code: Link or partner code
        target_id: Optional product slug or category

    Returns:
        Full affiliate URL
    """
    if platform == "MOTOREV":
        return f"{settings.motorev_signup_url}?{urlencode({'ref': code})}"

    base_url = settings.app_url.rstrip("/")
    if target_id:
        return f"{base_url}/shop/{target_id}?{urlencode({'ref': code})}"
    return f"{base_url}/shop?{urlencode({'ref': code})}"


def parse_utm(url: str | None) -> dict[str, str | None]:
    """Extract utm_source / utm_medium / utm_campaign from a landing URL."""
    utm = {"utm_source": None, "utm_medium": None, "utm_campaign": None}
    if not url:
        return utm
    try:
        query = parse_qs(urlparse(url).query)
    except ValueError:
        return utm
    for key in utm:
        values = query.get(key)
        if values:
            utm[key] = values[0][:100]
    return utm


def to_money(value) -> Decimal:
    """Quantize to cents, rounding half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(base, rate) -> Decimal:
    """Commission for ``base`` at ``rate`` percent, e.g. (200.00, 5.00) -> 10.00."""
    return to_money(Decimal(str(base)) * Decimal(str(rate)) / Decimal(100))


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def window_end(signup: date | datetime, window_days: int) -> date:
    """Last calendar day on which a conversion still earns the bonus."""
    return _as_date(signup) + timedelta(days=window_days)


def is_within_window(signup: date | datetime, conversion: date | datetime, window_days: int) -> bool:
    """Calendar-day window check, inclusive of the boundary day."""
    return _as_date(conversion) <= window_end(signup, window_days)


def days_remaining(signup: date | datetime, window_days: int, today: date | None = None) -> int:
    """Days left in the conversion window (negative once expired)."""
    today = today or date.today()
    return (window_end(signup, window_days) - today).days
