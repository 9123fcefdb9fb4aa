"""
Offer identifier, pricing, and negotiation-log helpers.

WHAT: Small pure functions shared by the model and the negotiation engine
WHY: Keep id format, discount math, and log-entry shape in one place
HOW: Stateless helpers with no database access
"""

import math
import random
import string
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Tuple

OFFER_ID_PREFIX = "OFF"
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_offer_id() -> str:
    """
    Generate a human-readable offer identifier.

    Format: OFF-<epoch millis>-<9 uppercase alphanumerics>
    """
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices(_SUFFIX_ALPHABET, k=9))
    return f"{OFFER_ID_PREFIX}-{millis}-{suffix}"


def compute_discount(original_price: float, offer_price: float) -> Tuple[int, float]:
    """
    Compute (percentage, amount) of the discount an offer price represents.

    Percentage rounds half up and is 0 when original_price is 0.

    Examples:
        >>> compute_discount(1000, 750)
        (25, 250.0)
        >>> compute_discount(0, 10)
        (0, -10.0)
    """
    amount = float(original_price) - float(offer_price)
    if not original_price:
        return 0, amount
    percentage = math.floor(amount / original_price * 100 + 0.5)
    return percentage, amount


def build_negotiation_entry(
    from_user: str,
    to_user: str,
    action: str,
    message: str = "",
    changes: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build a JSON-serializable negotiation log entry.

    Args:
        from_user: Acting user id
        to_user: Counterpart user id
        action: NegotiationAction value
        message: Optional free text
        changes: Optional price/quantity/description/terms delta
        timestamp: Defaults to now (UTC)

    Returns:
        Entry dict as stored in Offer.negotiations
    """
    entry = {
        "from_user": from_user,
        "to_user": to_user,
        "action": getattr(action, "value", action),
        "message": message or "",
        "timestamp": (timestamp or utcnow()).isoformat(),
    }
    if changes:
        entry["changes"] = changes
    return entry
