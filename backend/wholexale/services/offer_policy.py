"""
Offer transition policy.

WHAT: Who may do what to an offer, and when
WHY: REST and WebSocket entry points must reject exactly the same calls
HOW: Pure predicate/guard functions over an Offer row; guards raise the
     typed exceptions from utils.exceptions and never mutate the offer
"""

import enum

from ..core.models import (
    Offer, OfferStatus, NegotiationAction, INITIAL_STATUSES, OPEN_STATUSES
)
from ..utils.exceptions import (
    InvalidActionException,
    UnauthorizedOfferActionException,
    OfferClosedException,
    InitialCounterSellerOnlyException,
    WaitForCounterResponseException,
    VendorCounterLimitReachedException,
    UnauthorizedWithdrawException,
    CannotWithdrawClosedException,
)


class OfferAction(str, enum.Enum):
    """Response actions a party can take on an open offer."""
    ACCEPT = "accept"
    REJECT = "reject"
    COUNTER = "counter"

    @classmethod
    def parse(cls, value) -> "OfferAction":
        """Parse a caller-supplied action string, raising InvalidActionException."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidActionException(value)


# Statuses from which a withdraw is refused with its own error code
_WITHDRAW_BLOCKED = frozenset({OfferStatus.ACCEPTED, OfferStatus.COMPLETED})


def is_buyer(offer: Offer, user_id: str) -> bool:
    return offer.buyer_id == user_id


def is_seller(offer: Offer, user_id: str) -> bool:
    return offer.seller_id == user_id


def is_party(offer: Offer, user_id: str) -> bool:
    return is_buyer(offer, user_id) or is_seller(offer, user_id)


def can_respond(actor_id: str, offer: Offer, action: OfferAction) -> bool:
    """
    Whether actor_id may take `action` on the offer at all.

    Either party may accept, reject, or counter. Turn-taking and quota
    rules are state checks handled by check_counter, not here.
    """
    return is_party(offer, actor_id) and action in OfferAction


def ensure_party(offer: Offer, actor_id: str):
    if not is_party(offer, actor_id):
        raise UnauthorizedOfferActionException(offer.offer_id, actor_id)


def ensure_can_respond(offer: Offer, actor_id: str, action: OfferAction):
    if not can_respond(actor_id, offer, action):
        raise UnauthorizedOfferActionException(offer.offer_id, actor_id)


def ensure_open(offer: Offer):
    status = OfferStatus(offer.status)
    if status not in OPEN_STATUSES:
        raise OfferClosedException(offer.offer_id, status.value)


def check_counter(offer: Offer, actor_id: str):
    """
    Counter guards, in order:

    1. Nobody has countered yet and the buyer is acting: only the seller
       may counter the opening offer.
    2. The latest log entry is the actor's own counter: wait for a reply.
    3. The seller is acting with no counters left.
    """
    if OfferStatus(offer.status) in INITIAL_STATUSES and not is_seller(offer, actor_id):
        raise InitialCounterSellerOnlyException(offer.offer_id)

    last = offer.last_negotiation
    if last and last.get("action") == NegotiationAction.COUNTERED.value and last.get("from_user") == actor_id:
        raise WaitForCounterResponseException(offer.offer_id)

    if is_seller(offer, actor_id) and offer.remaining_vendor_counters <= 0:
        raise VendorCounterLimitReachedException(offer.offer_id, offer.max_vendor_counters)


def check_withdraw(offer: Offer, actor_id: str):
    """Only the buyer may withdraw, and only while the offer is open."""
    if not is_buyer(offer, actor_id):
        raise UnauthorizedWithdrawException(offer.offer_id)

    status = OfferStatus(offer.status)
    if status in _WITHDRAW_BLOCKED:
        raise CannotWithdrawClosedException(offer.offer_id, status.value)
    ensure_open(offer)
