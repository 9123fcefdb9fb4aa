"""
Offer negotiation engine.

WHAT: The offer state machine: create, accept, reject, counter, withdraw, expire
WHY: Every entry point runs the same transition code against the same row
HOW: Plain functions over an Offer ORM instance. Guards from offer_policy run
     first; mutations happen only after every guard has passed, so a failed
     call leaves the instance untouched. Persistence is the caller's job.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..core.config import settings
from ..core.models import (
    Offer, OfferStatus, NegotiationAction
)
from ..models.api_schemas import CreateOfferRequest, CounterChanges
from ..utils.exceptions import InvalidSellerException
from ..utils.offers import (
    build_negotiation_entry, compute_discount, generate_offer_id, utcnow
)
from . import offer_policy
from .offer_policy import OfferAction


def create_offer(buyer_id: str, request: CreateOfferRequest, now: Optional[datetime] = None) -> Offer:
    """
    Build a new pending offer from the buyer's request.

    The negotiation log starts with a single `sent` entry from buyer to
    seller carrying the description as its message.

    Raises:
        InvalidSellerException: seller is the buyer
    """
    if request.seller == buyer_id:
        raise InvalidSellerException(request.seller)

    now = now or utcnow()
    validity = request.validity
    start_date = validity.start_date or now
    end_date = validity.end_date or start_date + timedelta(days=settings.OFFER_DEFAULT_VALIDITY_DAYS)
    max_counters = request.max_vendor_counters
    if max_counters is None:
        max_counters = settings.OFFER_DEFAULT_MAX_VENDOR_COUNTERS

    offer = Offer(
        offer_id=generate_offer_id(),
        title=request.title,
        description=request.description,
        buyer_id=buyer_id,
        seller_id=request.seller,
        product_id=request.product.product_id,
        product_name=request.product.name,
        product_category=request.product.category,
        product_images=list(request.product.images),
        product_sku=request.product.sku,
        product_brand=request.product.brand,
        product_specifications=[spec.model_dump() for spec in request.product.specifications],
        original_price=request.pricing.original_price,
        offer_price=request.pricing.offer_price,
        currency=request.pricing.currency,
        minimum_quantity=request.pricing.minimum_quantity,
        maximum_quantity=request.pricing.maximum_quantity,
        quantity_requested=request.quantity.requested,
        quantity_unit=request.quantity.unit,
        quantity_available=request.quantity.available,
        status=OfferStatus.PENDING,
        max_vendor_counters=max_counters,
        vendor_counter_count=0,
        start_date=start_date,
        end_date=end_date,
        timezone=validity.timezone,
        payment_terms=request.terms.payment_terms,
        delivery_terms=request.terms.delivery_terms,
        custom_terms=list(request.terms.custom_terms),
        warranty=_as_json(request.terms.warranty),
        return_policy=_as_json(request.terms.return_policy),
        shipping=_as_json(request.shipping),
        attachments=[
            _as_json(attachment.model_copy(update={
                "uploaded_by": attachment.uploaded_by or buyer_id,
                "uploaded_at": attachment.uploaded_at or now,
            }))
            for attachment in request.attachments
        ],
        context=_as_json(request.context),
        priority=request.priority,
        is_urgent=request.is_urgent,
        analytics_views=0,
        analytics_responses=0,
        conversation_id=request.conversation_id,
        last_message_at=now,
        is_deleted=False,
        created_at=now,
        updated_at=now,
        negotiations=[
            build_negotiation_entry(
                buyer_id, request.seller, NegotiationAction.SENT,
                message=request.description, timestamp=now,
            )
        ],
    )
    _recompute_discount(offer)
    return offer


def accept(offer: Offer, actor_id: str, message: str = "") -> Offer:
    offer_policy.ensure_party(offer, actor_id)
    offer_policy.ensure_open(offer)
    _count_response(offer)
    _finish(offer, actor_id, OfferStatus.ACCEPTED, NegotiationAction.ACCEPTED, message)
    return offer


def reject(offer: Offer, actor_id: str, message: str = "") -> Offer:
    offer_policy.ensure_party(offer, actor_id)
    offer_policy.ensure_open(offer)
    _count_response(offer)
    _finish(offer, actor_id, OfferStatus.REJECTED, NegotiationAction.REJECTED, message)
    return offer


def counter(offer: Offer, actor_id: str, changes: Any = None, message: str = "") -> Offer:
    """
    Apply a counter-proposal.

    Only fields present in `changes` are applied; a seller counter uses up
    one unit of the vendor counter quota.
    """
    offer_policy.ensure_party(offer, actor_id)
    offer_policy.ensure_open(offer)
    offer_policy.check_counter(offer, actor_id)

    delta = _normalize_changes(changes)
    _count_response(offer)

    if offer_policy.is_seller(offer, actor_id):
        offer.vendor_counter_count = (offer.vendor_counter_count or 0) + 1

    if delta.get("price") is not None:
        offer.offer_price = delta["price"]
    if delta.get("quantity") is not None:
        offer.quantity_requested = delta["quantity"]
    if delta.get("description"):
        offer.description = delta["description"]
    _recompute_discount(offer)

    offer.status = OfferStatus.COUNTERED
    _append(offer, build_negotiation_entry(
        actor_id, offer.counterpart_of(actor_id), NegotiationAction.COUNTERED,
        message=message, changes=delta or None,
    ))
    return offer


def withdraw(offer: Offer, actor_id: str, reason: str = "") -> Offer:
    offer_policy.check_withdraw(offer, actor_id)
    _finish(offer, actor_id, OfferStatus.WITHDRAWN, NegotiationAction.WITHDRAWN, reason)
    return offer


def expire(offer: Offer) -> Offer:
    """System transition; applied by the expiry sweeper without guards."""
    offer.status = OfferStatus.EXPIRED
    offer.updated_at = utcnow()
    return offer


_RESPONSE_HANDLERS: Dict[OfferAction, Callable[[Offer, str, Any, str], Offer]] = {
    OfferAction.ACCEPT: lambda offer, actor_id, changes, message: accept(offer, actor_id, message),
    OfferAction.REJECT: lambda offer, actor_id, changes, message: reject(offer, actor_id, message),
    OfferAction.COUNTER: counter,
}

if set(_RESPONSE_HANDLERS) != set(OfferAction):
    raise RuntimeError(f"Unhandled offer actions: {set(OfferAction) - set(_RESPONSE_HANDLERS)}")


def respond(offer: Offer, actor_id: str, action: Any, changes: Any = None, message: str = "") -> Offer:
    """
    Dispatch a party's response to accept, reject, or counter.

    Raises:
        UnauthorizedOfferActionException: actor is not a party
        InvalidActionException: action is not accept/reject/counter
        plus whatever the selected transition raises
    """
    offer_policy.ensure_party(offer, actor_id)
    parsed = OfferAction.parse(action)
    offer_policy.ensure_can_respond(offer, actor_id, parsed)
    return _RESPONSE_HANDLERS[parsed](offer, actor_id, changes, message or "")


def derive_status(negotiations: List[Mapping[str, Any]]) -> OfferStatus:
    """
    Replay a negotiation log into the status it implies.

    `sent` leaves the offer pending, `modified` changes nothing, every other
    action maps to its status. System transitions (expired, cancelled,
    completed) are not logged and so are not reproduced here.
    """
    status = OfferStatus.PENDING
    for entry in negotiations:
        action = NegotiationAction(entry["action"])
        if action == NegotiationAction.SENT:
            status = OfferStatus.PENDING
        elif action == NegotiationAction.COUNTERED:
            status = OfferStatus.COUNTERED
        elif action == NegotiationAction.ACCEPTED:
            status = OfferStatus.ACCEPTED
        elif action == NegotiationAction.REJECTED:
            status = OfferStatus.REJECTED
        elif action == NegotiationAction.WITHDRAWN:
            status = OfferStatus.WITHDRAWN
    return status


def _finish(offer: Offer, actor_id: str, status: OfferStatus, action: NegotiationAction, message: str):
    offer.status = status
    _append(offer, build_negotiation_entry(
        actor_id, offer.counterpart_of(actor_id), action, message=message,
    ))


def _count_response(offer: Offer):
    offer.analytics_responses = (offer.analytics_responses or 0) + 1


def _append(offer: Offer, entry: Dict[str, Any]):
    # Reassign so the JSON column is flagged dirty
    offer.negotiations = [*(offer.negotiations or []), entry]
    offer.last_message_at = utcnow()
    offer.updated_at = offer.last_message_at


def _as_json(model) -> Optional[Dict[str, Any]]:
    return model.model_dump(mode="json") if model is not None else None


def _recompute_discount(offer: Offer):
    offer.discount_percentage, offer.discount_amount = compute_discount(
        offer.original_price, offer.offer_price
    )


def _normalize_changes(changes: Any) -> Dict[str, Any]:
    if changes is None:
        return {}
    if isinstance(changes, CounterChanges):
        return changes.model_dump(exclude_none=True)
    return CounterChanges.model_validate(changes).model_dump(exclude_none=True)
