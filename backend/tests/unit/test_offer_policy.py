"""
Unit tests for the offer transition policy.

WHAT: Action parsing, party checks, and guard ordering
WHY: Both entry points authorize through this module only
HOW: Guards over transient offers built by the engine
"""

from datetime import timedelta

import pytest

from wholexale.core.models import OfferStatus
from wholexale.models.api_schemas import CreateOfferRequest
from wholexale.services import offer_engine, offer_policy
from wholexale.services.offer_policy import OfferAction
from wholexale.utils.exceptions import (
    InvalidActionException,
    InitialCounterSellerOnlyException,
    WaitForCounterResponseException,
    VendorCounterLimitReachedException,
    UnauthorizedWithdrawException,
)
from wholexale.utils.offers import utcnow

BUYER = "buyer-1"
SELLER = "seller-1"


@pytest.fixture
def offer():
    request = CreateOfferRequest.model_validate({
        "title": "Steel bolts",
        "description": "500 boxes of M8 bolts",
        "seller": SELLER,
        "product": {"productId": "bolt-m8", "name": "M8 Bolt"},
        "pricing": {"originalPrice": 200, "offerPrice": 150},
        "quantity": {"requested": 500, "unit": "boxes"},
        "validity": {"endDate": (utcnow() + timedelta(days=1)).isoformat()},
    })
    return offer_engine.create_offer(BUYER, request)


@pytest.mark.unit
class TestOfferAction:

    @pytest.mark.parametrize("raw,expected", [
        ("accept", OfferAction.ACCEPT),
        (" Reject ", OfferAction.REJECT),
        ("COUNTER", OfferAction.COUNTER),
        (OfferAction.ACCEPT, OfferAction.ACCEPT),
    ])
    def test_parse(self, raw, expected):
        assert OfferAction.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["", "withdraw", "expire", None, 3])
    def test_parse_rejects_unknown(self, raw):
        with pytest.raises(InvalidActionException):
            OfferAction.parse(raw)


@pytest.mark.unit
class TestCanRespond:

    @pytest.mark.parametrize("action", list(OfferAction))
    @pytest.mark.parametrize("actor", [BUYER, SELLER])
    def test_either_party_may_respond(self, offer, actor, action):
        assert offer_policy.can_respond(actor, offer, action)

    @pytest.mark.parametrize("action", list(OfferAction))
    def test_strangers_may_not_respond(self, offer, action):
        assert not offer_policy.can_respond("someone-else", offer, action)


@pytest.mark.unit
class TestCounterGuardOrder:

    def test_initial_restriction_wins_over_quota(self, offer):
        offer.max_vendor_counters = 0
        with pytest.raises(InitialCounterSellerOnlyException):
            offer_policy.check_counter(offer, BUYER)

    def test_turn_taking_wins_over_quota(self, offer):
        offer_engine.counter(offer, SELLER, {"price": 180})
        offer.max_vendor_counters = 1

        with pytest.raises(WaitForCounterResponseException):
            offer_policy.check_counter(offer, SELLER)

    def test_quota_checked_last(self, offer):
        offer_engine.counter(offer, SELLER, {"price": 180})
        offer_engine.counter(offer, BUYER, {"price": 160})
        offer.max_vendor_counters = 1

        with pytest.raises(VendorCounterLimitReachedException):
            offer_policy.check_counter(offer, SELLER)

    def test_buyer_ignores_quota(self, offer):
        offer_engine.counter(offer, SELLER, {"price": 180})
        offer.max_vendor_counters = 1
        offer_policy.check_counter(offer, BUYER)


@pytest.mark.unit
def test_withdraw_actor_checked_before_status(offer):
    offer.status = OfferStatus.ACCEPTED
    with pytest.raises(UnauthorizedWithdrawException):
        offer_policy.check_withdraw(offer, SELLER)
