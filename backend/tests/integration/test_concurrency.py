"""
Concurrency tests for offer transitions.

WHAT: Racing transitions on the same offer from two threads
WHY: Two parties acting at once must never both commit conflicting changes
HOW: A barrier inside offer_engine.respond holds each thread until both have
     loaded the same version of the row, then lets them race to commit
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from wholexale.core.database import get_db
from wholexale.core.models import Offer, OfferStatus
from wholexale.core.offer_manager import OfferManager
from wholexale.services import offer_engine
from wholexale.utils.exceptions import (
    BusinessException,
    OfferClosedException,
    OfferConflictException,
    InitialCounterSellerOnlyException,
    WaitForCounterResponseException,
)

BUYER = "buyer-1"
SELLER = "seller-1"


@pytest.fixture
def lockstep(monkeypatch):
    """Make the first engine call of each thread wait for the other thread."""
    barrier = threading.Barrier(2, timeout=10)
    seen = set()
    lock = threading.Lock()
    real_respond = offer_engine.respond

    def respond(*args, **kwargs):
        with lock:
            first_call = threading.get_ident() not in seen
            seen.add(threading.get_ident())
        if first_call:
            barrier.wait()
        return real_respond(*args, **kwargs)

    monkeypatch.setattr(offer_engine, "respond", respond)
    return barrier


def _race(*calls):
    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(call) for call in calls]
    outcomes = []
    for future in futures:
        try:
            outcomes.append(future.result())
        except BusinessException as e:
            outcomes.append(e)
    return outcomes


def _split(outcomes):
    successes = [o for o in outcomes if isinstance(o, Offer)]
    failures = [o for o in outcomes if isinstance(o, BusinessException)]
    return successes, failures


def _reload(offer_id: str) -> Offer:
    with get_db() as db:
        return db.query(Offer).filter(Offer.offer_id == offer_id).one()


@pytest.mark.integration
@pytest.mark.concurrency
class TestConcurrentTransitions:

    def test_counters_from_both_parties(self, manager, create_request, lockstep):
        offer_id = manager.create_offer(BUYER, create_request()).offer_id

        successes, failures = _split(_race(
            lambda: manager.counter(offer_id, SELLER, {"price": 4600}),
            lambda: manager.counter(offer_id, BUYER, {"price": 3900}),
        ))

        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], (
            InitialCounterSellerOnlyException, WaitForCounterResponseException, OfferClosedException,
        ))
        stored = _reload(offer_id)
        assert stored.status == OfferStatus.COUNTERED
        assert len(stored.negotiations) == 2
        assert stored.version == 2

    def test_same_party_double_counter(self, manager, create_request, lockstep):
        offer_id = manager.create_offer(BUYER, create_request(maxVendorCounters=5)).offer_id

        successes, failures = _split(_race(
            lambda: manager.counter(offer_id, SELLER, {"price": 4600}),
            lambda: manager.counter(offer_id, SELLER, {"price": 4700}),
        ))

        assert len(successes) == 1
        assert len(failures) == 1
        # The loser lost the version race, reloaded, and hit the turn-taking guard
        assert isinstance(failures[0], WaitForCounterResponseException)
        stored = _reload(offer_id)
        assert stored.vendor_counter_count == 1
        assert stored.offer_price == successes[0].offer_price
        assert [entry["action"] for entry in stored.negotiations] == ["sent", "countered"]

    def test_accept_races_reject(self, manager, create_request, lockstep):
        offer_id = manager.create_offer(BUYER, create_request()).offer_id

        successes, failures = _split(_race(
            lambda: manager.accept(offer_id, SELLER),
            lambda: manager.reject(offer_id, BUYER),
        ))

        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], OfferClosedException)
        stored = _reload(offer_id)
        assert stored.status == successes[0].status
        assert stored.status in (OfferStatus.ACCEPTED, OfferStatus.REJECTED)
        assert len(stored.negotiations) == 2

    def test_retries_exhausted(self, db, create_request, lockstep):
        manager = OfferManager(max_retries=1)
        offer_id = manager.create_offer(BUYER, create_request()).offer_id

        successes, failures = _split(_race(
            lambda: manager.accept(offer_id, SELLER),
            lambda: manager.accept(offer_id, BUYER),
        ))

        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], OfferConflictException)
        assert isinstance(failures[0], OfferClosedException)
        assert failures[0].code == "OFFER_CONFLICT"
        assert _reload(offer_id).status == OfferStatus.ACCEPTED

    def test_unrelated_offers_do_not_conflict(self, manager, create_request, lockstep):
        first = manager.create_offer(BUYER, create_request()).offer_id
        second = manager.create_offer(BUYER, create_request()).offer_id

        successes, failures = _split(_race(
            lambda: manager.accept(first, SELLER),
            lambda: manager.reject(second, SELLER),
        ))

        assert len(successes) == 2
        assert failures == []
