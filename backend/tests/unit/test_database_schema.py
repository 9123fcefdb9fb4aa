"""
Unit tests for the offers table.

WHAT: Constraints, defaults, and the version column
WHY: The database is the last line of defence for offer invariants
HOW: Insert rows through a raw session against a fresh schema
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from wholexale.core.database import SessionLocal
from wholexale.core.models import Offer, OfferStatus, QuantityUnit
from wholexale.utils.offers import utcnow


@pytest.fixture
def db_session(db):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def _offer(**overrides) -> Offer:
    fields = dict(
        title="Rice bags",
        description="50 kg basmati",
        buyer_id="buyer-1",
        seller_id="seller-1",
        product_id="rice-50",
        product_name="Basmati Rice",
        original_price=3000,
        offer_price=2700,
        quantity_requested=50,
        quantity_unit=QuantityUnit.KG,
        end_date=utcnow() + timedelta(days=2),
    )
    fields.update(overrides)
    return Offer(**fields)


@pytest.mark.unit
class TestOfferTable:

    def test_defaults(self, db_session):
        offer = _offer()
        db_session.add(offer)
        db_session.commit()

        assert offer.offer_id.startswith("OFF-")
        assert offer.status == OfferStatus.PENDING
        assert offer.max_vendor_counters == 2
        assert offer.vendor_counter_count == 0
        assert offer.negotiations == []
        assert offer.is_deleted is False
        assert offer.version == 1
        assert offer.minimum_quantity == 1
        assert offer.maximum_quantity is None
        assert offer.quantity_available == 0
        assert offer.attachments == []
        assert offer.context == {}
        assert offer.is_urgent is False
        assert (offer.analytics_views, offer.analytics_responses) == (0, 0)

    @pytest.mark.parametrize("overrides", [
        {"seller_id": "buyer-1"},
        {"original_price": -1},
        {"offer_price": -0.5},
        {"quantity_requested": 0},
        {"max_vendor_counters": -1},
        {"vendor_counter_count": -1},
        {"quantity_available": -1},
        {"minimum_quantity": 0},
        {"minimum_quantity": 10, "maximum_quantity": 5},
    ])
    def test_check_constraints(self, db_session, overrides):
        db_session.add(_offer(**overrides))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_offer_id_unique(self, db_session):
        db_session.add(_offer(offer_id="OFF-1-AAAAAAAAA"))
        db_session.commit()
        db_session.add(_offer(offer_id="OFF-1-AAAAAAAAA"))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_version_increments_on_update(self, db_session):
        offer = _offer()
        db_session.add(offer)
        db_session.commit()

        offer.status = OfferStatus.COUNTERED
        db_session.commit()
        assert offer.version == 2

    def test_stale_write_is_refused(self, db_session):
        offer = _offer()
        db_session.add(offer)
        db_session.commit()

        other = SessionLocal()
        try:
            copy = other.query(Offer).filter(Offer.offer_id == offer.offer_id).one()
            copy.status = OfferStatus.ACCEPTED
            other.commit()
        finally:
            other.close()

        offer.status = OfferStatus.REJECTED
        with pytest.raises(StaleDataError):
            db_session.commit()

    def test_json_log_round_trips(self, db_session):
        entry = {"from_user": "buyer-1", "to_user": "seller-1", "action": "sent",
                 "message": "hi", "timestamp": "2024-01-01T00:00:00"}
        offer = _offer(negotiations=[entry])
        db_session.add(offer)
        db_session.commit()

        fresh = SessionLocal()
        try:
            loaded = fresh.query(Offer).filter(Offer.offer_id == offer.offer_id).one()
            assert loaded.negotiations == [entry]
        finally:
            fresh.close()
