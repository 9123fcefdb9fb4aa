"""
Pytest configuration and shared fixtures for backend tests.

WHAT: Test configuration, markers, and offer fixtures
WHY: Every test runs against a throwaway SQLite file, never ./data
HOW: Point settings at a temp directory via environment variables before
     any wholexale module is imported, then rebuild tables per test
"""

import os
import tempfile
from datetime import timedelta

_TEST_DIR = tempfile.mkdtemp(prefix="wholexale-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/test.db"
os.environ["LOG_FILE"] = os.path.join(_TEST_DIR, "logs", "app.log")
os.environ["OFFER_EXPIRY_SWEEP_ENABLED"] = "false"

import pytest  # noqa: E402

from wholexale.core.database import Base, engine, init_db  # noqa: E402
from wholexale.core.offer_manager import OfferManager  # noqa: E402
from wholexale.models.api_schemas import CreateOfferRequest  # noqa: E402
from wholexale.utils.offers import utcnow  # noqa: E402

SELLER = "seller-1"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (multiple components)"
    )
    config.addinivalue_line(
        "markers", "concurrency: Tests that race transitions across threads"
    )


@pytest.fixture
def db():
    """
    Fresh schema for each test.

    WHAT: Drop and recreate all tables
    WHY: Test isolation without deleting the database file
    HOW: drop_all then init_db on the shared engine
    """
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def manager(db):
    """OfferManager bound to the fresh test database."""
    return OfferManager()


@pytest.fixture
def offer_payload():
    """
    Factory for camelCase create-offer bodies.

    Defaults mirror a typical wholesale offer: 10 pieces at 4000 against
    a 5000 list price, valid for three days.
    """
    def make(**overrides):
        payload = {
            "title": "Bulk cotton t-shirts",
            "description": "Looking for 10 pieces at a better price",
            "seller": SELLER,
            "product": {
                "productId": "prod-1",
                "name": "Cotton T-Shirt",
                "category": "apparel",
                "images": ["https://cdn.example.com/tshirt.png"],
            },
            "pricing": {"originalPrice": 5000, "offerPrice": 4000},
            "quantity": {"requested": 10, "unit": "pieces"},
            "validity": {"endDate": (utcnow() + timedelta(days=3)).isoformat()},
        }
        payload.update(overrides)
        return payload

    return make


@pytest.fixture
def create_request(offer_payload):
    """Factory for validated CreateOfferRequest objects."""
    def make(**overrides):
        return CreateOfferRequest.model_validate(offer_payload(**overrides))

    return make
