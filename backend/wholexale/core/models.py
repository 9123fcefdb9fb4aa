"""
ORM models for offer persistence.

WHAT: SQLAlchemy model for negotiable offers and the status/action enums
WHY: One row per offer, with the negotiation log embedded so every status
     change and its log entry commit together
HOW: Declarative model with CHECK constraints, indexes, and a version column
     used for optimistic concurrency
"""

import math
from datetime import timedelta
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, JSON,
    CheckConstraint, Index, Enum as SQLEnum
)
import enum

from .database import Base
from ..utils.offers import generate_offer_id, utcnow


# Enums for status fields
class OfferStatus(str, enum.Enum):
    """Offer status values."""
    PENDING = "pending"
    SENT = "sent"
    VIEWED = "viewed"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


OPEN_STATUSES = frozenset({
    OfferStatus.PENDING,
    OfferStatus.SENT,
    OfferStatus.VIEWED,
    OfferStatus.COUNTERED,
})

TERMINAL_STATUSES = frozenset(set(OfferStatus) - OPEN_STATUSES)

# States in which no counter has happened yet
INITIAL_STATUSES = frozenset({
    OfferStatus.PENDING,
    OfferStatus.SENT,
    OfferStatus.VIEWED,
})


class NegotiationAction(str, enum.Enum):
    """Actions recorded in an offer's negotiation log."""
    SENT = "sent"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    MODIFIED = "modified"


class Currency(str, enum.Enum):
    INR = "INR"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"


class QuantityUnit(str, enum.Enum):
    PIECES = "pieces"
    KG = "kg"
    GRAMS = "grams"
    LITERS = "liters"
    METERS = "meters"
    BOXES = "boxes"
    PACKS = "packs"
    SETS = "sets"


class PaymentTerms(str, enum.Enum):
    ADVANCE_PAYMENT = "advance_payment"
    COD = "cod"
    NET_30 = "net_30"
    NET_60 = "net_60"
    NET_90 = "net_90"
    CUSTOM = "custom"


class DeliveryTerms(str, enum.Enum):
    EX_WORKS = "ex_works"
    FOB = "fob"
    CIF = "cif"
    DOOR_DELIVERY = "door_delivery"
    PICKUP = "pickup"


class OfferPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ShippingMethod(str, enum.Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    SAME_DAY = "same_day"
    PICKUP = "pickup"


class InquiryType(str, enum.Enum):
    RFQ = "rfq"
    QUOTE_REQUEST = "quote_request"
    BULK_ORDER = "bulk_order"
    REGULAR_ORDER = "regular_order"
    SAMPLE_REQUEST = "sample_request"


class Offer(Base):
    """
    Offer table - one negotiable proposal between a buyer and a seller.

    WHAT: Parties, product snapshot, pricing, quantity, validity, terms,
          counter quota, and the append-only negotiation log
    WHY: The offer row is the unit of concurrency; everything a transition
         touches lives in it
    HOW: `version` is SQLAlchemy's version_id_col, so every UPDATE is a
         conditional write on the version that was read
    """
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    offer_id = Column(String(40), unique=True, nullable=False, default=generate_offer_id)

    # Basic information
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)

    # Parties
    buyer_id = Column(String(100), nullable=False)
    seller_id = Column(String(100), nullable=False)

    # Product snapshot taken at creation
    product_id = Column(String(100), nullable=False)
    product_name = Column(String(200), nullable=False)
    product_category = Column(String(100), nullable=True)
    product_images = Column(JSON, nullable=False, default=list)
    product_sku = Column(String(100), nullable=True)
    product_brand = Column(String(100), nullable=True)
    product_specifications = Column(JSON, nullable=False, default=list)

    # Pricing
    original_price = Column(Float, nullable=False)
    offer_price = Column(Float, nullable=False)
    currency = Column(SQLEnum(Currency), nullable=False, default=Currency.INR)
    discount_percentage = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Float, nullable=False, default=0.0)
    minimum_quantity = Column(Integer, nullable=False, default=1)
    maximum_quantity = Column(Integer, nullable=True)

    # Quantity
    quantity_requested = Column(Integer, nullable=False)
    quantity_unit = Column(SQLEnum(QuantityUnit), nullable=False)
    quantity_available = Column(Integer, nullable=False, default=0)

    status = Column(SQLEnum(OfferStatus), nullable=False, default=OfferStatus.PENDING)

    # Seller-side counter quota
    max_vendor_counters = Column(Integer, nullable=False, default=2)
    vendor_counter_count = Column(Integer, nullable=False, default=0)

    # Validity window
    start_date = Column(DateTime, nullable=False, default=utcnow)
    end_date = Column(DateTime, nullable=False)
    timezone = Column(String(50), nullable=False, default="Asia/Kolkata")

    # Terms
    payment_terms = Column(SQLEnum(PaymentTerms), nullable=False, default=PaymentTerms.NET_30)
    delivery_terms = Column(SQLEnum(DeliveryTerms), nullable=False, default=DeliveryTerms.DOOR_DELIVERY)
    custom_terms = Column(JSON, nullable=False, default=list)
    warranty = Column(JSON, nullable=True)
    return_policy = Column(JSON, nullable=True)

    # Shipping, attachments and business context, stored as given at creation
    shipping = Column(JSON, nullable=True)
    attachments = Column(JSON, nullable=False, default=list)
    context = Column(JSON, nullable=False, default=dict)

    priority = Column(SQLEnum(OfferPriority), nullable=False, default=OfferPriority.NORMAL)
    is_urgent = Column(Boolean, nullable=False, default=False)

    # Seller fetches and party responses
    analytics_views = Column(Integer, nullable=False, default=0)
    analytics_responses = Column(Integer, nullable=False, default=0)

    # Negotiation log, append-only list of entry dicts
    negotiations = Column(JSON, nullable=False, default=list)

    # Chat linkage
    conversation_id = Column(String(100), nullable=True)
    last_message_at = Column(DateTime, nullable=True)

    # Soft delete
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Constraints
    __table_args__ = (
        CheckConstraint("buyer_id <> seller_id", name="check_buyer_not_seller"),
        CheckConstraint("original_price >= 0", name="check_original_price_non_negative"),
        CheckConstraint("offer_price >= 0", name="check_offer_price_non_negative"),
        CheckConstraint("quantity_requested >= 1", name="check_quantity_positive"),
        CheckConstraint("quantity_available >= 0", name="check_quantity_available_non_negative"),
        CheckConstraint("minimum_quantity >= 1", name="check_minimum_quantity_positive"),
        CheckConstraint(
            "maximum_quantity IS NULL OR maximum_quantity >= minimum_quantity",
            name="check_quantity_bounds",
        ),
        CheckConstraint("max_vendor_counters >= 0", name="check_max_vendor_counters_non_negative"),
        CheckConstraint("vendor_counter_count >= 0", name="check_vendor_counter_count_non_negative"),
        Index("idx_offer_buyer_created", "buyer_id", "created_at"),
        Index("idx_offer_seller_status", "seller_id", "status"),
        Index("idx_offer_product", "product_id"),
        Index("idx_offer_status_end_date", "status", "end_date"),
    )

    @property
    def remaining_vendor_counters(self) -> int:
        return max(0, (self.max_vendor_counters or 0) - (self.vendor_counter_count or 0))

    @property
    def is_open(self) -> bool:
        return OfferStatus(self.status) in OPEN_STATUSES

    @property
    def is_expired(self) -> bool:
        """True once end_date has passed, whatever the stored status."""
        return utcnow() > self.end_date

    @property
    def time_remaining_seconds(self) -> float:
        return max(0.0, (self.end_date - utcnow()).total_seconds())

    @property
    def days_remaining(self) -> int:
        return math.ceil((self.end_date - utcnow()) / timedelta(days=1))

    @property
    def last_negotiation(self) -> dict | None:
        return self.negotiations[-1] if self.negotiations else None

    def counterpart_of(self, user_id: str) -> str:
        """Return the other party relative to user_id."""
        return self.seller_id if user_id == self.buyer_id else self.buyer_id

    def __repr__(self):
        return f"<Offer(offer_id={self.offer_id}, status={self.status}, price={self.offer_price})>"
