"""
Pydantic API schemas for offer endpoints.

WHAT: Request and response models for the REST and WebSocket adapters
WHY: Type-safe validation and serialization matching the frontend payloads
HOW: Pydantic v2 models with camelCase aliases on the wire
"""

from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..core.models import (
    Offer as OfferRecord,
    OfferStatus, Currency, QuantityUnit, PaymentTerms, DeliveryTerms, OfferPriority,
    ShippingMethod, InquiryType,
)


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========== Offer Creation ==========

class ProductSpecification(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    value: str = Field(default="", max_length=500)


class ProductSnapshot(CamelModel):
    """Product details copied onto the offer at creation."""
    product_id: str = Field(..., min_length=1, max_length=100, description="Product ID")
    name: str = Field(..., min_length=1, max_length=200, description="Product name")
    category: Optional[str] = Field(default=None, max_length=100)
    images: List[str] = Field(default_factory=list)
    sku: Optional[str] = Field(default=None, max_length=100)
    brand: Optional[str] = Field(default=None, max_length=100)
    specifications: List[ProductSpecification] = Field(default_factory=list)


class PricingInput(CamelModel):
    """Offer pricing."""
    original_price: float = Field(..., ge=0, description="List price of the product")
    offer_price: float = Field(..., ge=0, description="Price the buyer proposes")
    currency: Currency = Currency.INR
    minimum_quantity: int = Field(default=1, ge=1, description="Smallest order this price applies to")
    maximum_quantity: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode='after')
    def validate_quantity_bounds(self):
        """Ensure maximumQuantity is not below minimumQuantity."""
        if self.maximum_quantity is not None and self.maximum_quantity < self.minimum_quantity:
            raise ValueError("maximumQuantity must be at least minimumQuantity")
        return self


class QuantityInput(CamelModel):
    """Requested quantity."""
    requested: int = Field(..., ge=1, description="Quantity requested")
    unit: QuantityUnit
    available: int = Field(default=0, ge=0, description="Seller stock at the time of the offer")


class ValidityInput(CamelModel):
    """Validity window. end_date defaults to the configured validity period."""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    timezone: str = Field(default="Asia/Kolkata", max_length=50)

    @field_validator("start_date", "end_date")
    @classmethod
    def to_naive_utc(cls, v):
        """Store timestamps as naive UTC."""
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @model_validator(mode='after')
    def validate_window(self):
        """Ensure end_date is after start_date when both are given."""
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("endDate must be after startDate")
        return self


class Warranty(CamelModel):
    duration: Optional[str] = Field(default=None, max_length=100)
    coverage: Optional[str] = Field(default=None, max_length=500)


class ReturnPolicy(CamelModel):
    days: Optional[int] = Field(default=None, ge=0)
    conditions: Optional[str] = Field(default=None, max_length=1000)


class TermsInput(CamelModel):
    """Commercial terms."""
    payment_terms: PaymentTerms = PaymentTerms.NET_30
    delivery_terms: DeliveryTerms = DeliveryTerms.DOOR_DELIVERY
    custom_terms: List[str] = Field(default_factory=list)
    warranty: Optional[Warranty] = None
    return_policy: Optional[ReturnPolicy] = None


class Address(CamelModel):
    address: Optional[str] = Field(default=None, max_length=300)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    pincode: Optional[str] = Field(default=None, max_length=20)
    country: str = Field(default="India", max_length=100)


class ShippingInput(CamelModel):
    """Shipping details. `from` and `to` are Python keywords, hence the field names."""
    origin: Optional[Address] = Field(default=None, alias="from")
    destination: Optional[Address] = Field(default=None, alias="to")
    method: Optional[ShippingMethod] = None
    estimated_days: Optional[int] = Field(default=None, ge=0)
    cost: Optional[float] = Field(default=None, ge=0)


class Attachment(CamelModel):
    """A file attached to the offer. uploadedBy/uploadedAt are filled in at creation."""
    filename: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=2000)
    mime_type: Optional[str] = Field(default=None, max_length=100)
    size: Optional[int] = Field(default=None, ge=0)
    uploaded_by: Optional[str] = Field(default=None, max_length=100)
    uploaded_at: Optional[datetime] = None


class OfferContext(CamelModel):
    """Business context the offer was raised in."""
    inquiry_type: InquiryType = InquiryType.RFQ
    project_id: Optional[str] = Field(default=None, max_length=100)
    reference_id: Optional[str] = Field(default=None, max_length=100)
    tags: List[str] = Field(default_factory=list)


class CreateOfferRequest(CamelModel):
    """Request to create an offer. The buyer is the caller."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    seller: str = Field(..., min_length=1, max_length=100, description="Seller user ID")
    product: ProductSnapshot
    pricing: PricingInput
    quantity: QuantityInput
    validity: ValidityInput = Field(default_factory=ValidityInput)
    terms: TermsInput = Field(default_factory=TermsInput)
    shipping: Optional[ShippingInput] = None
    attachments: List[Attachment] = Field(default_factory=list)
    context: OfferContext = Field(default_factory=OfferContext)
    priority: OfferPriority = OfferPriority.NORMAL
    is_urgent: bool = False
    max_vendor_counters: Optional[int] = Field(default=None, ge=0, le=10)
    conversation_id: Optional[str] = Field(default=None, max_length=100)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Offer title is required")
        return v


# ========== Offer Responses (requests) ==========

class CounterChanges(CamelModel):
    """Fields a counter-offer may change. Omitted fields keep their value."""
    price: Optional[float] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=1)
    description: Optional[str] = Field(default=None, max_length=2000)
    terms: Optional[List[str]] = None


class RespondRequest(CamelModel):
    """Request to accept, reject, or counter an offer."""
    action: str = Field(..., description="accept, reject, or counter")
    message: Optional[str] = Field(default="", max_length=1000)
    changes: Optional[CounterChanges] = None


class WithdrawRequest(CamelModel):
    """Request to withdraw an offer."""
    reason: Optional[str] = Field(default="", max_length=1000)


class RespondEventData(RespondRequest):
    """Payload of the offer:respond event."""
    offer_id: str = Field(..., min_length=1, max_length=40)


class WithdrawEventData(WithdrawRequest):
    """Payload of the offer:withdraw event."""
    offer_id: str = Field(..., min_length=1, max_length=40)


class EventFrame(BaseModel):
    """A WebSocket frame: {"event": ..., "data": {...}}."""
    event: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


# ========== Offer Representation ==========

class NegotiationEntryResponse(CamelModel):
    """One negotiation log entry."""
    from_user: str
    to_user: str
    action: str
    changes: Optional[Dict[str, Any]] = None
    message: str = ""
    timestamp: str


class DiscountResponse(CamelModel):
    percentage: int
    amount: float


class PricingResponse(CamelModel):
    original_price: float
    offer_price: float
    currency: Currency
    discount: DiscountResponse
    minimum_quantity: int
    maximum_quantity: Optional[int] = None


class QuantityResponse(CamelModel):
    requested: int
    unit: QuantityUnit
    available: int


class OfferAnalytics(CamelModel):
    views: int
    responses: int


class ValidityResponse(CamelModel):
    start_date: datetime
    end_date: datetime
    timezone: str


class OfferResponse(CamelModel):
    """Full offer as returned by every entry point."""
    offer_id: str
    title: str
    description: str
    buyer: str
    seller: str
    product: ProductSnapshot
    pricing: PricingResponse
    quantity: QuantityResponse
    status: OfferStatus
    max_vendor_counters: int
    vendor_counter_count: int
    remaining_vendor_counters: int
    validity: ValidityResponse
    is_expired: bool
    days_remaining: int
    terms: TermsInput
    shipping: Optional[ShippingInput] = None
    attachments: List[Attachment]
    context: OfferContext
    priority: OfferPriority
    is_urgent: bool
    analytics: OfferAnalytics
    negotiations: List[NegotiationEntryResponse]
    conversation_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_record(cls, offer: OfferRecord) -> "OfferResponse":
        """Build the nested representation from a flat ORM row."""
        return cls(
            offer_id=offer.offer_id,
            title=offer.title,
            description=offer.description,
            buyer=offer.buyer_id,
            seller=offer.seller_id,
            product=ProductSnapshot(
                product_id=offer.product_id,
                name=offer.product_name,
                category=offer.product_category,
                images=list(offer.product_images or []),
                sku=offer.product_sku,
                brand=offer.product_brand,
                specifications=list(offer.product_specifications or []),
            ),
            pricing=PricingResponse(
                original_price=offer.original_price,
                offer_price=offer.offer_price,
                currency=offer.currency,
                discount=DiscountResponse(
                    percentage=offer.discount_percentage,
                    amount=offer.discount_amount,
                ),
                minimum_quantity=offer.minimum_quantity,
                maximum_quantity=offer.maximum_quantity,
            ),
            quantity=QuantityResponse(
                requested=offer.quantity_requested,
                unit=offer.quantity_unit,
                available=offer.quantity_available,
            ),
            status=offer.status,
            max_vendor_counters=offer.max_vendor_counters,
            vendor_counter_count=offer.vendor_counter_count,
            remaining_vendor_counters=offer.remaining_vendor_counters,
            validity=ValidityResponse(
                start_date=offer.start_date,
                end_date=offer.end_date,
                timezone=offer.timezone,
            ),
            is_expired=offer.is_expired,
            days_remaining=offer.days_remaining,
            terms=TermsInput(
                payment_terms=offer.payment_terms,
                delivery_terms=offer.delivery_terms,
                custom_terms=list(offer.custom_terms or []),
                warranty=offer.warranty,
                return_policy=offer.return_policy,
            ),
            shipping=offer.shipping,
            attachments=list(offer.attachments or []),
            context=offer.context or {},
            priority=offer.priority,
            is_urgent=bool(offer.is_urgent),
            analytics=OfferAnalytics(
                views=offer.analytics_views or 0,
                responses=offer.analytics_responses or 0,
            ),
            negotiations=[NegotiationEntryResponse(**entry) for entry in offer.negotiations or []],
            conversation_id=offer.conversation_id,
            created_at=offer.created_at,
            updated_at=offer.updated_at,
            version=offer.version,
        )

    def to_event_payload(self) -> Dict[str, Any]:
        """JSON-ready dict for WebSocket and SSE frames."""
        return self.model_dump(mode="json", by_alias=True)


class OfferEnvelope(CamelModel):
    """Offer plus a human-readable outcome message."""
    message: str
    offer: OfferResponse


class PaginationInfo(CamelModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool


class OfferListResponse(CamelModel):
    offers: List[OfferResponse]
    pagination: PaginationInfo


# ========== Analytics ==========

class StatusStat(CamelModel):
    """Offer count and summed offer price for one status."""
    status: OfferStatus
    count: int
    total_value: float


class DirectionSummary(CamelModel):
    total: int
    responded: int
    response_rate: float
    stats: List[StatusStat]


class AnalyticsSummaryResponse(CamelModel):
    """Offers the caller sent (as buyer) and received (as seller)."""
    sent: DirectionSummary
    received: DirectionSummary


# ========== Error Response ==========

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    message: str
    details: Optional[Any] = None
    timestamp: str

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "VENDOR_COUNTER_LIMIT_REACHED",
            "message": "Vendor counter limit reached. Accept or reject the latest buyer offer.",
            "details": {"offer_id": "OFF-1700000000000-ABCDEFGHI", "max_vendor_counters": 2},
            "timestamp": "2024-01-01T00:00:00"
        }
    })
