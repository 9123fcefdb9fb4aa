"""
API v1 router aggregation.

WHAT: Combine all v1 endpoint routers
WHY: Single place to register all API routes
HOW: Include routers from endpoints with prefixes
"""

from fastapi import APIRouter

from .endpoints import status, offers, offer_events, streaming

# Create main v1 router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(
    status.router,
    prefix="/api/v1",
    tags=["status"]
)

# Streaming first so /offers/events/stream is matched before /offers/{offer_id}
api_router.include_router(
    streaming.router,
    prefix="/api/v1",
    tags=["streaming"]
)

api_router.include_router(
    offers.router,
    prefix="/api/v1",
    tags=["offers"]
)

api_router.include_router(
    offer_events.router,
    prefix="/api/v1",
    tags=["offer-events"]
)
