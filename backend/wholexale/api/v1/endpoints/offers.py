"""
Offer REST endpoints.

WHAT: Create, list, fetch, respond to, and withdraw offers
WHY: Synchronous entry point to the negotiation engine
HOW: FastAPI router; blocking DB work runs in the threadpool via offer_manager,
     committed transitions are pushed to the counterpart through the hub
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool
from typing import Literal, Optional

from ....api.deps import get_current_user_id
from ....core.models import OfferStatus
from ....core.offer_manager import offer_manager
from ....models.api_schemas import (
    CreateOfferRequest,
    RespondRequest,
    WithdrawRequest,
    OfferResponse,
    OfferEnvelope,
    OfferListResponse,
    PaginationInfo,
    AnalyticsSummaryResponse,
)
from ....services.notification_hub import notification_hub
from ....services.offer_policy import OfferAction
from ....utils.exceptions import BusinessException
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

_ACTION_PAST_TENSE = {
    OfferAction.ACCEPT: "accepted",
    OfferAction.REJECT: "rejected",
    OfferAction.COUNTER: "countered",
}


@router.get("/offers", response_model=OfferListResponse)
async def list_offers(
    user_id: str = Depends(get_current_user_id),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    offer_status: Optional[OfferStatus] = Query(default=None, alias="status"),
    direction: Optional[Literal["sent", "received"]] = Query(default=None, alias="type"),
):
    """
    List the caller's offers.

    `type=sent` restricts to offers the caller made as buyer,
    `type=received` to offers addressed to the caller as seller.
    """
    offers, pagination = await run_in_threadpool(
        offer_manager.list_offers, user_id, offer_status, direction, page, limit
    )
    return OfferListResponse(
        offers=[OfferResponse.from_record(offer) for offer in offers],
        pagination=PaginationInfo(**pagination),
    )


@router.get("/offers/analytics/summary", response_model=AnalyticsSummaryResponse)
async def offer_analytics_summary(user_id: str = Depends(get_current_user_id)):
    """Sent/received totals, response rates, and per-status breakdown."""
    summary = await run_in_threadpool(offer_manager.analytics_summary, user_id)
    return AnalyticsSummaryResponse(**summary)


@router.get("/offers/{offer_id}", response_model=OfferResponse)
async def get_offer(offer_id: str, user_id: str = Depends(get_current_user_id)):
    """Fetch one offer. 404 unless the caller is its buyer or seller."""
    offer = await run_in_threadpool(offer_manager.get_offer, offer_id, user_id)
    return OfferResponse.from_record(offer)


@router.post("/offers", response_model=OfferEnvelope, status_code=status.HTTP_201_CREATED)
async def create_offer(request: CreateOfferRequest, user_id: str = Depends(get_current_user_id)):
    """
    Create an offer as the calling buyer.

    WHAT: Persist a pending offer with its opening `sent` log entry
    WHY: Entry point of every negotiation
    HOW: Engine builds the row, manager commits, seller gets offer:received
    """
    try:
        offer = await run_in_threadpool(offer_manager.create_offer, user_id, request)
    except BusinessException:
        raise
    except Exception as e:
        logger.error(f"Error creating offer for user {user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": {"code": "INTERNAL_ERROR", "message": "Failed to create offer"}}
        )

    await notification_hub.notify_created(offer)
    return OfferEnvelope(message="Offer created successfully", offer=OfferResponse.from_record(offer))


@router.put("/offers/{offer_id}/respond", response_model=OfferEnvelope)
async def respond_to_offer(offer_id: str, request: RespondRequest,
                           user_id: str = Depends(get_current_user_id)):
    """
    Accept, reject, or counter an offer.

    WHAT: Apply one negotiation step on behalf of either party
    WHY: Synchronous twin of the offer:respond event
    HOW: Parse the action, run the transition with version-checked retries,
         notify the counterpart
    """
    try:
        offer = await run_in_threadpool(
            offer_manager.respond, offer_id, user_id, request.action, request.changes, request.message or ""
        )
    except BusinessException:
        raise
    except Exception as e:
        logger.error(f"Error responding to offer {offer_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": {"code": "INTERNAL_ERROR", "message": "Failed to update offer"}}
        )

    action = OfferAction.parse(request.action)
    await notification_hub.notify_response(offer, action.value, user_id)
    return OfferEnvelope(
        message=f"Offer {_ACTION_PAST_TENSE[action]} successfully",
        offer=OfferResponse.from_record(offer),
    )


@router.put("/offers/{offer_id}/withdraw", response_model=OfferEnvelope)
async def withdraw_offer(offer_id: str, request: WithdrawRequest = WithdrawRequest(),
                         user_id: str = Depends(get_current_user_id)):
    """Withdraw an open offer. Buyer only."""
    offer = await run_in_threadpool(offer_manager.withdraw, offer_id, user_id, request.reason or "")
    await notification_hub.notify_withdrawn(offer)
    return OfferEnvelope(message="Offer withdrawn successfully", offer=OfferResponse.from_record(offer))
