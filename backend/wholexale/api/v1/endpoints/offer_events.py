"""
Offer event API over WebSocket.

WHAT: offer:create / offer:respond / offer:withdraw events on a persistent
      connection, with replies and counterpart notifications as events
WHY: Real-time twin of the REST endpoints; same manager, same policy, same
     error codes
HOW: One receive loop per connection; each frame is validated, dispatched
     to offer_manager in the threadpool, and answered with either a result
     event or an `error` event. Errors never close the connection.
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, status
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from ....core.offer_manager import offer_manager
from ....models.api_schemas import (
    EventFrame,
    CreateOfferRequest,
    RespondEventData,
    WithdrawEventData,
    OfferResponse,
)
from ....services.notification_hub import (
    notification_hub,
    OFFER_CREATED,
    OFFER_RESPONDED,
    OFFER_WITHDRAWN,
)
from ....services.offer_policy import OfferAction
from ....utils.exceptions import BusinessException, ValidationException
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

# Close code used when the connection carries no identity
WS_AUTH_REQUIRED = 4401


async def handle_create(websocket: WebSocket, user_id: str, data: Dict[str, Any]):
    request = CreateOfferRequest.model_validate(data)
    offer = await run_in_threadpool(offer_manager.create_offer, user_id, request)
    await notification_hub.notify_created(offer)
    await websocket.send_json({
        "event": OFFER_CREATED,
        "data": {
            "offer": OfferResponse.from_record(offer).to_event_payload(),
            "conversationId": offer.conversation_id,
        },
    })


async def handle_respond(websocket: WebSocket, user_id: str, data: Dict[str, Any]):
    request = RespondEventData.model_validate(data)
    offer = await run_in_threadpool(
        offer_manager.respond, request.offer_id, user_id, request.action,
        request.changes, request.message or "",
    )
    action = OfferAction.parse(request.action).value
    await notification_hub.notify_response(offer, action, user_id)
    await websocket.send_json({
        "event": OFFER_RESPONDED,
        "data": {"offer": OfferResponse.from_record(offer).to_event_payload(), "action": action},
    })


async def handle_withdraw(websocket: WebSocket, user_id: str, data: Dict[str, Any]):
    request = WithdrawEventData.model_validate(data)
    offer = await run_in_threadpool(offer_manager.withdraw, request.offer_id, user_id, request.reason or "")
    await notification_hub.notify_withdrawn(offer)
    await websocket.send_json({
        "event": OFFER_WITHDRAWN,
        "data": {"offer": OfferResponse.from_record(offer).to_event_payload()},
    })


async def handle_ping(websocket: WebSocket, user_id: str, data: Dict[str, Any]):
    await websocket.send_json({"event": "pong", "data": data})


EVENT_HANDLERS: Dict[str, Callable[[WebSocket, str, Dict[str, Any]], Awaitable[None]]] = {
    "offer:create": handle_create,
    "offer:respond": handle_respond,
    "offer:withdraw": handle_withdraw,
    "ping": handle_ping,
}


def _validation_error(exc: ValidationError) -> ValidationException:
    field_errors = [
        {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg", "")}
        for error in exc.errors()
    ]
    return ValidationException("Event validation failed", field_errors)


async def _send_error(websocket: WebSocket, exc: BusinessException, event: Optional[str]):
    payload = exc.to_dict()
    payload["event"] = event
    await websocket.send_json({"event": "error", "data": payload})


async def dispatch_frame(websocket: WebSocket, user_id: str, raw: Any):
    """Validate one incoming frame and run its handler, answering errors in-band."""
    event_name = raw.get("event") if isinstance(raw, dict) else None
    try:
        frame = EventFrame.model_validate(raw)
        handler = EVENT_HANDLERS.get(frame.event)
        if handler is None:
            raise ValidationException(f"Unknown event: {frame.event}")
        await handler(websocket, user_id, frame.data)
    except ValidationError as e:
        logger.warning(f"Invalid {event_name} frame from user {user_id}: {e.errors()}")
        await _send_error(websocket, _validation_error(e), event_name)
    except BusinessException as e:
        logger.warning(f"{event_name} by user {user_id} refused: {e.code} - {e.message}")
        await _send_error(websocket, e, event_name)
    except WebSocketDisconnect:
        raise
    except Exception as e:
        logger.error(f"Unexpected error handling {event_name} for user {user_id}: {e}", exc_info=True)
        await _send_error(websocket, BusinessException("Internal server error", "INTERNAL_ERROR"), event_name)


@router.websocket("/ws/offers")
async def offer_events(websocket: WebSocket, user_id: Optional[str] = Query(default=None)):
    """
    Offer event channel for one authenticated user.

    Frames in and out are JSON objects of the form {"event": ..., "data": {...}}.
    """
    if not user_id or not user_id.strip():
        await websocket.close(code=WS_AUTH_REQUIRED)
        return
    user_id = user_id.strip()

    connection_id = await notification_hub.connect(websocket, user_id)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                raw = json.loads(text)
            except ValueError:
                await _send_error(websocket, ValidationException("Frame is not valid JSON"), None)
                continue
            await dispatch_frame(websocket, user_id, raw)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error for user {user_id}: {e}", exc_info=True)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        notification_hub.disconnect(user_id, connection_id)
