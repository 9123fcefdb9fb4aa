"""
SSE notification feed for offers.

WHAT: Server-Sent Events stream of a user's offer notifications
WHY: Read-only live feed for clients that cannot hold a WebSocket
HOW: EventSourceResponse over a hub subscriber queue, with periodic heartbeats
"""

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse
from typing import AsyncIterator, Optional
import asyncio
import json
from datetime import datetime

from ....api.deps import get_query_user_id
from ....core.config import settings
from ....services.notification_hub import NotificationHub, notification_hub
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def offer_event_generator(
    user_id: str,
    hub: NotificationHub = notification_hub,
    request: Optional[Request] = None,
    heartbeat_interval: Optional[float] = None,
) -> AsyncIterator[dict]:
    """
    Generate SSE events for one user's offers.

    Args:
        user_id: Subscriber
        hub: Notification hub to subscribe to
        request: Used to stop once the client disconnects
        heartbeat_interval: Seconds of silence before a heartbeat is sent

    Yields:
        SSE event dicts
    """
    interval = heartbeat_interval or settings.SSE_HEARTBEAT_INTERVAL
    queue = hub.subscribe(user_id)
    logger.info(f"SSE offer feed opened for user {user_id}")

    try:
        yield {
            "event": "connected",
            "retry": settings.SSE_RETRY_TIMEOUT * 1000,
            "data": json.dumps({
                "type": "connected",
                "user_id": user_id,
                "timestamp": datetime.now().isoformat()
            })
        }

        while True:
            if request is not None and await request.is_disconnected():
                break
            try:
                message = await asyncio.wait_for(queue.get(), timeout=interval)
            except asyncio.TimeoutError:
                yield {
                    "event": "heartbeat",
                    "data": json.dumps({
                        "type": "heartbeat",
                        "timestamp": datetime.now().isoformat()
                    })
                }
                continue

            event_data = dict(message.data)
            event_data["type"] = message.event
            event_data["timestamp"] = message.timestamp.isoformat()
            yield {
                "event": message.event,
                "data": json.dumps(event_data)
            }
    finally:
        hub.unsubscribe(user_id, queue)
        logger.info(f"SSE offer feed closed for user {user_id}")


@router.get("/offers/events/stream")
async def stream_offer_events(request: Request, user_id: str = Depends(get_query_user_id)):
    """
    Stream offer notifications via SSE.

    Emits the same event names as the WebSocket channel (offer:received,
    offer:response, offer:withdrawn, offer:expired) plus connected/heartbeat.
    """
    return EventSourceResponse(
        offer_event_generator(user_id, request=request),
        media_type="text/event-stream",
        ping=settings.SSE_HEARTBEAT_INTERVAL * 2,
    )
