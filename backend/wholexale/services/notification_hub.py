"""
Offer notification hub.

WHAT: In-process fan-out of offer events to each user's live connections
WHY: Transitions made over REST, WebSocket, or by the expiry sweeper must
     reach the counterpart wherever they are connected
HOW: Per-user registry of WebSockets (event API) and asyncio queues (SSE
     feed); every publish goes to all of a user's connections
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from ..core.models import Offer
from ..models.api_schemas import OfferResponse
from ..utils.offers import utcnow
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Event names shared by the event API and the notification feed
OFFER_CREATED = "offer:created"
OFFER_RECEIVED = "offer:received"
OFFER_RESPONDED = "offer:responded"
OFFER_RESPONSE = "offer:response"
OFFER_WITHDRAWN = "offer:withdrawn"
OFFER_EXPIRED = "offer:expired"

SUBSCRIBER_QUEUE_SIZE = 100


@dataclass
class OfferEvent:
    """One event destined for a user."""
    event: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=utcnow)

    def to_frame(self) -> Dict[str, Any]:
        return {"event": self.event, "data": self.data, "timestamp": self.timestamp.isoformat()}


class NotificationHub:
    """
    Registry of live connections keyed by user id.

    Must be used from the event loop thread.
    """

    def __init__(self):
        self.sockets: Dict[str, Dict[str, WebSocket]] = {}
        self.queues: Dict[str, Set[asyncio.Queue]] = {}
        self.stats = {"events_published": 0, "deliveries": 0, "failed_deliveries": 0}

    # ---------- registration ----------

    async def connect(self, websocket: WebSocket, user_id: str) -> str:
        """Accept a WebSocket and register it for user_id."""
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self.sockets.setdefault(user_id, {})[connection_id] = websocket
        logger.info(f"WebSocket connected: {connection_id}, user={user_id}, "
                    f"user connections={len(self.sockets[user_id])}")
        return connection_id

    def disconnect(self, user_id: str, connection_id: str):
        connections = self.sockets.get(user_id)
        if not connections:
            return
        connections.pop(connection_id, None)
        if not connections:
            del self.sockets[user_id]
        logger.info(f"WebSocket disconnected: {connection_id}, user={user_id}")

    def subscribe(self, user_id: str) -> asyncio.Queue:
        """Register an SSE subscriber queue for user_id."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self.queues.setdefault(user_id, set()).add(queue)
        return queue

    def unsubscribe(self, user_id: str, queue: asyncio.Queue):
        subscribers = self.queues.get(user_id)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self.queues[user_id]

    def is_online(self, user_id: str) -> bool:
        return bool(self.sockets.get(user_id) or self.queues.get(user_id))

    # ---------- delivery ----------

    async def send_to_user(self, user_id: str, event: str, data: Dict[str, Any]) -> int:
        """
        Deliver an event to every connection of user_id.

        A socket that fails to send is dropped; a full subscriber queue
        loses its oldest event.

        Returns:
            Number of connections the event reached
        """
        message = OfferEvent(event=event, data=data)
        frame = message.to_frame()
        self.stats["events_published"] += 1
        delivered = 0

        for connection_id, websocket in list(self.sockets.get(user_id, {}).items()):
            try:
                await websocket.send_json(frame)
                delivered += 1
            except Exception as e:
                self.stats["failed_deliveries"] += 1
                logger.warning(f"Dropping connection {connection_id} of user {user_id}: {e}")
                self.disconnect(user_id, connection_id)

        for queue in list(self.queues.get(user_id, ())):
            if queue.full():
                queue.get_nowait()
                self.stats["failed_deliveries"] += 1
            queue.put_nowait(message)
            delivered += 1

        self.stats["deliveries"] += delivered
        logger.debug(f"Event {event} delivered to {delivered} connection(s) of user {user_id}")
        return delivered

    # ---------- offer notifications ----------

    async def notify_created(self, offer: Offer, conversation_id: Optional[str] = None):
        """Tell the seller a new offer arrived."""
        await self.send_to_user(offer.seller_id, OFFER_RECEIVED, {
            "offer": OfferResponse.from_record(offer).to_event_payload(),
            "conversationId": conversation_id or offer.conversation_id,
        })

    async def notify_response(self, offer: Offer, action: str, responder_id: str):
        """Tell the counterpart of responder_id about an accept/reject/counter."""
        await self.send_to_user(offer.counterpart_of(responder_id), OFFER_RESPONSE, {
            "offer": OfferResponse.from_record(offer).to_event_payload(),
            "action": action,
            "responder": {
                "id": responder_id,
                "role": "buyer" if responder_id == offer.buyer_id else "seller",
            },
        })

    async def notify_withdrawn(self, offer: Offer):
        await self.send_to_user(offer.seller_id, OFFER_WITHDRAWN, {
            "offer": OfferResponse.from_record(offer).to_event_payload(),
        })

    async def notify_expired(self, offer: Offer):
        payload = {"offer": OfferResponse.from_record(offer).to_event_payload()}
        for user_id in (offer.buyer_id, offer.seller_id):
            await self.send_to_user(user_id, OFFER_EXPIRED, payload)


# Global hub instance
notification_hub = NotificationHub()
