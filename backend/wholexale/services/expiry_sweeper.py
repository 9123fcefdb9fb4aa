"""
Offer expiry sweeper.

WHAT: Periodically expire open offers whose end date has passed
WHY: isExpired is only a derived flag until expire() is actually applied
HOW: asyncio task started from the app lifespan; the blocking DB sweep runs
     in the threadpool, then both parties of each expired offer are notified
"""

import asyncio
from typing import List, Optional

from starlette.concurrency import run_in_threadpool

from ..core.config import settings
from ..core.models import Offer
from ..core.offer_manager import OfferManager, offer_manager
from .notification_hub import NotificationHub, notification_hub
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ExpirySweeper:
    """Background loop around OfferManager.expire_overdue."""

    def __init__(self, manager: OfferManager = offer_manager, hub: NotificationHub = notification_hub,
                 interval_seconds: Optional[int] = None):
        self.manager = manager
        self.hub = hub
        self.interval_seconds = interval_seconds or settings.OFFER_EXPIRY_SWEEP_SECONDS
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> List[Offer]:
        """Expire overdue offers and notify their parties."""
        expired = await run_in_threadpool(self.manager.expire_overdue)
        for offer in expired:
            await self.hub.notify_expired(offer)
        if expired:
            logger.info(f"Expired {len(expired)} overdue offer(s)")
        return expired

    async def _loop(self):
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Expiry sweep failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info(f"Started offer expiry sweeper (interval: {self.interval_seconds}s)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped offer expiry sweeper")


# Global sweeper instance
expiry_sweeper = ExpirySweeper()
