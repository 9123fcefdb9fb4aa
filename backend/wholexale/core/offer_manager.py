"""
Offer manager.

WHAT: Persistence orchestration for offers: create, read, list, transition
WHY: Both entry points need the same load-check-write sequence, and it must
     be linearizable per offer
HOW: Each transition loads the row, runs an offer_engine function, and
     commits. The row's version column makes the UPDATE conditional; on
     StaleDataError the unit of work is rolled back, the row reloaded and the
     guards re-run, up to OFFER_MAX_RETRIES attempts.
"""

import math
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from .config import settings
from .database import get_db
from .models import Offer, OfferStatus, OPEN_STATUSES
from ..models.api_schemas import CreateOfferRequest
from ..services import offer_engine, offer_policy
from ..services.offer_policy import OfferAction
from ..utils.exceptions import OfferNotFoundException, OfferConflictException
from ..utils.offers import utcnow
from ..utils.logger import get_logger, log_transition

logger = get_logger(__name__)

# Statuses counted as "responded" in analytics
RESPONDED_STATUSES = (OfferStatus.ACCEPTED, OfferStatus.REJECTED, OfferStatus.COUNTERED)


class OfferManager:
    """
    Manage offer lifecycle against the database.

    All methods are synchronous; async callers go through a threadpool.
    Returned Offer instances are detached but fully loaded.
    """

    def __init__(self, max_retries: Optional[int] = None):
        if max_retries is None:
            max_retries = settings.OFFER_MAX_RETRIES
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self.max_retries = max_retries

    # ---------- reads ----------

    def _load(self, db: DBSession, offer_id: str) -> Offer:
        offer = (
            db.query(Offer)
            .filter(Offer.offer_id == offer_id, Offer.is_deleted.is_(False))
            .first()
        )
        if not offer:
            raise OfferNotFoundException(offer_id)
        return offer

    def get_offer(self, offer_id: str, user_id: str) -> Offer:
        """
        Fetch an offer visible to user_id.

        Unknown, soft-deleted, and other people's offers all look the same:
        OfferNotFoundException. A fetch by the seller counts as a view.
        """
        with get_db() as db:
            offer = self._load(db, offer_id)
            if user_id not in (offer.buyer_id, offer.seller_id):
                raise OfferNotFoundException(offer_id)
            if user_id == offer.seller_id:
                self._record_view(db, offer)
            return offer

    @staticmethod
    def _record_view(db: DBSession, offer: Offer):
        # Direct increment; version and updated_at stay unchanged
        db.query(Offer).filter(Offer.id == offer.id).update(
            {
                Offer.analytics_views: Offer.analytics_views + 1,
                Offer.updated_at: Offer.updated_at,
            },
            synchronize_session=False,
        )
        set_committed_value(offer, "analytics_views", (offer.analytics_views or 0) + 1)

    def list_offers(
        self,
        user_id: str,
        status: Optional[OfferStatus] = None,
        direction: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Tuple[List[Offer], Dict]:
        """
        List the caller's offers, newest first.

        Args:
            user_id: Caller
            status: Optional status filter
            direction: "sent" (caller is buyer), "received" (caller is seller) or None
            page: 1-based page
            limit: Page size, capped at OFFER_LIST_MAX_LIMIT

        Returns:
            (offers, pagination dict)
        """
        limit = min(limit or settings.OFFER_LIST_DEFAULT_LIMIT, settings.OFFER_LIST_MAX_LIMIT)
        with get_db() as db:
            query = db.query(Offer).filter(Offer.is_deleted.is_(False))
            if direction == "sent":
                query = query.filter(Offer.buyer_id == user_id)
            elif direction == "received":
                query = query.filter(Offer.seller_id == user_id)
            else:
                query = query.filter(or_(Offer.buyer_id == user_id, Offer.seller_id == user_id))
            if status is not None:
                query = query.filter(Offer.status == status)

            total = query.count()
            offers = (
                query.order_by(Offer.created_at.desc(), Offer.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )

        pagination = {
            "current_page": page,
            "total_pages": math.ceil(total / limit) if total else 0,
            "total_count": total,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        }
        return offers, pagination

    def analytics_summary(self, user_id: str) -> Dict:
        """Per-direction totals, response rates, and per-status breakdown."""
        with get_db() as db:
            return {
                "sent": self._direction_summary(db, Offer.buyer_id == user_id),
                "received": self._direction_summary(db, Offer.seller_id == user_id),
            }

    def _direction_summary(self, db: DBSession, party_filter) -> Dict:
        base = db.query(Offer).filter(party_filter, Offer.is_deleted.is_(False))
        total = base.count()
        responded = base.filter(Offer.status.in_(RESPONDED_STATUSES)).count()

        rows = (
            db.query(Offer.status, func.count(Offer.id), func.coalesce(func.sum(Offer.offer_price), 0.0))
            .filter(party_filter, Offer.is_deleted.is_(False))
            .group_by(Offer.status)
            .all()
        )
        return {
            "total": total,
            "responded": responded,
            "response_rate": round(responded / total * 100, 2) if total else 0.0,
            "stats": [
                {"status": status, "count": count, "total_value": float(total_value)}
                for status, count, total_value in rows
            ],
        }

    # ---------- writes ----------

    def create_offer(self, buyer_id: str, request: CreateOfferRequest) -> Offer:
        """Create an offer owned by buyer_id."""
        offer = offer_engine.create_offer(buyer_id, request)
        with get_db() as db:
            db.add(offer)
            db.flush()
        logger.info(f"Offer created: {offer.offer_id} by user {buyer_id} for seller {offer.seller_id}")
        return offer

    def _transition(self, offer_id: str, label: str, actor_id: Optional[str],
                    apply: Callable[[Offer], Offer]) -> Offer:
        """
        Run `apply` against a freshly loaded offer and commit it atomically.

        Guard failures propagate immediately (nothing was written). A lost
        version race reloads and re-runs the guards against the winner's
        state; after max_retries lost races OfferConflictException is raised.
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                with get_db() as db:
                    offer = self._load(db, offer_id)
                    apply(offer)
                    db.flush()
                log_transition(logger, offer, label, actor_id)
                return offer
            except StaleDataError:
                logger.warning(
                    f"Version conflict on offer {offer_id} ({label} by {actor_id}), "
                    f"attempt {attempt}/{self.max_retries}"
                )
        raise OfferConflictException(offer_id, self.max_retries)

    def respond(self, offer_id: str, actor_id: str, action, changes=None, message: str = "") -> Offer:
        """Accept, reject, or counter on behalf of actor_id."""
        return self._transition(
            offer_id, str(getattr(action, "value", action)), actor_id,
            lambda offer: offer_engine.respond(offer, actor_id, action, changes, message),
        )

    def accept(self, offer_id: str, actor_id: str, message: str = "") -> Offer:
        return self.respond(offer_id, actor_id, OfferAction.ACCEPT, message=message)

    def reject(self, offer_id: str, actor_id: str, message: str = "") -> Offer:
        return self.respond(offer_id, actor_id, OfferAction.REJECT, message=message)

    def counter(self, offer_id: str, actor_id: str, changes=None, message: str = "") -> Offer:
        return self.respond(offer_id, actor_id, OfferAction.COUNTER, changes=changes, message=message)

    def withdraw(self, offer_id: str, actor_id: str, reason: str = "") -> Offer:
        return self._transition(
            offer_id, "withdraw", actor_id,
            lambda offer: offer_engine.withdraw(offer, actor_id, reason or ""),
        )

    def expire(self, offer_id: str) -> Offer:
        """Expire one open offer now, whatever its end_date."""
        def close(offer: Offer) -> Offer:
            offer_policy.ensure_open(offer)
            return offer_engine.expire(offer)

        return self._transition(offer_id, "expire", None, close)

    def expire_overdue(self, now: Optional[datetime] = None) -> List[Offer]:
        """
        Expire every open, non-deleted offer whose end_date has passed.

        Each offer is expired in its own transaction; one that lost a race
        to a party action (and is now closed, or conflicted) or that was
        deleted since the scan is skipped.
        """
        now = now or utcnow()
        with get_db() as db:
            overdue_ids = [
                row.offer_id for row in
                db.query(Offer.offer_id)
                .filter(
                    Offer.status.in_(OPEN_STATUSES),
                    Offer.end_date < now,
                    Offer.is_deleted.is_(False),
                )
                .all()
            ]

        expired = []
        for offer_id in overdue_ids:
            try:
                expired.append(self._transition(
                    offer_id, "expire", None, lambda offer: self._expire_if_open(offer, now)
                ))
            except (OfferConflictException, OfferNotFoundException) as e:
                logger.warning(f"Skipping expiry of {offer_id}: {e.message}")
        return [offer for offer in expired if offer.status == OfferStatus.EXPIRED]

    @staticmethod
    def _expire_if_open(offer: Offer, now: datetime) -> Offer:
        # A party may have closed the offer since the overdue scan
        if offer.is_open and offer.end_date < now:
            offer_engine.expire(offer)
        return offer

    def soft_delete(self, offer_id: str, deleted_by: str) -> Offer:
        """Hide an offer from participant queries without removing the row."""
        def mark_deleted(offer: Offer) -> Offer:
            offer.is_deleted = True
            offer.deleted_at = utcnow()
            offer.deleted_by = deleted_by
            return offer

        return self._transition(offer_id, "delete", deleted_by, mark_deleted)


# Global manager instance
offer_manager = OfferManager()
