"""
Status and health check endpoints.

WHAT: Health monitoring for the database and live connections
WHY: Quick diagnostics for frontend and ops
HOW: FastAPI endpoint calling the DB ping and reading hub counters
"""

from fastapi import APIRouter
from starlette.concurrency import run_in_threadpool

from ....core.database import ping_database
from ....core.config import settings
from ....services.notification_hub import notification_hub
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Overall application health check.

    Returns:
        JSON with overall status, version, and component details
    """
    db_status = await run_in_threadpool(ping_database)
    if not db_status["available"]:
        logger.warning(f"Health check: database unavailable ({db_status['error']})")

    return {
        "status": "healthy" if db_status["available"] else "degraded",
        "version": settings.APP_VERSION,
        "app_name": settings.APP_NAME,
        "components": {
            "database": db_status,
            "realtime": {
                "connected_users": len(notification_hub.sockets),
                "feed_subscribers": sum(len(q) for q in notification_hub.queues.values()),
                **notification_hub.stats,
            },
        }
    }
