"""
FastAPI application entry point.

WHAT: Application factory for the offer negotiation service
WHY: One place that wires config, storage, background sweeper, and routes
HOW: create_app() builds the FastAPI instance; the lifespan owns the
     database schema and the expiry sweeper task
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1.router import api_router
from .core.config import settings
from .core.database import close_db, init_db
from .middleware.error_handler import register_exception_handlers
from .services.expiry_sweeper import expiry_sweeper
from .utils.logger import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and start the sweeper; stop both on shutdown."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    init_db()
    if settings.OFFER_EXPIRY_SWEEP_ENABLED:
        expiry_sweeper.start()
    else:
        logger.info("Offer expiry sweeper disabled")

    yield

    await expiry_sweeper.stop()
    close_db()
    logger.info(f"{settings.APP_NAME} stopped")


def create_app() -> FastAPI:
    """Build the configured application."""
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Buyer/seller offer negotiation over REST, WebSocket, and SSE",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(application)
    application.include_router(api_router)

    @application.get("/")
    async def root():
        return {
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running",
            "docs": "/docs",
        }

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("wholexale.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
