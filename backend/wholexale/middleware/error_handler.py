"""
Global error handling middleware.

WHAT: Translate exceptions to appropriate HTTP responses
WHY: Consistent error responses with stable codes the UI can branch on
HOW: FastAPI exception handlers for request validation and business exceptions
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from datetime import datetime

from ..utils.exceptions import (
    BusinessException,
    AuthenticationRequiredException,
    OfferNotFoundException,
    UnauthorizedOfferActionException,
    InitialCounterSellerOnlyException,
    UnauthorizedWithdrawException,
    OfferConflictException,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Most specific first; anything else is a 400 state/validation conflict
STATUS_BY_EXCEPTION = (
    (AuthenticationRequiredException, status.HTTP_401_UNAUTHORIZED),
    (OfferNotFoundException, status.HTTP_404_NOT_FOUND),
    (UnauthorizedOfferActionException, status.HTTP_403_FORBIDDEN),
    (InitialCounterSellerOnlyException, status.HTTP_403_FORBIDDEN),
    (UnauthorizedWithdrawException, status.HTTP_403_FORBIDDEN),
    (OfferConflictException, status.HTTP_409_CONFLICT),
)


def status_code_for(exc: BusinessException) -> int:
    for exc_type, status_code in STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Handle FastAPI RequestValidationError.

    WHAT: Request validation failed
    WHY: Invalid request payload
    HOW: Return 400 with field errors
    """
    logger.warning(f"Validation error: {exc.errors()}")

    # Clean up error details to be JSON serializable
    cleaned_errors = []
    for error in exc.errors():
        cleaned_error = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": error.get("input")
        }
        # Convert ctx errors to strings
        if "ctx" in error:
            cleaned_error["ctx"] = {
                k: str(v) if isinstance(v, Exception) else v
                for k, v in error["ctx"].items()
            }
        cleaned_errors.append(cleaned_error)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": cleaned_errors,
            "timestamp": datetime.now().isoformat()
        }
    )


async def business_exception_handler(request: Request, exc: BusinessException):
    """
    Handle BusinessException and its subclasses.

    WHAT: Offer guard failure, missing offer, or identity problem
    WHY: Callers branch on `error` (the stable code), not on message text
    HOW: Pick the status code from STATUS_BY_EXCEPTION
    """
    status_code = status_code_for(exc)
    logger.warning(f"API exception on {request.method} {request.url.path}: {exc.code} - {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "details": exc.details,
            "timestamp": datetime.now().isoformat()
        }
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last resort: log with traceback and return a generic 500."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "INTERNAL_ERROR",
            "message": "Internal server error",
            "details": None,
            "timestamp": datetime.now().isoformat()
        }
    )


def register_exception_handlers(app):
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(BusinessException, business_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered")
