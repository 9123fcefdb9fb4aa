"""
Custom business exceptions for the offer API.

WHAT: Domain-specific exceptions that map to HTTP status codes and event errors
WHY: Consistent error handling across REST and WebSocket entry points
HOW: Custom exception classes with stable error codes and messages
"""

from typing import Optional, List, Dict, Any


class BusinessException(Exception):
    """Base class for business logic exceptions."""

    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class AuthenticationRequiredException(BusinessException):
    """Raised when the caller did not identify themselves."""

    def __init__(self):
        super().__init__(
            message="User identity is required",
            code="AUTHENTICATION_REQUIRED"
        )


class OfferNotFoundException(BusinessException):
    """Raised when an offer is unknown, deleted, or not visible to the caller."""

    def __init__(self, offer_id: str):
        super().__init__(
            message=f"Offer not found: {offer_id}",
            code="OFFER_NOT_FOUND",
            details={"offer_id": offer_id}
        )


class UnauthorizedOfferActionException(BusinessException):
    """Raised when the actor is neither the buyer nor the seller."""

    def __init__(self, offer_id: str, user_id: str):
        super().__init__(
            message="You are not allowed to respond to this offer",
            code="UNAUTHORIZED",
            details={"offer_id": offer_id, "user_id": user_id}
        )


class InvalidSellerException(BusinessException):
    """Raised when a buyer tries to make an offer to themselves."""

    def __init__(self, seller_id: str):
        super().__init__(
            message="Cannot create offer for yourself",
            code="INVALID_SELLER",
            details={"seller_id": seller_id}
        )


class InvalidActionException(BusinessException):
    """Raised for an unrecognized response action."""

    def __init__(self, action: Any):
        super().__init__(
            message=f"Invalid action: {action}",
            code="INVALID_ACTION",
            details={"action": action, "allowed": ["accept", "reject", "counter"]}
        )


class OfferClosedException(BusinessException):
    """Raised when a transition is attempted on an offer in a terminal status."""

    def __init__(self, offer_id: str, current_status: str, message: Optional[str] = None, code: str = "OFFER_CLOSED"):
        super().__init__(
            message=message or f"Offer is already {current_status} and cannot be updated",
            code=code,
            details={"offer_id": offer_id, "current_status": current_status}
        )


class CannotWithdrawClosedException(OfferClosedException):
    """Raised when withdrawing an accepted or completed offer."""

    def __init__(self, offer_id: str, current_status: str):
        super().__init__(
            offer_id,
            current_status,
            message="Cannot withdraw accepted or completed offer",
            code="CANNOT_WITHDRAW_CLOSED"
        )


class OfferConflictException(OfferClosedException):
    """Raised when concurrent writers keep winning the version check."""

    def __init__(self, offer_id: str, attempts: int):
        super().__init__(
            offer_id,
            "conflicted",
            message=f"Offer {offer_id} was modified concurrently, please retry",
            code="OFFER_CONFLICT"
        )
        self.details["attempts"] = attempts


class InitialCounterSellerOnlyException(BusinessException):
    """Raised when the buyer counters their own opening offer."""

    def __init__(self, offer_id: str):
        super().__init__(
            message="Only the seller can counter the initial buyer offer",
            code="INITIAL_COUNTER_SELLER_ONLY",
            details={"offer_id": offer_id}
        )


class WaitForCounterResponseException(BusinessException):
    """Raised when a party counters twice without a reply in between."""

    def __init__(self, offer_id: str):
        super().__init__(
            message="Wait for the other party to respond before countering again",
            code="WAIT_FOR_COUNTER_RESPONSE",
            details={"offer_id": offer_id}
        )


class VendorCounterLimitReachedException(BusinessException):
    """Raised when the seller has used up the counter quota."""

    def __init__(self, offer_id: str, max_vendor_counters: int):
        super().__init__(
            message="Vendor counter limit reached. Accept or reject the latest buyer offer.",
            code="VENDOR_COUNTER_LIMIT_REACHED",
            details={"offer_id": offer_id, "max_vendor_counters": max_vendor_counters}
        )


class UnauthorizedWithdrawException(BusinessException):
    """Raised when anyone but the buyer tries to withdraw."""

    def __init__(self, offer_id: str):
        super().__init__(
            message="Only the buyer can withdraw the offer",
            code="UNAUTHORIZED_WITHDRAW",
            details={"offer_id": offer_id}
        )


class ValidationException(BusinessException):
    """Raised for validation errors."""

    def __init__(self, message: str, field_errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field_errors": field_errors} if field_errors else None
        )
