"""
Custom exception classes for robust error handling
"""
from typing import Any, Dict, Optional
from fastapi import status


class BaseCustomException(Exception):
    """Base custom exception class"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BaseCustomException):
    """Raised when request data is missing or invalid"""

    def __init__(self, message: str, field: str = None, details: Optional[Dict[str, Any]] = None):
        if field:
            details = details or {}
            details["field"] = field

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidPaymentMethodError(ValidationError):
    def __init__(self, payment_method: str):
        super().__init__(
            f"Invalid payment method '{payment_method}'",
            field="payment_method"
        )


class EmptyCartError(ValidationError):
    def __init__(self):
        super().__init__("Your cart is empty. Please add items before checking out.", field="cart_items")


class InvalidCartTotalError(ValidationError):
    def __init__(self, total: Any = None):
        super().__init__(
            "Invalid cart total. Please check your cart items.",
            field="cart_items",
            details={"total": str(total)} if total is not None else None
        )


class NoResolvableVendorItemsError(ValidationError):
    def __init__(self, product_ids: Optional[list] = None):
        super().__init__(
            "No valid items found in cart.",
            field="cart_items",
            details={"unresolved_products": product_ids or []}
        )


class InvalidCouponError(ValidationError):
    def __init__(self, code: str, reason: str):
        super().__init__(
            f"Coupon '{code}' cannot be applied: {reason}",
            field="coupon_code",
            details={"reason": reason}
        )


class AuthenticationError(BaseCustomException):
    """Raised when authentication fails"""

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details
        )


class AuthorizationError(BaseCustomException):
    """Raised when the caller's role or ownership does not allow the action"""

    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(BaseCustomException):
    """Raised when a requested resource is not found"""

    def __init__(self, resource: str, identifier: Any, details: Optional[Dict[str, Any]] = None):
        message = f"{resource} with identifier '{identifier}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details
        )


NotFoundError = ResourceNotFoundError


class ConflictError(BaseCustomException):
    """Raised when the target is already assigned, claimed or processed"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InvalidTransitionError(ConflictError):
    """Raised when an order cannot move from its current status"""

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot move order from '{current}' to '{target}'",
            details={"current_status": current, "target_status": target}
        )


class AlreadyProcessedError(ConflictError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} '{identifier}' is already processed",
            details={"id": identifier}
        )


class NotApprovedError(ConflictError):
    def __init__(self, resource: str, identifier: Any, current: str):
        super().__init__(
            f"{resource} '{identifier}' must be approved before processing",
            details={"id": identifier, "current_status": current}
        )


class InsufficientStockError(BaseCustomException):
    """Raised when a stock decrement would oversell a product"""

    def __init__(self, product_id: str, requested: int, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details.update({"product_id": product_id, "requested": requested})
        super().__init__(
            message=f"Insufficient stock for product '{product_id}'",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InsufficientFundsError(BaseCustomException):
    """Raised when the collected cash does not match the order total"""

    def __init__(self, expected: Any, received: Any):
        super().__init__(
            message=f"Payment amount must match order total: {expected}",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"expected": str(expected), "received": str(received)}
        )


class TransactionFailure(BaseCustomException):
    """Raised when the storage layer aborts a unit of work"""

    def __init__(self, message: str = "Transaction failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )
