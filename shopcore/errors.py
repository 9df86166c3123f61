"""Domain exceptions for the storefront core.

Every exception carries a machine-stable ``code`` and a message that is
safe to show to the caller. Store and gateway failures never embed the
underlying driver text in their message.
"""

from typing import Optional


class ShopError(Exception):
    """Base exception for all storefront errors."""

    code = "shop_error"
    http_status = 500

    def __init__(self, message: Optional[str] = None):
        self.message = message or "An unexpected error occurred"
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(ShopError):
    """Request is missing fields or carries malformed values."""

    code = "validation_error"
    http_status = 400

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message or "Invalid request")

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class SignatureError(ValidationError):
    """Raised when a gateway callback fails signature verification."""

    code = "invalid_signature"

    def __init__(self, gateway: str):
        self.gateway = gateway
        super().__init__(f"Invalid {gateway} callback signature")


class NotFoundError(ShopError):
    """Raised when an order, product or user does not exist."""

    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} not found")


class UnauthorizedError(ShopError):
    """Raised when the caller may not act on the resource."""

    code = "unauthorized"
    http_status = 403

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Unauthorized to perform this action")


class AuthenticationError(UnauthorizedError):
    """Raised when no valid access token was presented."""

    code = "unauthenticated"
    http_status = 401

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Authentication required")


class DomainStateError(ShopError):
    """Raised when an operation is illegal in the entity's current state."""

    code = "invalid_state"
    http_status = 409


class AlreadyCancelledError(DomainStateError):
    code = "already_cancelled"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order is already cancelled")


class NotCancellableError(DomainStateError):
    code = "not_cancellable"

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__("Cannot cancel order that has been shipped or delivered")


class InsufficientStockError(DomainStateError):
    code = "insufficient_stock"

    def __init__(self, product_id: str, requested: int):
        self.product_id = product_id
        self.requested = requested
        super().__init__(f"Insufficient stock for product {product_id}")


class GatewayError(ShopError):
    """Raised when a payment gateway cannot be reached or answers garbage."""

    code = "gateway_error"
    http_status = 502

    def __init__(self, gateway: str, reason: Optional[str] = None):
        self.gateway = gateway
        self.reason = reason
        super().__init__(f"Payment gateway {gateway} unavailable")


class StoreError(ShopError):
    """Raised when the record store fails."""

    code = "store_error"
    http_status = 500

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__("A storage error occurred, please try again later")
