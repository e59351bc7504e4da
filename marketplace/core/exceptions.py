"""Error taxonomy shared by the services and the HTTP layer.

Services raise these when a request cannot be honoured at all. Outcomes that
are expected during normal operation (a single reservation failing, one shop
of a checkout being rejected) are returned as values instead.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    AUTHORIZATION = "AUTHORIZATION"
    CONFLICT = "CONFLICT"


class MarketplaceError(Exception):
    """Base class for every error the core reports to its caller"""
    kind = ErrorKind.VALIDATION
    status_code = 400

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "error": self.kind.value}
        if self.details:
            payload["context"] = self.details
        return payload


class ValidationError(MarketplaceError):
    """Malformed or incomplete input (empty cart, non-positive quantity...)"""
    kind = ErrorKind.VALIDATION
    status_code = 400


class AuthorizationError(MarketplaceError):
    """The actor is not allowed to perform the operation on this resource"""
    kind = ErrorKind.AUTHORIZATION
    status_code = 403


class NotFoundError(MarketplaceError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class InsufficientStockError(MarketplaceError):
    """Requested quantity exceeds the stock currently available"""
    kind = ErrorKind.INSUFFICIENT_STOCK
    status_code = 409

    def __init__(self, product_id: int, requested: int, available: int, name: Optional[str] = None):
        label = name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Requested: {requested}",
            {"product_id": product_id, "requested": requested, "available": available},
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidTransitionError(MarketplaceError):
    kind = ErrorKind.INVALID_TRANSITION
    status_code = 409

    def __init__(self, source, target):
        source_value = getattr(source, "value", source)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Cannot change order status from {source_value} to {target_value}",
            {"source": source_value, "target": target_value},
        )
        self.source = source
        self.target = target


class ConcurrencyConflictError(MarketplaceError):
    """Raised when a concurrency conflict is detected"""
    kind = ErrorKind.CONFLICT
    status_code = 409
