"""
Error taxonomy for the order and inventory engine.

Every engine operation either applies all of its effects or raises one of
these. The HTTP layer renders them through ``marketplace_exception_handler``
without a second lookup, so each error carries the structured fields an end
user needs (available vs requested stock, current vs allowed states).
"""

from collections.abc import Iterable
from typing import Any


class MarketplaceError(Exception):
    status_code: int = 400
    code: str = "bad_request"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(MarketplaceError):
    status_code = 404
    code = "not_found"


class UnavailableError(MarketplaceError):
    code = "unavailable"


class InsufficientStockError(MarketplaceError):
    code = "insufficient_stock"

    def __init__(
        self,
        *,
        available: int,
        requested: int,
        item_id: str,
        item_name: str | None = None,
        message: str | None = None,
    ):
        label = f"'{item_name}'" if item_name else item_id
        super().__init__(
            message or f"Insufficient stock for {label}. Available: {available}, Requested: {requested}",
            details={
                "item_id": item_id,
                "item_name": item_name,
                "available": available,
                "requested": requested,
            },
        )
        self.available = available
        self.requested = requested
        self.item_id = item_id


class InvalidArgumentError(MarketplaceError):
    code = "invalid_argument"


class MissingFieldError(MarketplaceError):
    code = "missing_field"

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"{field} is required", details={"field": field})
        self.field = field


class InvalidTransitionError(MarketplaceError):
    code = "invalid_transition"

    def __init__(
        self,
        *,
        current: str,
        requested: str,
        allowed: Iterable[str],
        message: str | None = None,
    ):
        allowed_sorted = sorted(allowed)
        super().__init__(
            message
            or (
                f"Invalid status transition from '{current}' to '{requested}'. "
                f"Valid transitions: {', '.join(allowed_sorted) or 'none'}"
            ),
            details={"current": current, "requested": requested, "allowed": allowed_sorted},
        )
        self.current = current
        self.requested = requested
        self.allowed = allowed_sorted


class EmptyCartError(MarketplaceError):
    code = "empty_cart"

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class AccessDeniedError(MarketplaceError):
    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)
