"""Errors raised by the order operations.

Each error carries the status class it should be reported with (HTTP-style
code) and whether the caller may simply retry.
"""

import sqlite3
import traceback
from typing import Any, Dict, Iterable, Optional

from utils import config


class ShopError(Exception):
    """Base exception for every failure surfaced by the db layer."""

    status: int = 500
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ShopError):
    """Raised when an input does not pass the request rules."""

    status = 400

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class NotFoundError(ShopError):
    status = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found.")


class ForbiddenError(ShopError):
    status = 403

    def __init__(self, message: str = "Access denied."):
        super().__init__(message)


class EmptyCartError(ShopError):
    status = 409

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__("Cart is empty. Add items before placing an order.")


class ProductUnavailableError(ShopError):
    status = 409

    def __init__(self, product_id: int, name: Optional[str] = None):
        self.product_id = product_id
        self.name = name
        label = name or f"#{product_id}"
        super().__init__(f'Product "{label}" is no longer available.')


class InsufficientStockError(ShopError):
    status = 409

    def __init__(self, product_id: int, name: str, requested: int, available: int):
        self.product_id = product_id
        self.name = name
        self.requested = requested
        self.available = available
        super().__init__(
            f'Insufficient stock for "{name}". '
            f"Requested: {requested}, Available: {available}"
        )


class InvalidTransitionError(ShopError):
    status = 409

    def __init__(self, order_id: Optional[int], current: str, target: str, allowed: Iterable[str]):
        self.order_id = order_id
        self.current = str(current)
        self.target = str(target)
        self.allowed = tuple(str(s) for s in allowed)
        super().__init__(
            f'Invalid status transition from "{self.current}" to "{self.target}". '
            f"Allowed: {', '.join(self.allowed) or 'none'}"
        )


class InvalidStateError(ShopError):
    status = 409

    def __init__(self, order_id: int, current: str):
        self.order_id = order_id
        self.current = str(current)
        super().__init__(
            f'Cannot cancel order with status "{self.current}". '
            "Only pending or confirmed orders can be cancelled."
        )


class RateLimitExceededError(ShopError):
    status = 429

    def __init__(self, user_id: int, limit: int):
        self.user_id = user_id
        self.limit = limit
        super().__init__(
            f"Cancellation limit reached. You can cancel up to {limit} orders per day."
        )


class PaymentDeclinedError(ShopError):
    status = 402

    def __init__(self, order_id: int, method: str):
        self.order_id = order_id
        self.method = str(method)
        super().__init__(
            "Payment failed. Please try again or use a different payment method."
        )


class AlreadyPaidError(ShopError):
    status = 409

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Order is already paid.")


class OrderCancelledError(ShopError):
    status = 409

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Cannot pay for a cancelled order.")


class LockTimeoutError(ShopError):
    status = 503
    retryable = True

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__("The store is busy, please retry.")


class InternalError(ShopError):
    status = 500

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__("Internal error.")


def store_error(exc: sqlite3.Error) -> ShopError:
    """Map a sqlite failure onto the taxonomy; lock contention is retryable."""
    text = str(exc).lower()
    if isinstance(exc, sqlite3.OperationalError) and ("locked" in text or "busy" in text):
        return LockTimeoutError(str(exc))
    return InternalError(str(exc))


def describe_error(exc: BaseException, debug: Optional[bool] = None) -> Dict[str, Any]:
    """
    Render an exception as a response payload.

    Unknown exceptions are reported as internal errors. The traceback is only
    included in development mode.
    """
    if debug is None:
        debug = config.development_mode()
    err = exc if isinstance(exc, ShopError) else InternalError(str(exc))
    payload: Dict[str, Any] = {
        "success": False,
        "status": err.status,
        "message": err.message,
        "retryable": err.retryable,
    }
    if debug:
        payload["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return payload
