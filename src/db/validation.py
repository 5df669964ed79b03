# request rules applied before any write starts
from typing import Optional, Tuple

from db.errors import ValidationError
from db.models import OrderStatus, PaymentMethod

SHIPPING_ADDRESS_MIN_LENGTH = 5
MAX_PAGE_SIZE = 100


def shipping_address(value: Optional[str]) -> Optional[str]:
    """Optional; when given it is trimmed and must be at least 5 characters."""
    if value is None:
        return None
    value = value.strip()
    if len(value) < SHIPPING_ADDRESS_MIN_LENGTH:
        raise ValidationError(
            "shipping address",
            f"must be at least {SHIPPING_ADDRESS_MIN_LENGTH} characters",
        )
    return value


def order_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(
            "status", f"must be one of: {', '.join(s.value for s in OrderStatus)}"
        ) from None


def payment_method(value: str) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError(
            "payment method",
            f"must be one of: {', '.join(m.value for m in PaymentMethod)}",
        ) from None


def page_params(page: int, limit: int) -> Tuple[int, int]:
    if page < 1:
        raise ValidationError("page", "must be at least 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError("limit", f"must be between 1 and {MAX_PAGE_SIZE}")
    return page, limit
