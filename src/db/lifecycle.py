# order status state machine
import dataclasses
from typing import Dict, Tuple

from db.errors import InvalidStateError, InvalidTransitionError
from db.models import Order, OrderStatus

ALLOWED_TRANSITIONS: Dict[OrderStatus, Tuple[OrderStatus, ...]] = {
    OrderStatus.PENDING: (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
    OrderStatus.CONFIRMED: (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
    OrderStatus.SHIPPED: (OrderStatus.DELIVERED,),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
}

CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


def allowed_next(status: str) -> Tuple[OrderStatus, ...]:
    return ALLOWED_TRANSITIONS[OrderStatus(status)]


def can_transition(current: str, target: str) -> bool:
    return OrderStatus(target) in allowed_next(current)


def transition(order: Order, target: str) -> Order:
    """Return a copy of order moved to target, or raise InvalidTransitionError
    listing what the current status allows."""
    if not can_transition(order.status, target):
        raise InvalidTransitionError(
            order.id, order.status, target, allowed_next(order.status)
        )
    return dataclasses.replace(order, status=OrderStatus(target))


def check_cancellable(order: Order) -> None:
    if order.status not in CANCELLABLE:
        raise InvalidStateError(order.id, order.status)
