"""Order placement and lifecycle.

Every write here runs inside ``database.transaction()``: the cart becomes an
order, stock moves, and payment/status flags change either completely or not
at all. Business rule failures are raised as ``ShopError`` subclasses after
being logged with the ids and quantities involved.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

import aiosqlite

from db import cancellations, lifecycle, validation
from db.crud import product_from_row
from db.database import connect, transaction
from db.errors import (
    AlreadyPaidError,
    EmptyCartError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    OrderCancelledError,
    PaymentDeclinedError,
    ProductUnavailableError,
    RateLimitExceededError,
    ShopError,
)
from db.models import (
    Actor,
    CancellationResult,
    Order,
    OrderItem,
    OrderPage,
    OrderStatus,
    PaymentReceipt,
    PaymentResult,
    PaymentStatus,
    Product,
    ProductSummary,
    UserSummary,
)
from db.payments import default_simulator
from utils import config
from utils.logger import get_logger
from utils.pure import to_decimal, to_money

_logger = get_logger(__name__)

_ORDER_COLUMNS = """
    o.id, o.user_id, o.total_amount, o.status, o.payment_status,
    o.payment_method, o.paid_at, o.shipping_address, o.created_at,
    u.name, u.email
"""
_ORDER_FROM = "orders o LEFT JOIN users u ON u.id = o.user_id"


def _rejected(err: ShopError) -> ShopError:
    _logger.warning(f"{type(err).__name__}: {err.message}")
    return err


def _timestamp(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _order_from_row(row, items: List[OrderItem]) -> Order:
    return Order(
        id=row[0],
        user_id=row[1],
        total_amount=to_decimal(row[2]),
        status=OrderStatus(row[3]),
        payment_status=PaymentStatus(row[4]),
        payment_method=row[5],
        paid_at=_parse_ts(row[6]),
        shipping_address=row[7],
        created_at=_parse_ts(row[8]),
        items=items,
        user=(
            UserSummary(id=row[1], name=row[9], email=row[10])
            if row[9] is not None
            else None
        ),
    )


async def _fetch_items(
    conn: aiosqlite.Connection, order_ids: List[int]
) -> Dict[int, List[OrderItem]]:
    grouped: Dict[int, List[OrderItem]] = {oid: [] for oid in order_ids}
    if not order_ids:
        return grouped
    marks = ", ".join("?" for _ in order_ids)
    cur = await conn.execute(
        f"""
        SELECT oi.id, oi.order_id, oi.product_id, oi.quantity, oi.price_at_purchase,
               p.name, p.image_url, p.price
        FROM order_items oi
        LEFT JOIN products p ON p.id = oi.product_id
        WHERE oi.order_id IN ({marks})
        ORDER BY oi.order_id, oi.id;
        """,
        tuple(order_ids),
    )
    rows = await cur.fetchall()
    await cur.close()
    for row in rows:
        summary = (
            ProductSummary(
                id=row[2], name=row[5], image_url=row[6], price=to_decimal(row[7])
            )
            if row[5] is not None
            else None
        )
        grouped[row[1]].append(
            OrderItem(
                id=row[0],
                order_id=row[1],
                product_id=row[2],
                quantity=row[3],
                price_at_purchase=to_decimal(row[4]),
                product=summary,
            )
        )
    return grouped


async def _fetch_order(conn: aiosqlite.Connection, order_id: int) -> Optional[Order]:
    cur = await conn.execute(
        f"SELECT {_ORDER_COLUMNS} FROM {_ORDER_FROM} WHERE o.id = ?;", (order_id,)
    )
    row = await cur.fetchone()
    await cur.close()
    if not row:
        return None
    items = await _fetch_items(conn, [order_id])
    return _order_from_row(row, items[order_id])


async def _lock_product(conn: aiosqlite.Connection, product_id: int) -> Optional[Product]:
    # the enclosing BEGIN IMMEDIATE already holds the write lock, so this read
    # cannot go stale before the decrement below
    cur = await conn.execute(
        "SELECT id, name, price, stock, descr, image_url FROM products WHERE id = ?;",
        (product_id,),
    )
    row = await cur.fetchone()
    await cur.close()
    return product_from_row(row) if row else None


async def _load_cart_lines(
    conn: aiosqlite.Connection, user_id: int
) -> Tuple[Optional[int], List[Tuple[int, int, Optional[str]]]]:
    """Return (cart_id, [(product_id, quantity, product_name)])."""
    cur = await conn.execute("SELECT id FROM carts WHERE user_id = ?;", (user_id,))
    row = await cur.fetchone()
    await cur.close()
    if not row:
        return None, []
    cart_id = row[0]
    cur = await conn.execute(
        """
        SELECT ci.product_id, ci.quantity, p.name
        FROM cart_items ci
        LEFT JOIN products p ON p.id = ci.product_id
        WHERE ci.cart_id = ?
        ORDER BY ci.id;
        """,
        (cart_id,),
    )
    rows = await cur.fetchall()
    await cur.close()
    return cart_id, [(r[0], r[1], r[2]) for r in rows]


def _check_owner(actor: Actor, order: Order) -> None:
    if not actor.is_privileged and order.user_id != actor.id:
        raise _rejected(
            ForbiddenError(f"Access denied. Order {order.id} belongs to another user.")
        )


# ---------------------------
# Placement
# ---------------------------


async def place_order(
    user_id: int,
    shipping_address: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    Turn the user's cart into a pending, unpaid order.

    Stock is checked and decremented under the transaction's write lock, each
    line keeps the price read there as price_at_purchase, and the cart is
    emptied. The total is summed exactly and rounded once, half-up.
    Raises EmptyCartError, ProductUnavailableError or InsufficientStockError
    with nothing written.
    """
    address = validation.shipping_address(shipping_address)
    now = now or datetime.now()

    async with transaction() as conn:
        cart_id, lines = await _load_cart_lines(conn, user_id)
        if not lines:
            raise _rejected(EmptyCartError(user_id))

        total = Decimal("0")
        locked: List[Tuple[Product, int]] = []
        for product_id, quantity, name in lines:
            product = await _lock_product(conn, product_id)
            if product is None:
                raise _rejected(ProductUnavailableError(product_id, name))
            if product.stock < quantity:
                raise _rejected(
                    InsufficientStockError(product.id, product.name, quantity, product.stock)
                )
            total += product.price * quantity
            locked.append((product, quantity))

        cur = await conn.execute(
            """
            INSERT INTO orders(user_id, total_amount, status, payment_status,
                               shipping_address, created_at)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (
                user_id,
                to_money(total),
                OrderStatus.PENDING.value,
                PaymentStatus.UNPAID.value,
                address,
                _timestamp(now),
            ),
        )
        order_id = cur.lastrowid
        await cur.close()

        await conn.executemany(
            """
            INSERT INTO order_items(order_id, product_id, quantity, price_at_purchase)
            VALUES (?, ?, ?, ?);
            """,
            [(order_id, p.id, qty, p.price) for p, qty in locked],
        )

        for product, quantity in locked:
            await conn.execute(
                "UPDATE products SET stock = stock - ? WHERE id = ?;",
                (quantity, product.id),
            )

        await conn.execute("DELETE FROM cart_items WHERE cart_id = ?;", (cart_id,))
        order = await _fetch_order(conn, order_id)

    _logger.info(
        f"Order {order.id} placed by user {user_id}: "
        f"{len(order.items)} line(s), total {order.total_amount}"
    )
    return order


# ---------------------------
# Reading
# ---------------------------


async def list_orders(
    actor: Actor, page: int = 1, limit: int = 10, status: Optional[str] = None
) -> OrderPage:
    """Newest first. Customers only ever see their own orders."""
    page, limit = validation.page_params(page, limit)
    clauses: List[str] = []
    params: List[object] = []
    if not actor.is_privileged:
        clauses.append("o.user_id = ?")
        params.append(actor.id)
    if status:
        clauses.append("o.status = ?")
        params.append(validation.order_status(status).value)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    async with connect() as conn:
        cur = await conn.execute(f"SELECT COUNT(*) FROM orders o {where};", tuple(params))
        total = (await cur.fetchone())[0]
        await cur.close()

        cur = await conn.execute(
            f"""
            SELECT {_ORDER_COLUMNS}
            FROM {_ORDER_FROM}
            {where}
            ORDER BY o.created_at DESC, o.id DESC
            LIMIT ? OFFSET ?;
            """,
            tuple(params + [limit, (page - 1) * limit]),
        )
        rows = await cur.fetchall()
        await cur.close()
        items = await _fetch_items(conn, [r[0] for r in rows])

    orders = [_order_from_row(r, items[r[0]]) for r in rows]
    return OrderPage(orders=orders, total=total, page=page, limit=limit)


async def get_order(actor: Actor, order_id: int) -> Order:
    async with connect() as conn:
        order = await _fetch_order(conn, order_id)
    if order is None:
        raise _rejected(NotFoundError("Order", order_id))
    _check_owner(actor, order)
    return order


# ---------------------------
# Cancellation
# ---------------------------


async def _cancel_in(
    conn: aiosqlite.Connection,
    actor: Actor,
    order_id: int,
    today: date,
    max_per_day: int,
    as_status_change: bool = False,
) -> CancellationResult:
    """Cancellation steps, run on a connection that already holds the write lock."""
    count, last_date = 0, None
    if not actor.is_privileged:
        cur = await conn.execute(
            "SELECT cancellation_count, last_cancellation_date FROM users WHERE id = ?;",
            (actor.id,),
        )
        user_row = await cur.fetchone()
        await cur.close()
        if not user_row:
            raise _rejected(NotFoundError("User", actor.id))
        count = user_row[0]
        last_date = date.fromisoformat(user_row[1]) if user_row[1] else None
        if cancellations.is_blocked(count, last_date, today, max_per_day):
            raise _rejected(RateLimitExceededError(actor.id, max_per_day))

    order = await _fetch_order(conn, order_id)
    if order is None:
        raise _rejected(NotFoundError("Order", order_id))
    _check_owner(actor, order)
    try:
        if as_status_change:
            lifecycle.transition(order, OrderStatus.CANCELLED)
        else:
            lifecycle.check_cancellable(order)
    except ShopError as err:
        raise _rejected(err)

    for item in order.items:
        await conn.execute(
            "UPDATE products SET stock = stock + ? WHERE id = ?;",
            (item.quantity, item.product_id),
        )

    payment_status = (
        PaymentStatus.REFUNDED
        if order.payment_status == PaymentStatus.PAID
        else order.payment_status
    )
    await conn.execute(
        "UPDATE orders SET status = ?, payment_status = ? WHERE id = ?;",
        (OrderStatus.CANCELLED.value, payment_status.value, order.id),
    )

    cancellations_today = 0
    if not actor.is_privileged:
        cancellations_today = cancellations.next_count(count, last_date, today)
        await conn.execute(
            """
            UPDATE users
            SET cancellation_count = ?, last_cancellation_date = ?
            WHERE id = ?;
            """,
            (cancellations_today, today.isoformat(), actor.id),
        )

    return CancellationResult(
        order=await _fetch_order(conn, order.id),
        cancellations_today=cancellations_today,
        max_per_day=max_per_day,
    )


def _log_cancelled(actor: Actor, result: CancellationResult) -> None:
    _logger.info(
        f"Order {result.order.id} cancelled by {actor.role} {actor.id}; "
        f"restocked {sum(i.quantity for i in result.order.items)} unit(s)"
    )


async def cancel_order(
    actor: Actor,
    order_id: int,
    today: Optional[date] = None,
    max_per_day: Optional[int] = None,
) -> CancellationResult:
    """
    Cancel a pending or confirmed order and put its stock back.

    Customers are limited to max_per_day cancellations per calendar day
    (0 forbids them outright); the limit is checked before the order is even
    looked up. Paid orders are flagged refunded. Admins skip the limit and
    never touch the counter.
    """
    today = today or date.today()
    if max_per_day is None:
        max_per_day = config.max_cancellations_per_day()

    async with transaction() as conn:
        result = await _cancel_in(conn, actor, order_id, today, max_per_day)

    _log_cancelled(actor, result)
    return result


# ---------------------------
# Status changes (admin)
# ---------------------------


async def update_order_status(actor: Actor, order_id: int, status: str) -> Order:
    """
    Move an order along the status table. Admin only.

    A move to cancelled runs the cancellation steps in the same transaction
    as the transition check, so stock is restored and payment refunded the
    same way a customer cancellation does it.
    """
    target = validation.order_status(status)
    if not actor.is_privileged:
        raise _rejected(ForbiddenError("Only admins can change order status."))

    if target == OrderStatus.CANCELLED:
        async with transaction() as conn:
            result = await _cancel_in(
                conn,
                actor,
                order_id,
                date.today(),
                config.max_cancellations_per_day(),
                as_status_change=True,
            )
        _log_cancelled(actor, result)
        return result.order

    async with transaction() as conn:
        order = await _fetch_order(conn, order_id)
        if order is None:
            raise _rejected(NotFoundError("Order", order_id))
        try:
            moved = lifecycle.transition(order, target)
        except ShopError as err:
            raise _rejected(err)
        await conn.execute(
            "UPDATE orders SET status = ? WHERE id = ?;",
            (moved.status.value, order.id),
        )

    _logger.info(f"Order {order.id} status {order.status} -> {moved.status}")
    return moved


# ---------------------------
# Payment
# ---------------------------


async def pay_order(
    actor: Actor,
    order_id: int,
    payment_method: str,
    approve: Optional[Callable[[], bool]] = None,
    now: Optional[datetime] = None,
) -> PaymentResult:
    """
    Simulate paying for an order.

    A declined payment raises PaymentDeclinedError and changes nothing, so the
    order can be paid again later. A successful one marks it paid and moves a
    pending order to confirmed.
    """
    method = validation.payment_method(payment_method)
    approve = approve or default_simulator.approve
    now = now or datetime.now()

    async with transaction() as conn:
        order = await _fetch_order(conn, order_id)
        if order is None:
            raise _rejected(NotFoundError("Order", order_id))
        _check_owner(actor, order)
        if order.status == OrderStatus.CANCELLED:
            raise _rejected(OrderCancelledError(order.id))
        if order.payment_status == PaymentStatus.PAID:
            raise _rejected(AlreadyPaidError(order.id))

        if not approve():
            raise _rejected(PaymentDeclinedError(order.id, method))

        status = (
            OrderStatus.CONFIRMED if order.status == OrderStatus.PENDING else order.status
        )
        await conn.execute(
            """
            UPDATE orders
            SET payment_status = ?, payment_method = ?, paid_at = ?, status = ?
            WHERE id = ?;
            """,
            (PaymentStatus.PAID.value, method.value, _timestamp(now), status.value, order.id),
        )
        updated = await _fetch_order(conn, order.id)

    _logger.info(f"Order {order.id} paid via {method} ({updated.total_amount})")
    return PaymentResult(
        order=updated,
        payment=PaymentReceipt(
            method=method.value, amount=updated.total_amount, paid_at=updated.paid_at
        ),
    )
