# src/db/crud.py
# accounts, catalog and cart helpers the order operations build on
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from db import models
from db.database import connect
from utils.pure import to_decimal, to_int

_PRODUCT_COLUMNS = "id, name, price, stock, descr, image_url"
_USER_COLUMNS = "id, name, email, pwd, role, cancellation_count, last_cancellation_date"


def product_from_row(row) -> models.Product:
    return models.Product(
        id=row[0],
        name=row[1],
        price=to_decimal(row[2]),
        stock=int(row[3]),
        descr=row[4],
        image_url=row[5],
    )


def _user_from_row(row) -> models.User:
    return models.User(
        id=int(row[0]),
        name=row[1],
        email=row[2],
        pwd=row[3],
        role=row[4],
        cancellation_count=int(row[5] or 0),
        last_cancellation_date=date.fromisoformat(row[6]) if row[6] else None,
    )


# ---------------------------
# Accounts
# ---------------------------


async def login(email: str, pwd: str) -> Optional[models.User]:
    """Return the User if email/pwd match; otherwise None."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE email = ? AND pwd = ?;",
            ((email or "").strip().lower(), pwd),
        )
        row = await cur.fetchone()
        await cur.close()
    return _user_from_row(row) if row else None


async def get_user(uid: int) -> Optional[models.User]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?;", (uid,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _user_from_row(row) if row else None


# ---------------------------
# Catalog
# ---------------------------


async def get_product(pid: int) -> Optional[models.Product]:
    """Fetch a product by id."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = ?;", (pid,)
        )
        row = await cur.fetchone()
        await cur.close()
    return product_from_row(row) if row else None


async def search_products(
    keyword: str, page: int, page_size: int = 5
) -> Tuple[List[models.Product], int]:
    """
    Case-insensitive search over name/descr.

    Multi-word input matches the whole phrase or any single word. A purely
    numeric keyword also matches the product id. Empty input lists everything.
    Returns (products for page, total_count).
    """
    phrase = (keyword or "").strip().lower()
    words = [w for w in phrase.split() if w]

    terms: List[str] = []
    if phrase:
        terms.append(phrase)
        for w in words:
            if w not in terms:
                terms.append(w)

    params: List[str | int] = []
    if terms:
        where_clause = " OR ".join(
            ["(LOWER(name) LIKE ? OR LOWER(descr) LIKE ?)"] * len(terms)
        )
        for t in terms:
            params.extend([f"%{t}%", f"%{t}%"])
        pid = to_int(phrase) if phrase.isdigit() else None
        if pid is not None:
            where_clause += " OR id = ?"
            params.append(pid)
    else:
        where_clause = "1 = 1"

    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT COUNT(*) FROM products WHERE {where_clause};", tuple(params)
        )
        total = (await cur.fetchone())[0]
        await cur.close()

        offset = max(page - 1, 0) * page_size
        cur = await conn.execute(
            f"""
            SELECT {_PRODUCT_COLUMNS}
            FROM products
            WHERE {where_clause}
            ORDER BY id
            LIMIT ? OFFSET ?;
            """,
            tuple(params + [page_size, offset]),
        )
        rows = await cur.fetchall()
        await cur.close()

    return [product_from_row(row) for row in rows], total


async def update_product(
    pid: int,
    new_price: Optional[Decimal],
    new_stock: Optional[int],
) -> bool:
    """
    Admin catalog edit: set price and/or stock (only provided fields).
    Return True if a row was updated.
    """
    if new_price is None and new_stock is None:
        return False
    if new_price is not None and to_decimal(new_price) <= 0:
        raise ValueError("Price must be greater than 0.")
    if new_stock is not None and new_stock < 0:
        raise ValueError("Stock cannot be negative.")
    async with connect() as conn:
        res = await conn.execute(
            """
            UPDATE products
            SET price = COALESCE(?, price), stock = COALESCE(?, stock)
            WHERE id = ?;
            """,
            (
                to_decimal(new_price) if new_price is not None else None,
                new_stock,
                pid,
            ),
        )
        await conn.commit()
        return res.rowcount > 0


async def product_stock(pid: int) -> Optional[int]:
    async with connect() as conn:
        cur = await conn.execute("SELECT stock FROM products WHERE id = ?;", (pid,))
        row = await cur.fetchone()
        await cur.close()
        return int(row[0]) if row else None


# ---------------------------
# Cart Management
# ---------------------------


async def get_or_create_cart(user_id: int) -> int:
    """Return the id of the user's cart, creating it on first use."""
    async with connect() as conn:
        await conn.execute(
            "INSERT OR IGNORE INTO carts(user_id) VALUES (?);", (user_id,)
        )
        await conn.commit()
        cur = await conn.execute("SELECT id FROM carts WHERE user_id = ?;", (user_id,))
        row = await cur.fetchone()
        await cur.close()
    return int(row[0])


async def get_cart(user_id: int) -> models.Cart:
    """The user's cart with each item's live product."""
    cart_id = await get_or_create_cart(user_id)
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT ci.cart_id, ci.product_id, ci.quantity,
                   p.id, p.name, p.price, p.stock, p.descr, p.image_url
            FROM cart_items ci
            JOIN products p ON p.id = ci.product_id
            WHERE ci.cart_id = ?
            ORDER BY ci.id;
            """,
            (cart_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    items = [
        models.CartItem(
            cart_id=row[0],
            product_id=row[1],
            quantity=row[2],
            product=product_from_row(tuple(row)[3:]),
        )
        for row in rows
    ]
    return models.Cart(id=cart_id, user_id=user_id, items=items)


async def _stock_of(conn, pid: int) -> int:
    cur = await conn.execute("SELECT stock FROM products WHERE id = ?;", (pid,))
    row = await cur.fetchone()
    await cur.close()
    return int(row[0]) if row else 0


async def add_to_cart(user_id: int, pid: int, qty: int) -> int:
    """
    Add qty of a product to the cart, merging with an existing line.
    The line never exceeds current stock. Returns the resulting quantity
    (0 when nothing could be added).
    """
    if qty <= 0:
        return 0
    cart_id = await get_or_create_cart(user_id)
    async with connect() as conn:
        stock = await _stock_of(conn, pid)
        if stock <= 0:
            return 0
        cur = await conn.execute(
            "SELECT quantity FROM cart_items WHERE cart_id = ? AND product_id = ?;",
            (cart_id, pid),
        )
        row = await cur.fetchone()
        await cur.close()
        new_qty = min((row[0] if row else 0) + qty, stock)
        await conn.execute(
            """
            INSERT INTO cart_items(cart_id, product_id, quantity) VALUES (?, ?, ?)
            ON CONFLICT(cart_id, product_id) DO UPDATE SET quantity = excluded.quantity;
            """,
            (cart_id, pid, new_qty),
        )
        await conn.commit()
    return new_qty


async def set_cart_item_qty(user_id: int, pid: int, qty: int) -> int:
    """Set a line's quantity; 0 removes it, larger values are capped at stock."""
    if qty < 0:
        raise ValueError("Quantity cannot be negative.")
    if qty == 0:
        await remove_from_cart(user_id, pid)
        return 0
    cart_id = await get_or_create_cart(user_id)
    async with connect() as conn:
        qty = min(qty, await _stock_of(conn, pid))
        if qty == 0:
            await conn.execute(
                "DELETE FROM cart_items WHERE cart_id = ? AND product_id = ?;",
                (cart_id, pid),
            )
        else:
            await conn.execute(
                """
                INSERT INTO cart_items(cart_id, product_id, quantity) VALUES (?, ?, ?)
                ON CONFLICT(cart_id, product_id) DO UPDATE SET quantity = excluded.quantity;
                """,
                (cart_id, pid, qty),
            )
        await conn.commit()
    return qty


async def remove_from_cart(user_id: int, pid: int) -> None:
    async with connect() as conn:
        await conn.execute(
            """
            DELETE FROM cart_items
            WHERE product_id = ?
              AND cart_id = (SELECT id FROM carts WHERE user_id = ?);
            """,
            (pid, user_id),
        )
        await conn.commit()


async def clear_cart(user_id: int) -> None:
    """Remove every item; the cart row itself stays."""
    async with connect() as conn:
        await conn.execute(
            "DELETE FROM cart_items WHERE cart_id = (SELECT id FROM carts WHERE user_id = ?);",
            (user_id,),
        )
        await conn.commit()
