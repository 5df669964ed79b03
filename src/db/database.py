# manages connection to db, provides helper methods internal to db package
import asyncio
import os.path
import sqlite3
from contextlib import asynccontextmanager
from decimal import Decimal
from sqlite3 import Row
from typing import AsyncIterator

import aiosqlite

from db.errors import store_error
from utils import config
from utils.logger import get_logger
from utils.pure import to_money

_logger = get_logger(__name__)

DB_PATH = config.db_path()
_SQL_DIR = os.path.dirname(os.path.abspath(__file__))
DB_INIT_SCRIPTS = [
    os.path.join(_SQL_DIR, "prj-tables.sql"),
    os.path.join(_SQL_DIR, "dummy-data.sql"),
]

_initialized = False
_init_lock = asyncio.Lock()

# currency is kept as 2-decimal text so it round-trips exactly
sqlite3.register_adapter(Decimal, lambda d: str(to_money(d)))


async def _init_db(conn: aiosqlite.Connection) -> None:
    for script in DB_INIT_SCRIPTS:
        if not os.path.exists(script) or os.path.getsize(script) == 0:
            continue
        _logger.info(f"Initializing database with script {os.path.basename(script)}...")
        with open(script, "r") as f:
            await conn.executescript(f.read())
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


@asynccontextmanager
async def connect() -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    Ensures the database is initialized (tables and seed data) on first use.
    The busy timeout doubles as the lock wait used by transaction().
    Any sqlite failure, on open or inside the block, leaves as a ShopError.
    """
    global _initialized
    db_dir = os.path.dirname(DB_PATH)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    conn = None
    try:
        conn = await aiosqlite.connect(DB_PATH, timeout=config.lock_timeout())
        conn.row_factory = Row
        await conn.execute("PRAGMA foreign_keys = ON;")

        if not _initialized:
            async with _init_lock:
                if not _initialized:
                    exists = await _table_exists(conn, "users")
                    if not exists:
                        _logger.info("Initializing database...")
                        await _init_db(conn)
                    _initialized = True

        yield conn
    except sqlite3.Error as exc:
        _logger.error(f"Store error: {exc}")
        raise store_error(exc) from exc
    finally:
        if conn is not None:
            await conn.close()


@asynccontextmanager
async def transaction() -> AsyncIterator[aiosqlite.Connection]:
    """All-or-nothing scope for multi-step writes.

    BEGIN IMMEDIATE takes the write lock before the first read, so concurrent
    transactions touching stock run one after another and always see committed
    values. Any exception rolls back before it propagates; sqlite failures are
    translated into ShopError subclasses (lock contention -> LockTimeoutError).
    """
    async with connect() as conn:
        try:
            await conn.execute("BEGIN IMMEDIATE;")
        except sqlite3.Error as exc:
            _logger.warning(f"Could not start transaction: {exc}")
            raise store_error(exc) from exc

        try:
            yield conn
        except sqlite3.Error as exc:
            await conn.rollback()
            _logger.error(f"Transaction rolled back on store error: {exc}")
            raise store_error(exc) from exc
        except BaseException:
            await conn.rollback()
            raise

        try:
            await conn.commit()
        except sqlite3.Error as exc:
            await conn.rollback()
            _logger.error(f"Commit failed, rolled back: {exc}")
            raise store_error(exc) from exc
