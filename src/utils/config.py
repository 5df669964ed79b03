# environment driven settings, read at call time so tests can patch os.environ
import os

from utils.pure import to_int

DEFAULT_DB_PATH = "data/db.sqlite"
DEFAULT_MAX_CANCELLATIONS_PER_DAY = 3
DEFAULT_LOCK_TIMEOUT = 5.0


def db_path() -> str:
    return os.getenv("DB_PATH") or DEFAULT_DB_PATH


def max_cancellations_per_day() -> int:
    """MAX_CANCELLATIONS_PER_DAY; anything missing, non-numeric or < 1 means 3."""
    value = to_int(os.getenv("MAX_CANCELLATIONS_PER_DAY"))
    if value is None or value < 1:
        return DEFAULT_MAX_CANCELLATIONS_PER_DAY
    return value


def lock_timeout() -> float:
    """Seconds a transaction waits for the database write lock."""
    raw = os.getenv("LOCK_TIMEOUT")
    try:
        value = float(raw) if raw else DEFAULT_LOCK_TIMEOUT
    except ValueError:
        return DEFAULT_LOCK_TIMEOUT
    return value if value > 0 else DEFAULT_LOCK_TIMEOUT


def development_mode() -> bool:
    return bool(os.getenv("DEBUG"))
