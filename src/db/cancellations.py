# per-user, per-calendar-day cancellation counter kept on the users row
from datetime import date
from typing import Optional


def is_blocked(
    count: int, last_date: Optional[date], today: date, max_per_day: int
) -> bool:
    """True when the user already used up today's cancellations.

    A counter stamped with an earlier day counts as zero; it is reset lazily by
    next_count() on the next successful cancellation.
    """
    used_today = count if last_date == today else 0
    return used_today >= max_per_day


def next_count(count: int, last_date: Optional[date], today: date) -> int:
    return count + 1 if last_date == today else 1
