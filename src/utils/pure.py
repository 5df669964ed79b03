from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, List, Literal, Optional

CENT = Decimal("0.01")


def to_int(val) -> Optional[int]:
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def to_decimal(val: Any) -> Decimal:
    """Parse a stored currency value; floats go through str() to avoid binary noise."""
    if isinstance(val, Decimal):
        return val
    if isinstance(val, float):
        val = str(val)
    try:
        return Decimal(val)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a currency amount: {val!r}") from exc


def to_money(amount: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal) -> str:
    return f"${to_money(amount):,.2f}"


def _cell(value: Any) -> str:
    # a raw pipe would split the markdown cell
    return str(value).replace("|", "\\|")


def generate_markdown_table(
    headers: Optional[List[Any]],
    rows: List[List[Any]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: Column headers, or None to use the first row as headers.
        rows: Rows of cell values; values are stringified and pipes escaped.
        aligns: 'l', 'c' or 'r' per column. Defaults to centered.

    Returns:
        str: Markdown table, or "" when there is nothing to show.
    """
    if not rows and not headers:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    header_cells = [_cell(h) for h in headers]
    body = [[_cell(c) for c in row] for row in rows]

    if aligns is None:
        aligns = ["c"] * len(header_cells)
    elif len(aligns) != len(header_cells):
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {"l": ":---", "c": ":---:", "r": "---:"}

    lines = [
        "| " + " | ".join(header_cells) + " |",
        "| " + " | ".join(align_map[a] for a in aligns) + " |",
    ]
    lines.extend("| " + " | ".join(row) + " |" for row in body)
    return "\n".join(lines)
