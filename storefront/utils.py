import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

import bleach

CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimals, half up (2.675 -> 2.68)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def order_total(lines: Iterable) -> Decimal:
    """Sum quantity * unit_price over order lines.

    Accepts anything with ``quantity`` and ``unit_price`` attributes. The sum is
    done in Decimal and only rounded at the end.
    """
    total = Decimal("0")
    for line in lines:
        total += Decimal(line.quantity) * Decimal(str(line.unit_price))
    return round_money(total)


def sanitize_input(value: Optional[str]) -> str:
    """Sanitize a user-supplied search term.

    - Strips HTML tags using bleach.clean(..., strip=True)
    - Removes NULL bytes and collapses whitespace
    """
    if value is None:
        return ""
    val = value.replace("\x00", "")
    val = bleach.clean(val, tags=set(), strip=True)
    # bleach escapes bare ampersands and angle brackets; undo that for matching
    val = val.replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">")
    val = re.sub(r"\s+", " ", val)
    return val.strip()


def like_pattern(term: str) -> str:
    """Build a substring LIKE pattern, escaping the wildcards with backslash."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
