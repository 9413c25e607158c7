"""Display formatting helpers shared by the composer and the estimate preview."""
import re
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime
from typing import Optional, Union

Number = Union[Decimal, int, float]

CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value: Number, step: Number = 1) -> Decimal:
    """Round to the nearest multiple of step, halves away from zero."""
    step = to_decimal(step)
    units = (to_decimal(value) / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return units * step


def format_currency(value: Optional[Number]) -> str:
    """$1,234.50 style, always two decimals."""
    amount = to_decimal(value or 0).quantize(CENT, rounding=ROUND_HALF_UP)
    return f"${amount:,.2f}"


def format_currency_whole(value: Number) -> str:
    """$1,235 style, rounded to whole dollars."""
    amount = round_half_up(value)
    return f"${amount:,.0f}"


def format_quantity(value: Number) -> str:
    return f"{value:g}" if isinstance(value, float) else str(value)


def format_abn(abn: Optional[str]) -> str:
    """Format an 11 digit ABN as NN NNN NNN NNN; anything else is returned as given."""
    if not abn:
        return ""
    digits = re.sub(r"\s", "", abn)
    if len(digits) != 11:
        return abn.strip()
    return f"{digits[:2]} {digits[2:5]} {digits[5:8]} {digits[8:]}"


def format_date(value: Optional[datetime]) -> str:
    if not value:
        return ""
    return f"{value.day} {value.strftime('%B %Y')}"


def truncate_text(text: str, max_chars: Optional[int]) -> str:
    text = text.strip()
    if max_chars is None or len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."
