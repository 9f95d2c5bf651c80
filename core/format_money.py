# PATH: core/format_money.py
"""
Safe money formatting utilities for TRACE.

All money values are Decimal. A missing value is rendered as a marker,
never as zero: "value unknown" must stay distinguishable from "$0 effect".
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Union

MISSING_MARKER = "n/a"

Number = Union[str, Decimal, int, None]


def format_money(value: Number, decimals: int = 2, missing: str = MISSING_MARKER) -> str:
    """
    Format a money value to a fixed number of decimal places.

    Uses ROUND_HALF_UP (0.005 -> 0.01 with 2 decimals).

    Example:
        >>> format_money(Decimal("-1500"))
        '-1500.00'
        >>> format_money(None)
        'n/a'
    """
    if value is None:
        return missing

    try:
        if isinstance(value, bool):
            raise TypeError("bool is not a money value")
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value).strip())

        with localcontext() as ctx:
            ctx.prec = 80  # u128 balances scaled by decimals
            quantize_str = "0." + "0" * decimals if decimals > 0 else "0"
            rounded = dec_value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)

        return f"{rounded:.{decimals}f}"

    except (InvalidOperation, ValueError, TypeError):
        return missing


def format_signed(value: Number, decimals: int = 2, missing: str = MISSING_MARKER) -> str:
    """Format with an explicit sign: "+12.50", "-1500.00", "0.00"."""
    text = format_money(value, decimals, missing)
    if text == missing or text.startswith("-"):
        return text
    if Decimal(text) == 0:
        return text
    return "+" + text


def format_quantity(value: Number, missing: str = MISSING_MARKER) -> str:
    """
    Format an asset quantity without forcing a precision.

    Trailing zeros are dropped: Decimal("-300.00000000") -> "-300".
    """
    if value is None:
        return missing
    try:
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return missing
    if dec_value == 0:
        return "0"
    normalized = dec_value.normalize()
    return f"{normalized:f}"
