# PATH: core/math.py
"""
Math utilities for TRACE.

Safe conversions and calculations (no float money). Move integers arrive
as decimal strings in JSON, so parsing helpers accept both str and int.
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Optional, Union


def safe_decimal(value: Union[str, int, float, Decimal, None], default: Decimal = Decimal("0")) -> Decimal:
    """
    Safely convert value to Decimal.

    Args:
        value: Value to convert
        default: Default if conversion fails

    Returns:
        Decimal value
    """
    if value is None:
        return default

    try:
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def parse_move_int(value: Any) -> Optional[int]:
    """
    Parse a Move integer (u8..u256) from its JSON form.

    Returns None for anything that is not an unsigned integer literal,
    including booleans.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def scale_pyth_value(raw: Union[str, int], expo: int) -> Decimal:
    """
    Apply a Pyth exponent to a raw integer value.

    Example: scale_pyth_value("500000000", -8) -> Decimal("5.00000000")
    """
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(int(raw)).scaleb(expo)


def normalize_to_decimals(
    amount: Union[str, int, Decimal],
    decimals: int,
) -> Decimal:
    """
    Normalize amount to asset decimals (base units to whole units).

    Sign is preserved: -30000000000 with 8 decimals -> Decimal("-300").
    """
    amt = safe_decimal(amount)
    with localcontext() as ctx:
        ctx.prec = 80  # u256 fits
        return amt.scaleb(-decimals)


def sign(value: Union[int, Decimal]) -> int:
    """Return -1, 0 or 1."""
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0
