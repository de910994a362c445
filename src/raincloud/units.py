"""Token unit conversion helpers using fixed 18-decimal precision."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation


DEFAULT_DECIMALS = 18
MAX_UINT256 = 2**256 - 1


def to_base_units(value: Decimal | int | str, decimals: int = DEFAULT_DECIMALS) -> int:
    """Convert a whole-token amount to base units, rejecting sub-unit dust."""
    try:
        dec = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid token amount: {value}") from e
    scaled = dec.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {value} has more than {decimals} decimal places")
    return require_uint256(int(scaled), "amount")


def from_base_units(value: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert integer base units to a Decimal token amount."""
    return Decimal(value).scaleb(-decimals)


def whole_units(value: int, decimals: int = DEFAULT_DECIMALS) -> int:
    """Floor-divide base units down to whole tokens."""
    return value // 10**decimals


def format_amount(value: int, decimals: int = DEFAULT_DECIMALS, symbol: str = "") -> str:
    """Format base units as a human-readable token amount."""
    text = format(from_base_units(value, decimals).normalize(), "f")
    return f"{text} {symbol}".rstrip()


def require_uint256(value: int, field: str) -> int:
    """Return value if it fits uint256, else raise ValueError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field} must be an integer")
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"{field} out of uint256 range: {value}")
    return value
