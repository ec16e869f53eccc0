from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from .config import config

# Tolerance for the zero-sum check on a group's balances
CONSERVATION_EPSILON = 1e-6

# Largest value an expenses.amount DECIMAL(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")


def to_decimal(value: Any) -> Decimal:
    """Parse a user-supplied amount into a cent-quantized Decimal.

    Raises ValueError for anything that is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError("Cannot convert value to Decimal")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError("Cannot convert value to Decimal") from None
    else:
        raise ValueError("Cannot convert value to Decimal")
    if not result.is_finite():
        raise ValueError("Cannot convert value to Decimal")
    try:
        return result.quantize(Decimal("0.01"))
    except InvalidOperation:
        # More digits than the decimal context can hold
        raise ValueError("Cannot convert value to Decimal") from None


def as_amount(value: Any) -> float:
    """Coerce a stored amount (Decimal, int, float or numeric str) to float."""
    if value is None:
        return 0.0
    return float(value)


def sum_amounts(rows: Iterable[Mapping[str, Any]]) -> float:
    return sum((as_amount(row.get("amount")) for row in rows), 0.0)


def is_material(amount: float, threshold: Optional[float] = None) -> bool:
    if threshold is None:
        threshold = config.MATERIALITY_THRESHOLD
    return amount > threshold


def amounts_close(a: float, b: float, tolerance: float = CONSERVATION_EPSILON) -> bool:
    return abs(a - b) <= tolerance
