"""Column types shared by the fleet ORM models."""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any

from sqlalchemy.types import Numeric, TypeDecorator

BALANCE_SCALE = 8
_QUANTUM = Decimal(1).scaleb(-BALANCE_SCALE)


def to_balance(value: Any) -> Decimal:
    """Coerce a balance to a finite Decimal rounded to ``BALANCE_SCALE`` places.

    Floats go through ``str`` so ``1000.1`` stays ``1000.1``. Booleans, NaN and
    infinities are rejected.
    """
    if isinstance(value, bool):
        raise ValueError(f"Boolean is not a balance: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid balance value: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Balance must be finite: {value!r}")
    return amount.quantize(_QUANTUM, rounding=ROUND_HALF_EVEN)


class PreciseFloat(TypeDecorator):
    """Balance column: NUMERIC on disk, ``float`` on the model."""

    impl = Numeric(24, BALANCE_SCALE, asdecimal=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect):
        return None if value is None else to_balance(value)

    def process_result_value(self, value: Any, dialect):
        return None if value is None else float(value)
