import sys
from pathlib import Path

from decimal import Decimal

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models.types import PreciseFloat, to_balance


def test_to_balance_keeps_decimal_text_and_rounds_to_scale():
    assert to_balance(1000.1) == Decimal("1000.10000000")
    assert to_balance(" 250 ") == Decimal("250.00000000")
    assert to_balance(Decimal("0.123456785")) == Decimal("0.12345678")
    assert to_balance(Decimal("0.123456775")) == Decimal("0.12345678")


@pytest.mark.parametrize("value", [True, "nan", float("inf"), "-Infinity", "lots", None, object()])
def test_to_balance_rejects_non_balances(value):
    with pytest.raises(ValueError):
        to_balance(value)


def test_precise_float_column_binds_decimal_and_returns_float():
    column = PreciseFloat()

    assert column.process_bind_param(None, dialect=None) is None
    assert column.process_bind_param(500.5, dialect=None) == Decimal("500.5")
    assert column.process_result_value(Decimal("500.50000000"), dialect=None) == 500.5
    assert column.process_result_value(None, dialect=None) is None
    with pytest.raises(ValueError):
        column.process_bind_param(float("nan"), dialect=None)
