from decimal import Decimal

import pytest

from hisaab.money import amounts_close, as_amount, is_material, to_decimal


@pytest.mark.parametrize(
    "value, expected",
    [
        (10, Decimal("10.00")),
        (12.345, Decimal("12.34")),
        (" 7.5 ", Decimal("7.50")),
        (Decimal("3.1"), Decimal("3.10")),
    ],
)
def test_to_decimal(value, expected):
    assert to_decimal(value) == expected


@pytest.mark.parametrize("value", ["", "ten", None, [], True, "inf"])
def test_to_decimal_rejects(value):
    with pytest.raises(ValueError):
        to_decimal(value)


def test_as_amount():
    assert as_amount(Decimal("-12.50")) == -12.5
    assert as_amount("4") == 4.0
    assert as_amount(None) == 0.0


def test_is_material_uses_one_unit_threshold():
    assert not is_material(1.0)
    assert not is_material(0.99)
    assert is_material(1.01)
    assert is_material(0.5, threshold=0.1)


def test_amounts_close():
    assert amounts_close(0.1 + 0.2, 0.3)
    assert not amounts_close(0.0, 0.01)


@pytest.mark.parametrize("value", ["1e30", 1e300, "123456789012345678901234567890"])
def test_to_decimal_rejects_values_beyond_decimal_precision(value):
    with pytest.raises(ValueError):
        to_decimal(value)
