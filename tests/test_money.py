from decimal import Decimal

import pytest

from src.core.errors import InvalidAmount
from src.core.money import apply_rate, format_usd, percent_to_basis_points, to_cents


def test_to_cents_from_dollar_strings():
    assert to_cents("1,200.00") == 120000
    assert to_cents("$54,500") == 5450000
    assert to_cents(" 12.5 ") == 1250


def test_to_cents_float_goes_through_str():
    # 0.1 + 0.2 style float noise must not leak into cents
    assert to_cents(12.5) == 1250
    assert to_cents(0.29) == 29


def test_to_cents_rounds_half_up():
    assert to_cents(Decimal("0.005")) == 1
    assert to_cents("2.675") == 268


@pytest.mark.parametrize("bad", ["", "abc", None, True, "nan", [1]])
def test_to_cents_rejects_garbage(bad):
    with pytest.raises(InvalidAmount):
        to_cents(bad)


def test_percent_to_basis_points():
    assert percent_to_basis_points("6.25") == 625
    assert percent_to_basis_points("25") == 2500
    assert percent_to_basis_points("8.25%") == 825
    with pytest.raises(InvalidAmount):
        percent_to_basis_points("-1")


def test_apply_rate_is_integer_half_up():
    # 6.25 % of $50,000 = $3,125
    assert apply_rate(5000000, 625) == 312500
    # 6.25 % of $0.08 = 0.5 cents -> 1
    assert apply_rate(8, 625) == 1
    assert apply_rate(7, 625) == 0


def test_format_usd():
    assert format_usd(5450000) == "$54,500.00"
    assert format_usd(-60000) == "-$600.00"
    assert format_usd(5) == "$0.05"
