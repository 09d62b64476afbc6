"""
Money helpers.

All amounts are ints in cents. Dollars only show up at the edges (env vars,
JSON from the UI, the CLI) and are converted here with Decimal, never float
math. Rates are ints in basis points (6.25 % -> 625).
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from src.core.errors import InvalidAmount

CENT = Decimal("0.01")
BASIS_POINTS_PER_UNIT = 10_000


def to_cents(value: Any, *, field: str = "amount") -> int:
    """
    Converts a dollar amount to cents, rounding half-up at the cent.

    Accepts:
      - int / Decimal: 1200 -> 120000
      - str: "1,200.00", "$54,500", " 12.5 "
      - float: only via str(), so 12.5 -> "12.5" -> 1250
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(f"{field} must be a number, got {value!r}", field=field)

    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, int):
        dec = Decimal(value)
    elif isinstance(value, (float, str)):
        raw = str(value).strip().replace("$", "").replace(",", "")
        try:
            dec = Decimal(raw)
        except InvalidOperation:
            raise InvalidAmount(f"{field} is not a valid amount: {value!r}", field=field)
    else:
        raise InvalidAmount(f"{field} must be a number, got {value!r}", field=field)

    if not dec.is_finite():
        raise InvalidAmount(f"{field} is not a finite amount: {value!r}", field=field)

    return int((dec.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def percent_to_basis_points(value: Any, *, field: str = "rate") -> int:
    """ "6.25" -> 625. Rounded half-up to a whole basis point. """
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(f"{field} must be a number, got {value!r}", field=field)
    try:
        dec = Decimal(str(value).strip().replace("%", ""))
    except InvalidOperation:
        raise InvalidAmount(f"{field} is not a valid percentage: {value!r}", field=field)
    if not dec.is_finite() or dec < 0:
        raise InvalidAmount(f"{field} must be a non-negative percentage", field=field)
    return int((dec * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def round_half_up_div(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    sign = -1 if numerator < 0 else 1
    q, r = divmod(abs(numerator), denominator)
    if r * 2 >= denominator:
        q += 1
    return sign * q


def apply_rate(amount_cents: int, basis_points: int) -> int:
    """amount * rate, rounded half-up to the cent. Integer math only."""
    return round_half_up_div(amount_cents * basis_points, BASIS_POINTS_PER_UNIT)


def format_usd(cents: int) -> str:
    """5450000 -> "$54,500.00", -60000 -> "-$600.00"."""
    sign = "-" if cents < 0 else ""
    dollars, rest = divmod(abs(int(cents)), 100)
    return f"{sign}${dollars:,}.{rest:02d}"
