"""
Order price aggregation.

Idea:
- An order price is base + options + delivery + setup + tax + discounts.
- All amounts are ints in cents (see src.core.money).
- discounts is the only signed field (<= 0). The total is floored at 0 so a
  discount can never turn into a refund.
- Tax is either a precomputed amount or a TaxRate. A rate always names its
  basis explicitly (goods only, or goods plus fees).

Everything here is pure: same input -> same PricingBreakdown. Persisting the
breakdown is up to the caller (see src.services.order_service).
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Iterable, Sequence, Union

from src.core.errors import InvalidAmount, InvalidInput, InvalidQuantity
from src.core.money import apply_rate


@dataclass(frozen=True)
class OptionSelection:
    code: str
    name: str
    unit_price: int   # cents
    quantity: int = 1


class TaxBasis(str, Enum):
    GOODS = "goods"                    # base + options
    GOODS_AND_FEES = "goods_and_fees"  # base + options + delivery + setup


@dataclass(frozen=True)
class TaxRate:
    basis_points: int                  # 6.25 % -> 625
    basis: TaxBasis = TaxBasis.GOODS


@dataclass(frozen=True)
class PricingBreakdown:
    base: int
    options: int
    delivery: int
    setup: int
    tax: int
    discounts: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class PaymentSchedule:
    total: int
    deposit_percent_bp: int
    deposit_due: int
    final_payment: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _require_money(value: Any, field: str, *, allow_negative: bool = False) -> int:
    # bool is an int subclass, but True is never a price
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{field} must be an integer amount in cents, got {value!r}", field=field)
    if value < 0 and not allow_negative:
        raise InvalidAmount(f"{field} must not be negative ({value})", field=field)
    return value


def _validate_selection(sel: OptionSelection) -> None:
    if not isinstance(sel.code, str) or not sel.code.strip():
        raise InvalidInput("option code must be a non-empty string", field="code")
    _require_money(sel.unit_price, f"options[{sel.code}].unit_price")
    if isinstance(sel.quantity, bool) or not isinstance(sel.quantity, int) or sel.quantity < 1:
        raise InvalidQuantity(
            f"quantity for option {sel.code!r} must be an integer >= 1, got {sel.quantity!r}",
            field=f"options[{sel.code}].quantity",
        )


def options_total(selections: Iterable[OptionSelection]) -> int:
    """
    Sum of unit_price * quantity over all selections.

    Fails on quantity < 1 (InvalidQuantity), negative unit price
    (InvalidAmount) and duplicate option codes (InvalidInput).
    """
    total = 0
    seen = set()
    for sel in selections:
        _validate_selection(sel)
        if sel.code in seen:
            raise InvalidInput(f"option {sel.code!r} selected twice", field="options")
        seen.add(sel.code)
        total += sel.unit_price * sel.quantity
    return total


def compute_tax(
    tax_rate: TaxRate,
    *,
    base: int,
    options: int,
    delivery: int = 0,
    setup: int = 0,
) -> int:
    if isinstance(tax_rate.basis_points, bool) or not isinstance(tax_rate.basis_points, int) \
            or tax_rate.basis_points < 0:
        raise InvalidAmount("tax rate must be a non-negative number of basis points", field="tax")

    try:
        basis = TaxBasis(tax_rate.basis)
    except ValueError:
        raise InvalidInput(f"unknown tax basis {tax_rate.basis!r}", field="tax_basis")

    taxable = base + options
    if basis is TaxBasis.GOODS_AND_FEES:
        taxable += delivery + setup
    return apply_rate(taxable, tax_rate.basis_points)


def aggregate_pricing(
    *,
    base: int,
    selections: Sequence[OptionSelection] = (),
    delivery: int = 0,
    setup: int = 0,
    tax: Union[int, TaxRate] = 0,
    discounts: int = 0,
) -> PricingBreakdown:
    """
    Builds a complete PricingBreakdown.

    Flow:
      1. Validate every Money input (ints, >= 0; discounts <= 0).
      2. options = sum(unit_price * quantity).
      3. tax: use the given amount, or apply the TaxRate on its basis.
      4. total = max(0, base + options + delivery + setup + tax + discounts).
    """
    base = _require_money(base, "base")
    delivery = _require_money(delivery, "delivery")
    setup = _require_money(setup, "setup")
    discounts = _require_money(discounts, "discounts", allow_negative=True)
    if discounts > 0:
        raise InvalidAmount("discounts must be zero or negative", field="discounts")

    opts = options_total(selections)

    if isinstance(tax, TaxRate):
        tax_amount = compute_tax(tax, base=base, options=opts, delivery=delivery, setup=setup)
    else:
        tax_amount = _require_money(tax, "tax")

    total = max(0, base + opts + delivery + setup + tax_amount + discounts)

    return PricingBreakdown(
        base=base,
        options=opts,
        delivery=delivery,
        setup=setup,
        tax=tax_amount,
        discounts=discounts,
        total=total,
    )


def payment_schedule(total: int, deposit_percent_bp: int) -> PaymentSchedule:
    """
    Splits a total into deposit and final payment.

    deposit_due is rounded half-up; final_payment takes the remainder so the
    two always add up to total exactly.
    """
    total = _require_money(total, "total")
    if isinstance(deposit_percent_bp, bool) or not isinstance(deposit_percent_bp, int) \
            or not 0 <= deposit_percent_bp <= 10_000:
        raise InvalidAmount("deposit percent must be between 0 and 100", field="deposit_percent")

    deposit = apply_rate(total, deposit_percent_bp)
    return PaymentSchedule(
        total=total,
        deposit_percent_bp=deposit_percent_bp,
        deposit_due=deposit,
        final_payment=total - deposit,
    )

