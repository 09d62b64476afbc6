from pydantic import BaseModel, Field
from typing import List, Optional


class OptionSelectionIn(BaseModel):
    """
    One selected option, e.g.:
      {"code": "FLOOR-UPG", "name": "Upgraded Flooring", "unit_price_cents": 120000, "quantity": 1}
    """
    code: str
    name: str
    unit_price_cents: int
    quantity: int = 1


class TaxIn(BaseModel):
    """
    Either a precomputed amount or a rate, never both.

    rate_percent is applied to `basis`:
      - "goods"          -> base + options (default)
      - "goods_and_fees" -> base + options + delivery + setup
    """
    amount_cents: Optional[int] = None
    rate_percent: Optional[str] = None   # "6.25", kept as text so no float rounding sneaks in
    basis: str = "goods"


class OrderPriceIn(BaseModel):
    base_price_cents: int
    options: List[OptionSelectionIn] = Field(default_factory=list)
    delivery_fee_cents: int = 0
    setup_fee_cents: Optional[int] = None          # None -> SETUP_FEE_DEFAULT
    tax: Optional[TaxIn] = None                    # None -> TAX_RATE_PERCENT on goods
    discounts_cents: int = 0
    deposit_percent: Optional[str] = None          # None -> DEPOSIT_PERCENT


class PricingBreakdownOut(BaseModel):
    base: int
    options: int
    delivery: int
    setup: int
    tax: int
    discounts: int
    total: int


class PaymentScheduleOut(BaseModel):
    total: int
    deposit_percent_bp: int
    deposit_due: int
    final_payment: int


class OrderPriceOut(BaseModel):
    pricing: PricingBreakdownOut
    payment_schedule: PaymentScheduleOut
    display: dict


class OrderCreateIn(OrderPriceIn):
    buyer_name: str
    buyer_email: Optional[str] = None
    model_code: str
    model_name: Optional[str] = None

    delivery_zip: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_miles: Optional[float] = None
    eta_weeks_min: Optional[int] = None
    eta_weeks_max: Optional[int] = None
