from __future__ import annotations

from typing import Dict, List, Optional, Tuple, Union

from src.core.errors import InvalidInput
from src.services.delivery_quote import DeliveryQuote
from src.services.pricing import (
    OptionSelection,
    PricingBreakdown,
    TaxRate,
    aggregate_pricing,
)


class Cart:
    """
    A buyer's in-progress configuration.

    The cart owns its option selections and the current PricingBreakdown.
    Every change builds the new selection set on the side, prices it, and only
    then swaps both in. A change that fails validation leaves the cart exactly
    as it was.
    """

    def __init__(
        self,
        *,
        base_price: int,
        delivery_fee: int = 0,
        setup_fee: int = 0,
        tax: Union[int, TaxRate] = 0,
        discounts: int = 0,
    ) -> None:
        self.base_price = base_price
        self.delivery_fee = delivery_fee
        self.setup_fee = setup_fee
        self.tax = tax
        self.discounts = discounts
        self.delivery_eta: Optional[Tuple[int, int]] = None
        self._selections: Dict[str, OptionSelection] = {}
        self._breakdown: PricingBreakdown = self._price(self._selections, {})

    # ---- read-only views ----------------------------------------------------
    @property
    def selections(self) -> List[OptionSelection]:
        return list(self._selections.values())

    @property
    def breakdown(self) -> PricingBreakdown:
        return self._breakdown

    # ---- pricing ------------------------------------------------------------
    def _price(self, selections: Dict[str, OptionSelection], overrides: Dict[str, object]) -> PricingBreakdown:
        return aggregate_pricing(
            base=overrides.get("base_price", self.base_price),
            selections=list(selections.values()),
            delivery=overrides.get("delivery_fee", self.delivery_fee),
            setup=overrides.get("setup_fee", self.setup_fee),
            tax=overrides.get("tax", self.tax),
            discounts=overrides.get("discounts", self.discounts),
        )

    def _commit(self, selections: Dict[str, OptionSelection], **overrides) -> PricingBreakdown:
        breakdown = self._price(selections, overrides)
        # priced fine: replace everything in one go
        for name, value in overrides.items():
            setattr(self, name, value)
        self._selections = selections
        self._breakdown = breakdown
        return breakdown

    def reprice(self) -> PricingBreakdown:
        return self._commit(dict(self._selections))

    # ---- options ------------------------------------------------------------
    def select_option(self, code: str, name: str, unit_price: int, quantity: int = 1) -> PricingBreakdown:
        """Adds an option, or replaces the one with the same code."""
        nxt = dict(self._selections)
        nxt[code] = OptionSelection(code=code, name=name, unit_price=unit_price, quantity=quantity)
        return self._commit(nxt)

    def set_quantity(self, code: str, quantity: int) -> PricingBreakdown:
        current = self._selections.get(code)
        if current is None:
            raise InvalidInput(f"option {code!r} is not selected", field="code")
        nxt = dict(self._selections)
        nxt[code] = OptionSelection(
            code=current.code,
            name=current.name,
            unit_price=current.unit_price,
            quantity=quantity,
        )
        return self._commit(nxt)

    def deselect(self, code: str) -> PricingBreakdown:
        nxt = dict(self._selections)
        nxt.pop(code, None)
        return self._commit(nxt)

    # ---- fees -------------------------------------------------------------
    def apply_delivery_quote(self, quote: DeliveryQuote) -> PricingBreakdown:
        breakdown = self._commit(dict(self._selections), delivery_fee=quote.fee)
        self.delivery_eta = (quote.eta_weeks_min, quote.eta_weeks_max)
        return breakdown

    def set_discounts(self, discounts: int) -> PricingBreakdown:
        return self._commit(dict(self._selections), discounts=discounts)
