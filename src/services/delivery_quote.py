"""
Delivery quotes: ZIP code -> fee and ETA window.

Fee model (same numbers as the org settings in the admin):
- The first `included_miles` from the factory are covered by the minimum fee.
- Every started mile beyond that costs `rate_per_mile_cents`.
- fee = base_fee + rate * billable_miles, clamped to [minimum, maximum].

ETA model:
- eta_min = lead_time_weeks + ceil(miles / miles_per_week)
- eta_max = eta_min + buffer_weeks

Both are pure functions of distance, so the same ZIP always gets the same
quote. The only I/O is the distance lookup, which is injected.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional, Protocol, Tuple

from src.core.errors import InvalidInput

RE_ZIP = re.compile(r"^(?P<zip5>\d{5})(?:-\d{4})?$")


@dataclass
class DeliveryConfig:
    base_fee_cents: int = 0
    rate_per_mile_cents: int = 1250        # $12.50 / mile
    included_miles: int = 120
    minimum_fee_cents: int = 150_000       # $1,500
    maximum_fee_cents: Optional[int] = 2_500_000   # $25,000, None = no cap
    lead_time_weeks: int = 6               # build time before the truck leaves
    miles_per_week: int = 500
    buffer_weeks: int = 10
    # Empty = every US ZIP is serviceable. Otherwise 3-digit prefixes, e.g. ("750", "761").
    serviceable_zip_prefixes: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DeliveryQuote:
    fee: int
    distance_miles: float
    eta_weeks_min: int
    eta_weeks_max: int
    zip_code: str
    destination: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DistanceLookup(Protocol):
    def miles_to(self, zip_code: str, address: Optional[str] = None) -> Optional[float]:
        """
        Driving distance from the factory in miles.

        None when the destination cannot be resolved; raises
        ServiceUnavailable when the backing service cannot be reached.
        """
        ...


def normalize_zip(zip_code: Any) -> str:
    """ " 76063-1234 " -> "76063". Empty or malformed -> InvalidInput. """
    raw = str(zip_code or "").strip()
    if not raw:
        raise InvalidInput("zip is required", field="zip")
    m = RE_ZIP.match(raw)
    if not m:
        raise InvalidInput(f"not a valid US ZIP code: {raw!r}", field="zip")
    return m.group("zip5")


def _check_distance(distance_miles: float) -> float:
    try:
        miles = float(distance_miles)
    except (TypeError, ValueError):
        raise InvalidInput(f"distance must be a number, got {distance_miles!r}", field="distance")
    if math.isnan(miles) or math.isinf(miles) or miles < 0:
        raise InvalidInput(f"distance must be a finite number >= 0, got {distance_miles!r}", field="distance")
    # tenth of a mile is as precise as any routing service gets
    return round(miles, 1)


def compute_delivery_fee(distance_miles: float, config: DeliveryConfig) -> int:
    miles = _check_distance(distance_miles)
    billable = max(0, math.ceil(miles - config.included_miles))
    fee = config.base_fee_cents + config.rate_per_mile_cents * billable
    fee = max(fee, config.minimum_fee_cents)
    if config.maximum_fee_cents is not None:
        fee = min(fee, config.maximum_fee_cents)
    return fee


def compute_eta_weeks(distance_miles: float, config: DeliveryConfig) -> Tuple[int, int]:
    miles = _check_distance(distance_miles)
    transit = math.ceil(miles / config.miles_per_week) if config.miles_per_week > 0 else 0
    eta_min = config.lead_time_weeks + transit
    return eta_min, eta_min + config.buffer_weeks


class DeliveryQuoteEstimator:
    def __init__(self, lookup: DistanceLookup, config: Optional[DeliveryConfig] = None) -> None:
        self.lookup = lookup
        self.config = config or DeliveryConfig()

    def _check_serviceable(self, zip5: str) -> None:
        prefixes = self.config.serviceable_zip_prefixes
        if prefixes and not any(zip5.startswith(p) for p in prefixes):
            raise InvalidInput(f"we do not deliver to ZIP {zip5} yet", field="zip")

    def quote(self, zip_code: Any, address: Optional[str] = None) -> DeliveryQuote:
        """
        Flow:
          1) Validate ZIP and serviceable region (InvalidInput).
          2) Ask the lookup for miles. ServiceUnavailable passes through.
          3) None from the lookup -> InvalidInput (cannot resolve destination).
          4) Fee and ETA from the pure functions above.
        """
        zip5 = normalize_zip(zip_code)
        self._check_serviceable(zip5)

        address = (address or "").strip() or None
        miles = self.lookup.miles_to(zip5, address)
        if miles is None:
            raise InvalidInput(f"could not resolve a route to ZIP {zip5}", field="zip")

        miles = _check_distance(miles)
        fee = compute_delivery_fee(miles, self.config)
        eta_min, eta_max = compute_eta_weeks(miles, self.config)

        return DeliveryQuote(
            fee=fee,
            distance_miles=miles,
            eta_weeks_min=eta_min,
            eta_weeks_max=eta_max,
            zip_code=zip5,
            destination=address or zip5,
        )
