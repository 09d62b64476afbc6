import pytest

from src.core.errors import InvalidInput, ServiceUnavailable
from src.services.delivery_quote import (
    DeliveryConfig,
    DeliveryQuoteEstimator,
    compute_delivery_fee,
    compute_eta_weeks,
    normalize_zip,
)
from src.services.distance_lookup import ZipTableDistanceLookup

CONFIG = DeliveryConfig()


class FailingLookup:
    def miles_to(self, zip_code, address=None):
        raise ServiceUnavailable("maps down")


class RecordingLookup:
    def __init__(self, miles):
        self.miles = miles
        self.calls = []

    def miles_to(self, zip_code, address=None):
        self.calls.append((zip_code, address))
        return self.miles


def test_normalize_zip():
    assert normalize_zip(" 76063 ") == "76063"
    assert normalize_zip("76063-1234") == "76063"


@pytest.mark.parametrize("bad", ["", None, "   ", "7606", "ABCDE", "76063-12"])
def test_normalize_zip_rejects(bad):
    with pytest.raises(InvalidInput):
        normalize_zip(bad)


def test_minimum_fee_inside_included_miles():
    assert compute_delivery_fee(0, CONFIG) == 150000
    assert compute_delivery_fee(50, CONFIG) == 150000
    assert compute_delivery_fee(120, CONFIG) == 150000


def test_rate_per_started_mile_beyond_included():
    # 183 billable miles * $12.50
    assert compute_delivery_fee(303, CONFIG) == 228750
    # 120.3 -> one started mile, still under the minimum
    assert compute_delivery_fee(120.3, CONFIG) == 150000
    assert compute_delivery_fee(1055, CONFIG) == 935 * 1250


def test_fee_capped_at_maximum():
    assert compute_delivery_fee(3000, CONFIG) == 2500000


def test_fee_without_cap():
    cfg = DeliveryConfig(maximum_fee_cents=None)
    assert compute_delivery_fee(3000, cfg) == 2880 * 1250


def test_base_fee_added():
    cfg = DeliveryConfig(base_fee_cents=50000, minimum_fee_cents=0)
    assert compute_delivery_fee(130, cfg) == 50000 + 10 * 1250


def test_fee_is_monotonic_in_distance():
    fees = [compute_delivery_fee(m / 2, CONFIG) for m in range(0, 8000)]
    assert fees == sorted(fees)


def test_negative_distance_rejected():
    with pytest.raises(InvalidInput):
        compute_delivery_fee(-1, CONFIG)


def test_eta_window():
    assert compute_eta_weeks(0, CONFIG) == (6, 16)
    assert compute_eta_weeks(195, CONFIG) == (7, 17)
    assert compute_eta_weeks(1055, CONFIG) == (9, 19)


def test_quote_is_deterministic():
    est = DeliveryQuoteEstimator(ZipTableDistanceLookup({"787": 195}), CONFIG)
    a = est.quote("78701")
    b = est.quote("78701")
    assert a == b
    assert a.fee == 150000
    assert a.distance_miles == 195
    assert (a.eta_weeks_min, a.eta_weeks_max) == (7, 17)
    assert a.destination == "78701"


def test_quote_passes_address_to_lookup_and_shows_it():
    lookup = RecordingLookup(303.04)
    q = DeliveryQuoteEstimator(lookup, CONFIG).quote("79901", "1 Main St, El Paso, TX")
    assert lookup.calls == [("79901", "1 Main St, El Paso, TX")]
    assert q.destination == "1 Main St, El Paso, TX"
    assert q.distance_miles == 303.0
    assert q.fee == 228750


def test_unresolvable_zip_is_invalid_input():
    est = DeliveryQuoteEstimator(ZipTableDistanceLookup({"787": 195}), CONFIG)
    with pytest.raises(InvalidInput):
        est.quote("10001")


def test_zip_outside_service_area():
    cfg = DeliveryConfig(serviceable_zip_prefixes=("75", "76", "77", "78", "79"))
    lookup = RecordingLookup(10)
    with pytest.raises(InvalidInput):
        DeliveryQuoteEstimator(lookup, cfg).quote("10001")
    assert lookup.calls == []


def test_lookup_outage_is_service_unavailable():
    with pytest.raises(ServiceUnavailable) as exc:
        DeliveryQuoteEstimator(FailingLookup(), CONFIG).quote("76063")
    assert exc.value.retryable is True
