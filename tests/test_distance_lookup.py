from types import SimpleNamespace

import pytest
import requests

from src.core.errors import ServiceUnavailable
from src.services import distance_lookup
from src.services.distance_lookup import (
    GoogleDistanceLookup,
    MapboxDistanceLookup,
    ZipTableDistanceLookup,
    build_distance_lookup,
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def _google_payload(meters=None, element_status="OK", status="OK"):
    element = {"status": element_status}
    if meters is not None:
        element["distance"] = {"value": meters}
    return {"status": status, "rows": [{"elements": [element]}]}


def test_google_converts_meters_to_miles(monkeypatch):
    seen = {}

    def fake_get(url, params=None, timeout=None):
        seen.update(url=url, params=params, timeout=timeout)
        return FakeResponse(_google_payload(meters=1609344))

    monkeypatch.setattr(distance_lookup.requests, "get", fake_get)
    lookup = GoogleDistanceLookup(api_key="k", origin="Mansfield, TX", timeout=3)

    assert lookup.miles_to("78701") == pytest.approx(1000.0)
    assert seen["timeout"] == 3
    assert seen["params"]["destinations"] == "78701"
    assert seen["params"]["units"] == "imperial"


def test_google_not_found_is_none(monkeypatch):
    monkeypatch.setattr(
        distance_lookup.requests, "get",
        lambda url, params=None, timeout=None: FakeResponse(_google_payload(element_status="NOT_FOUND")),
    )
    assert GoogleDistanceLookup(api_key="k", origin="o").miles_to("00000") is None


def test_google_quota_is_service_unavailable(monkeypatch):
    monkeypatch.setattr(
        distance_lookup.requests, "get",
        lambda url, params=None, timeout=None: FakeResponse({"status": "OVER_QUERY_LIMIT"}),
    )
    with pytest.raises(ServiceUnavailable):
        GoogleDistanceLookup(api_key="k", origin="o").miles_to("78701")


def test_timeout_is_service_unavailable(monkeypatch):
    def boom(url, params=None, timeout=None):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(distance_lookup.requests, "get", boom)
    with pytest.raises(ServiceUnavailable):
        GoogleDistanceLookup(api_key="k", origin="o").miles_to("78701")


def test_http_error_is_service_unavailable(monkeypatch):
    monkeypatch.setattr(
        distance_lookup.requests, "get",
        lambda url, params=None, timeout=None: FakeResponse({}, status_code=502),
    )
    with pytest.raises(ServiceUnavailable):
        GoogleDistanceLookup(api_key="k", origin="o").miles_to("78701")


def test_invalid_json_is_service_unavailable(monkeypatch):
    monkeypatch.setattr(
        distance_lookup.requests, "get",
        lambda url, params=None, timeout=None: FakeResponse(ValueError("no json")),
    )
    with pytest.raises(ServiceUnavailable):
        GoogleDistanceLookup(api_key="k", origin="o").miles_to("78701")


def test_mapbox_geocodes_then_routes(monkeypatch):
    def fake_get(url, params=None, timeout=None):
        if "geocode" in url:
            if params["q"].startswith("Mansfield"):
                return FakeResponse({"features": [{"geometry": {"coordinates": [-97.14, 32.56]}}]})
            return FakeResponse({"features": [{"geometry": {"coordinates": [-97.74, 30.27]}}]})
        assert "-97.14,32.56;-97.74,30.27" in url
        return FakeResponse({"code": "Ok", "routes": [{"distance": 321868.8}]})

    monkeypatch.setattr(distance_lookup.requests, "get", fake_get)
    lookup = MapboxDistanceLookup(token="t", origin="Mansfield, TX")
    assert lookup.miles_to("78701") == pytest.approx(200.0)


def test_mapbox_unknown_destination_is_none(monkeypatch):
    def fake_get(url, params=None, timeout=None):
        if params["q"].startswith("Mansfield"):
            return FakeResponse({"features": [{"geometry": {"coordinates": [-97.14, 32.56]}}]})
        return FakeResponse({"features": []})

    monkeypatch.setattr(distance_lookup.requests, "get", fake_get)
    assert MapboxDistanceLookup(token="t", origin="Mansfield, TX").miles_to("00000") is None


def test_zip_table_prefers_full_zip_over_prefix():
    lookup = ZipTableDistanceLookup({"787": 195, "78701": 190})
    assert lookup.miles_to("78701") == 190
    assert lookup.miles_to("78745") == 195
    assert lookup.miles_to("10001") is None


def test_zip_table_from_yaml(tmp_path):
    path = tmp_path / "zips.yaml"
    path.write_text('zips:\n  "076": 1500\n  "76063": 0\n', encoding="utf-8")
    lookup = ZipTableDistanceLookup.from_yaml(path)
    assert lookup.miles_to("07601") == 1500
    assert lookup.miles_to("76063") == 0


def test_bundled_zip_table_has_factory_zip():
    assert ZipTableDistanceLookup.from_yaml().miles_to("76063") == 0


def _settings(**kw):
    base = dict(
        google_maps_key="",
        mapbox_token="",
        factory_address="606 S 2nd Ave, Mansfield, TX 76063",
        distance_lookup_timeout=5.0,
        zip_distance_table=None,
    )
    base.update(kw)
    return SimpleNamespace(**base)


def test_build_distance_lookup_order():
    assert isinstance(build_distance_lookup(_settings(google_maps_key="g", mapbox_token="m")), GoogleDistanceLookup)
    assert isinstance(build_distance_lookup(_settings(mapbox_token="m")), MapboxDistanceLookup)
    assert isinstance(build_distance_lookup(_settings()), ZipTableDistanceLookup)
