from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import requests
import yaml

from src.core.errors import ServiceUnavailable

# Project root
ROOT = Path(__file__).resolve().parents[2]

DEFAULT_ZIP_TABLE_PATH = ROOT / "knowledge" / "delivery" / "zip_distances.yaml"

GOOGLE_DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
MAPBOX_GEOCODE_URL = "https://api.mapbox.com/search/geocode/v6/forward"
MAPBOX_DIRECTIONS_URL = "https://api.mapbox.com/directions/v5/mapbox/driving/{coords}"

METERS_PER_MILE = 1609.344
DEFAULT_TIMEOUT = 10.0


def _destination(zip_code: str, address: Optional[str]) -> str:
    # Full address routes more precisely; the ZIP alone is enough for a quote.
    if address and zip_code not in address:
        return f"{address}, {zip_code}"
    return address or zip_code


def _get_json(url: str, params: Dict[str, Any], *, timeout: float, source: str) -> Dict[str, Any]:
    """
    GET with a bounded timeout. Every transport or API-level failure is
    reported as ServiceUnavailable so the caller knows it may retry.
    """
    try:
        resp = requests.get(url, params=params, timeout=timeout)
    except requests.RequestException as e:
        print(f"[distance] {source} network error: {e}", file=sys.stderr)
        raise ServiceUnavailable(f"{source} distance lookup failed: {e}")

    if resp.status_code != 200:
        print(f"[distance] {source} API ERROR {resp.status_code}: {resp.text[:200]}", file=sys.stderr)
        raise ServiceUnavailable(f"{source} distance lookup returned HTTP {resp.status_code}")

    try:
        return resp.json()
    except ValueError:
        print(f"[distance] {source} returned invalid JSON", file=sys.stderr)
        raise ServiceUnavailable(f"{source} distance lookup returned invalid JSON")


# ---------------------------------------------------------
# Google Distance Matrix
# ---------------------------------------------------------

class GoogleDistanceLookup:
    # Top-level statuses that mean "try again later" rather than "bad address"
    UNAVAILABLE_STATUSES = {"OVER_QUERY_LIMIT", "OVER_DAILY_LIMIT", "REQUEST_DENIED", "UNKNOWN_ERROR"}

    def __init__(self, *, api_key: str, origin: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.api_key = api_key
        self.origin = origin
        self.timeout = timeout

    def miles_to(self, zip_code: str, address: Optional[str] = None) -> Optional[float]:
        params = {
            "origins": self.origin,
            "destinations": _destination(zip_code, address),
            "units": "imperial",
            "key": self.api_key,
        }
        data = _get_json(GOOGLE_DISTANCE_MATRIX_URL, params, timeout=self.timeout, source="google")

        status = data.get("status")
        if status in self.UNAVAILABLE_STATUSES:
            print(f"[distance] google status {status}: {data.get('error_message', '')}", file=sys.stderr)
            raise ServiceUnavailable(f"google distance lookup status {status}")
        if status != "OK":
            # INVALID_REQUEST, MAX_ELEMENTS_EXCEEDED etc: the destination is the problem
            return None

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError):
            return None

        if element.get("status") != "OK":
            return None

        meters = (element.get("distance") or {}).get("value")
        if meters is None:
            return None
        return float(meters) / METERS_PER_MILE


# ---------------------------------------------------------
# Mapbox (geocoding + driving directions)
# ---------------------------------------------------------

class MapboxDistanceLookup:
    def __init__(self, *, token: str, origin: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.token = token
        self.origin = origin
        self.timeout = timeout

    def _geocode(self, query: str) -> Optional[Tuple[float, float]]:
        data = _get_json(
            MAPBOX_GEOCODE_URL,
            {"q": query, "country": "us", "limit": 1, "access_token": self.token},
            timeout=self.timeout,
            source="mapbox",
        )
        features = data.get("features") or []
        if not features:
            return None
        coords = (features[0].get("geometry") or {}).get("coordinates") or []
        if len(coords) < 2:
            return None
        lng, lat = coords[0], coords[1]
        return float(lng), float(lat)

    def miles_to(self, zip_code: str, address: Optional[str] = None) -> Optional[float]:
        origin = self._geocode(self.origin)
        if origin is None:
            # Our own factory address not geocoding is a config problem, not the buyer's
            raise ServiceUnavailable("mapbox could not geocode the factory address")

        dest = self._geocode(_destination(zip_code, address))
        if dest is None:
            return None

        coords = f"{origin[0]},{origin[1]};{dest[0]},{dest[1]}"
        data = _get_json(
            MAPBOX_DIRECTIONS_URL.format(coords=coords),
            {"access_token": self.token, "overview": "false"},
            timeout=self.timeout,
            source="mapbox",
        )
        if data.get("code") not in (None, "Ok"):
            return None

        routes = data.get("routes") or []
        if not routes:
            return None
        meters = routes[0].get("distance")
        if meters is None:
            return None
        return float(meters) / METERS_PER_MILE


# ---------------------------------------------------------
# Static ZIP table (dev, CLI, tests)
# ---------------------------------------------------------

class ZipTableDistanceLookup:
    """
    Deterministic lookup from a table of ZIP -> miles.

    Keys are either full 5-digit ZIPs or 3-digit prefixes. A full ZIP wins
    over its prefix. Unknown ZIPs resolve to None.
    """

    def __init__(self, table: Dict[str, float]) -> None:
        self.table: Dict[str, float] = {}
        for key, miles in (table or {}).items():
            if key is None or miles is None:
                continue
            self.table[str(key).strip()] = float(miles)

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "ZipTableDistanceLookup":
        return cls(_load_zip_table(str(path or DEFAULT_ZIP_TABLE_PATH)))

    def miles_to(self, zip_code: str, address: Optional[str] = None) -> Optional[float]:
        zip5 = str(zip_code).strip()[:5]
        if zip5 in self.table:
            return self.table[zip5]
        return self.table.get(zip5[:3])


@lru_cache(maxsize=8)
def _load_zip_table(path_str: str) -> Dict[str, float]:
    """
    Reads the YAML table once. Supported shapes:

      zips: { "76063": 0, "750": 35 }
    or just the mapping at top level.
    """
    path = Path(path_str)
    if not path.exists():
        print(f"[distance] ZIP table not found at {path}", file=sys.stderr)
        return {}

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if isinstance(data, dict) and isinstance(data.get("zips"), dict):
        data = data["zips"]
    if not isinstance(data, dict):
        print(f"[distance] ZIP table {path} is expected to be a mapping", file=sys.stderr)
        return {}

    out: Dict[str, float] = {}
    for key, miles in data.items():
        try:
            out[str(key).strip()] = float(miles)
        except (TypeError, ValueError):
            continue
    return out


def build_distance_lookup(settings: Any):
    """
    Picks the lookup from settings:
      1) Google when GOOGLE_MAPS_KEY is set
      2) Mapbox when MAPBOX_TOKEN is set
      3) Static ZIP table otherwise
    """
    if settings.google_maps_key:
        return GoogleDistanceLookup(
            api_key=settings.google_maps_key,
            origin=settings.factory_address,
            timeout=settings.distance_lookup_timeout,
        )
    if settings.mapbox_token:
        return MapboxDistanceLookup(
            token=settings.mapbox_token,
            origin=settings.factory_address,
            timeout=settings.distance_lookup_timeout,
        )
    table_path = Path(settings.zip_distance_table) if settings.zip_distance_table else None
    return ZipTableDistanceLookup.from_yaml(table_path)
