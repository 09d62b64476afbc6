from typing import Optional, Tuple

from pydantic import BaseModel, Field
from dotenv import load_dotenv
import os

from src.core.money import to_cents, percent_to_basis_points
from src.services.delivery_quote import DeliveryConfig

load_dotenv()


def _env_cents(name: str, default: str) -> int:
    return to_cents(os.getenv(name, default), field=name)


def _env_prefixes() -> Tuple[str, ...]:
    raw = os.getenv("SERVICEABLE_ZIP_PREFIXES", "")
    return tuple(p.strip() for p in raw.split(",") if p.strip())


class Settings(BaseModel):
    app_name: str = "Firefly Estimator API"
    environment: str = os.getenv("ENVIRONMENT", "dev")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./firefly.db")
    debug: bool = os.getenv("DEBUG", "1") == "1"
    api_key: str = os.getenv("API_KEY", "firefly-admin-dev")

    # Distance lookup
    factory_address: str = os.getenv("FACTORY_ADDRESS", "606 S 2nd Ave, Mansfield, TX 76063")
    google_maps_key: str = os.getenv("GOOGLE_MAPS_KEY", "").strip()
    mapbox_token: str = os.getenv("MAPBOX_TOKEN", "").strip()
    distance_lookup_timeout: float = float(os.getenv("DISTANCE_LOOKUP_TIMEOUT", "10"))
    zip_distance_table: Optional[str] = os.getenv("ZIP_DISTANCE_TABLE") or None

    # Pricing defaults (cents / basis points)
    delivery_rate_per_mile_cents: int = _env_cents("DELIVERY_RATE_PER_MILE", "12.50")
    delivery_minimum_cents: int = _env_cents("DELIVERY_MINIMUM", "1500")
    delivery_maximum_cents: int = _env_cents("DELIVERY_MAXIMUM", "25000")
    delivery_included_miles: int = int(os.getenv("DELIVERY_INCLUDED_MILES", "120"))
    setup_fee_cents: int = _env_cents("SETUP_FEE_DEFAULT", "3000")
    tax_rate_bp: int = percent_to_basis_points(os.getenv("TAX_RATE_PERCENT", "6.25"))
    deposit_percent_bp: int = percent_to_basis_points(os.getenv("DEPOSIT_PERCENT", "25"))
    serviceable_zip_prefixes: Tuple[str, ...] = Field(default_factory=_env_prefixes)

    def delivery_config(self) -> DeliveryConfig:
        return DeliveryConfig(
            rate_per_mile_cents=self.delivery_rate_per_mile_cents,
            included_miles=self.delivery_included_miles,
            minimum_fee_cents=self.delivery_minimum_cents,
            maximum_fee_cents=self.delivery_maximum_cents,
            serviceable_zip_prefixes=self.serviceable_zip_prefixes,
        )

settings = Settings()
