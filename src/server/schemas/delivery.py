from pydantic import BaseModel
from typing import Optional


class DeliveryQuoteIn(BaseModel):
    zip: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None

    def display_address(self) -> Optional[str]:
        parts = [p.strip() for p in (self.address, self.city, self.state) if p and p.strip()]
        return ", ".join(parts) or None


class DeliveryQuoteOut(BaseModel):
    fee: int
    fee_display: str
    distance_miles: float
    eta_weeks_min: int
    eta_weeks_max: int
    zip_code: str
    destination: str
