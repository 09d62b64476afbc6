from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    buyer_name: str
    buyer_email: Optional[str] = None
    model_code: str
    model_name: Optional[str] = None

    # Client-supplied Idempotency-Key of the request that created the order
    idempotency_key: Optional[str] = Field(default=None, unique=True, index=True)

    # Delivery (folded in from a DeliveryQuote)
    delivery_zip: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_miles: Optional[float] = None
    eta_weeks_min: Optional[int] = None
    eta_weeks_max: Optional[int] = None

    # Pricing snapshot, all in cents. Derived, recomputed on every save.
    base_cents: int = 0
    options_cents: int = 0
    delivery_cents: int = 0
    setup_cents: int = 0
    tax_cents: int = 0
    discounts_cents: int = 0
    total_cents: int = 0
    tax_rate_bp: Optional[int] = None
    tax_basis: Optional[str] = None
    deposit_percent_bp: int = 0
    deposit_due_cents: int = 0

    # Payment status from the payment provider's webhooks
    payment_status: str = "pending"          # pending | succeeded | failed
    payment_reference: Optional[str] = None
    amount_paid_cents: int = 0
    last_payment_error: Optional[str] = None
    needs_reconciliation: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class OrderOption(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    code: str
    name: str
    unit_price_cents: int
    quantity: int
    line_total_cents: int


class PaymentEvent(SQLModel, table=True):
    """A succeeded payment that has been booked on an order. One row per provider reference."""
    id: Optional[int] = Field(default=None, primary_key=True)
    reference: str = Field(unique=True, index=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    event_type: str
    amount_cents: Optional[int] = None       # None when the provider sent something unusable
    received_at: datetime = Field(default_factory=utcnow)
