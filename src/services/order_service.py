from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from src.core.errors import InvalidInput
from src.core.money import format_usd, percent_to_basis_points
from src.server.models import Order, OrderOption
from src.server.models.order import utcnow
from src.server.schemas.order import OrderCreateIn, OrderPriceIn, TaxIn
from src.services.pricing import (
    OptionSelection,
    PaymentSchedule,
    PricingBreakdown,
    TaxBasis,
    TaxRate,
    aggregate_pricing,
    payment_schedule,
)


def _resolve_tax(tax: Optional[TaxIn], default_rate_bp: int) -> Union[int, TaxRate]:
    """
    Tax rules:
      1) No tax block -> org default rate on goods (base + options).
      2) amount_cents -> used as-is.
      3) rate_percent -> TaxRate on the given basis.
      Both amount and rate -> InvalidInput, the caller has to pick one.
    """
    if tax is None:
        return TaxRate(basis_points=default_rate_bp, basis=TaxBasis.GOODS)

    if tax.amount_cents is not None and tax.rate_percent is not None:
        raise InvalidInput("give either tax.amount_cents or tax.rate_percent, not both", field="tax")

    if tax.amount_cents is not None:
        return tax.amount_cents

    rate_bp = default_rate_bp
    if tax.rate_percent is not None:
        rate_bp = percent_to_basis_points(tax.rate_percent, field="tax.rate_percent")

    try:
        basis = TaxBasis(tax.basis)
    except ValueError:
        raise InvalidInput(f"unknown tax basis {tax.basis!r}", field="tax.basis")
    return TaxRate(basis_points=rate_bp, basis=basis)


def _selections(payload: OrderPriceIn) -> List[OptionSelection]:
    return [
        OptionSelection(
            code=o.code.strip(),
            name=o.name,
            unit_price=o.unit_price_cents,
            quantity=o.quantity,
        )
        for o in payload.options
    ]


def price_order(payload: OrderPriceIn, settings: Any) -> Tuple[PricingBreakdown, PaymentSchedule, Union[int, TaxRate]]:
    setup = payload.setup_fee_cents if payload.setup_fee_cents is not None else settings.setup_fee_cents
    tax = _resolve_tax(payload.tax, settings.tax_rate_bp)

    breakdown = aggregate_pricing(
        base=payload.base_price_cents,
        selections=_selections(payload),
        delivery=payload.delivery_fee_cents,
        setup=setup,
        tax=tax,
        discounts=payload.discounts_cents,
    )

    deposit_bp = settings.deposit_percent_bp
    if payload.deposit_percent is not None:
        deposit_bp = percent_to_basis_points(payload.deposit_percent, field="deposit_percent")
    schedule = payment_schedule(breakdown.total, deposit_bp)
    return breakdown, schedule, tax


def display_breakdown(breakdown: PricingBreakdown) -> Dict[str, str]:
    return {k: format_usd(v) for k, v in breakdown.to_dict().items()}


def make_price_draft(*, payload: OrderPriceIn, settings: Any) -> Dict[str, Any]:
    """Price an order without saving it (configurator / review page)."""
    breakdown, schedule, _ = price_order(payload, settings)
    return {
        "pricing": breakdown.to_dict(),
        "payment_schedule": schedule.to_dict(),
        "display": display_breakdown(breakdown),
    }


def find_order_by_idempotency_key(key: str, session: Session) -> Optional[Order]:
    return session.exec(select(Order).where(Order.idempotency_key == key)).first()


def create_order(
    *,
    payload: OrderCreateIn,
    session: Session,
    settings: Any,
    idempotency_key: Optional[str] = None,
) -> Order:
    """
    Saves an order with its option lines and a fresh pricing snapshot.

    Taken as given from the client: option unit prices and quantities, the
    delivery fee and the delivery details (zip, miles, ETA; the configurator
    gets them from /delivery/quote). Everything derived (options, tax,
    total, deposit) is recomputed here, so client-side totals are ignored.

    With an idempotency_key, a repeated request returns the order that the
    first request created instead of saving a second one.
    """
    if idempotency_key:
        existing = find_order_by_idempotency_key(idempotency_key, session)
        if existing is not None:
            return existing

    breakdown, schedule, tax = price_order(payload, settings)

    order = Order(
        idempotency_key=idempotency_key or None,
        buyer_name=payload.buyer_name,
        buyer_email=payload.buyer_email,
        model_code=payload.model_code,
        model_name=payload.model_name,
        delivery_zip=payload.delivery_zip,
        delivery_address=payload.delivery_address,
        delivery_miles=payload.delivery_miles,
        eta_weeks_min=payload.eta_weeks_min,
        eta_weeks_max=payload.eta_weeks_max,
        base_cents=breakdown.base,
        options_cents=breakdown.options,
        delivery_cents=breakdown.delivery,
        setup_cents=breakdown.setup,
        tax_cents=breakdown.tax,
        discounts_cents=breakdown.discounts,
        total_cents=breakdown.total,
        tax_rate_bp=tax.basis_points if isinstance(tax, TaxRate) else None,
        tax_basis=tax.basis.value if isinstance(tax, TaxRate) else None,
        deposit_percent_bp=schedule.deposit_percent_bp,
        deposit_due_cents=schedule.deposit_due,
    )
    session.add(order)
    try:
        session.flush()
    except IntegrityError:
        # a concurrent request with the same key won the insert
        session.rollback()
        existing = find_order_by_idempotency_key(idempotency_key, session) if idempotency_key else None
        if existing is None:
            raise
        return existing

    for sel in _selections(payload):
        session.add(
            OrderOption(
                order_id=order.id,
                code=sel.code,
                name=sel.name,
                unit_price_cents=sel.unit_price,
                quantity=sel.quantity,
                line_total_cents=sel.unit_price * sel.quantity,
            )
        )

    session.commit()
    session.refresh(order)
    return order


def order_breakdown(order: Order) -> PricingBreakdown:
    return PricingBreakdown(
        base=order.base_cents,
        options=order.options_cents,
        delivery=order.delivery_cents,
        setup=order.setup_cents,
        tax=order.tax_cents,
        discounts=order.discounts_cents,
        total=order.total_cents,
    )


def serialize_order(order: Order, session: Session) -> Dict[str, Any]:
    lines = session.exec(
        select(OrderOption).where(OrderOption.order_id == order.id)
    ).all()
    breakdown = order_breakdown(order)

    return {
        "id": order.id,
        "buyer_name": order.buyer_name,
        "buyer_email": order.buyer_email,
        "model_code": order.model_code,
        "model_name": order.model_name,
        "delivery": {
            "zip": order.delivery_zip,
            "address": order.delivery_address,
            "miles": order.delivery_miles,
            "eta_weeks_min": order.eta_weeks_min,
            "eta_weeks_max": order.eta_weeks_max,
        },
        "options": [
            {
                "code": l.code,
                "name": l.name,
                "unit_price_cents": l.unit_price_cents,
                "quantity": l.quantity,
                "line_total_cents": l.line_total_cents,
            }
            for l in lines
        ],
        "pricing": breakdown.to_dict(),
        "display": display_breakdown(breakdown),
        "deposit_percent_bp": order.deposit_percent_bp,
        "deposit_due_cents": order.deposit_due_cents,
        "payment": {
            "status": order.payment_status,
            "reference": order.payment_reference,
            "amount_paid_cents": order.amount_paid_cents,
            "last_error": order.last_payment_error,
            "needs_reconciliation": order.needs_reconciliation,
        },
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }


def list_orders(*, skip: int, limit: int, session: Session) -> List[Dict[str, Any]]:
    rows = session.exec(select(Order).offset(skip).limit(limit)).all()
    return [serialize_order(o, session) for o in rows]


def touch(order: Order) -> None:
    order.updated_at = utcnow()
