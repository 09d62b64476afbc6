"""
Payment webhook handling and amount reconciliation.

The payment provider confirms the amount it actually charged. That amount
must match what we priced (in cents, exactly). If it does not, the order is
flagged `needs_reconciliation` and an event is written to
knowledge/logs/payment_reconciliation.jsonl for someone to look at.

Events are plain dicts shaped like the provider's webhook payloads:

  {"type": "payment_intent.succeeded",
   "data": {"object": {"id": "pi_123", "amount_received": 5450000,
                       "metadata": {"order_id": "12", "milestone": "full"}}}}

The provider delivers webhooks at least once. Every succeeded payment is
booked as a PaymentEvent keyed on the provider reference (obj["id"]), and a
reference that is already booked is skipped, so a redelivery never counts
the same money twice.

Signature verification is done by the provider SDK before this module sees
the event.
"""
from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from sqlmodel import Session, select

from src.core.errors import InvalidAmount
from src.server.models import Order, PaymentEvent
from src.server.models.order import utcnow
from src.services.order_service import touch

# Project root
ROOT = Path(__file__).resolve().parents[2]

LOG_DIR = ROOT / "knowledge" / "logs"
RECONCILIATION_LOG = LOG_DIR / "payment_reconciliation.jsonl"


@dataclass(frozen=True)
class ReconciliationResult:
    expected: int
    charged: int

    @property
    def difference(self) -> int:
        return self.charged - self.expected

    @property
    def matches(self) -> bool:
        return self.difference == 0


def _require_cents(value: Any, field: str) -> int:
    # bool is an int subclass; "5450000" or 5450000.0 are not what the provider sends
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidAmount(f"{field} must be a non-negative integer amount in cents, got {value!r}", field=field)
    return value


def check_payment_amount(expected_total: int, charged_amount: Any) -> ReconciliationResult:
    """Raises InvalidAmount when either side is not a non-negative int of cents."""
    return ReconciliationResult(
        expected=_require_cents(expected_total, "expected_total"),
        charged=_require_cents(charged_amount, "charged_amount"),
    )


def _ensure_log_dir() -> None:
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"[payments] Could not create log dir {LOG_DIR}: {e}", file=sys.stderr)


def _append_json_line(path: Path, payload: Dict[str, Any]) -> None:
    """One JSON object per line, easy to grep and replay later."""
    _ensure_log_dir()
    try:
        with path.open("a", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
            f.write("\n")
    except OSError as e:
        print(f"[payments] Could not write to log {path}: {e}", file=sys.stderr)


def _log_event(*, kind: str, order: Order, event_type: str, reference: Optional[str], **fields: Any) -> None:
    event = {
        "ts": utcnow().isoformat(),
        "type": kind,
        "event_type": event_type,
        "order_id": order.id,
        "payment_reference": reference,
    }
    event.update(fields)
    _append_json_line(RECONCILIATION_LOG, event)


def _log_mismatch(*, order: Order, event_type: str, reference: Optional[str], result: ReconciliationResult) -> None:
    _log_event(
        kind="payment_amount_mismatch",
        order=order,
        event_type=event_type,
        reference=reference,
        expected_cents=result.expected,
        charged_cents=result.charged,
        difference_cents=result.difference,
    )


def _find_order(obj: Dict[str, Any], session: Session) -> Optional[Order]:
    metadata = obj.get("metadata") or {}
    raw_id = metadata.get("order_id") or metadata.get("orderId")
    try:
        order_id = int(raw_id)
    except (TypeError, ValueError):
        return None
    return session.get(Order, order_id)


def _expected_amount(order: Order, obj: Dict[str, Any]) -> int:
    milestone = (obj.get("metadata") or {}).get("milestone")
    if milestone == "deposit":
        return order.deposit_due_cents
    if milestone == "final":
        return order.total_cents - order.deposit_due_cents
    return order.total_cents


def _already_booked(reference: Optional[str], session: Session) -> bool:
    if not reference:
        return False
    row = session.exec(select(PaymentEvent).where(PaymentEvent.reference == reference)).first()
    return row is not None


def _book(order: Order, reference: Optional[str], event_type: str, amount: Optional[int], session: Session) -> None:
    # Without a reference there is nothing to key a redelivery on
    if reference:
        session.add(PaymentEvent(reference=reference, order_id=order.id, event_type=event_type, amount_cents=amount))


# ---------------------------------------------------------
# Handlers
# ---------------------------------------------------------

def _handle_succeeded(order: Order, obj: Dict[str, Any], session: Session, event_type: str, amount_key: str) -> None:
    """
    Flow:
      1. Skip the event if its reference is already booked (redelivery).
      2. Check the charged amount against the milestone's expected amount.
         An unusable amount flags the order instead of failing the webhook.
      3. Add to amount_paid_cents and book the reference.
      4. Flag the order if the amount differs, or if the total paid now
         exceeds the order total.
    """
    reference = str(obj["id"]) if obj.get("id") is not None else None
    if _already_booked(reference, session):
        print(f"[payments] {event_type} {reference} already applied to order {order.id}, skipping", file=sys.stderr)
        return

    charged = obj.get(amount_key)
    if charged is None:
        charged = obj.get("amount")

    order.payment_status = "succeeded"
    order.payment_reference = reference
    order.last_payment_error = None

    try:
        result = check_payment_amount(_expected_amount(order, obj), charged)
    except InvalidAmount as e:
        order.needs_reconciliation = True
        print(f"[payments] Unusable amount on order {order.id} ({event_type}, {reference}): {e.message}", file=sys.stderr)
        _log_event(
            kind="payment_amount_invalid",
            order=order,
            event_type=event_type,
            reference=reference,
            charged_raw=repr(charged),
        )
        _book(order, reference, event_type, None, session)
        return

    order.amount_paid_cents += result.charged
    _book(order, reference, event_type, result.charged, session)

    if not result.matches:
        order.needs_reconciliation = True
        print(
            f"[payments] Amount mismatch on order {order.id}: expected {result.expected}, "
            f"charged {result.charged} ({event_type}, {reference})",
            file=sys.stderr,
        )
        _log_mismatch(order=order, event_type=event_type, reference=reference, result=result)

    if order.amount_paid_cents > order.total_cents:
        order.needs_reconciliation = True
        print(
            f"[payments] Order {order.id} overpaid: {order.amount_paid_cents} paid of {order.total_cents}",
            file=sys.stderr,
        )
        _log_event(
            kind="payment_overpaid",
            order=order,
            event_type=event_type,
            reference=reference,
            total_cents=order.total_cents,
            paid_cents=order.amount_paid_cents,
        )


def _handle_failed(order: Order, obj: Dict[str, Any], error_message: str) -> None:
    order.payment_status = "failed"
    order.payment_reference = obj.get("id")
    order.last_payment_error = error_message


def _payment_intent_succeeded(order: Order, obj: Dict[str, Any], session: Session) -> None:
    _handle_succeeded(order, obj, session, "payment_intent.succeeded", "amount_received")


def _payment_intent_failed(order: Order, obj: Dict[str, Any], session: Session) -> None:
    last_error = (obj.get("last_payment_error") or {}).get("message")
    _handle_failed(order, obj, last_error or "Payment failed")


def _invoice_succeeded(order: Order, obj: Dict[str, Any], session: Session) -> None:
    _handle_succeeded(order, obj, session, "invoice.payment_succeeded", "amount_paid")


def _invoice_failed(order: Order, obj: Dict[str, Any], session: Session) -> None:
    _handle_failed(order, obj, "Invoice payment failed")


EVENT_HANDLERS: Dict[str, Callable[[Order, Dict[str, Any], Session], None]] = {
    "payment_intent.succeeded": _payment_intent_succeeded,
    "payment_intent.payment_failed": _payment_intent_failed,
    "invoice.payment_succeeded": _invoice_succeeded,
    "invoice.payment_failed": _invoice_failed,
}


def apply_payment_event(event: Dict[str, Any], session: Session) -> Optional[Order]:
    """
    Applies one webhook event to its order.

    Returns the order (unchanged for a redelivered payment), or None when the
    event type is not one we handle or no order matches its metadata.
    """
    event_type = event.get("type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        print(f"[payments] Unhandled event type: {event_type}", file=sys.stderr)
        return None

    obj = (event.get("data") or {}).get("object") or {}
    order = _find_order(obj, session)
    if order is None:
        print(f"[payments] No order for {event_type} ({obj.get('id')})", file=sys.stderr)
        return None

    handler(order, obj, session)
    touch(order)
    session.add(order)
    session.commit()
    session.refresh(order)
    return order
