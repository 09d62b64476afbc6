from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlmodel import Session

from src.server.db.session import get_session
from src.services.payment_reconciliation import apply_payment_event

router = APIRouter(prefix="/webhooks", tags=["webhooks"])  # called by the payment provider


@router.post("/payments")
def payment_webhook(event: Dict[str, Any], session: Session = Depends(get_session)):
    order = apply_payment_event(event, session)
    out: Dict[str, Any] = {"received": True}
    if order is not None:
        out["order_id"] = order.id
        out["needs_reconciliation"] = order.needs_reconciliation
    return out
