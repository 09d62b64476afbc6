from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Header, Response
from sqlmodel import Session

from src.server.db.session import get_session
from src.server.models import Order
from src.server.schemas.order import OrderCreateIn, OrderPriceIn, OrderPriceOut
from src.server.settings.config import settings
from src.services.order_service import (
    create_order,
    find_order_by_idempotency_key,
    list_orders,
    make_price_draft,
    serialize_order,
)


# ==============================
# API KEY
# ==============================

API_KEY_HEADER_NAME = "X-FIREFLY-API-KEY"


def verify_api_key(x_firefly_api_key: str = Header(None)) -> None:
    if x_firefly_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# Pricing a draft is what the configurator calls on every click: no key.
public_router = APIRouter(prefix="/orders", tags=["orders"])

router = APIRouter(
    prefix="/orders",
    tags=["orders"],
    dependencies=[Depends(verify_api_key)],
)


# ==============================
# DRAFT
# ==============================

@public_router.post("/price", response_model=OrderPriceOut, summary="Price an order (draft)")
def price_order_draft(payload: OrderPriceIn):
    return make_price_draft(payload=payload, settings=settings)


# ==============================
# LIST
# ==============================

@router.get("", summary="List orders")
@router.get("/", include_in_schema=False)
def get_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(get_session),
):
    return list_orders(skip=skip, limit=limit, session=session)


# ==============================
# CREATE
# ==============================

@router.post("", summary="Save order", status_code=201)
def create_order_endpoint(
    payload: OrderCreateIn,
    response: Response,
    idempotency_key: Optional[str] = Header(None),
    session: Session = Depends(get_session),
):
    # Retried request (same Idempotency-Key): hand back the first order
    if idempotency_key:
        existing = find_order_by_idempotency_key(idempotency_key, session)
        if existing is not None:
            response.status_code = 200
            return serialize_order(existing, session)

    order = create_order(payload=payload, session=session, settings=settings, idempotency_key=idempotency_key)
    return serialize_order(order, session)


# ==============================
# GET SINGLE ORDER
# ==============================

@router.get("/{order_id}")
def get_order(order_id: int, session: Session = Depends(get_session)):
    order = session.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return serialize_order(order, session)
