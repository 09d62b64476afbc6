from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.core.money import format_usd
from src.server.schemas.delivery import DeliveryQuoteIn, DeliveryQuoteOut
from src.server.settings.config import settings
from src.services.delivery_quote import DeliveryQuote, DeliveryQuoteEstimator
from src.services.distance_lookup import build_distance_lookup


def get_estimator() -> DeliveryQuoteEstimator:
    return DeliveryQuoteEstimator(build_distance_lookup(settings), settings.delivery_config())


router = APIRouter(prefix="/delivery", tags=["delivery"])  # public, no API key


def _to_out(q: DeliveryQuote) -> DeliveryQuoteOut:
    return DeliveryQuoteOut(fee_display=format_usd(q.fee), **q.to_dict())


@router.get("/quote", response_model=DeliveryQuoteOut, summary="Delivery quote for a ZIP code")
def get_delivery_quote(
    zip: Optional[str] = Query(None),
    estimator: DeliveryQuoteEstimator = Depends(get_estimator),
):
    return _to_out(estimator.quote(zip))


@router.post("/quote", response_model=DeliveryQuoteOut, summary="Delivery quote for a full address")
def post_delivery_quote(
    payload: DeliveryQuoteIn,
    estimator: DeliveryQuoteEstimator = Depends(get_estimator),
):
    return _to_out(estimator.quote(payload.zip, payload.display_address()))
