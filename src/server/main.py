import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.core.errors import (
    InvalidAmount,
    InvalidInput,
    InvalidQuantity,
    PricingError,
    ServiceUnavailable,
)
from src.server.db.session import init_db
from src.server.api import system, delivery, orders, webhooks
from src.server.settings.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    print(f"[app] Initializing database ({settings.environment})...", file=sys.stderr)
    init_db()
    yield
    print("[app] Shutting down...", file=sys.stderr)


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# CORS so the SPA frontend can talk to the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "https://fireflyestimator.com",
        "https://www.fireflyestimator.com",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Errors from the pricing/delivery core -> HTTP
ERROR_STATUS = {
    InvalidInput: 400,
    InvalidQuantity: 422,
    InvalidAmount: 422,
    ServiceUnavailable: 503,
}


def status_for(exc: PricingError) -> int:
    for cls, status in ERROR_STATUS.items():
        if isinstance(exc, cls):
            return status
    return 500


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    headers = {"Retry-After": "5"} if exc.retryable else None
    return JSONResponse(status_code=status_for(exc), content=exc.to_dict(), headers=headers)


# Routers
app.include_router(system.router)
app.include_router(delivery.router)          # /delivery/quote, public
app.include_router(orders.public_router)     # /orders/price, public
app.include_router(orders.router)            # /orders..., requires API key
app.include_router(webhooks.router)          # /webhooks/payments, payment provider
