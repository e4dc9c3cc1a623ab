from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from farmstand.core.errors import MarketplaceError
from farmstand.core.observability import (
    http_exception_handler,
    marketplace_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from farmstand.core.config import settings
from farmstand.db.session import engine
from farmstand.routers import cart, orders, sales

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Order and inventory backend for the Farmstand marketplace.\n\n"
        "Swagger quick test flow:\n"
        "1. Obtain an access token from the identity service.\n"
        "2. Click **Authorize** and paste the bearer token.\n"
        "3. Test protected endpoints (`/cart`, `/orders`, `/sales`)."
    ),
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "cart", "description": "Customer cart lines and whole-cart sync."},
        {"name": "orders", "description": "Per-farm order placement and fulfillment status lifecycle."},
        {"name": "sales", "description": "Direct farm sales with batch-amortized costing and reversal."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(MarketplaceError, marketplace_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(sales.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return {"ok": False}
    return {"ok": True}
