# storefront/main.py
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi

from storefront.core.config import settings
from storefront.core.logging import setup_logging
from storefront.core.metrics import export_metrics
from storefront.api.error_handlers import register_exception_handlers
from storefront.api.routers import (
    admin_coupons,
    admin_orders,
    cart,
    checkout,
    me,
    orders,
    payments,
)
from storefront.middleware import ObservabilityMiddleware

# --- Models registration (Base.metadata must know every table) ---
import storefront.models.user      # noqa: F401
import storefront.models.product   # noqa: F401
import storefront.models.cart      # noqa: F401
import storefront.models.coupon    # noqa: F401
import storefront.models.order     # noqa: F401
import storefront.models.loyalty   # noqa: F401

import storefront.tasks  # noqa: F401

setup_logging()

TAGS_METADATA = [
    {"name": "cart", "description": "Carts for signed-in users and guests (x-guest-token)."},
    {"name": "checkout", "description": "Server-side pricing preview and order confirmation."},
    {"name": "orders", "description": "Customer order history and detail."},
    {"name": "payments", "description": "VNPAY payment URLs, return and IPN callbacks."},
    {"name": "me", "description": "Profile, saved addresses and loyalty points."},
    {"name": "admin-orders", "description": "Order management and status transitions."},
    {"name": "admin-coupons", "description": "Coupon management and usage reports."},
]

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    description=(
        "Cart and checkout API.\n\n"
        "- **Cart**: Guest and user carts with stock and per-order limits.\n"
        "- **Checkout**: Preview and confirm share one pricing pipeline.\n"
        "- **Payments**: Cash on delivery and VNPAY.\n"
        "- **Loyalty**: Earn points on delivery, redeem them at checkout.\n\n"
        "Use the **Authorize** button to call protected endpoints."
    ),
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
    },
)

# --- Middlewares ---
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[settings.GUEST_TOKEN_HEADER, "x-request-id"],
)

register_exception_handlers(app)

# --- Routers ---
app.include_router(cart.router, prefix=settings.API_V1_STR)
app.include_router(checkout.router, prefix=settings.API_V1_STR)
app.include_router(orders.router, prefix=settings.API_V1_STR)
app.include_router(payments.router, prefix=settings.API_V1_STR)
app.include_router(me.router, prefix=settings.API_V1_STR)
app.include_router(admin_orders.router, prefix=settings.API_V1_STR)
app.include_router(admin_coupons.router, prefix=settings.API_V1_STR)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
        tags=TAGS_METADATA,
    )

    comps = openapi_schema.setdefault("components", {}).setdefault("securitySchemes", {})
    comps["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
        "description": "Access token issued by the auth service. Format: `Bearer <token>`",
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


@app.get("/metrics", include_in_schema=False)
def metrics():
    payload, content_type = export_metrics()
    return Response(content=payload, media_type=content_type)


@app.get("/", include_in_schema=False)
def root():
    return {"status": "ok", "docs_url": "/docs", "redoc_url": "/redoc"}
