from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.services.exceptions import (
    AddressRequiredError,
    CartEmptyError,
    ConflictError,
    DomainValidationError,
    InvalidCouponError,
    OutOfStockError,
    PointsExceedBalanceError,
    ProductUnavailableError,
    ResourceNotFoundError,
    ServiceError,
)
from storefront.services.payment_providers import PaymentProviderConfigurationError


def _body(exc: ServiceError, **extra) -> dict:
    return {"detail": exc.detail, "code": exc.code, **extra}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ResourceNotFoundError)
    async def handle_not_found(_: Request, exc: ResourceNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=_body(exc))

    @app.exception_handler(AddressRequiredError)
    async def handle_address_required(_: Request, exc: AddressRequiredError) -> JSONResponse:
        return JSONResponse(status_code=422, content=_body(exc))

    @app.exception_handler(DomainValidationError)
    async def handle_validation(_: Request, exc: DomainValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content=_body(exc))

    @app.exception_handler(CartEmptyError)
    async def handle_cart_empty(_: Request, exc: CartEmptyError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_body(exc))

    @app.exception_handler(InvalidCouponError)
    async def handle_invalid_coupon(_: Request, exc: InvalidCouponError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_body(exc, reason=exc.reason))

    @app.exception_handler(OutOfStockError)
    async def handle_out_of_stock(_: Request, exc: OutOfStockError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content=_body(exc, available=exc.available, product_id=exc.product_id),
        )

    @app.exception_handler(ProductUnavailableError)
    async def handle_unavailable(_: Request, exc: ProductUnavailableError) -> JSONResponse:
        return JSONResponse(status_code=409, content=_body(exc))

    @app.exception_handler(PointsExceedBalanceError)
    async def handle_points(_: Request, exc: PointsExceedBalanceError) -> JSONResponse:
        return JSONResponse(status_code=409, content=_body(exc))

    @app.exception_handler(ConflictError)
    async def handle_conflict(_: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content=_body(exc))

    @app.exception_handler(PaymentProviderConfigurationError)
    async def handle_payment_unavailable(_: Request, exc: PaymentProviderConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=503, content=_body(exc))

    @app.exception_handler(ServiceError)
    async def handle_service_error(_: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_body(exc))
