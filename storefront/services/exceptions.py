# storefront/services/exceptions.py

class ServiceError(Exception):
    """Base class for service-layer errors."""

    code = "service_error"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class DomainValidationError(ServiceError):
    """Invalid domain input."""
    code = "validation_error"


class AddressRequiredError(DomainValidationError):
    """Confirm called without a shipping address or a usable address id."""
    code = "address_required"


class ResourceNotFoundError(ServiceError):
    """Resource not found."""
    code = "not_found"


class ConflictError(ServiceError):
    """State conflict in the operation."""
    code = "conflict"


class CartEmptyError(ServiceError):
    code = "cart_empty"

    def __init__(self, detail: str = "Cart is empty"):
        super().__init__(detail)


class InvalidCouponError(ServiceError):
    """Coupon rejected. ``reason`` is one of malformed, not_found, usage_limit_reached."""

    code = "invalid_coupon"

    def __init__(self, detail: str, reason: str):
        self.reason = reason
        super().__init__(detail)


class OutOfStockError(ConflictError):
    """Requested quantity exceeds the stock on hand."""

    code = "out_of_stock"

    def __init__(self, detail: str, available: int = 0, product_id: str | None = None):
        self.available = available
        self.product_id = product_id
        super().__init__(detail)


class ProductUnavailableError(ConflictError):
    code = "product_unavailable"


class PointsExceedBalanceError(ConflictError):
    code = "points_exceed_balance"
