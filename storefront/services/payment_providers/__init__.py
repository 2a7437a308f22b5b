"""Payment provider integrations."""

from storefront.services.exceptions import ServiceError


class PaymentProviderError(Exception):
    """Base error for payment providers."""


class PaymentProviderConfigurationError(PaymentProviderError, ServiceError):
    """Raised when provider configuration is invalid or missing."""

    code = "payment_unavailable"
