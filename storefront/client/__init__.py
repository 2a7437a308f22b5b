"""Python SDK for the storefront cart and checkout API."""

from .api import ApiError, StorefrontClient
from .cart_store import CartService, SyncState
from .preview import PreviewScheduler

__all__ = ["ApiError", "CartService", "PreviewScheduler", "StorefrontClient", "SyncState"]
