"""Celery task definitions package."""

from storefront.tasks import email  # noqa: F401
from storefront.tasks import events  # noqa: F401

__all__ = ["email", "events"]
