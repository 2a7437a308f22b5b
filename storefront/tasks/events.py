from __future__ import annotations

from storefront.core.celery_app import celery_app
from storefront.core.logging import get_logger

logger = get_logger("storefront.events")


@celery_app.task(name="events.checkout", ignore_result=True)
def handle_checkout_event(event_name: str, payload: dict) -> None:
    """Fan out order lifecycle events to downstream consumers (currently the log stream)."""
    logger.info("Checkout event", extra={"event": event_name, "payload": payload})
