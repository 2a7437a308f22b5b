from __future__ import annotations

from typing import Any

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.tasks.events import handle_checkout_event

logger = get_logger(__name__)


def emit_checkout_event(name: str, payload: dict[str, Any]) -> bool:
    """Publish order lifecycle events (order_created, order_paid, order_status_changed...).

    Events are sent after commit, so a broker failure is logged and reported as False.
    """
    try:
        handle_checkout_event.apply_async((name, payload), queue=settings.CHECKOUT_EVENTS_QUEUE, ignore_result=True)
    except Exception:
        logger.exception("Could not publish checkout event", extra={"event": name, "order_id": payload.get("order_id")})
        return False
    return True
