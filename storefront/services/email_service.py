# storefront/services/email_service.py
from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.models.order import Order
from storefront.tasks.email import send_email_task

logger = get_logger(__name__)


def _enqueue_email(to_email: str, subject: str, body: str) -> None:
    send_email_task.apply_async((to_email, subject, body), queue=settings.EMAIL_QUEUE, ignore_result=True)


def _format_vnd(amount: int) -> str:
    return f"{amount:,}".replace(",", ".") + " ₫"


def send_order_confirmation(to_email: str, order: Order) -> bool:
    """Queue the order confirmation. Returns False (and logs) when queueing fails."""
    lines = "\n".join(
        f"- {line.name} x{line.quantity}: {_format_vnd(line.line_total)}" for line in order.lines
    )
    subject = f"{settings.PROJECT_NAME} - Order #{order.order_number} received"
    body = (
        f"Hello,\n\nThanks for your order #{order.order_number}.\n\n"
        f"{lines}\n\n"
        f"Subtotal: {_format_vnd(order.subtotal_amount)}\n"
        f"Tax: {_format_vnd(order.tax_amount)}\n"
        f"Shipping: {_format_vnd(order.shipping_amount)}\n"
        f"Discount: -{_format_vnd(order.discount_amount)}\n"
        f"Points: -{_format_vnd(order.loyalty_amount)}\n"
        f"Total: {_format_vnd(order.total_amount)}\n\n"
        f"Track it at {settings.FRONTEND_URL}/orders/{order.id}\n"
    )
    try:
        _enqueue_email(to_email, subject, body)
    except Exception:
        logger.exception("Could not queue order confirmation", extra={"order_id": str(order.id)})
        return False
    return True


def send_status_update(to_email: str, order: Order) -> bool:
    subject = f"{settings.PROJECT_NAME} - Order #{order.order_number} is {order.status.value}"
    body = f"Hello,\n\nYour order #{order.order_number} is now {order.status.value}.\n"
    try:
        _enqueue_email(to_email, subject, body)
    except Exception:
        logger.exception("Could not queue status email", extra={"order_id": str(order.id)})
        return False
    return True
