# storefront/domain/enums.py
import enum


class OrderStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    shipping = "shipping"
    delivered = "delivered"
    cancelled = "cancelled"


TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.delivered, OrderStatus.cancelled})


class PaymentStatus(str, enum.Enum):
    unpaid = "unpaid"
    pending = "pending"
    paid = "paid"
    failed = "failed"


class PaymentMethod(str, enum.Enum):
    cod = "cod"
    vnpay = "vnpay"


# Methods that redirect the buyer to an external gateway before the order is paid.
ONLINE_PAYMENT_METHODS = frozenset({PaymentMethod.vnpay})


class LedgerEntryType(str, enum.Enum):
    earn = "earn"
    redeem = "redeem"
    refund = "refund"


class CartWarningType(str, enum.Enum):
    max_per_order = "max_per_order"
    stock_cap = "stock_cap"
