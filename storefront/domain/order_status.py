# storefront/domain/order_status.py
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# main lifecycle, forward moves only (skipping ahead is allowed)
_LIFECYCLE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]

# cancellation is closed once the goods have left
NOT_CANCELLABLE = {OrderStatus.SHIPPED, OrderStatus.DELIVERED}

# status -> timestamp column stamped the first time the status is reached
STATUS_TIMESTAMPS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}


def can_transition(current: OrderStatus, new: OrderStatus, payment_status: PaymentStatus) -> bool:
    if current == new:
        return True

    if new == OrderStatus.CANCELLED:
        return current not in NOT_CANCELLABLE

    if new == OrderStatus.REFUNDED:
        return current != OrderStatus.PENDING and payment_status in (
            PaymentStatus.PAID,
            PaymentStatus.REFUNDED,
        )

    if current in _LIFECYCLE and new in _LIFECYCLE:
        return _LIFECYCLE.index(new) > _LIFECYCLE.index(current)

    return False


def can_transition_payment(current: PaymentStatus, new: PaymentStatus) -> bool:
    return current == new or new in PAYMENT_TRANSITIONS[current]
