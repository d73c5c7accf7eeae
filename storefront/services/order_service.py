# storefront/services/order_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.domain.errors import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    EmptyCartError,
    InvalidTransitionError,
    NotFoundError,
    OutOfStockError,
)
from storefront.domain.order_status import (
    NOT_CANCELLABLE,
    STATUS_TIMESTAMPS,
    OrderStatus,
    PaymentStatus,
    can_transition,
    can_transition_payment,
)
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.event_publisher import EventPublisher
from storefront.services.product_client import ProductClient
from storefront.utils.money import ZERO, to_money
from storefront.utils.order_number import generate_order_number
from storefront.utils.settings import (
    TAX_RATE,
    FREE_SHIPPING_THRESHOLD,
    FLAT_SHIPPING_FEE,
    ORDER_EVENTS_EXCHANGE,
    ORDER_NUMBER_ATTEMPTS,
    ENFORCE_ORDER_TRANSITIONS,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status.changed"
ORDER_PAYMENT_CHANGED = "order.payment.changed"


def calculate_totals(subtotal: Decimal) -> Dict[str, Decimal]:
    """
    tax = 10% of subtotal, shipping free above the threshold, no discounts.
    total = subtotal + tax + shipping - discount, all in 2-place Decimal.
    """
    subtotal = to_money(subtotal)
    tax = to_money(subtotal * TAX_RATE)
    shipping_cost = ZERO if subtotal > FREE_SHIPPING_THRESHOLD else to_money(FLAT_SHIPPING_FEE)
    discount = ZERO
    total = subtotal + tax + shipping_cost - discount
    return {
        "subtotal": subtotal,
        "tax": tax,
        "shipping_cost": shipping_cost,
        "discount": discount,
        "total": total,
    }


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """
    Turns a cart into an immutable order and drives its status afterwards.

    Stock reservation is a cross-service call and is not transactional with
    the order insert. Decrements happen right after the order commits;
    cancellation restores them. A failed call in between is logged and leaves
    the catalog out of step until someone corrects it.
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        publisher: EventPublisher,
        exchange: str = ORDER_EVENTS_EXCHANGE,
        enforce_transitions: bool = ENFORCE_ORDER_TRANSITIONS,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.cart_repo = CartRepo(db)
        self.product_client = product_client
        self.publisher = publisher
        self.exchange = exchange
        self.enforce_transitions = enforce_transitions

    # =====================================================
    # CREATE
    # =====================================================
    def create_order(
        self,
        user_id: str,
        shipping_address: Dict[str, Any],
        billing_address: Optional[Dict[str, Any]] = None,
        payment_method: Optional[str] = None,
        customer_notes: Optional[str] = None,
    ) -> OrderModel:
        cart = self.cart_repo.get_cart_by_user(user_id)
        items = self.cart_repo.get_cart_items(cart.id) if cart else []
        if not items:
            raise EmptyCartError()

        # cart snapshot may be stale, ask the catalog again
        for item in items:
            if not self.product_client.has_stock(item.product_id, item.variant_sku or None, item.quantity):
                raise OutOfStockError(f"{item.product_name or item.product_id} is out of stock")

        totals = calculate_totals(sum((Decimal(i.line_total) for i in items), ZERO))
        order = self._persist_order(
            user_id=user_id,
            items=items,
            totals=totals,
            shipping_address=dict(shipping_address),
            billing_address=dict(billing_address or shipping_address),
            payment_method=payment_method,
            customer_notes=customer_notes,
        )
        logger.info(f"Order {order.order_number} created for user {user_id}, total {order.total}")

        self._reserve_stock(order)
        self._clear_cart(cart.id, user_id)

        self._publish(
            ORDER_CREATED,
            {
                "orderId": order.id,
                "orderNumber": order.order_number,
                "userId": order.user_id,
                "total": str(order.total),
                "items": len(order.items),
                "timestamp": _now().isoformat(),
            },
        )
        return order

    def _persist_order(self, user_id: str, items, totals: Dict[str, Decimal], **fields) -> OrderModel:
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order_number = generate_order_number()
            if self.repo.number_exists(order_number):
                logger.info(f"Order number {order_number} taken, attempt {attempt}")
                continue

            order = OrderModel(
                order_number=order_number,
                user_id=user_id,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                order_date=_now(),
                items=[
                    OrderItemModel(
                        product_id=i.product_id,
                        product_name=i.product_name,
                        variant_sku=i.variant_sku or None,
                        quantity=i.quantity,
                        unit_price=to_money(i.unit_price),
                        subtotal=to_money(i.line_total),
                        discount=ZERO,
                        total=to_money(i.line_total),
                    )
                    for i in items
                ],
                **totals,
                **fields,
            )

            try:
                return self.repo.create_order(order)
            except IntegrityError:
                self.repo.rollback()
                # lost a race on the number; anything else is a real failure
                if not self.repo.number_exists(order_number):
                    raise
                logger.info(f"Order number {order_number} collided on insert, attempt {attempt}")

        raise ConflictError("Could not allocate a unique order number")

    def _reserve_stock(self, order: OrderModel) -> None:
        for item in order.items:
            try:
                self.product_client.adjust_stock(item.product_id, -item.quantity)
            except DependencyError as e:
                logger.error(
                    f"Stock reservation failed for order {order.order_number}, "
                    f"product {item.product_id} x{item.quantity}: {e}"
                )

    def _clear_cart(self, cart_id: str, user_id: str) -> None:
        try:
            self.cart_repo.delete_all_items(cart_id)
            cart = self.cart_repo.get_cart_by_user(user_id)
            if cart:
                cart.subtotal = ZERO
                cart.version = cart.version + 1
            self.cart_repo.commit()
        except SQLAlchemyError as e:
            self.cart_repo.rollback()
            logger.error(f"Order placed but cart {cart_id} could not be cleared: {e}")

    # =====================================================
    # QUERIES
    # =====================================================
    def get_order_by_id(self, order_id: str, requester_id: Optional[str] = None) -> OrderModel:
        order = self.repo.get_order(order_id)
        return self._check_access(order, requester_id)

    def get_order_by_number(self, order_number: str, requester_id: Optional[str] = None) -> OrderModel:
        order = self.repo.get_by_number(order_number)
        return self._check_access(order, requester_id)

    def list_user_orders(self, user_id: str, limit: int = 10) -> List[OrderModel]:
        return self.repo.list_by_user(user_id, limit)

    def search_orders(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        orders, total = self.repo.search(
            user_id=user_id,
            status=status,
            payment_status=payment_status,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {"orders": orders, "total": total}

    def get_order_stats(self, user_id: Optional[str] = None) -> Dict[str, int]:
        counts = self.repo.count_by_status(user_id)
        return {status.value: counts.get(status.value, 0) for status in OrderStatus}

    def get_recent_orders(self, limit: int = 10) -> List[OrderModel]:
        return self.repo.recent(limit)

    # =====================================================
    # STATUS CHANGES
    # =====================================================
    def update_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> OrderModel:
        new_status = OrderStatus(new_status)
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        old_status = OrderStatus(order.status)
        if self.enforce_transitions and not can_transition(
            old_status, new_status, PaymentStatus(order.payment_status)
        ):
            raise InvalidTransitionError(f"Cannot move order from {old_status.value} to {new_status.value}")

        self._set_status(order, new_status)

        metadata = metadata or {}
        for field in ("tracking_number", "carrier", "internal_notes"):
            if metadata.get(field):
                setattr(order, field, metadata[field])

        order = self.repo.save(order)
        logger.info(f"Order {order.order_number} status {old_status.value} -> {new_status.value}")

        if old_status != new_status:
            self._publish_status_change(order, old_status, new_status)
        return order

    def update_payment_status(
        self,
        order_id: str,
        new_status: PaymentStatus,
        transaction_id: Optional[str] = None,
    ) -> OrderModel:
        new_status = PaymentStatus(new_status)
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        old_payment = PaymentStatus(order.payment_status)
        if self.enforce_transitions and not can_transition_payment(old_payment, new_status):
            raise InvalidTransitionError(
                f"Cannot move payment from {old_payment.value} to {new_status.value}"
            )

        order.payment_status = new_status.value
        if transaction_id:
            order.payment_transaction_id = transaction_id
        if new_status == PaymentStatus.PAID and order.paid_at is None:
            order.paid_at = _now()

        # a successful payment confirms a pending order
        auto_confirmed = new_status == PaymentStatus.PAID and order.status == OrderStatus.PENDING.value
        if auto_confirmed:
            self._set_status(order, OrderStatus.CONFIRMED)

        order = self.repo.save(order)
        logger.info(f"Order {order.order_number} payment {old_payment.value} -> {new_status.value}")

        if old_payment != new_status:
            self._publish(
                ORDER_PAYMENT_CHANGED,
                {
                    "orderId": order.id,
                    "orderNumber": order.order_number,
                    "oldPaymentStatus": old_payment.value,
                    "newPaymentStatus": new_status.value,
                    "timestamp": _now().isoformat(),
                },
            )
        if auto_confirmed:
            self._publish_status_change(order, OrderStatus.PENDING, OrderStatus.CONFIRMED)
        return order

    def cancel_order(self, order_id: str, requester_id: Optional[str] = None) -> OrderModel:
        order = self._check_access(self.repo.get_order(order_id), requester_id)

        status = OrderStatus(order.status)
        if status in NOT_CANCELLABLE:
            raise InvalidTransitionError("Cannot cancel shipped or delivered orders")
        if status == OrderStatus.CANCELLED:
            raise InvalidTransitionError("Order is already cancelled")

        self._set_status(order, OrderStatus.CANCELLED)
        order = self.repo.save(order)
        logger.info(f"Order {order.order_number} cancelled")

        # compensation for the decrement done at creation
        for item in order.items:
            try:
                self.product_client.adjust_stock(item.product_id, item.quantity)
            except DependencyError as e:
                logger.error(
                    f"Stock restore failed for order {order.order_number}, "
                    f"product {item.product_id} x{item.quantity}: {e}"
                )

        self._publish_status_change(order, status, OrderStatus.CANCELLED)
        return order

    # =====================================================
    # INTERNALS
    # =====================================================
    @staticmethod
    def _set_status(order: OrderModel, new_status: OrderStatus) -> None:
        order.status = new_status.value
        column = STATUS_TIMESTAMPS.get(new_status)
        # stamp once; re-setting the same status keeps the first timestamp
        if column and getattr(order, column) is None:
            setattr(order, column, _now())

    @staticmethod
    def _check_access(order: OrderModel | None, requester_id: Optional[str]) -> OrderModel:
        if not order:
            raise NotFoundError("Order not found")
        if requester_id and order.user_id != requester_id:
            raise AuthorizationError("You do not have access to this order")
        return order

    def _publish_status_change(self, order: OrderModel, old: OrderStatus, new: OrderStatus) -> None:
        self._publish(
            ORDER_STATUS_CHANGED,
            {
                "orderId": order.id,
                "orderNumber": order.order_number,
                "oldStatus": old.value,
                "newStatus": new.value,
                "timestamp": _now().isoformat(),
            },
        )

    def _publish(self, routing_key: str, payload: Dict[str, Any]) -> None:
        # best effort: the order is already committed
        try:
            self.publisher.publish(self.exchange, routing_key, payload)
        except DependencyError:
            self.publisher.defer(self.exchange, routing_key, payload)
