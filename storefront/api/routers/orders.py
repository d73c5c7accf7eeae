# storefront/api/routers/orders.py
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_current_user, get_order_service, ok, require_admin
from storefront.domain.order_status import OrderStatus, PaymentStatus
from storefront.domain.schemas import (
    Envelope,
    OrderCreateIn,
    OrderListOut,
    OrderOut,
    PaymentUpdateIn,
    StatusUpdateIn,
)
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def _requester(user: dict) -> Optional[str]:
    # admins read and cancel any order
    return None if user.get("role") == "admin" else user["sub"]


def _out(order) -> OrderOut:
    return OrderOut.model_validate(order)


@router.post("/", response_model=Envelope[OrderOut], status_code=201)
def create_order(
    payload: OrderCreateIn,
    user: dict = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    """
    Creates an order from the caller's cart.
    Stock is re-checked against the catalog; the cart is emptied on success.
    """
    order = svc.create_order(
        user_id=user["sub"],
        shipping_address=payload.shipping_address.model_dump(),
        billing_address=payload.billing_address.model_dump() if payload.billing_address else None,
        payment_method=payload.payment_method,
        customer_notes=payload.customer_notes,
    )
    return ok(_out(order))


@router.get("/", response_model=Envelope[OrderListOut])
def list_my_orders(
    limit: int = Query(10, ge=1, le=100),
    user: dict = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    orders = svc.list_user_orders(user["sub"], limit=limit)
    return ok(OrderListOut(orders=[_out(o) for o in orders], total=len(orders)))


@router.get("/search", response_model=Envelope[OrderListOut])
def search_orders(
    user_id: Optional[str] = None,
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: dict = Depends(require_admin),
    svc: OrderService = Depends(get_order_service),
):
    result = svc.search_orders(
        user_id=user_id,
        status=status.value if status else None,
        payment_status=payment_status.value if payment_status else None,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return ok(OrderListOut(orders=[_out(o) for o in result["orders"]], total=result["total"]))


@router.get("/stats", response_model=Envelope[Dict[str, int]])
def order_stats(user: dict = Depends(get_current_user), svc: OrderService = Depends(get_order_service)):
    return ok(svc.get_order_stats(_requester(user)))


@router.get("/recent", response_model=Envelope[OrderListOut])
def recent_orders(
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(require_admin),
    svc: OrderService = Depends(get_order_service),
):
    orders = svc.get_recent_orders(limit)
    return ok(OrderListOut(orders=[_out(o) for o in orders], total=len(orders)))


@router.get("/number/{order_number}", response_model=Envelope[OrderOut])
def get_order_by_number(
    order_number: str,
    user: dict = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    return ok(_out(svc.get_order_by_number(order_number, _requester(user))))


@router.get("/{order_id}", response_model=Envelope[OrderOut])
def get_order(
    order_id: str,
    user: dict = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    return ok(_out(svc.get_order_by_id(order_id, _requester(user))))


@router.patch("/{order_id}/status", response_model=Envelope[OrderOut])
def update_status(
    order_id: str,
    payload: StatusUpdateIn,
    admin: dict = Depends(require_admin),
    svc: OrderService = Depends(get_order_service),
):
    order = svc.update_status(
        order_id,
        payload.status,
        metadata=payload.model_dump(include={"tracking_number", "carrier", "internal_notes"}),
    )
    return ok(_out(order))


@router.patch("/{order_id}/payment", response_model=Envelope[OrderOut])
def update_payment(
    order_id: str,
    payload: PaymentUpdateIn,
    admin: dict = Depends(require_admin),
    svc: OrderService = Depends(get_order_service),
):
    order = svc.update_payment_status(order_id, payload.payment_status, payload.payment_transaction_id)
    return ok(_out(order))


@router.post("/{order_id}/cancel", response_model=Envelope[OrderOut])
def cancel_order(
    order_id: str,
    user: dict = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    return ok(_out(svc.cancel_order(order_id, _requester(user))))
