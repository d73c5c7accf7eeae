# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends

from storefront.api.deps import get_cart_service, get_current_user, ok
from storefront.domain.schemas import (
    CartOut,
    CartValidationOut,
    Envelope,
    ItemIn,
    RemoveItemIn,
    UpdateItemIn,
)
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("/", response_model=Envelope[CartOut])
def get_cart(user: dict = Depends(get_current_user), svc: CartService = Depends(get_cart_service)):
    return ok(svc.get_cart(user["sub"]))


@router.post("/items", response_model=Envelope[CartOut])
def add_item(
    payload: ItemIn,
    user: dict = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    return ok(
        svc.add_item(
            user_id=user["sub"],
            product_id=payload.product_id,
            quantity=payload.quantity,
            variant_sku=payload.variant_sku,
        )
    )


@router.put("/items", response_model=Envelope[CartOut])
def update_item(
    payload: UpdateItemIn,
    user: dict = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    return ok(
        svc.update_item(
            user_id=user["sub"],
            product_id=payload.product_id,
            quantity=payload.quantity,
            variant_sku=payload.variant_sku,
        )
    )


@router.delete("/items", response_model=Envelope[CartOut])
def remove_item(
    payload: RemoveItemIn,
    user: dict = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    return ok(svc.remove_item(user["sub"], payload.product_id, payload.variant_sku))


@router.delete("/", response_model=Envelope[dict])
def clear_cart(user: dict = Depends(get_current_user), svc: CartService = Depends(get_cart_service)):
    svc.clear_cart(user["sub"])
    return ok({"message": "Cart cleared"})


@router.get("/validate", response_model=Envelope[CartValidationOut])
def validate_cart(user: dict = Depends(get_current_user), svc: CartService = Depends(get_cart_service)):
    return ok(svc.validate_cart(user["sub"]))
