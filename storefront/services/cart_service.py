# storefront/services/cart_service.py
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import ConflictError, NotFoundError, OutOfStockError, ValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.services.lock_service import LockService
from storefront.services.product_client import ProductClient
from storefront.utils.money import ZERO, line_total, to_money
from storefront.utils.settings import CART_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _sku_key(variant_sku: str | None) -> str:
    return variant_sku or ""


class CartService:
    """
    One cart per user, created lazily.

    Every mutation runs under the user's cart lock and is written with a
    version compare-and-set, so concurrent writers are serialized instead of
    overwriting each other. Items are keyed by (product_id, variant_sku).
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        lock_service: LockService,
        ttl_seconds: int = CART_TTL_SECONDS,
    ):
        self.db = db
        self.repo = CartRepo(db)
        self.product_client = product_client
        self.lock_service = lock_service
        self.ttl_seconds = ttl_seconds

    #query
    def get_cart(self, user_id: str) -> Dict[str, Any]:
        cart = self._get_or_create(user_id)

        # sliding expiry, every access pushes it forward
        cart.expires_at = self._new_expiry()
        self.repo.commit()

        return self._to_dict(cart)

    def validate_cart(self, user_id: str) -> Dict[str, Any]:
        """Re-checks live stock for every line, read-only."""
        cart = self.repo.get_cart_by_user(user_id)
        if not cart:
            return {"valid": True, "errors": []}

        errors: List[str] = []
        for item in self.repo.get_cart_items(cart.id):
            if not self.product_client.has_stock(item.product_id, item.variant_sku or None, item.quantity):
                name = item.product_name or item.product_id
                errors.append(f"{name} is out of stock or has insufficient quantity")

        return {"valid": not errors, "errors": errors}

    #commands
    def add_item(
        self,
        user_id: str,
        product_id: str,
        quantity: int,
        variant_sku: str | None = None,
    ) -> Dict[str, Any]:
        product = self.product_client.get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if variant_sku and product.variant(variant_sku) is None:
            raise ValidationError(f"Unknown variant {variant_sku} for product {product_id}")

        unit_price = to_money(product.price_for(variant_sku))
        available = product.stock_for(variant_sku)

        def mutate(cart: CartModel, items: List[CartItemModel]) -> List[CartItemModel]:
            existing = self._find(items, product_id, variant_sku)
            new_quantity = quantity + (existing.quantity if existing else 0)
            if available < new_quantity:
                raise OutOfStockError(f"Insufficient stock for {product.name or product_id}")

            if existing:
                logger.info(
                    f"Product {product_id} already in cart of user {user_id}, "
                    f"quantity {existing.quantity} -> {new_quantity}"
                )
                existing.quantity = new_quantity
                existing.unit_price = unit_price  # refresh price snapshot
                existing.line_total = line_total(unit_price, new_quantity)
                return items

            item = CartItemModel(
                cart_id=cart.id,
                position=max((i.position for i in items), default=-1) + 1,
                product_id=product_id,
                variant_sku=_sku_key(variant_sku),
                product_name=product.name,
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total(unit_price, quantity),
            )
            self.repo.add_cart_item(item)
            return items + [item]

        result = self._mutate(user_id, mutate)
        logger.info(f"Product {product_id} added to cart of user {user_id}")
        return result

    def update_item(
        self,
        user_id: str,
        product_id: str,
        quantity: int,
        variant_sku: str | None = None,
    ) -> Dict[str, Any]:
        if not self.product_client.has_stock(product_id, variant_sku, quantity):
            raise OutOfStockError(f"Insufficient stock for {product_id}")

        def mutate(cart: CartModel, items: List[CartItemModel]) -> List[CartItemModel]:
            existing = self._find(items, product_id, variant_sku)
            if not existing:
                raise NotFoundError("Item not found in cart")
            existing.quantity = quantity
            existing.line_total = line_total(Decimal(existing.unit_price), quantity)
            return items

        result = self._mutate(user_id, mutate)
        logger.info(f"Cart item {product_id} of user {user_id} set to {quantity}")
        return result

    def remove_item(self, user_id: str, product_id: str, variant_sku: str | None = None) -> Dict[str, Any]:
        def mutate(cart: CartModel, items: List[CartItemModel]) -> List[CartItemModel]:
            existing = self._find(items, product_id, variant_sku)
            if not existing:
                return items
            self.repo.delete_cart_item(existing)
            return [i for i in items if i is not existing]

        result = self._mutate(user_id, mutate)
        logger.info(f"Product {product_id} removed from cart of user {user_id}")
        return result

    def clear_cart(self, user_id: str) -> None:
        cart = self.repo.get_cart_by_user(user_id)
        if not cart:
            return

        def mutate(cart: CartModel, items: List[CartItemModel]) -> List[CartItemModel]:
            self.repo.delete_all_items(cart.id)
            return []

        self._mutate(user_id, mutate)
        logger.info(f"Cart of user {user_id} cleared")

    # =====================================================
    # INTERNALS
    # =====================================================
    def _mutate(
        self,
        user_id: str,
        mutate: Callable[[CartModel, List[CartItemModel]], List[CartItemModel]],
    ) -> Dict[str, Any]:
        with self.lock_service.cart_lock(user_id):
            cart = self._get_or_create(user_id)
            items = self.repo.get_cart_items(cart.id)

            try:
                items = mutate(cart, items)
            except Exception:
                self.repo.rollback()
                raise

            subtotal = sum((Decimal(i.line_total) for i in items), ZERO)

            rowcount = self.repo.update_cart_version(
                cart_id=cart.id,
                old_version=cart.version,
                new_data={
                    "version": cart.version + 1,
                    "subtotal": to_money(subtotal),
                    "expires_at": self._new_expiry(),
                },
            )

            # version check, UPDATE ... WHERE id = :id AND version = :old
            if rowcount == 0:
                self.repo.rollback()
                raise ConflictError("Cart was modified by another request, try again")

            self.repo.commit()
            cart = self.repo.refresh(cart)
            logger.info(f"Cart {cart.id} saved, version {cart.version}")

        return self._to_dict(cart)

    def _get_or_create(self, user_id: str) -> CartModel:
        cart = self.repo.get_cart_by_user(user_id)
        if cart:
            return cart

        try:
            created = self.repo.create_cart(
                CartModel(
                    user_id=user_id,
                    subtotal=ZERO,
                    version=1,
                    expires_at=self._new_expiry(),
                )
            )
        except IntegrityError:
            # another request created it first
            self.repo.rollback()
            return self.repo.get_cart_by_user(user_id)

        logger.info(f"Created cart {created.id} for user {user_id}")
        return created

    def _new_expiry(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds)

    @staticmethod
    def _find(items: List[CartItemModel], product_id: str, variant_sku: str | None) -> CartItemModel | None:
        key = (product_id, _sku_key(variant_sku))
        return next((i for i in items if (i.product_id, i.variant_sku or "") == key), None)

    def _to_dict(self, cart: CartModel) -> Dict[str, Any]:
        items = self.repo.get_cart_items(cart.id)
        return {
            "id": cart.id,
            "user_id": cart.user_id,
            "items": [
                {
                    "product_id": i.product_id,
                    "variant_sku": i.variant_sku or None,
                    "product_name": i.product_name,
                    "quantity": i.quantity,
                    "unit_price": to_money(i.unit_price),
                    "line_total": to_money(i.line_total),
                }
                for i in items
            ],
            "subtotal": to_money(cart.subtotal),
            "expires_at": cart.expires_at,
        }
