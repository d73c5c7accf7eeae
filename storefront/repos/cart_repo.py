# storefront/repos/cart_repo.py
from datetime import datetime

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart_by_user(self, user_id: str) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .where(CartModel.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.commit()
        self.db.refresh(cart)
        return cart

    def get_cart_items(self, cart_id: str) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .order_by(CartItemModel.position)
            ).scalars().all()
        )

    def add_cart_item(self, item: CartItemModel) -> None:
        self.db.add(item)

    def delete_cart_item(self, item: CartItemModel) -> None:
        self.db.delete(item)

    def delete_all_items(self, cart_id: str) -> None:
        self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))

    def update_cart_version(self, cart_id: str, old_version: int, new_data: dict) -> int:
        """
        Compare-and-set on the version column:
        UPDATE carts SET version = old + 1, ... WHERE id = :id AND version = :old
        """
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_expired(self, now: datetime) -> int:
        expired_ids = self.db.execute(
            select(CartModel.id).where(CartModel.expires_at < now)
        ).scalars().all()
        if not expired_ids:
            return 0
        self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id.in_(expired_ids)))
        self.db.execute(delete(CartModel).where(CartModel.id.in_(expired_ids)))
        return len(expired_ids)

    def refresh(self, cart: CartModel) -> CartModel:
        self.db.refresh(cart)
        return cart

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
