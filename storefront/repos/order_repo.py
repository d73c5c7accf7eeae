# storefront/repos/order_repo.py
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        # order and its items go out in one transaction (items cascade from the relationship)
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get_order(self, order_id: str) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_by_number(self, order_number: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.order_number == order_number)
        ).scalar_one_or_none()

    def number_exists(self, order_number: str) -> bool:
        return self.db.execute(
            select(OrderModel.id).where(OrderModel.order_number == order_number)
        ).first() is not None

    def list_by_user(self, user_id: str, limit: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.order_date.desc())
                .limit(limit)
            ).scalars().all()
        )

    def search(
        self,
        user_id: str | None = None,
        status: str | None = None,
        payment_status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[OrderModel], int]:
        conditions = []
        if user_id:
            conditions.append(OrderModel.user_id == user_id)
        if status:
            conditions.append(OrderModel.status == status)
        if payment_status:
            conditions.append(OrderModel.payment_status == payment_status)
        if start_date:
            conditions.append(OrderModel.order_date >= start_date)
        if end_date:
            conditions.append(OrderModel.order_date <= end_date)

        total = self.db.execute(
            select(func.count()).select_from(OrderModel).where(*conditions)
        ).scalar_one()
        orders = self.db.execute(
            select(OrderModel)
            .where(*conditions)
            .order_by(OrderModel.order_date.desc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        return list(orders), total

    def count_by_status(self, user_id: str | None = None) -> dict[str, int]:
        query = select(OrderModel.status, func.count(OrderModel.id)).group_by(OrderModel.status)
        if user_id:
            query = query.where(OrderModel.user_id == user_id)
        return {status: count for status, count in self.db.execute(query).all()}

    def recent(self, limit: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel).order_by(OrderModel.order_date.desc()).limit(limit)
            ).scalars().all()
        )

    def save(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def rollback(self):
        self.db.rollback()
