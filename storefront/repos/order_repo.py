# storefront/repos/order_repo.py
from datetime import datetime
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.order_status_history import OrderStatusHistoryModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def add_order_item(self, item: OrderItemModel) -> OrderItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def add_status_history(self, entry: OrderStatusHistoryModel) -> OrderStatusHistoryModel:
        self.db.add(entry)
        self.db.flush()
        return entry

    def order_number_exists(self, order_number: str) -> bool:
        return self.db.execute(
            select(OrderModel.id).where(OrderModel.order_number == order_number)
        ).first() is not None

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .options(selectinload(OrderModel.items), selectinload(OrderModel.status_history))
        ).scalar_one_or_none()

    def get_order_items(self, order_id: int) -> List[OrderItemModel]:
        return list(
            self.db.execute(
                select(OrderItemModel)
                .where(OrderItemModel.order_id == order_id)
                .order_by(OrderItemModel.id)
            ).scalars().all()
        )

    @staticmethod
    def _filters(
        user_id: int | None = None,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list:
        conditions = []
        if user_id is not None:
            conditions.append(OrderModel.user_id == user_id)
        if status:
            conditions.append(OrderModel.status == status)
        if start_date is not None:
            conditions.append(OrderModel.created_at >= start_date)
        if end_date is not None:
            conditions.append(OrderModel.created_at <= end_date)
        return conditions

    def list_orders(
        self,
        offset: int,
        limit: int,
        user_id: int | None = None,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Tuple[List[OrderModel], int]:
        conditions = self._filters(user_id, status, start_date, end_date)

        total = self.db.execute(
            select(func.count(OrderModel.id)).where(*conditions)
        ).scalar_one()

        orders = self.db.execute(
            select(OrderModel)
            .where(*conditions)
            .options(selectinload(OrderModel.items), selectinload(OrderModel.status_history))
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()

        return list(orders), total

    def count_by_status(self, start_date=None, end_date=None) -> List[Tuple[str, int, Decimal]]:
        rows = self.db.execute(
            select(OrderModel.status, func.count(OrderModel.id), func.sum(OrderModel.total))
            .where(*self._filters(start_date=start_date, end_date=end_date))
            .group_by(OrderModel.status)
            .order_by(OrderModel.status)
        ).all()
        return [(status, count, amount) for status, count, amount in rows]

    def paid_revenue(self, start_date=None, end_date=None):
        return self.db.execute(
            select(func.sum(OrderModel.total)).where(
                OrderModel.payment_status == "paid",
                *self._filters(start_date=start_date, end_date=end_date),
            )
        ).scalar()

    def average_total(self, start_date=None, end_date=None):
        return self.db.execute(
            select(func.avg(OrderModel.total)).where(*self._filters(start_date=start_date, end_date=end_date))
        ).scalar()

    def top_products(self, limit: int = 10, start_date=None, end_date=None) -> list:
        total_sold = func.sum(OrderItemModel.quantity).label("total_sold")
        return self.db.execute(
            select(
                OrderItemModel.product_id,
                OrderItemModel.product_name,
                total_sold,
                func.sum(OrderItemModel.total).label("revenue"),
            )
            .join(OrderModel, OrderModel.id == OrderItemModel.order_id)
            .where(*self._filters(start_date=start_date, end_date=end_date))
            .group_by(OrderItemModel.product_id, OrderItemModel.product_name)
            .order_by(total_sold.desc(), OrderItemModel.product_id)
            .limit(limit)
        ).all()

    def update_order_status(self, order_id: int, expected_status: str, values: dict) -> int:
        # warunek na poprzedni status - rownolegla zmiana statusu nie przejdzie dwa razy
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def update_payment(self, order_id: int, expected_payment_status: str, values: dict) -> int:
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.payment_status == expected_payment_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def update_admin_notes(self, order_id: int, admin_notes: str | None) -> int:
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id)
            .values(admin_notes=admin_notes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
