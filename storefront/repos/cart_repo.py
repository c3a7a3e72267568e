# storefront/repos/cart_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel


class CartRepo:
    """Repozytorium koszyka. Tylko flush - commit/rollback nalezy do serwisu."""

    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: int) -> CartModel | None:
        return self.db.get(CartModel, cart_id)

    def get_active_cart_by_user(self, user_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.user_id == user_id, CartModel.status == "active")
        ).scalar_one_or_none()

    def get_active_cart_by_session(self, session_id: str) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.session_id == session_id, CartModel.status == "active")
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        self.db.refresh(cart)
        return cart

    def get_cart_items(self, cart_id: int) -> List[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .options(selectinload(CartItemModel.product))
                .order_by(CartItemModel.id)
            ).scalars().all()
        )

    def get_cart_item(self, cart_id: int, product_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def get_item(self, item_id: int) -> CartItemModel | None:
        return self.db.get(CartItemModel, item_id)

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_item(self, item_id: int) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.id == item_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_cart_items(self, cart_id: int) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        # np w bazie update set version 2 where id 1 and version 1
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def mark_expired_guest_carts(self, now: datetime) -> int:
        result = self.db.execute(
            update(CartModel)
            .where(
                CartModel.session_id.is_not(None),
                CartModel.status == "active",
                CartModel.expires_at < now,
            )
            .values(status="abandoned", version=CartModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
