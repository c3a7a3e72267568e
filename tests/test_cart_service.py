from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from storefront.data.database import SessionLocal
from storefront.data.models import CartModel, CartItemModel
from storefront.domain.errors import (
    InvalidIdentity,
    InvalidQuantity,
    ProductNotFound,
    ProductInactive,
    InsufficientStock,
    CartNotFound,
    CartNotActive,
    CartItemNotFound,
    CartConflict,
)
from storefront.domain.schemas import OrderCreate
from storefront.services.cart_service import CartService


def _naive(dt):
    return dt.replace(tzinfo=None) if dt.tzinfo else dt


def _items(db, cart_id):
    return db.query(CartItemModel).filter(CartItemModel.cart_id == cart_id).order_by(CartItemModel.id).all()


class TestGetOrCreateCart:
    def test_user_cart_is_reused(self, cart_service, customer):
        first = cart_service.get_or_create_cart(user_id=customer.id)
        second = cart_service.get_or_create_cart(user_id=customer.id)

        assert first.id == second.id
        assert first.status == "active"
        assert first.expires_at is None

    def test_guest_cart_expires(self, cart_service):
        cart = cart_service.get_or_create_cart(session_id="sess-1")

        assert cart.user_id is None
        assert cart.is_guest
        assert _naive(cart.expires_at) > datetime.utcnow() + timedelta(days=6)

    def test_guest_and_user_carts_are_separate(self, cart_service, customer):
        guest = cart_service.get_or_create_cart(session_id="sess-1")
        user = cart_service.get_or_create_cart(user_id=customer.id)

        assert guest.id != user.id

    @pytest.mark.parametrize("kwargs", [{}, {"user_id": 1, "session_id": "sess-1"}])
    def test_requires_exactly_one_identity(self, cart_service, kwargs):
        with pytest.raises(InvalidIdentity):
            cart_service.get_or_create_cart(**kwargs)

    def test_completed_cart_is_not_reused(self, db, cart_service, customer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart.status = "completed"
        db.commit()

        fresh = cart_service.get_or_create_cart(user_id=customer.id)

        assert fresh.id != cart.id

    def test_missing_cart(self, cart_service):
        with pytest.raises(CartNotFound):
            cart_service.get_cart(999)


class TestAddItem:
    def test_adds_line_with_price_snapshot(self, db, cart_service, customer, drill_bits):
        cart = cart_service.get_or_create_cart(user_id=customer.id)

        item = cart_service.add_item(cart.id, drill_bits.id, 2)

        assert item.quantity == 2
        assert item.price == Decimal("5.00")
        assert item.discount == Decimal("1.00")

    def test_same_product_twice_sums_quantity(self, db, cart_service, customer, drill_bits):
        cart = cart_service.get_or_create_cart(user_id=customer.id)

        cart_service.add_item(cart.id, drill_bits.id, 2)
        cart_service.add_item(cart.id, drill_bits.id, 2)

        items = _items(db, cart.id)
        assert len(items) == 1
        assert items[0].quantity == 4

    def test_over_stock_rejected_and_cart_unchanged(self, db, cart_service, customer, drill_bits):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, drill_bits.id, 4)

        with pytest.raises(InsufficientStock) as exc:
            cart_service.add_item(cart.id, drill_bits.id, 2)

        assert exc.value.requested == 6
        assert exc.value.available == 5
        items = _items(db, cart.id)
        assert [i.quantity for i in items] == [4]

    def test_existing_line_keeps_first_price(self, db, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 1)

        hammer.price = Decimal("12.00")
        db.commit()
        cart_service.add_item(cart.id, hammer.id, 1)

        item = _items(db, cart.id)[0]
        assert item.quantity == 2
        assert item.price == Decimal("10.00")

    def test_version_bumped_on_change(self, db, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        start = cart.version

        cart_service.add_item(cart.id, hammer.id, 1)

        assert db.get(CartModel, cart.id).version == start + 1

    @pytest.mark.parametrize("quantity", [0, -1, 101])
    def test_quantity_bounds(self, cart_service, customer, hammer, quantity):
        cart = cart_service.get_or_create_cart(user_id=customer.id)

        with pytest.raises(InvalidQuantity):
            cart_service.add_item(cart.id, hammer.id, quantity)

    def test_combined_quantity_over_limit(self, cart_service, customer, make_product):
        product = make_product(stock=500)
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, product.id, 60)

        with pytest.raises(InvalidQuantity):
            cart_service.add_item(cart.id, product.id, 50)

    def test_unknown_product(self, cart_service, customer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)

        with pytest.raises(ProductNotFound):
            cart_service.add_item(cart.id, 12345, 1)

    def test_inactive_product(self, cart_service, customer, make_product):
        product = make_product(is_active=False)
        cart = cart_service.get_or_create_cart(user_id=customer.id)

        with pytest.raises(ProductInactive):
            cart_service.add_item(cart.id, product.id, 1)

    def test_closed_cart_rejects_items(self, db, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart.status = "completed"
        db.commit()

        with pytest.raises(CartNotActive):
            cart_service.add_item(cart.id, hammer.id, 1)

    def test_adding_does_not_touch_stock(self, db, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)

        cart_service.add_item(cart.id, hammer.id, 3)

        db.refresh(hammer)
        assert hammer.stock == 10


class TestUpdateRemoveClear:
    def test_update_quantity(self, db, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        item = cart_service.add_item(cart.id, hammer.id, 1)

        updated = cart_service.update_item_quantity(item.id, 7)

        assert updated.quantity == 7

    def test_update_over_stock(self, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        item = cart_service.add_item(cart.id, hammer.id, 1)

        with pytest.raises(InsufficientStock):
            cart_service.update_item_quantity(item.id, 11)

    def test_update_zero_quantity(self, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        item = cart_service.add_item(cart.id, hammer.id, 1)

        with pytest.raises(InvalidQuantity):
            cart_service.update_item_quantity(item.id, 0)

    def test_update_missing_item(self, cart_service):
        with pytest.raises(CartItemNotFound):
            cart_service.update_item_quantity(999, 1)

    def test_update_item_of_other_cart(self, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        item = cart_service.add_item(cart.id, hammer.id, 1)

        with pytest.raises(CartItemNotFound):
            cart_service.update_item_quantity(item.id, 2, cart_id=cart.id + 100)

    def test_remove_is_idempotent(self, db, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        item_id = cart_service.add_item(cart.id, hammer.id, 1).id

        assert cart_service.remove_item(item_id) is True
        assert cart_service.remove_item(item_id) is False
        assert _items(db, cart.id) == []

    def test_clear_keeps_cart(self, db, cart_service, customer, hammer, drill_bits):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 1)
        cart_service.add_item(cart.id, drill_bits.id, 1)

        assert cart_service.clear_cart(cart.id) == 2
        assert _items(db, cart.id) == []
        assert db.get(CartModel, cart.id).status == "active"


class TestTotalsAndValidation:
    def test_totals(self, cart_service, customer, hammer, drill_bits):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 2)
        cart_service.add_item(cart.id, drill_bits.id, 1)

        totals = cart_service.calculate_totals(cart.id)

        assert totals["subtotal"] == Decimal("25.00")
        assert totals["discount"] == Decimal("1.00")
        assert totals["item_count"] == 3

    def test_checkout_total_matches_order_before_shipping(self, cart_service, order_service, customer, address, hammer, drill_bits):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 2)
        cart_service.add_item(cart.id, drill_bits.id, 1)
        checkout_total = cart_service.calculate_totals(cart.id)["checkout_total"]

        order = order_service.create_order_from_cart(
            customer.id, OrderCreate(payment_method="cash", address_id=address.id)
        )

        assert checkout_total == Decimal("24.00")
        assert order.total == checkout_total + order.shipping_cost + order.tax

    def test_valid_cart(self, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 2)

        result = cart_service.validate_cart(cart.id)

        assert result["valid"] is True
        assert result["errors"] == []
        assert result["warnings"] == []
        assert result["items_count"] == 1

    def test_inactive_and_out_of_stock_are_errors(self, db, cart_service, customer, hammer, drill_bits):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 1)
        cart_service.add_item(cart.id, drill_bits.id, 1)

        hammer.is_active = False
        drill_bits.stock = 0
        db.commit()

        result = cart_service.validate_cart(cart.id)

        assert result["valid"] is False
        assert sorted(e["type"] for e in result["errors"]) == ["inactive", "out_of_stock"]

    def test_low_stock_and_price_change_are_warnings(self, db, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 5)

        hammer.stock = 3
        hammer.price = Decimal("11.00")
        db.commit()

        result = cart_service.validate_cart(cart.id)

        assert result["valid"] is True
        kinds = {w["type"]: w for w in result["warnings"]}
        assert kinds["insufficient_stock"]["available_stock"] == 3
        assert kinds["price_changed"]["old_price"] == Decimal("10.00")
        assert kinds["price_changed"]["new_price"] == Decimal("11.00")

    def test_sync_prices(self, db, cart_service, customer, hammer, drill_bits):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 1)
        cart_service.add_item(cart.id, drill_bits.id, 1)

        hammer.price = Decimal("9.50")
        db.commit()

        result = cart_service.sync_prices(cart.id)

        assert result["updated"] is True
        assert [u["product_id"] for u in result["updates"]] == [hammer.id]
        assert _items(db, cart.id)[0].price == Decimal("9.50")
        assert cart_service.sync_prices(cart.id)["updated"] is False

    def test_summary(self, cart_service, customer, hammer, drill_bits):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 2)
        cart_service.add_item(cart.id, drill_bits.id, 1)

        summary = cart_service.get_cart_summary(cart.id)

        assert summary["cart"]["items_count"] == 2
        assert sum(i["quantity"] for i in summary["items"]) == summary["totals"]["item_count"]
        assert summary["items"][1]["total"] == Decimal("4.00")
        assert summary["validation"]["valid"] is True


class TestMergeGuestCart:
    def test_merge_skips_unavailable_items(self, db, cart_service, customer, hammer, drill_bits):
        guest = cart_service.get_or_create_cart(session_id="sess-1")
        cart_service.add_item(guest.id, hammer.id, 1)
        cart_service.add_item(guest.id, drill_bits.id, 2)

        drill_bits.stock = 0
        db.commit()

        result = cart_service.merge_guest_cart("sess-1", customer.id)

        assert result["merged"] is True
        user_cart = cart_service.get_or_create_cart(user_id=customer.id)
        items = _items(db, user_cart.id)
        assert [(i.product_id, i.quantity) for i in items] == [(hammer.id, 1)]
        assert db.get(CartModel, guest.id).status == "completed"

    def test_merge_sums_into_existing_user_cart(self, db, cart_service, customer, hammer):
        user_cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(user_cart.id, hammer.id, 2)
        guest = cart_service.get_or_create_cart(session_id="sess-1")
        cart_service.add_item(guest.id, hammer.id, 3)

        cart_service.merge_guest_cart("sess-1", customer.id)

        assert [i.quantity for i in _items(db, user_cart.id)] == [5]

    def test_missing_guest_cart(self, cart_service, customer):
        assert cart_service.merge_guest_cart("nope", customer.id)["merged"] is False

    def test_empty_guest_cart(self, cart_service, customer):
        cart_service.get_or_create_cart(session_id="sess-1")

        assert cart_service.merge_guest_cart("sess-1", customer.id)["merged"] is False


class TestAbandonExpiredCarts:
    def test_only_expired_guest_carts(self, db, cart_service, customer):
        expired = cart_service.get_or_create_cart(session_id="old")
        fresh = cart_service.get_or_create_cart(session_id="new")
        user_cart = cart_service.get_or_create_cart(user_id=customer.id)

        expired.expires_at = datetime.now(timezone.utc) - timedelta(days=1)
        db.commit()

        assert cart_service.abandon_expired_carts() == 1
        assert db.get(CartModel, expired.id).status == "abandoned"
        assert db.get(CartModel, fresh.id).status == "active"
        assert db.get(CartModel, user_cart.id).status == "active"

    def test_abandoned_session_gets_new_cart(self, db, cart_service):
        cart = cart_service.get_or_create_cart(session_id="old")
        cart.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        db.commit()
        cart_service.abandon_expired_carts()

        assert cart_service.get_or_create_cart(session_id="old").id != cart.id


class TestExpireTask:
    def test_task_runs_sweep(self, db, cart_service):
        from storefront.tasks.expire import expire_carts_task

        cart = cart_service.get_or_create_cart(session_id="old")
        cart.expires_at = datetime.now(timezone.utc) - timedelta(hours=1)
        db.commit()

        assert expire_carts_task.run() == 1
        assert db.get(CartModel, cart.id).status == "abandoned"


class TestClosedCart:
    def _completed_cart(self, db, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        item_id = cart_service.add_item(cart.id, hammer.id, 2).id
        cart.status = "completed"
        db.commit()
        return cart.id, item_id

    def test_remove_item_rejected(self, db, cart_service, customer, hammer):
        cart_id, item_id = self._completed_cart(db, cart_service, customer, hammer)

        with pytest.raises(CartNotActive):
            cart_service.remove_item(item_id)

        assert [i.quantity for i in _items(db, cart_id)] == [2]

    def test_clear_rejected(self, db, cart_service, customer, hammer):
        cart_id, _ = self._completed_cart(db, cart_service, customer, hammer)

        with pytest.raises(CartNotActive):
            cart_service.clear_cart(cart_id)

        assert len(_items(db, cart_id)) == 1


def _bump_version_first(monkeypatch, db, cart_service, cart_id):
    # inna transakcja zdazyla podbic wersje koszyka
    real = cart_service.repo.update_cart_version

    def racing(*args, **kwargs):
        db.execute(update(CartModel).where(CartModel.id == cart_id).values(version=CartModel.version + 1))
        return real(*args, **kwargs)

    monkeypatch.setattr(cart_service.repo, "update_cart_version", racing)


class TestConcurrentCartWrites:
    def test_stale_version_on_new_line(self, db, monkeypatch, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        version = cart.version
        _bump_version_first(monkeypatch, db, cart_service, cart.id)

        with pytest.raises(CartConflict):
            cart_service.add_item(cart.id, hammer.id, 1)

        assert _items(db, cart.id) == []
        assert db.get(CartModel, cart.id).version == version

    def test_stale_version_on_existing_line(self, db, monkeypatch, cart_service, customer, hammer):
        cart = cart_service.get_or_create_cart(user_id=customer.id)
        cart_service.add_item(cart.id, hammer.id, 1)
        _bump_version_first(monkeypatch, db, cart_service, cart.id)

        with pytest.raises(CartConflict):
            cart_service.add_item(cart.id, hammer.id, 2)

        assert [i.quantity for i in _items(db, cart.id)] == [1]

    def test_concurrent_create_returns_winner(self, db, monkeypatch, cart_service, customer):
        user_id = customer.id
        real = cart_service._find_active
        calls = []

        def racing(uid, session_id):
            calls.append(uid)
            if len(calls) == 1:
                # drugie zadanie tworzy koszyk miedzy odczytem a insertem
                other = SessionLocal()
                try:
                    CartService(other).get_or_create_cart(user_id=uid)
                finally:
                    other.close()
                return None
            return real(uid, session_id)

        monkeypatch.setattr(cart_service, "_find_active", racing)

        cart = cart_service.get_or_create_cart(user_id=user_id)

        active = db.query(CartModel).filter(CartModel.user_id == user_id, CartModel.status == "active").all()
        assert [c.id for c in active] == [cart.id]
        assert len(calls) == 2
