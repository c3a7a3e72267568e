# storefront/services/order_service.py
import math
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.order_status_history import OrderStatusHistoryModel
from storefront.domain.errors import (
    EmptyCart,
    InvalidCart,
    InvalidAddress,
    AddressNotFound,
    InvalidTransition,
    InsufficientStock,
    OrderNotFound,
    OrderNotCancellable,
    InvalidPaymentStatus,
    OrderNumberConflict,
    OrderConflict,
    UserNotFound,
    NotAuthorized,
    CartConflict,
    CheckoutInProgress,
)
from storefront.domain.order_status import (
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    DeliveryType,
    CartStatus,
    is_valid_status_transition,
    can_customer_cancel,
    payment_method_label,
    generate_order_number,
)
from storefront.domain.pricing import ZERO, round_money, to_decimal, order_total
from storefront.domain.schemas import OrderCreate
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.cart_service import CartService
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.utils.settings import (
    DELIVERY_SURCHARGE,
    CHECKOUT_LOCK_TTL_SECONDS,
    ORDER_NUMBER_MAX_ATTEMPTS,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PICKUP_ADDRESS = {
    "street": "Odbior w sklepie",
    "city": "Do ustalenia",
    "province": "Do ustalenia",
    "references": "Klient odbierze zamowienie w sklepie",
}


class OrderService:
    """
    Serwis odpowiedzialny za domenę zamówień.
    Checkout jest jedna transakcja: zamowienie, pozycje, zdjecie stanu
    i zamkniecie koszyka albo wszystko, albo nic.
    """

    def __init__(
        self,
        db: Session,
        notification_service: NotificationService | None = None,
        lock_service: LockService | None = None,
        order_number_factory=generate_order_number,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.carts = CartRepo(db)
        self.products = ProductRepo(db)
        self.users = UserRepo(db)
        self.cart_service = CartService(db)
        self.notification_service = notification_service or NotificationService()
        self.lock_service = lock_service or LockService()
        self.order_number_factory = order_number_factory

    def create_order_from_cart(self, user_id: int, request: OrderCreate) -> OrderModel:
        """
        Use Case: Tworzenie zamówienia z aktywnego koszyka.

        1. Pobiera koszyk i waliduje go wzgledem katalogu
        2. Ustala adres (adres uzytkownika albo odbior w sklepie)
        3. Liczy sumy, tworzy zamowienie i pozycje, zdejmuje stan
        4. Zamyka koszyk i commituje
        5. Wysyła powiadomienie (po commicie, best-effort)
        """
        token = uuid.uuid4().hex
        if not self.lock_service.acquire_checkout_lock(user_id, token, CHECKOUT_LOCK_TTL_SECONDS):
            raise CheckoutInProgress(f"Zamowienie uzytkownika {user_id} jest juz przetwarzane")

        try:
            order_id = self._checkout(user_id, request)
        finally:
            self._release_checkout_lock(user_id, token)

        order = self.repo.get_order(order_id)
        self._notify(
            self.notification_service.order_confirmed,
            order,
            order.items,
            order.shipping_address,
            payment_method_label(order.payment_method),
        )
        return order

    def _checkout(self, user_id: int, request: OrderCreate) -> int:
        try:
            cart = self.carts.get_active_cart_by_user(user_id)
            cart_items = self.carts.get_cart_items(cart.id) if cart else []
            if not cart_items:
                raise EmptyCart()

            validation = self.cart_service.validate_cart(cart.id)
            if not validation["valid"]:
                raise InvalidCart(validation["errors"])

            user = self.users.get_user(user_id)
            if not user:
                raise UserNotFound(f"Uzytkownik {user_id} nie istnieje")

            delivery_type = DeliveryType(request.delivery_type)
            shipping_address = self._resolve_shipping_address(user_id, request)

            totals = self.cart_service.calculate_totals(cart.id)
            shipping_cost = round_money(DELIVERY_SURCHARGE) if delivery_type == DeliveryType.DELIVERY else ZERO
            tax = ZERO

            order = self.repo.create_order(
                OrderModel(
                    order_number=self._allocate_order_number(),
                    user_id=user_id,
                    cart_id=cart.id,
                    status=OrderStatus.PENDING.value,
                    payment_status=PaymentStatus.PENDING.value,
                    payment_method=PaymentMethod(request.payment_method).value,
                    subtotal=totals["subtotal"],
                    discount=totals["discount"],
                    shipping_cost=shipping_cost,
                    tax=tax,
                    total=order_total(totals["subtotal"], totals["discount"], shipping_cost, tax),
                    shipping_address=shipping_address,
                    delivery_type=delivery_type.value,
                    delivery_date=request.delivery_date,
                    delivery_time_slot=request.delivery_time_slot,
                    customer_name=user.full_name,
                    customer_email=user.email,
                    customer_phone=user.phone,
                    customer_notes=request.customer_notes,
                )
            )
            logger.info(f"Order {order.order_number} created from cart {cart.id}")

            for cart_item in cart_items:
                product = cart_item.product
                unit_price = round_money(cart_item.price)
                line_subtotal = round_money(unit_price * cart_item.quantity)
                line_discount = round_money(to_decimal(cart_item.discount) * cart_item.quantity)

                self.repo.add_order_item(
                    OrderItemModel(
                        order_id=order.id,
                        product_id=product.id,
                        product_name=product.name,
                        product_sku=product.sku,
                        quantity=cart_item.quantity,
                        unit_price=unit_price,
                        discount=line_discount,
                        subtotal=line_subtotal,
                        total=line_subtotal - line_discount,
                    )
                )

                # ostateczna kontrola stanu - warunek w tym samym UPDATE
                if not self.products.decrement_stock(product.id, cart_item.quantity):
                    self.products.reload(product)
                    raise InsufficientStock(product.id, cart_item.quantity, product.stock, product.name)

            self.repo.add_status_history(
                OrderStatusHistoryModel(
                    order_id=order.id,
                    previous_status=None,
                    new_status=OrderStatus.PENDING.value,
                    notes="Zamowienie utworzone",
                    changed_by=user_id,
                )
            )

            rowcount = self.carts.update_cart_version(
                cart_id=cart.id,
                old_version=cart.version,
                new_data={"status": CartStatus.COMPLETED.value, "version": cart.version + 1},
            )
            if rowcount == 0:
                raise CartConflict(cart.id)

            self.repo.commit()
            return order.id

        except Exception as e:
            self.repo.rollback()
            logger.error(f"Checkout for user {user_id} rolled back: {e}")
            raise

    def get_order(self, order_id: int, requester_id: int | None = None) -> OrderModel:
        """
        Use Case: Pobranie zamówienia (Query).
        """
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound(f"Zamowienie {order_id} nie istnieje")

        if requester_id is not None:
            self._ensure_owner_or_admin(order, requester_id, "Brak dostepu do zamowienia")

        return order

    def list_user_orders(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ):
        return self._paginate(page, limit, user_id=user_id, status=status, start_date=start_date, end_date=end_date)

    def list_all_orders(
        self,
        page: int = 1,
        limit: int = 20,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ):
        """Widok obslugi sklepu - wszystkie zamowienia, te same filtry co dla klienta."""
        return self._paginate(page, limit, status=status, start_date=start_date, end_date=end_date)

    def get_recent_orders(self, limit: int = 10):
        orders, _ = self.repo.list_orders(0, max(limit, 1))
        return orders

    def get_order_stats(self, start_date: datetime | None = None, end_date: datetime | None = None):
        by_status = self.repo.count_by_status(start_date, end_date)

        return {
            "total_orders": sum(count for _, count, _ in by_status),
            "orders_by_status": [
                {"status": status, "count": count, "total_amount": round_money(amount)}
                for status, count, amount in by_status
            ],
            # przychod liczony tylko z oplaconych
            "revenue": round_money(self.repo.paid_revenue(start_date, end_date)),
            "average_order_value": round_money(self.repo.average_total(start_date, end_date)),
            "top_products": [
                {
                    "product_id": row.product_id,
                    "product_name": row.product_name,
                    "total_sold": int(row.total_sold),
                    "revenue": round_money(row.revenue),
                }
                for row in self.repo.top_products(10, start_date, end_date)
            ],
        }

    def _paginate(self, page: int, limit: int, **filters):
        page = max(page, 1)
        limit = max(limit, 1)
        orders, total = self.repo.list_orders((page - 1) * limit, limit, **filters)
        total_pages = math.ceil(total / limit) if total else 0

        return {
            "orders": orders,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "total_pages": total_pages,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }

    def update_order_status(
        self,
        order_id: int,
        new_status: str,
        actor_id: int | None = None,
        notes: str | None = None,
        tracking_number: str | None = None,
    ) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound(f"Zamowienie {order_id} nie istnieje")

        previous_status = order.status
        if not is_valid_status_transition(previous_status, new_status):
            raise InvalidTransition(previous_status, str(getattr(new_status, "value", new_status)))

        new_status = OrderStatus(new_status).value
        now = datetime.now(timezone.utc)
        values = {"status": new_status}

        if new_status == OrderStatus.CANCELLED.value:
            values["cancelled_at"] = now
            values["cancellation_reason"] = notes or "Anulowane przez uzytkownika"

        if new_status == OrderStatus.DELIVERED.value:
            values["completed_at"] = now
            values["payment_status"] = PaymentStatus.PAID.value
            if order.paid_at is None:
                values["paid_at"] = now

        if new_status == OrderStatus.SHIPPED.value and tracking_number:
            values["tracking_number"] = tracking_number

        try:
            # warunek na poprzedni status - przy rownoleglej zmianie 0 rows affected
            if self.repo.update_order_status(order_id, previous_status, values) == 0:
                raise OrderConflict(order_id)

            if new_status == OrderStatus.CANCELLED.value:
                self._restore_stock(order)

            self.repo.add_status_history(
                OrderStatusHistoryModel(
                    order_id=order_id,
                    previous_status=previous_status,
                    new_status=new_status,
                    notes=notes,
                    changed_by=actor_id,
                )
            )
            self.repo.commit()
        except Exception as e:
            self.repo.rollback()
            logger.error(f"Status change of order {order_id} to {new_status} rolled back: {e}")
            raise

        logger.info(f"Order {order.order_number}: {previous_status} -> {new_status}")

        order = self.repo.get_order(order_id)
        self._notify(
            self.notification_service.order_status_changed,
            order,
            new_status,
            order.tracking_number,
        )
        return order

    def cancel_order(self, order_id: int, requester_id: int, reason: str | None = None) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound(f"Zamowienie {order_id} nie istnieje")

        self._ensure_owner_or_admin(order, requester_id, "Brak uprawnien do anulowania zamowienia")

        if not can_customer_cancel(order.status):
            raise OrderNotCancellable(order.status)

        return self.update_order_status(
            order_id,
            OrderStatus.CANCELLED.value,
            actor_id=requester_id,
            notes=reason,
        )

    def update_payment_status(
        self,
        order_id: int,
        payment_status: str,
        actor_id: int | None = None,
        payment_reference: str | None = None,
    ) -> OrderModel:
        """
        Reczna zmiana statusu platnosci przez obsluge (np. potwierdzony przelew).
        Status zamowienia sie nie zmienia.
        """
        try:
            new_payment_status = PaymentStatus(payment_status).value
        except ValueError:
            raise InvalidPaymentStatus(str(payment_status))

        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound(f"Zamowienie {order_id} nie istnieje")

        previous = order.payment_status
        values = {"payment_status": new_payment_status}
        if payment_reference:
            values["payment_reference"] = payment_reference
        if new_payment_status == PaymentStatus.PAID.value and order.paid_at is None:
            values["paid_at"] = datetime.now(timezone.utc)

        try:
            if self.repo.update_payment(order_id, previous, values) == 0:
                raise OrderConflict(order_id)
            self.repo.commit()
        except Exception as e:
            self.repo.rollback()
            logger.error(f"Payment update of order {order_id} rolled back: {e}")
            raise

        logger.info(f"Order {order.order_number} payment: {previous} -> {new_payment_status} (actor {actor_id})")
        return self.repo.get_order(order_id)

    def update_admin_notes(self, order_id: int, admin_notes: str | None) -> OrderModel:
        try:
            if self.repo.update_admin_notes(order_id, admin_notes) == 0:
                raise OrderNotFound(f"Zamowienie {order_id} nie istnieje")
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        return self.repo.get_order(order_id)

    def require_admin(self, user_id: int):
        user = self.users.get_user(user_id)
        if not user or not user.is_admin:
            raise NotAuthorized("Operacja wymaga uprawnien administratora")
        return user

    # helpers
    def _resolve_shipping_address(self, user_id: int, request: OrderCreate) -> dict:
        if DeliveryType(request.delivery_type) == DeliveryType.PICKUP:
            return dict(PICKUP_ADDRESS)

        if not request.address_id:
            raise InvalidAddress("Adres dostawy jest wymagany")

        address = self.users.get_user_address(user_id, request.address_id)
        if not address:
            raise AddressNotFound(f"Adres {request.address_id} nie istnieje dla uzytkownika {user_id}")

        return address.to_snapshot()

    def _allocate_order_number(self) -> str:
        for _ in range(ORDER_NUMBER_MAX_ATTEMPTS):
            candidate = self.order_number_factory()
            if not self.repo.order_number_exists(candidate):
                return candidate
            logger.warning(f"Order number collision: {candidate}")

        raise OrderNumberConflict("Nie udalo sie wygenerowac unikalnego numeru zamowienia")

    def _restore_stock(self, order: OrderModel):
        for item in self.repo.get_order_items(order.id):
            if not self.products.restore_stock(item.product_id, item.quantity):
                logger.warning(f"Product {item.product_id} missing while restoring stock of {order.order_number}")

    def _ensure_owner_or_admin(self, order: OrderModel, requester_id: int, message: str):
        if order.user_id == requester_id:
            return
        requester = self.users.get_user(requester_id)
        if not requester or not requester.is_admin:
            raise NotAuthorized(message)

    def _release_checkout_lock(self, user_id: int, token: str):
        try:
            self.lock_service.release_checkout_lock(user_id, token)
        except Exception as e:
            # lock i tak wygasnie po TTL
            logger.warning(f"Failed to release checkout lock for user {user_id}: {e}")

    @staticmethod
    def _notify(send, *args):
        try:
            send(*args)
        except Exception as e:
            logger.error(f"Notification failed (order already committed): {e}")
