from datetime import datetime, timezone, timedelta
from typing import Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import (
    StorefrontError,
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
from storefront.domain.order_status import CartStatus
from storefront.domain.pricing import calculate_line_totals, unit_discount, round_money, to_decimal
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.utils.settings import GUEST_CART_TTL_SECONDS, MAX_ITEM_QUANTITY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Use case'y dla domeny cart
    commands (add, update, remove, clear, sync, merge) modyfikuja stan
    query (totals, validate, summary) tylko odczyt

    Stan magazynu jest tu tylko sprawdzany, nigdy nie zdejmowany -
    rezerwacja nastepuje dopiero przy skladaniu zamowienia.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)

    #query - odczyt
    def get_cart(self, cart_id: int) -> CartModel:
        cart = self.repo.get_cart(cart_id)
        if not cart:
            raise CartNotFound(f"Koszyk {cart_id} nie istnieje")
        return cart

    def get_or_create_cart(self, user_id: int | None = None, session_id: str | None = None) -> CartModel:
        if (user_id is None) == (session_id is None):
            raise InvalidIdentity("Koszyk wymaga dokladnie jednego z: user_id, session_id")

        existing = self._find_active(user_id, session_id)
        if existing:
            return existing

        if user_id is not None:
            new_cart = CartModel(user_id=user_id, status=CartStatus.ACTIVE.value, version=1)
        else:
            # tylko koszyk goscia wygasa
            expires = datetime.now(timezone.utc) + timedelta(seconds=GUEST_CART_TTL_SECONDS)
            new_cart = CartModel(
                session_id=session_id,
                status=CartStatus.ACTIVE.value,
                version=1,
                expires_at=expires,
            )

        try:
            created = self.repo.create_cart(new_cart)
            self.repo.commit()
        except IntegrityError:
            # rownolegle pierwsze zadanie juz utworzylo koszyk (unikalny indeks na aktywny koszyk)
            self.repo.rollback()
            existing = self._find_active(user_id, session_id)
            if existing:
                return existing
            raise

        logger.info(f"Utworzono nowy koszyk {created.id} dla {self._owner_label(user_id, session_id)}")
        return created

    #commands
    def add_item(self, cart_id: int, product_id: int, quantity: int = 1) -> CartItemModel:
        self._check_quantity(quantity)

        cart = self._get_active_cart(cart_id)

        product = self.products.get_product(product_id)
        if not product:
            raise ProductNotFound(product_id)
        if not product.is_active:
            raise ProductInactive(product_id, product.name)

        existing_item = self.repo.get_cart_item(cart_id, product_id)
        in_cart = existing_item.quantity if existing_item else 0
        new_quantity = in_cart + quantity

        if new_quantity > MAX_ITEM_QUANTITY:
            raise InvalidQuantity(
                f"Maksymalna ilosc produktu w koszyku to {MAX_ITEM_QUANTITY} (w koszyku: {in_cart})"
            )

        # sprawdzenie stanu bez rezerwacji - ostateczna kontrola przy checkoucie
        if product.stock < new_quantity:
            raise InsufficientStock(product_id, new_quantity, product.stock, product.name)

        try:
            if existing_item:
                logger.info(
                    f"Produkt {product_id} już jest w koszyku, zwiekszam ilosc "
                    f"z {existing_item.quantity} do {new_quantity}"
                )
                # cena zostaje z momentu pierwszego dodania
                existing_item.quantity = new_quantity
                item = self.repo.add_cart_item(existing_item)
            else:
                logger.info(f"Dodaje nowy produkt {product_id} do koszyka {cart_id}")
                item = self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=cart_id,
                        product_id=product_id,
                        quantity=quantity,
                        price=round_money(product.price),
                        discount=unit_discount(product.price, product.compare_price),
                    )
                )

            self._bump_version(cart)
            self.repo.commit()
        except Exception as e:
            logger.error(f"Blad podczas dodawania produktu {product_id} do koszyka {cart_id}: {e}")
            self.repo.rollback()
            raise

        return item

    def update_item_quantity(self, item_id: int, quantity: int, cart_id: int | None = None) -> CartItemModel:
        self._check_quantity(quantity)

        item = self._get_item(item_id, cart_id)
        cart = self._get_active_cart(item.cart_id)

        product = item.product
        if product.stock < quantity:
            raise InsufficientStock(product.id, quantity, product.stock, product.name)

        try:
            item.quantity = quantity
            self.repo.add_cart_item(item)
            self._bump_version(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Pozycja {item_id} w koszyku {cart.id} ma teraz ilosc {quantity}")
        return item

    def remove_item(self, item_id: int, cart_id: int | None = None) -> bool:
        """Idempotentne - brak pozycji to nie blad."""
        item = self.repo.get_item(item_id)
        if not item or (cart_id is not None and item.cart_id != cart_id):
            return False

        cart = self._get_active_cart(item.cart_id)
        try:
            removed = self.repo.delete_item(item_id)
            self._bump_version(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Pozycja {item_id} usunieta z koszyka {cart.id}")
        return removed > 0

    def clear_cart(self, cart_id: int) -> int:
        cart = self._get_active_cart(cart_id)
        try:
            removed = self.repo.delete_cart_items(cart_id)
            if removed:
                self._bump_version(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Koszyk {cart_id} wyczyszczony ({removed} pozycji)")
        return removed

    def calculate_totals(self, cart_id: int) -> Dict[str, Any]:
        return calculate_line_totals(self.repo.get_cart_items(cart_id))

    def validate_cart(self, cart_id: int) -> Dict[str, Any]:
        """
        Sprawdza pozycje wzgledem aktualnego stanu katalogu.
        errors blokuja checkout (produkt nieaktywny, stock = 0),
        warnings tylko informuja (mniejszy stock, zmiana ceny).
        """
        items = self.repo.get_cart_items(cart_id)
        errors = []
        warnings = []

        for item in items:
            product = item.product
            base = {
                "item_id": item.id,
                "product_id": product.id,
                "product_name": product.name,
            }

            if not product.is_active:
                errors.append({**base, "type": "inactive", "message": f"{product.name} nie jest juz dostepny"})

            if product.stock < item.quantity:
                if product.stock <= 0:
                    errors.append(
                        {
                            **base,
                            "type": "out_of_stock",
                            "message": f"{product.name} jest niedostepny",
                            "requested_quantity": item.quantity,
                            "available_stock": 0,
                        }
                    )
                else:
                    warnings.append(
                        {
                            **base,
                            "type": "insufficient_stock",
                            "message": f"{product.name}: zostalo tylko {product.stock} szt.",
                            "requested_quantity": item.quantity,
                            "available_stock": product.stock,
                        }
                    )

            if to_decimal(product.price) != to_decimal(item.price):
                warnings.append(
                    {
                        **base,
                        "type": "price_changed",
                        "message": f"Cena {product.name} zmienila sie",
                        "old_price": round_money(item.price),
                        "new_price": round_money(product.price),
                    }
                )

        return {
            "valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
            "items_count": len(items),
        }

    def sync_prices(self, cart_id: int) -> Dict[str, Any]:
        """Nadpisuje zapamietane ceny aktualnymi. Tylko na zadanie wywolujacego."""
        cart = self.get_cart(cart_id)
        items = self.repo.get_cart_items(cart_id)
        updates = []

        try:
            for item in items:
                product = item.product
                current_price = round_money(product.price)
                current_discount = unit_discount(product.price, product.compare_price)

                if to_decimal(item.price) != current_price or to_decimal(item.discount) != current_discount:
                    updates.append(
                        {
                            "product_id": product.id,
                            "product_name": product.name,
                            "old_price": round_money(item.price),
                            "new_price": current_price,
                        }
                    )
                    item.price = current_price
                    item.discount = current_discount
                    self.repo.add_cart_item(item)

            if updates:
                self._bump_version(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        if updates:
            logger.info(f"Zaktualizowano ceny {len(updates)} pozycji w koszyku {cart_id}")

        return {"updated": len(updates) > 0, "updates": updates}

    def merge_guest_cart(self, session_id: str, user_id: int) -> Dict[str, Any]:
        """
        Po zalogowaniu przenosi pozycje koszyka goscia do koszyka uzytkownika.
        Kazda pozycja przechodzi przez add_item osobno - blad jednej nie przerywa scalania.
        """
        guest_cart = self.repo.get_active_cart_by_session(session_id)
        guest_items = self.repo.get_cart_items(guest_cart.id) if guest_cart else []

        if not guest_items:
            return {"merged": False, "message": "Brak pozycji w koszyku goscia"}

        replay = [(i.product_id, i.quantity) for i in guest_items]
        user_cart = self.get_or_create_cart(user_id=user_id)

        skipped = 0
        for product_id, quantity in replay:
            try:
                self.add_item(user_cart.id, product_id, quantity)
            except StorefrontError as e:
                skipped += 1
                logger.warning(f"Nie udalo sie przeniesc produktu {product_id} z koszyka goscia: {e}")

        # koszyk goscia zamykany niezaleznie od czesciowych bledow
        guest_cart = self.get_cart(guest_cart.id)
        try:
            self._bump_version(guest_cart, status=CartStatus.COMPLETED.value)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(
            f"Koszyk goscia {guest_cart.id} scalony z koszykiem {user_cart.id} "
            f"uzytkownika {user_id} (pominieto {skipped})"
        )
        return {"merged": True, "message": "Koszyk goscia zostal scalony"}

    def get_cart_summary(self, cart_id: int) -> Dict[str, Any]:
        cart = self.get_cart(cart_id)
        items = self.repo.get_cart_items(cart_id)

        return {
            "cart": {
                "id": cart.id,
                "status": cart.status,
                "user_id": cart.user_id,
                "session_id": cart.session_id,
                "created_at": cart.created_at,
                "expires_at": cart.expires_at,
                "items_count": len(items),
            },
            "items": [
                {
                    "id": i.id,
                    "product": {
                        "id": i.product.id,
                        "name": i.product.name,
                        "sku": i.product.sku,
                        "stock": i.product.stock,
                        "is_active": i.product.is_active,
                    },
                    "quantity": i.quantity,
                    "price": round_money(i.price),
                    "discount": round_money(i.discount),
                    "subtotal": round_money(to_decimal(i.price) * i.quantity),
                    "total": round_money((to_decimal(i.price) - to_decimal(i.discount)) * i.quantity),
                }
                for i in items
            ],
            "totals": calculate_line_totals(items),
            "validation": self.validate_cart(cart_id),
        }

    def abandon_expired_carts(self, now: datetime | None = None) -> int:
        """Sweep: aktywne koszyki gosci po terminie -> abandoned."""
        now = now or datetime.now(timezone.utc)
        try:
            count = self.repo.mark_expired_guest_carts(now)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Oznaczono {count} wygaslych koszykow gosci jako abandoned")
        return count

    # helpers
    def _find_active(self, user_id: int | None, session_id: str | None) -> CartModel | None:
        if user_id is not None:
            return self.repo.get_active_cart_by_user(user_id)
        return self.repo.get_active_cart_by_session(session_id)

    @staticmethod
    def _owner_label(user_id, session_id) -> str:
        return f"uzytkownika {user_id}" if user_id is not None else f"sesji {session_id}"

    @staticmethod
    def _check_quantity(quantity: int):
        if quantity < 1 or quantity > MAX_ITEM_QUANTITY:
            raise InvalidQuantity(f"Ilosc musi byc z zakresu 1-{MAX_ITEM_QUANTITY}")

    def _get_active_cart(self, cart_id: int) -> CartModel:
        cart = self.get_cart(cart_id)
        if cart.status != CartStatus.ACTIVE.value:
            raise CartNotActive(f"Koszyk {cart_id} nie może byc modyfikowany")
        return cart

    def _get_item(self, item_id: int, cart_id: int | None) -> CartItemModel:
        item = self.repo.get_item(item_id)
        if not item or (cart_id is not None and item.cart_id != cart_id):
            raise CartItemNotFound(f"Pozycja {item_id} nie istnieje w koszyku")
        return item

    def _bump_version(self, cart: CartModel, **extra):
        # Optimistic locking, warunek na wersje
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1, **extra},
        )
        if rowcount == 0:
            raise CartConflict(cart.id)
