# storefront/domain/errors.py
"""
Wyjatki domenowe koszyka i zamowien.

Kazdy wyjatek dziedziczy tez po wbudowanej kategorii, ktora mapuja routery:
ValueError -> 400, LookupError -> 404, PermissionError -> 403, RuntimeError -> 409.
"""


class StorefrontError(Exception):
    pass


# --- walidacja (blad wywolujacego) ---

class ValidationError(StorefrontError, ValueError):
    pass


class InvalidIdentity(ValidationError):
    pass


class InvalidQuantity(ValidationError):
    pass


class ProductNotFound(ValidationError):
    def __init__(self, product_id: int):
        super().__init__(f"Produkt {product_id} nie istnieje")
        self.product_id = product_id


class ProductInactive(ValidationError):
    def __init__(self, product_id: int, name: str | None = None):
        super().__init__(f"Produkt {name or product_id} nie jest dostepny")
        self.product_id = product_id


class InsufficientStock(ValidationError):
    def __init__(self, product_id: int, requested: int, available: int, name: str | None = None):
        super().__init__(
            f"Niewystarczajacy stan magazynu dla {name or product_id}: "
            f"zadano {requested}, dostepne {available}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class CartNotActive(ValidationError):
    pass


class EmptyCart(ValidationError):
    def __init__(self, message: str = "Koszyk jest pusty"):
        super().__init__(message)


class InvalidCart(ValidationError):
    def __init__(self, errors: list[dict]):
        super().__init__("Koszyk nieprawidlowy: " + ", ".join(e["message"] for e in errors))
        self.errors = errors


class InvalidAddress(ValidationError):
    pass


class InvalidTransition(ValidationError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Nie mozna zmienic statusu z {current} na {requested}")
        self.current = current
        self.requested = requested


class InvalidPaymentStatus(ValidationError):
    def __init__(self, status: str):
        super().__init__(f"Nieznany status platnosci: {status}")
        self.status = status


class OrderNotCancellable(ValidationError):
    def __init__(self, status: str):
        super().__init__(f"Zamowienie w statusie {status} nie moze zostac anulowane")
        self.status = status


# --- brak zasobu ---

class NotFoundError(StorefrontError, LookupError):
    pass


class CartNotFound(NotFoundError):
    pass


class CartItemNotFound(NotFoundError):
    pass


class OrderNotFound(NotFoundError):
    pass


class UserNotFound(NotFoundError):
    pass


class AddressNotFound(NotFoundError):
    pass


# --- autoryzacja ---

class NotAuthorized(StorefrontError, PermissionError):
    pass


# --- konflikty wspolbieznosci ---

class ConflictError(StorefrontError, RuntimeError):
    pass


class CartConflict(ConflictError):
    def __init__(self, cart_id: int):
        super().__init__(
            f"Konflikt wspolbieznosci - koszyk {cart_id} zostal zmodyfikowany przez inna operacje"
        )
        self.cart_id = cart_id


class CheckoutInProgress(ConflictError):
    pass


class OrderNumberConflict(ConflictError):
    pass


class OrderConflict(ConflictError):
    def __init__(self, order_id: int):
        super().__init__(f"Status zamowienia {order_id} zostal zmieniony przez inna operacje")
        self.order_id = order_id
