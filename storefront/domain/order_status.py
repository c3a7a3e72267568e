# storefront/domain/order_status.py
import random
from datetime import datetime, timezone
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    READY = "ready"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIAL = "partial"


class PaymentMethod(str, Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    CARD = "card"
    YAPPY = "yappy"
    NEQUI = "nequi"
    OTHER = "other"


class DeliveryType(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


class CartStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


#tylko do przodu po sciezce albo w bok do cancelled
STATUS_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
    OrderStatus.CONFIRMED: (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
    OrderStatus.PROCESSING: (OrderStatus.READY, OrderStatus.CANCELLED),
    OrderStatus.READY: (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
    OrderStatus.SHIPPED: (OrderStatus.DELIVERED,),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
    OrderStatus.REFUNDED: (),
}

# klient moze anulowac tylko zanim sklep zacznie kompletowac zamowienie,
# obsluga sklepu uzywa pelnej tabeli STATUS_TRANSITIONS
CUSTOMER_CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

_STATUS_MESSAGES = {
    OrderStatus.PENDING: "Zamowienie oczekuje na potwierdzenie",
    OrderStatus.CONFIRMED: "Zamowienie potwierdzone",
    OrderStatus.PROCESSING: "Zamowienie w przygotowaniu",
    OrderStatus.READY: "Zamowienie gotowe do wydania",
    OrderStatus.SHIPPED: "Zamowienie wyslane",
    OrderStatus.DELIVERED: "Zamowienie dostarczone",
    OrderStatus.CANCELLED: "Zamowienie anulowane",
    OrderStatus.REFUNDED: "Zamowienie zwrocone",
}

_PAYMENT_METHOD_LABELS = {
    PaymentMethod.CASH: "Gotowka",
    PaymentMethod.TRANSFER: "Przelew bankowy",
    PaymentMethod.CARD: "Karta",
    PaymentMethod.YAPPY: "Yappy",
    PaymentMethod.NEQUI: "Nequi",
    PaymentMethod.OTHER: "Inna",
}


def _as_status(status) -> OrderStatus | None:
    try:
        return OrderStatus(status)
    except ValueError:
        return None


def next_statuses(current) -> tuple:
    status = _as_status(current)
    if status is None:
        return ()
    return STATUS_TRANSITIONS[status]


def is_valid_status_transition(current, new) -> bool:
    target = _as_status(new)
    return target is not None and target in next_statuses(current)


def can_customer_cancel(status) -> bool:
    return _as_status(status) in CUSTOMER_CANCELLABLE_STATUSES


def status_message(status) -> str:
    parsed = _as_status(status)
    return _STATUS_MESSAGES.get(parsed, str(status))


def payment_method_label(method) -> str:
    try:
        return _PAYMENT_METHOD_LABELS[PaymentMethod(method)]
    except ValueError:
        return str(method)


def generate_order_number(now: datetime | None = None, rng: random.Random | None = None) -> str:
    """
    Format: ORD-{YY}{MM}-{6 ostatnich cyfr timestampu ms}{3 cyfry losowe},
    np. ORD-2502-456789123.
    """
    now = now or datetime.now(timezone.utc)
    rng = rng or random.SystemRandom()

    millis = int(now.timestamp() * 1000)
    suffix = str(millis)[-6:].zfill(6)
    rand = str(rng.randrange(1000)).zfill(3)

    return f"ORD-{now:%y%m}-{suffix}{rand}"
