# storefront/domain/pricing.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Any, Dict

ZERO = Decimal("0.00")
_CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def unit_discount(price, compare_price) -> Decimal:
    """Rabat na sztuke: compare_price - price, 0 gdy brak ceny porownawczej."""
    if compare_price is None:
        return ZERO
    diff = to_decimal(compare_price) - to_decimal(price)
    return round_money(diff) if diff > 0 else ZERO


def calculate_line_totals(items: Iterable[Any]) -> Dict[str, Any]:
    """
    Czysta agregacja po pozycjach (price, discount, quantity).
    total = subtotal, rabat jest juz uwzgledniony w cenie z momentu dodania.
    checkout_total to kwota, od ktorej zamowienie liczy total (subtotal - discount),
    jeszcze bez dostawy i podatku - klient widzi ja przed checkoutem.
    """
    subtotal = ZERO
    discount = ZERO
    item_count = 0

    for item in items:
        subtotal += to_decimal(item.price) * item.quantity
        discount += to_decimal(item.discount) * item.quantity
        item_count += item.quantity

    return {
        "subtotal": round_money(subtotal),
        "discount": round_money(discount),
        "total": round_money(subtotal),
        "item_count": item_count,
        "savings": round_money(discount),
        "checkout_total": round_money(subtotal - discount),
    }


def order_total(subtotal, discount, shipping_cost, tax) -> Decimal:
    return round_money(
        to_decimal(subtotal) - to_decimal(discount) + to_decimal(shipping_cost) + to_decimal(tax)
    )
