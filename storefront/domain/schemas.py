# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from storefront.domain.order_status import DeliveryType, PaymentMethod, PaymentStatus, OrderStatus
from storefront.utils.settings import MAX_ITEM_QUANTITY


# ---------- koszyk ----------

class ItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu (musi być > 0)")
    quantity: int = Field(1, ge=1, le=MAX_ITEM_QUANTITY, description="Ilość produktu (1-100)")


class ItemQuantityIn(BaseModel):
    """Schema dla zmiany ilości pozycji."""

    quantity: int = Field(..., ge=1, le=MAX_ITEM_QUANTITY)


class MergeCartIn(BaseModel):
    """Schema dla scalenia koszyka gościa po zalogowaniu."""

    session_id: str = Field(..., min_length=1, max_length=128)


class CartProductOut(BaseModel):
    id: int
    name: str
    sku: str
    stock: int
    is_active: bool


class CartItemOut(BaseModel):
    """Schema dla produktu w koszyku (response)."""

    id: int
    product: CartProductOut
    quantity: int
    price: Decimal
    discount: Decimal
    subtotal: Decimal
    total: Decimal


class CartTotalsOut(BaseModel):
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    item_count: int
    savings: Decimal
    # od tej kwoty zamowienie liczy total (przed dostawa i podatkiem)
    checkout_total: Decimal


class ValidationIssueOut(BaseModel):
    item_id: int
    product_id: int
    product_name: str
    type: str
    message: str
    requested_quantity: Optional[int] = None
    available_stock: Optional[int] = None
    old_price: Optional[Decimal] = None
    new_price: Optional[Decimal] = None


class CartValidationOut(BaseModel):
    valid: bool
    errors: List[ValidationIssueOut]
    warnings: List[ValidationIssueOut]
    items_count: int


class CartHeaderOut(BaseModel):
    id: int
    status: str
    user_id: Optional[int] = None
    session_id: Optional[str] = None
    created_at: datetime
    expires_at: Optional[datetime] = None
    items_count: int


class CartOut(BaseModel):
    """Schema dla koszyka (response)."""

    cart: CartHeaderOut
    items: List[CartItemOut]
    totals: CartTotalsOut
    validation: CartValidationOut


class PriceUpdateOut(BaseModel):
    product_id: int
    product_name: str
    old_price: Decimal
    new_price: Decimal


class SyncPricesOut(BaseModel):
    updated: bool
    updates: List[PriceUpdateOut]


class MergeCartOut(BaseModel):
    merged: bool
    message: str


# ---------- zamowienia ----------

class OrderCreate(BaseModel):
    """Schema dla tworzenia zamówienia z aktywnego koszyka."""

    payment_method: PaymentMethod
    delivery_type: DeliveryType = DeliveryType.DELIVERY
    address_id: Optional[int] = Field(None, gt=0, description="Wymagane dla delivery")
    delivery_date: Optional[datetime] = None
    delivery_time_slot: Optional[str] = Field(None, max_length=32)
    customer_notes: Optional[str] = Field(None, max_length=2000)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = Field(None, max_length=2000)
    tracking_number: Optional[str] = Field(None, max_length=64)


class OrderCancelIn(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class OrderPaymentUpdate(BaseModel):
    payment_status: PaymentStatus
    payment_reference: Optional[str] = Field(None, max_length=128)


class OrderNotesUpdate(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=4000)


class ShippingAddressOut(BaseModel):
    street: str
    city: str
    province: str
    references: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_sku: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    subtotal: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderStatusHistoryOut(BaseModel):
    previous_status: Optional[str] = None
    new_status: str
    notes: Optional[str] = None
    changed_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Schema dla zamówienia (response)."""

    id: int
    order_number: str
    user_id: int
    status: str
    payment_status: str
    payment_method: str
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    subtotal: Decimal
    discount: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total: Decimal
    shipping_address: ShippingAddressOut
    delivery_type: str
    delivery_date: Optional[datetime] = None
    delivery_time_slot: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: str
    customer_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    tracking_number: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut]
    status_history: List[OrderStatusHistoryOut] = []

    model_config = ConfigDict(from_attributes=True)


class PaginationOut(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


class OrderListOut(BaseModel):
    orders: List[OrderOut]
    pagination: PaginationOut


class StatusCountOut(BaseModel):
    status: str
    count: int
    total_amount: Decimal


class TopProductOut(BaseModel):
    product_id: int
    product_name: str
    total_sold: int
    revenue: Decimal


class OrderStatsOut(BaseModel):
    total_orders: int
    orders_by_status: List[StatusCountOut]
    revenue: Decimal
    average_order_value: Decimal
    top_products: List[TopProductOut]


# ---------- magazyn ----------

class StockAdjustIn(BaseModel):
    delta: int = Field(..., description="Wzgledna zmiana stanu (moze byc ujemna)")


class StockOut(BaseModel):
    product_id: int
    sku: str
    stock: int
    sales_count: int
    is_active: bool
