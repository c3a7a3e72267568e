# storefront/api/routers/orders.py
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.errors import to_http
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.order_status import OrderStatus
from storefront.domain.schemas import (
    OrderCreate,
    OrderOut,
    OrderListOut,
    OrderStatusUpdate,
    OrderCancelIn,
    OrderPaymentUpdate,
    OrderNotesUpdate,
    OrderStatsOut,
)
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_service),
):
    """
    Tworzy zamówienie z aktywnego koszyka użytkownika.
    Wysyła powiadomienie asynchronicznie.
    """
    try:
        return svc.create_order_from_cart(user_id, payload)
    except StorefrontError as e:
        raise to_http(e)


@router.get("", response_model=OrderListOut)
def list_orders(
    user_id: int = Query(...),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: OrderStatus | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    svc: OrderService = Depends(get_service),
):
    return svc.list_user_orders(
        user_id, page, limit, status.value if status else None, start_date, end_date
    )


# ---------- obsluga sklepu ----------

@router.get("/admin/all", response_model=OrderListOut)
def list_all_orders(
    user_id: int = Query(...),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: OrderStatus | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    svc: OrderService = Depends(get_service),
):
    try:
        svc.require_admin(user_id)
        return svc.list_all_orders(page, limit, status.value if status else None, start_date, end_date)
    except StorefrontError as e:
        raise to_http(e)


@router.get("/admin/recent", response_model=List[OrderOut])
def recent_orders(
    user_id: int = Query(...),
    limit: int = Query(10, ge=1, le=100),
    svc: OrderService = Depends(get_service),
):
    try:
        svc.require_admin(user_id)
        return svc.get_recent_orders(limit)
    except StorefrontError as e:
        raise to_http(e)


@router.get("/admin/stats", response_model=OrderStatsOut)
def order_stats(
    user_id: int = Query(...),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    svc: OrderService = Depends(get_service),
):
    try:
        svc.require_admin(user_id)
        return svc.get_order_stats(start_date, end_date)
    except StorefrontError as e:
        raise to_http(e)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_service),
):
    """
    Pobiera szczegóły zamówienia.
    """
    try:
        return svc.get_order(order_id, user_id)
    except StorefrontError as e:
        raise to_http(e)


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_status(
    order_id: int,
    payload: OrderStatusUpdate,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_service),
):
    """
    Zmiana statusu przez obsluge sklepu (tylko admin).
    """
    try:
        svc.require_admin(user_id)
        return svc.update_order_status(
            order_id,
            payload.status.value,
            actor_id=user_id,
            notes=payload.notes,
            tracking_number=payload.tracking_number,
        )
    except StorefrontError as e:
        raise to_http(e)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    payload: OrderCancelIn,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_service),
):
    try:
        return svc.cancel_order(order_id, user_id, payload.reason)
    except StorefrontError as e:
        raise to_http(e)


@router.patch("/{order_id}/payment", response_model=OrderOut)
def update_payment(
    order_id: int,
    payload: OrderPaymentUpdate,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_service),
):
    """
    Potwierdzenie platnosci przez obsluge (tylko admin).
    """
    try:
        svc.require_admin(user_id)
        return svc.update_payment_status(
            order_id,
            payload.payment_status.value,
            actor_id=user_id,
            payment_reference=payload.payment_reference,
        )
    except StorefrontError as e:
        raise to_http(e)


@router.patch("/{order_id}/notes", response_model=OrderOut)
def update_notes(
    order_id: int,
    payload: OrderNotesUpdate,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_service),
):
    try:
        svc.require_admin(user_id)
        return svc.update_admin_notes(order_id, payload.admin_notes)
    except StorefrontError as e:
        raise to_http(e)
