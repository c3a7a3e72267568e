#storefront/api/routers/carts.py
import uuid

from fastapi import APIRouter, Depends, Header, Query, Response
from sqlalchemy.orm import Session

from storefront.api.errors import to_http
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    ItemIn,
    ItemQuantityIn,
    MergeCartIn,
    CartOut,
    CartValidationOut,
    SyncPricesOut,
    MergeCartOut,
)
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session):
    return CartService(db)


def resolve_cart(svc: CartService, response: Response, user_id: int | None, session_id: str | None):
    # tozsamosc dostarcza warstwa auth, tu przyjmujemy ja bez weryfikacji
    if user_id is None and not session_id:
        session_id = str(uuid.uuid4())
    if user_id is None:
        response.headers["X-Session-Id"] = session_id
        return svc.get_or_create_cart(session_id=session_id)
    return svc.get_or_create_cart(user_id=user_id)


@router.get("", response_model=CartOut)
def get_cart(
    response: Response,
    user_id: int | None = Query(None),
    x_session_id: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = resolve_cart(svc, response, user_id, x_session_id)
        return svc.get_cart_summary(cart.id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    response: Response,
    user_id: int | None = Query(None),
    x_session_id: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = resolve_cart(svc, response, user_id, x_session_id)
        svc.add_item(cart.id, payload.product_id, payload.quantity)
        return svc.get_cart_summary(cart.id)
    except StorefrontError as e:
        raise to_http(e)


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    payload: ItemQuantityIn,
    response: Response,
    user_id: int | None = Query(None),
    x_session_id: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = resolve_cart(svc, response, user_id, x_session_id)
        svc.update_item_quantity(item_id, payload.quantity, cart_id=cart.id)
        return svc.get_cart_summary(cart.id)
    except StorefrontError as e:
        raise to_http(e)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    response: Response,
    user_id: int | None = Query(None),
    x_session_id: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = resolve_cart(svc, response, user_id, x_session_id)
        svc.remove_item(item_id, cart_id=cart.id)
        return svc.get_cart_summary(cart.id)
    except StorefrontError as e:
        raise to_http(e)


@router.delete("", response_model=CartOut)
def clear_cart(
    response: Response,
    user_id: int | None = Query(None),
    x_session_id: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = resolve_cart(svc, response, user_id, x_session_id)
        svc.clear_cart(cart.id)
        return svc.get_cart_summary(cart.id)
    except StorefrontError as e:
        raise to_http(e)


@router.get("/validate", response_model=CartValidationOut)
def validate_cart(
    response: Response,
    user_id: int | None = Query(None),
    x_session_id: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = resolve_cart(svc, response, user_id, x_session_id)
        return svc.validate_cart(cart.id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/sync-prices", response_model=SyncPricesOut)
def sync_prices(
    response: Response,
    user_id: int | None = Query(None),
    x_session_id: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = resolve_cart(svc, response, user_id, x_session_id)
        return svc.sync_prices(cart.id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/merge", response_model=MergeCartOut)
def merge_cart(
    payload: MergeCartIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """
    Wywolywane po zalogowaniu - przenosi koszyk goscia do koszyka uzytkownika.
    """
    svc = get_service(db)
    try:
        return svc.merge_guest_cart(payload.session_id, user_id)
    except StorefrontError as e:
        raise to_http(e)
