# storefront/api/routers/inventory.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.errors import to_http
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import StockAdjustIn, StockOut
from storefront.services.inventory_service import InventoryService

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("/{product_id}", response_model=StockOut)
def get_stock(product_id: int, db: Session = Depends(get_db)):
    try:
        return InventoryService(db).get_stock(product_id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/{product_id}/adjust", response_model=StockOut)
def adjust_stock(
    product_id: int,
    payload: StockAdjustIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """
    Reczna korekta stanu (dostawa, inwentaryzacja) - tylko admin.
    """
    try:
        return InventoryService(db).adjust_stock(product_id, payload.delta, actor_id=user_id)
    except StorefrontError as e:
        raise to_http(e)
