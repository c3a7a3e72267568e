# storefront/services/inventory_service.py
from sqlalchemy.orm import Session

from storefront.domain.errors import ProductNotFound, InsufficientStock, NotAuthorized
from storefront.repos.product_repo import ProductRepo
from storefront.repos.user_repo import UserRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class InventoryService:
    """
    Operacje na ksiedze magazynowej poza checkoutem:
    podglad stanu i reczna korekta przez administratora.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = ProductRepo(db)
        self.users = UserRepo(db)

    def get_stock(self, product_id: int):
        product = self.repo.get_product(product_id)
        if not product:
            raise ProductNotFound(product_id)
        return {
            "product_id": product.id,
            "sku": product.sku,
            "stock": product.stock,
            "sales_count": product.sales_count,
            "is_active": product.is_active,
        }

    def adjust_stock(self, product_id: int, delta: int, actor_id: int | None = None):
        if actor_id is not None:
            actor = self.users.get_user(actor_id)
            if not actor or not actor.is_admin:
                raise NotAuthorized("Korekta stanu wymaga uprawnien administratora")

        product = self.repo.get_product(product_id)
        if not product:
            raise ProductNotFound(product_id)

        if delta == 0:
            return self.get_stock(product_id)

        try:
            if not self.repo.adjust_stock(product_id, delta):
                self.repo.reload(product)
                raise InsufficientStock(product_id, -delta, product.stock, product.name)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Stock of product {product_id} adjusted by {delta} (actor {actor_id})")
        return self.get_stock(product_id)
