# storefront/repos/product_repo.py
from sqlalchemy import update
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel


class ProductRepo:
    """
    Ksiega magazynowa (stock, sales_count).
    Wszystkie zmiany sa wzgledne (UPDATE ... SET stock = stock - :q),
    nigdy read-modify-write w aplikacji.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """Zdejmuje stan i zwieksza licznik sprzedazy, tylko gdy stock >= quantity."""
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock >= quantity)
            .values(
                stock=ProductModel.stock - quantity,
                sales_count=ProductModel.sales_count + quantity,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def restore_stock(self, product_id: int, quantity: int) -> bool:
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(
                stock=ProductModel.stock + quantity,
                sales_count=ProductModel.sales_count - quantity,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def adjust_stock(self, product_id: int, delta: int) -> bool:
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock + delta >= 0)
            .values(stock=ProductModel.stock + delta)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def reload(self, product: ProductModel) -> ProductModel:
        self.db.refresh(product)
        return product
