from sqlalchemy import Column, Integer, String, Boolean, Numeric, CheckConstraint

from storefront.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    sku = Column(String(64), nullable=False, unique=True)
    name = Column(String, nullable=False)

    price = Column(Numeric(10, 2), nullable=False)
    compare_price = Column(Numeric(10, 2), nullable=True)

    # stan magazynu zmieniany tylko wzglednie (ProductRepo)
    stock = Column(Integer, nullable=False, default=0)
    sales_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)
