from sqlalchemy import Column, Integer, ForeignKey, String, Numeric
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    # kopia danych produktu, niezalezna od pozniejszych edycji katalogu
    product_name = Column(String, nullable=False)
    product_sku = Column(String(64), nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)  # rabat na cala linie
    subtotal = Column(Numeric(10, 2), nullable=False)  # quantity * unit_price
    total = Column(Numeric(10, 2), nullable=False)  # subtotal - discount

    order = relationship("OrderModel", back_populates="items")
