from sqlalchemy import Column, Integer, ForeignKey, String, Boolean, Text

from storefront.data.database import Base


class AddressModel(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    street = Column(String, nullable=False)
    city = Column(String, nullable=False)
    province = Column(String, nullable=False)
    references = Column(Text, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)

    def to_snapshot(self) -> dict:
        return {
            "street": self.street,
            "city": self.city,
            "province": self.province,
            "references": self.references,
        }
