# backend/models/product.py
from sqlalchemy import Column, Integer, String, Float, DateTime, CheckConstraint, func
from database import Base

# Product model
# A single catalogue item. The stock code is the business key every other
# inventory record points at; quantity_on_hand is only changed by the stock ledger.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    stock_code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)

    description = Column(String)
    category = Column(String)

    # Prices, kept in the listed currency
    purchase_price = Column(Float, CheckConstraint("purchase_price >= 0"), nullable=False, default=0)
    sale_price = Column(Float, CheckConstraint("sale_price >= 0"), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="TRY")

    # Stock data. min_stock_level of 0 disables low-stock alerting.
    quantity_on_hand = Column(Integer, CheckConstraint("quantity_on_hand >= 0"), nullable=False, default=0)
    min_stock_level = Column(Integer, CheckConstraint("min_stock_level >= 0"), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Soft delete marker
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
