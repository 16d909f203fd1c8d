# backend/models/stock.py
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, event, func
from sqlalchemy.orm import relationship
from database import Base


class MovementType(str, enum.Enum):
    INITIAL_STOCK = "initial_stock"
    PURCHASE_RECEIVED = "purchase_received"
    SALE = "sale"
    CUSTOMER_RETURN = "customer_return"
    SUPPLIER_RETURN = "supplier_return"
    ADJUSTMENT_POSITIVE = "adjustment_positive"
    ADJUSTMENT_NEGATIVE = "adjustment_negative"
    INVENTORY_COUNT_DISCREPANCY = "inventory_count_discrepancy"
    OTHER = "other"


class InventoryMovement(Base):
    """One stock change event: "after this movement, stock was quantity_after_movement"."""

    __tablename__ = "inventory_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_stock_code = Column(String, ForeignKey("products.stock_code"), nullable=False, index=True)

    movement_type = Column(String, nullable=False, index=True)
    # Signed delta and the resulting on-hand snapshot
    quantity_changed = Column(Integer, nullable=False)
    quantity_after_movement = Column(Integer, nullable=False)

    notes = Column(String, nullable=True)
    reference_document_id = Column(String, nullable=True)

    # Acting user
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    user_email = Column(String, nullable=True)

    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)

    movement_date = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    product = relationship("Product")
    user = relationship("User")
    supplier = relationship("Supplier")


class AppendOnlyViolation(Exception):
    pass


# Movements are an audit trail: rows are written once and never changed
@event.listens_for(InventoryMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise AppendOnlyViolation(f"Inventory movement {target.id} is append-only and cannot be updated")


@event.listens_for(InventoryMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise AppendOnlyViolation(f"Inventory movement {target.id} is append-only and cannot be deleted")
