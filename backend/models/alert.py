# backend/models/alert.py
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, text, func
from sqlalchemy.orm import relationship
from database import Base


# Alert states. ACKNOWLEDGED is reserved and not produced by the ledger.
class AlertStatus(str, enum.Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    ACKNOWLEDGED = "acknowledged"


# A product's stock fell below its minimum. Rows are never deleted;
# a resolved alert stays resolved and a later breach opens a new row.
class LowStockAlert(Base):
    __tablename__ = "low_stock_alerts"

    id = Column(Integer, primary_key=True, index=True)
    product_stock_code = Column(String, ForeignKey("products.stock_code"), nullable=False, index=True)

    # Snapshot taken when the alert fired
    current_stock_at_alert = Column(Integer, nullable=False)
    min_stock_level_at_alert = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default=AlertStatus.ACTIVE.value, index=True)
    alert_triggered_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(String, nullable=True)

    product = relationship("Product")

    # At most one active alert per product
    __table_args__ = (
        Index(
            "uq_low_stock_alerts_active_product",
            "product_stock_code",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )
