from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, func
from sqlalchemy.orm import relationship
from database import Base

# Business audit trail: one row per user action on stock, products or suppliers.
# Kept apart from inventory_movements, which only records quantity changes.
class AuditLog(Base):
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    ts = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(50), index=True)      # STOCK_ADJUSTMENT, PRODUCT_CREATE, ...
    resource = Column(String(50), index=True)    # stock / products / suppliers
    status = Column(String(20), index=True)      # SUCCESS / FAIL / PARTIAL

    # Product the action touched, when there is one
    stock_code = Column(String, nullable=True, index=True)
    ip = Column(String(64), nullable=True)

    # Delta, resulting quantity, failure reason, ...
    meta = Column(JSON, nullable=True)

    user = relationship("User", lazy="joined", uselist=False)
