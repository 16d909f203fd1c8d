# backend/models/supplier.py
from sqlalchemy import Column, Integer, String, DateTime, func
from database import Base

# Supplier that purchase deliveries and adjustments may be attributed to.
# Soft-deleted via deleted_at so historical movements keep their reference.
class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    supplier_code = Column(String, unique=True, nullable=True, index=True)
    contact_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)
