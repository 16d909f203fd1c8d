# backend/models/users.py
from sqlalchemy import Column, Integer, String, DateTime, func
from database import Base

# Roles known to the system: admin (everything), acc (accounting / catalogue), tech (warehouse floor)
USER_ROLES = ("admin", "acc", "tech")

# Represents an application user. Credentials live with the external auth provider;
# this row carries the identity and role used for page guards and audit entries.
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    full_name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="tech")
    status = Column(String, nullable=False, default="active")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
