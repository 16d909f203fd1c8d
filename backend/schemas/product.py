# backend/schemas/product.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Shared catalogue attributes
class ProductBase(ORMBase):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    purchase_price: float = Field(default=0, ge=0)
    sale_price: float = Field(default=0, ge=0)
    currency: str = Field(default="TRY", min_length=3, max_length=3)


# Schema for creating a product; the opening quantity is booked as an initial_stock movement
class ProductCreate(ProductBase):
    stock_code: str = Field(min_length=1)
    quantity_on_hand: int = Field(default=0, ge=0)
    # Omitted -> DEFAULT_MIN_STOCK_LEVEL, 0 disables alerting
    min_stock_level: Optional[int] = Field(default=None, ge=0)


# Schema for partial updates. Quantity is not editable here: it only moves through the stock ledger.
class ProductUpdate(ORMBase):
    """Schema for PATCH requests - all fields optional."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    purchase_price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    min_stock_level: Optional[int] = Field(None, ge=0)


# Full product representation
class ProductOut(ProductBase):
    id: int
    stock_code: str
    quantity_on_hand: int
    min_stock_level: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


# Paginated response for product listings
class ProductListPage(ORMBase):
    items: List[ProductOut]
    total: int
    page: int
    page_size: int


# Compact row used by the adjustment / sale forms
class ProductSearchResult(BaseModel):
    stock_code: str
    name: str
    current_stock: int


class ProductSearchResponse(BaseModel):
    success: bool = True
    results: List[ProductSearchResult]
