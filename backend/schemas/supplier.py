# backend/schemas/supplier.py
from pydantic import BaseModel, Field, ConfigDict, EmailStr
from typing import List, Optional


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1)
    supplier_code: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


class SupplierOut(BaseModel):
    id: int
    name: str
    supplier_code: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SupplierSearchResult(BaseModel):
    id: int
    name: str
    supplier_code: Optional[str] = None
    contact_name: Optional[str] = None


class SupplierSearchResponse(BaseModel):
    success: bool = True
    results: List[SupplierSearchResult]
