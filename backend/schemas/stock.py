# backend/schemas/stock.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import List, Optional

from models.stock import MovementType


# Manual stock adjustment request; positive change adds stock, negative removes it
class StockAdjustmentCreate(BaseModel):
    product_stock_code: str = Field(min_length=1)
    change_quantity: int
    notes: Optional[str] = Field(default=None, max_length=500)
    supplier_id: Optional[int] = None


# Outcome of a ledger operation.
# stock_changed tells "nothing happened" apart from "stock changed but a later step failed".
class StockChangeResponse(BaseModel):
    success: bool
    stock_changed: bool
    message: str
    stock_code: str
    movement_type: MovementType
    previous_quantity: int
    new_quantity: int
    movement_id: Optional[int] = None
    alert_action: str
    warnings: List[str] = []


# Schema for returning stock movement details
class StockMovementResponse(BaseModel):
    id: int
    product_stock_code: str
    product_name: str
    movement_type: str
    quantity_changed: int
    quantity_after_movement: int
    notes: Optional[str] = None
    reference_document_id: Optional[str] = None
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    supplier_code: Optional[str] = None
    movement_date: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Paginated response for stock movement history
class StockMovementPage(BaseModel):
    items: List[StockMovementResponse]
    total: int
    page: int
    page_size: int


# Schema for a single item within a bulk delivery
class DeliveryItem(BaseModel):
    product_stock_code: str = Field(min_length=1)
    quantity: int = Field(gt=0)


# Schema for registering a bulk stock delivery
class DeliveryCreate(BaseModel):
    items: List[DeliveryItem] = Field(min_length=1)
    notes: Optional[str] = Field(default="Goods received", max_length=500)
    supplier_id: Optional[int] = None  # Supplier for the entire delivery


# Delivery line that was valid but could not be booked
class DeliveryFailure(BaseModel):
    stock_code: str
    quantity: int
    message: str


# success: every line booked with its movement. stock_changed: at least one line booked.
class DeliveryResponse(BaseModel):
    success: bool
    stock_changed: bool
    message: str
    received: List[StockChangeResponse]
    skipped: List[str]
    failed: List[DeliveryFailure] = []


# Product whose on-hand quantity has no matching movement snapshot
class StockDiscrepancy(BaseModel):
    stock_code: str
    name: str
    quantity_on_hand: int
    last_recorded_quantity: Optional[int] = None
