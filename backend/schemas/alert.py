# backend/schemas/alert.py
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


# Low stock alert enriched with the product name for display
class LowStockAlertItem(BaseModel):
    id: int
    product_stock_code: str
    product_name: str
    current_stock_at_alert: int
    min_stock_level_at_alert: int
    alert_triggered_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    status: str
    notes: Optional[str] = None


class LowStockAlertList(BaseModel):
    success: bool = True
    alerts: List[LowStockAlertItem]
