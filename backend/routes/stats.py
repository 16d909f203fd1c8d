# backend/routes/stats.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import func, case
from datetime import datetime, timedelta, timezone
from pydantic import BaseModel
from typing import List

from config import settings
from database import get_db
from utils.tokenJWT import get_current_user
from models.users import User
from models.product import Product
from models.stock import InventoryMovement
from models.alert import LowStockAlert, AlertStatus

router = APIRouter(
    prefix="/stats",
    tags=["Stats"]
)

# === Pydantic Response Schemas ===

class StatsSummary(BaseModel):
    total_products: int
    total_units_on_hand: int
    low_stock_products: int
    active_alerts: int
    movements_this_month: int

class LowStockProduct(BaseModel):
    stock_code: str
    name: str
    quantity_on_hand: int
    min_stock_level: int

    class Config:
        from_attributes = True

class DailyMovement(BaseModel):
    date: str
    units_in: int
    units_out: int

class DailyMovementResponse(BaseModel):
    data: List[DailyMovement]


def _below_minimum():
    return (Product.min_stock_level > 0) & (Product.quantity_on_hand < Product.min_stock_level)


# === Endpoint 1: Dashboard Summary ===

@router.get("/summary", response_model=StatsSummary)
def get_stats_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    active = db.query(Product).filter(Product.deleted_at.is_(None))

    total_products = active.count()
    total_units = active.with_entities(func.coalesce(func.sum(Product.quantity_on_hand), 0)).scalar()
    low_stock_products = active.filter(_below_minimum()).count()

    active_alerts = db.query(LowStockAlert).filter(LowStockAlert.status == AlertStatus.ACTIVE.value).count()

    # Movements booked since the first day of the current month
    now = datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    movements_this_month = db.query(InventoryMovement).filter(
        InventoryMovement.movement_date >= month_start
    ).count()

    return StatsSummary(
        total_products=total_products,
        total_units_on_hand=int(total_units or 0),
        low_stock_products=low_stock_products,
        active_alerts=active_alerts,
        movements_this_month=movements_this_month,
    )

# === Endpoint 2: Products below their minimum ===

@router.get("/low-stock", response_model=List[LowStockProduct])
def get_low_stock_products(
    limit: int = Query(settings.LOW_STOCK_LIST_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return (
        db.query(Product)
        .filter(Product.deleted_at.is_(None), _below_minimum())
        .order_by(Product.quantity_on_hand.asc(), Product.name.asc())
        .limit(limit)
        .all()
    )

# === Endpoint 3: Chart Data ===

@router.get("/daily-movements", response_model=DailyMovementResponse)
def get_daily_movements(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    today = datetime.now(timezone.utc).date()
    seven_days_ago = today - timedelta(days=6)

    # Units in and out per day for the last week
    day = func.date(InventoryMovement.movement_date)
    rows = (
        db.query(
            day.label("date"),
            func.sum(case((InventoryMovement.quantity_changed > 0, InventoryMovement.quantity_changed), else_=0)).label("units_in"),
            func.sum(case((InventoryMovement.quantity_changed < 0, -InventoryMovement.quantity_changed), else_=0)).label("units_out"),
        )
        .filter(InventoryMovement.movement_date >= datetime.combine(seven_days_ago, datetime.min.time()))
        .group_by(day)
        .order_by(day)
        .all()
    )

    by_date = {str(row.date): (int(row.units_in or 0), int(row.units_out or 0)) for row in rows}
    result_data = []

    # Fill missing dates with zeros
    for i in range(7):
        current_date = seven_days_ago + timedelta(days=i)
        units_in, units_out = by_date.get(current_date.strftime("%Y-%m-%d"), (0, 0))
        result_data.append(DailyMovement(date=current_date.strftime("%d/%m"), units_in=units_in, units_out=units_out))

    return DailyMovementResponse(data=result_data)
