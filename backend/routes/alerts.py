# backend/routes/alerts.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models.alert import AlertStatus
from models.users import User
from utils.tokenJWT import get_current_user
from utils.alerts import list_alerts
from schemas.alert import LowStockAlertList

router = APIRouter(prefix="/alerts", tags=["Alerts"])


@router.get("", response_model=LowStockAlertList)
def get_low_stock_alerts(
    status: AlertStatus = Query(AlertStatus.ACTIVE, description="Alert status to list"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"success": True, "alerts": list_alerts(db, status=status.value)}
