# backend/utils/alerts.py
import enum
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from models.alert import LowStockAlert, AlertStatus
from models.product import Product

logger = logging.getLogger(__name__)

NOTE_MINIMUM_REMOVED = "Resolved because the minimum stock level was removed or set to zero."
NOTE_STOCK_RESTORED = "Resolved because stock rose back to or above the minimum level."


class AlertAction(str, enum.Enum):
    NONE = "none"
    CREATED = "created"
    RESOLVED = "resolved"


def get_active_alert(db: Session, stock_code: str) -> Optional[LowStockAlert]:
    return (
        db.query(LowStockAlert)
        .filter(
            LowStockAlert.product_stock_code == stock_code,
            LowStockAlert.status == AlertStatus.ACTIVE.value,
        )
        .first()
    )


def _resolve(db: Session, alert: LowStockAlert, note: str) -> AlertAction:
    alert.status = AlertStatus.RESOLVED.value
    alert.resolved_at = datetime.now(timezone.utc)
    alert.notes = note
    db.flush()
    logger.info("Low stock alert %s resolved for %s", alert.id, alert.product_stock_code)
    return AlertAction.RESOLVED


def reconcile_low_stock_alert(
    db: Session, stock_code: str, new_quantity: int, min_stock_level: Optional[int]
) -> AlertAction:
    """Bring the product's low-stock alert in line with its new quantity.

    | min level      | active alert | quantity vs min | action                 |
    |----------------|--------------|-----------------|------------------------|
    | <= 0 / None    | yes          | -               | resolve (min removed)  |
    | <= 0 / None    | no           | -               | nothing                |
    | > 0            | no           | below           | create                 |
    | > 0            | yes          | below           | nothing                |
    | > 0            | any          | at or above     | resolve if one exists  |

    Changes are flushed, not committed; the caller owns the transaction.
    Running it twice with the same inputs leaves the table unchanged the second time.
    """
    existing = get_active_alert(db, stock_code)

    if min_stock_level is None or min_stock_level <= 0:
        if existing is not None:
            return _resolve(db, existing, NOTE_MINIMUM_REMOVED)
        return AlertAction.NONE

    if new_quantity < min_stock_level:
        if existing is not None:
            return AlertAction.NONE
        alert = LowStockAlert(
            product_stock_code=stock_code,
            current_stock_at_alert=new_quantity,
            min_stock_level_at_alert=min_stock_level,
            status=AlertStatus.ACTIVE.value,
        )
        db.add(alert)
        db.flush()
        logger.info(
            "Low stock alert created for %s (stock %s < minimum %s)",
            stock_code, new_quantity, min_stock_level,
        )
        return AlertAction.CREATED

    if existing is not None:
        return _resolve(db, existing, NOTE_STOCK_RESTORED)
    return AlertAction.NONE


def list_alerts(db: Session, status: str = AlertStatus.ACTIVE.value) -> List[dict]:
    """Alerts with the given status, newest first, with the product name attached."""
    rows = (
        db.query(LowStockAlert, Product.name)
        .outerjoin(Product, Product.stock_code == LowStockAlert.product_stock_code)
        .filter(LowStockAlert.status == status)
        .order_by(LowStockAlert.alert_triggered_at.desc(), LowStockAlert.id.desc())
        .all()
    )
    return [
        {
            "id": alert.id,
            "product_stock_code": alert.product_stock_code,
            "product_name": name or "Unknown product",
            "current_stock_at_alert": alert.current_stock_at_alert,
            "min_stock_level_at_alert": alert.min_stock_level_at_alert,
            "alert_triggered_at": alert.alert_triggered_at,
            "resolved_at": alert.resolved_at,
            "status": alert.status,
            "notes": alert.notes,
        }
        for alert, name in rows
    ]
