# backend/routes/logs.py
from datetime import datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models.log import AuditLog
from models.users import User
from utils.tokenJWT import role_required
from utils.stock_ledger import norm_code
import schemas.log as log_schemas

router = APIRouter(prefix="/logs", tags=["Logs"])


def _parse_day(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    # Malformed dates are ignored; a bare date covers the whole day
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if end_of_day and len(value) == 10:
        parsed = datetime.combine(parsed.date(), time.max)
    return parsed


@router.get("", response_model=log_schemas.AuditLogPage)
def get_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    action: Optional[str] = Query(None, description="Filter by action, e.g. STOCK_ADJUSTMENT"),
    user_id: Optional[int] = Query(None),
    resource: Optional[str] = Query(None, description="stock / products / suppliers"),
    status: Optional[str] = Query(None, description="SUCCESS / FAIL / PARTIAL"),
    stock_code: Optional[str] = Query(None, description="Only actions on this product"),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    query = db.query(AuditLog)

    if action:
        query = query.filter(AuditLog.action.ilike(f"%{action}%"))
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if resource:
        query = query.filter(AuditLog.resource == resource.lower())
    if status:
        query = query.filter(AuditLog.status == status.upper())
    if stock_code:
        query = query.filter(AuditLog.stock_code == norm_code(stock_code))

    start = _parse_day(date_from)
    if start:
        query = query.filter(AuditLog.ts >= start)
    end = _parse_day(date_to, end_of_day=True)
    if end:
        query = query.filter(AuditLog.ts <= end)

    total = query.count()
    rows = (
        query.order_by(AuditLog.ts.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    items = [
        {
            "id": r.id, "ts": r.ts, "user_id": r.user_id,
            "user_email": r.user.email if r.user else None,
            "action": r.action, "resource": r.resource, "status": r.status,
            "stock_code": r.stock_code, "ip": r.ip, "meta": r.meta,
        }
        for r in rows
    ]
    return {"items": items, "total": total, "page": page, "page_size": page_size}
