import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.log import AuditLog

logger = logging.getLogger(__name__)


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None or request.client is None:
        return None
    return request.client.host


def write_log(db: Session, *, user_id, action, resource, status="SUCCESS", stock_code=None, ip=None, meta=None):
    """Append an audit row. Failures are logged, not raised."""
    entry = AuditLog(
        user_id=user_id, action=action, resource=resource, status=status,
        stock_code=stock_code, ip=ip, meta=meta or {},
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Audit log %s/%s for %s could not be written: %s", action, status, stock_code, exc)
