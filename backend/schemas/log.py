from pydantic import BaseModel
from datetime import datetime
from typing import Any, List, Optional


# Audit log row as shown in the admin log viewer
class AuditLogResponse(BaseModel):
    id: int
    ts: datetime
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    action: str
    resource: str
    status: str
    stock_code: Optional[str] = None
    ip: Optional[str] = None
    meta: Optional[Any] = None


class AuditLogPage(BaseModel):
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
