from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_admin
from ..models.models import AuditLog, Profile
from ..schemas.schemas import AuditLogList, AuditLogRead

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("/", response_model=AuditLogList)
def list_audit_logs(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    action: Optional[str] = Query(None, description="Filter by action prefix, e.g. 'payment.'"),
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
) -> AuditLogList:
    query = db.query(AuditLog).order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    if action:
        query = query.filter(AuditLog.action.startswith(action))
    total = query.count()
    logs = query.offset(offset).limit(limit).all()
    return AuditLogList(items=[AuditLogRead.model_validate(entry) for entry in logs], total=total)
