import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..models.models import AuditLog, utcnow


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _serialize(data: Any) -> Optional[str]:
    if data is None:
        return None
    return json.dumps(data, default=_encode, sort_keys=True)


def snapshot(instance: Any, *fields: str) -> Dict[str, Any]:
    """Capture the named attributes of a row for a before/after audit pair."""
    return {field: getattr(instance, field) for field in fields}


def audit_log(
    db_session: Session,
    actor_user_id: Optional[int],
    action: str,
    target_entity_type: Optional[str] = None,
    target_entity_id: Optional[str] = None,
    before: Any = None,
    after: Any = None,
    commit: bool = True,
) -> AuditLog:
    """Append an audit row.

    With ``commit=False`` the row is only flushed so it lands in the caller's
    unit of work alongside the change it describes.
    """
    entry = AuditLog(
        timestamp=utcnow(),
        actor_user_id=actor_user_id,
        action=action,
        target_entity_type=target_entity_type,
        target_entity_id=str(target_entity_id) if target_entity_id is not None else None,
        before=_serialize(before),
        after=_serialize(after),
    )
    db_session.add(entry)
    if commit:
        db_session.commit()
    else:
        db_session.flush()
    return entry
