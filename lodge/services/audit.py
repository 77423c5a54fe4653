import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models.models import AuditLog, utcnow
from ..utils.format_utils import only_digits

# Personal identifiers that only keep their last digits in the trail.
MASKED_FIELDS = frozenset({"cpf", "phone"})


def _mask(value: Any) -> str:
    digits = only_digits(str(value))
    return f"***{digits[-2:]}" if len(digits) > 2 else "***"


def _redact(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            key: _mask(value) if key in MASKED_FIELDS and value else _redact(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [_redact(item) for item in data]
    return data


def _serialize(data: Any) -> Optional[str]:
    if data is None:
        return None
    try:
        return json.dumps(_redact(data), default=str, ensure_ascii=False)
    except TypeError:
        return str(data)


def snapshot(instance: Any, *fields: str) -> dict:
    """Field values of a lodge record, for the ``before``/``after`` of an entry."""
    return {field: getattr(instance, field) for field in fields}


def audit_log(
    db_session: Session,
    actor_user_id: Optional[int],
    action: str,
    target_entity_type: Optional[str] = None,
    target_entity_id: Optional[str] = None,
    before: Any = None,
    after: Any = None,
) -> AuditLog:
    entry = AuditLog(
        timestamp=utcnow(),
        actor_user_id=actor_user_id,
        action=action,
        target_entity_type=target_entity_type,
        target_entity_id=target_entity_id,
        before=_serialize(before),
        after=_serialize(after),
    )
    db_session.add(entry)
    db_session.commit()
    return entry
