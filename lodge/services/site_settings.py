from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..constants import DEFAULT_SITE_SETTINGS
from ..models.models import SiteSetting


def ensure_defaults(db: Session) -> None:
    existing = {row.key for row in db.query(SiteSetting.key).all()}
    created = False
    for key, value in DEFAULT_SITE_SETTINGS.items():
        if key not in existing:
            db.add(SiteSetting(key=key, value=value))
            created = True
    if created:
        db.commit()


def get_all(db: Session) -> Dict[str, Any]:
    return {row.key: row.value for row in db.query(SiteSetting).order_by(SiteSetting.key).all()}


def get_value(db: Session, key: str, default: Any = None) -> Any:
    row = db.query(SiteSetting).filter(SiteSetting.key == key).first()
    return row.value if row else default


def set_value(db: Session, key: str, value: Any, actor_user_id: Optional[int] = None) -> SiteSetting:
    row = db.query(SiteSetting).filter(SiteSetting.key == key).first()
    if row is None:
        row = SiteSetting(key=key)
        db.add(row)
    row.value = value
    row.updated_by_user_id = actor_user_id
    db.commit()
    db.refresh(row)
    return row
