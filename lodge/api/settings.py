from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_roles
from ..models.models import User
from ..schemas.schemas import SiteSettingUpdate
from ..services import site_settings
from ..services.audit import audit_log

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/")
def read_settings(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return site_settings.get_all(db)


@router.put("/{key}")
def update_setting(
    key: str,
    payload: SiteSettingUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_roles("ADMIN")),
) -> Dict[str, Any]:
    before = site_settings.get_value(db, key)
    row = site_settings.set_value(db, key, payload.value, actor_user_id=actor.id)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="settings.update",
        target_entity_type="SiteSetting",
        target_entity_id=key,
        before=before,
        after=row.value,
    )
    return {"key": row.key, "value": row.value}
