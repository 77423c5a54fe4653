import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import get_current_user, require_module
from ..core.errors import NotFoundError
from ..models.models import Minute, MinuteSignature, User
from ..schemas.schemas import (
    MinuteCreate,
    MinuteRead,
    MinuteSignatureRead,
    MinuteSignResponse,
    MinuteUpdate,
)
from ..services.audit import audit_log
from ..utils.pdf_utils import generate_minute_pdf

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/minutes", tags=["minutes"])

require_secretariat = require_module("secretariat")


def _serialize_signature(signature: MinuteSignature) -> MinuteSignatureRead:
    return MinuteSignatureRead(
        user_id=signature.user_id,
        full_name=signature.user.full_name if signature.user else None,
        email=signature.user.email if signature.user else None,
        signed_at=signature.signed_at,
    )


def _serialize_minute(minute: Minute, include_signatures: bool = True) -> MinuteRead:
    return MinuteRead(
        id=minute.id,
        title=minute.title,
        content=minute.content,
        date=minute.date,
        created_at=minute.created_at,
        updated_at=minute.updated_at,
        signatures=[_serialize_signature(sig) for sig in minute.signatures] if include_signatures else [],
    )


def _load_minute(db: Session, minute_id: int) -> Minute:
    minute = (
        db.query(Minute)
        .options(joinedload(Minute.signatures).joinedload(MinuteSignature.user))
        .filter(Minute.id == minute_id)
        .first()
    )
    if minute is None:
        raise NotFoundError("Minute not found")
    return minute


@router.get("/", response_model=List[MinuteRead])
def list_minutes(
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> List[MinuteRead]:
    query = db.query(Minute)
    if search:
        query = query.filter(Minute.title.ilike(f"%{search.strip()}%"))
    minutes = query.order_by(Minute.date.desc(), Minute.id.desc()).all()
    return [_serialize_minute(minute, include_signatures=False) for minute in minutes]


@router.post("/", response_model=MinuteRead, status_code=201)
def create_minute(
    payload: MinuteCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_secretariat),
) -> MinuteRead:
    minute = Minute(**payload.model_dump(), created_by_user_id=actor.id)
    db.add(minute)
    db.commit()
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="minutes.create",
        target_entity_type="Minute",
        target_entity_id=str(minute.id),
        after={"title": minute.title, "date": minute.date},
    )
    return _serialize_minute(_load_minute(db, minute.id))


@router.get("/{minute_id}", response_model=MinuteRead)
def get_minute(
    minute_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> MinuteRead:
    return _serialize_minute(_load_minute(db, minute_id))


@router.patch("/{minute_id}", response_model=MinuteRead)
def update_minute(
    minute_id: int,
    payload: MinuteUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_secretariat),
) -> MinuteRead:
    minute = _load_minute(db, minute_id)
    before = {"title": minute.title, "date": minute.date}
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(minute, key, value)
    db.commit()
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="minutes.update",
        target_entity_type="Minute",
        target_entity_id=str(minute_id),
        before=before,
        after={"title": minute.title, "date": minute.date},
    )
    return _serialize_minute(_load_minute(db, minute_id))


@router.delete("/{minute_id}", status_code=204)
def delete_minute(
    minute_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_secretariat),
) -> Response:
    minute = get_or_404(db, Minute, minute_id, "Minute")
    db.delete(minute)
    db.commit()
    return Response(status_code=204)


@router.post("/{minute_id}/sign", response_model=MinuteSignResponse)
def sign_minute(
    minute_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MinuteSignResponse:
    get_or_404(db, Minute, minute_id, "Minute")
    signature = MinuteSignature(minute_id=minute_id, user_id=current_user.id)
    db.add(signature)
    try:
        db.commit()
        already_signed = False
    except IntegrityError:
        db.rollback()
        already_signed = True
        signature = (
            db.query(MinuteSignature)
            .filter(MinuteSignature.minute_id == minute_id, MinuteSignature.user_id == current_user.id)
            .one()
        )
        logger.info("User %s already signed minute %s", current_user.id, minute_id)
    db.refresh(signature)
    return MinuteSignResponse(already_signed=already_signed, signature=_serialize_signature(signature))


@router.get("/{minute_id}/pdf")
def export_minute_pdf(
    minute_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> FileResponse:
    minute = _load_minute(db, minute_id)
    path = generate_minute_pdf(minute)
    return FileResponse(path, media_type="application/pdf", filename=f"ata_{minute.id}.pdf")
