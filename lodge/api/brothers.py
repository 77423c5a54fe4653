from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import get_current_user, require_module
from ..models.models import Brother, User
from ..schemas.schemas import BrotherCreate, BrotherRead, BrotherUpdate
from ..services.audit import audit_log, snapshot
from ..services.storage import build_upload_path, storage_service

router = APIRouter(prefix="/brothers", tags=["brothers"])

require_secretariat = require_module("secretariat")

ALLOWED_PHOTO_TYPES = {"image/png", "image/jpeg", "image/webp"}
MAX_PHOTO_BYTES = 5 * 1024 * 1024


def _snapshot(brother: Brother) -> dict:
    return snapshot(brother, "name", "email", "phone", "cpf", "degree", "status")


def _check_user_link(db: Session, user_id: Optional[int], brother_id: Optional[int] = None) -> None:
    if user_id is None:
        return
    if db.get(User, user_id) is None:
        raise HTTPException(status_code=404, detail="Linked user not found")
    query = db.query(Brother).filter(Brother.user_id == user_id)
    if brother_id is not None:
        query = query.filter(Brother.id != brother_id)
    if query.first():
        raise HTTPException(status_code=409, detail="User is already linked to another brother")


@router.get("/", response_model=List[BrotherRead])
def list_brothers(
    status: Optional[str] = Query(None),
    degree: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> List[Brother]:
    query = db.query(Brother)
    if status:
        query = query.filter(Brother.status == status)
    if degree:
        query = query.filter(Brother.degree == degree)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Brother.name.ilike(pattern), Brother.email.ilike(pattern)))
    return query.order_by(Brother.name.asc()).all()


@router.post("/", response_model=BrotherRead, status_code=201)
def create_brother(
    payload: BrotherCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_secretariat),
) -> Brother:
    _check_user_link(db, payload.user_id)
    brother = Brother(**payload.model_dump())
    db.add(brother)
    db.commit()
    db.refresh(brother)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="brothers.create",
        target_entity_type="Brother",
        target_entity_id=str(brother.id),
        after=_snapshot(brother),
    )
    return brother


@router.get("/{brother_id}", response_model=BrotherRead)
def get_brother(
    brother_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> Brother:
    return get_or_404(db, Brother, brother_id, "Brother")


@router.patch("/{brother_id}", response_model=BrotherRead)
def update_brother(
    brother_id: int,
    payload: BrotherUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_secretariat),
) -> Brother:
    brother = get_or_404(db, Brother, brother_id, "Brother")
    updates = payload.model_dump(exclude_unset=True)
    if "user_id" in updates:
        _check_user_link(db, updates["user_id"], brother_id=brother.id)
    before = _snapshot(brother)
    for key, value in updates.items():
        setattr(brother, key, value)
    db.commit()
    db.refresh(brother)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="brothers.update",
        target_entity_type="Brother",
        target_entity_id=str(brother.id),
        before=before,
        after=_snapshot(brother),
    )
    return brother


@router.delete("/{brother_id}", status_code=204)
def delete_brother(
    brother_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_secretariat),
) -> Response:
    brother = get_or_404(db, Brother, brother_id, "Brother")
    before = _snapshot(brother)
    photo = brother.photo_url
    db.delete(brother)
    db.commit()
    storage_service.delete_file(photo)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="brothers.delete",
        target_entity_type="Brother",
        target_entity_id=str(brother_id),
        before=before,
    )
    return Response(status_code=204)


@router.post("/{brother_id}/photo", response_model=BrotherRead)
async def upload_brother_photo(
    brother_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    _: User = Depends(require_secretariat),
) -> Brother:
    brother = get_or_404(db, Brother, brother_id, "Brother")
    if file.content_type not in ALLOWED_PHOTO_TYPES:
        raise HTTPException(status_code=400, detail="Upload a PNG, JPG or WEBP image.")
    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="File is empty")
    if len(contents) > MAX_PHOTO_BYTES:
        raise HTTPException(status_code=400, detail="Photo exceeds the 5 MB limit.")

    stored = storage_service.save_file(
        build_upload_path("brothers", file.filename), contents, content_type=file.content_type
    )
    previous = brother.photo_url
    brother.photo_url = stored.public_path
    db.commit()
    db.refresh(brother)
    if previous:
        storage_service.delete_file(previous)
    return brother
