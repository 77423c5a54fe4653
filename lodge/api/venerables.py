from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import require_minimum_role
from ..core.errors import ValidationError
from ..models.models import User, Venerable
from ..schemas.schemas import VenerableCreate, VenerableRead, VenerableUpdate

router = APIRouter(prefix="/venerables", tags=["venerables"])

require_editor = require_minimum_role("EDITOR")


@router.get("/", response_model=List[VenerableRead])
def list_venerables(db: Session = Depends(get_db)) -> List[Venerable]:
    return db.query(Venerable).order_by(Venerable.term_start.desc()).all()


@router.post("/", response_model=VenerableRead, status_code=201)
def create_venerable(
    payload: VenerableCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_editor),
) -> Venerable:
    venerable = Venerable(**payload.model_dump())
    db.add(venerable)
    db.commit()
    db.refresh(venerable)
    return venerable


@router.patch("/{venerable_id}", response_model=VenerableRead)
def update_venerable(
    venerable_id: int,
    payload: VenerableUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_editor),
) -> Venerable:
    venerable = get_or_404(db, Venerable, venerable_id, "Venerable")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(venerable, key, value)
    if venerable.term_end is not None and venerable.term_end < venerable.term_start:
        db.rollback()
        raise ValidationError("term_end must not be earlier than term_start")
    db.commit()
    db.refresh(venerable)
    return venerable


@router.delete("/{venerable_id}", status_code=204)
def delete_venerable(
    venerable_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_editor),
) -> Response:
    venerable = get_or_404(db, Venerable, venerable_id, "Venerable")
    db.delete(venerable)
    db.commit()
    return Response(status_code=204)
