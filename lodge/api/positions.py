from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_roles
from ..constants import POSITION_LABELS, POSITION_PERMISSIONS
from ..models.models import LodgePosition, LodgePositionHistory, User
from ..schemas.schemas import (
    MyPositionRead,
    PositionAssign,
    PositionHistoryRead,
    PositionRead,
    TermDefaultRead,
)
from ..services import positions as position_service
from ..services.audit import audit_log, snapshot

router = APIRouter(prefix="/positions", tags=["positions"])

require_admin = require_roles("ADMIN")


def _holder_name(user: Optional[User]) -> Optional[str]:
    if user is None:
        return None
    return user.full_name or user.email


def _serialize_position(position: LodgePosition, today: date) -> PositionRead:
    return PositionRead(
        id=position.id,
        position_type=position.position_type,
        label=POSITION_LABELS.get(position.position_type, position.position_type),
        user_id=position.user_id,
        holder_name=_holder_name(position.user),
        holder_email=position.user.email if position.user else None,
        start_date=position.start_date,
        end_date=position.end_date,
        is_current=position.start_date <= today <= position.end_date,
    )


def _serialize_history(entry: LodgePositionHistory) -> PositionHistoryRead:
    return PositionHistoryRead(
        id=entry.id,
        position_type=entry.position_type,
        label=POSITION_LABELS.get(entry.position_type, entry.position_type),
        user_id=entry.user_id,
        holder_name=_holder_name(entry.user),
        start_date=entry.start_date,
        end_date=entry.end_date,
        archived_at=entry.archived_at,
    )


def _snapshot(position: LodgePosition) -> dict:
    return snapshot(position, "position_type", "user_id", "start_date", "end_date")


@router.get("/", response_model=List[PositionRead])
def list_positions(
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> List[PositionRead]:
    today = date.today()
    return [_serialize_position(position, today) for position in position_service.list_positions(db)]


@router.post("/", response_model=PositionRead, status_code=201)
def assign_position(
    payload: PositionAssign,
    db: Session = Depends(get_db),
    actor: User = Depends(require_admin),
) -> PositionRead:
    previous = (
        db.query(LodgePosition)
        .filter(LodgePosition.position_type == payload.position_type)
        .first()
    )
    before = _snapshot(previous) if previous else None
    position = position_service.assign_position(
        db,
        position_type=payload.position_type,
        user_id=payload.user_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="positions.assign",
        target_entity_type="LodgePosition",
        target_entity_id=position.position_type,
        before=before,
        after=_snapshot(position),
    )
    return _serialize_position(position, date.today())


@router.delete("/{position_id}", status_code=204)
def remove_position(
    position_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_admin),
) -> Response:
    entry = position_service.remove_position(db, position_id)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="positions.remove",
        target_entity_type="LodgePosition",
        target_entity_id=entry.position_type,
        before={"user_id": entry.user_id, "start_date": entry.start_date, "end_date": entry.end_date},
    )
    return Response(status_code=204)


@router.get("/history", response_model=List[PositionHistoryRead])
def list_position_history(
    limit: int = Query(position_service.HISTORY_LIMIT, ge=1, le=position_service.HISTORY_LIMIT),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> List[PositionHistoryRead]:
    return [_serialize_history(entry) for entry in position_service.list_history(db, limit=limit)]


@router.get("/term-default", response_model=TermDefaultRead)
def suggested_term(
    start_date: Optional[date] = Query(None),
    _: User = Depends(get_current_user),
) -> TermDefaultRead:
    start = start_date or date.today()
    return TermDefaultRead(start_date=start, end_date=position_service.default_end_date(start))


@router.get("/me", response_model=MyPositionRead)
def my_position(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MyPositionRead:
    today = date.today()
    positions = db.query(LodgePosition).filter(LodgePosition.user_id == current_user.id).all()
    current = position_service.current_position_for_user(positions, current_user.id, today)
    if current is None:
        return MyPositionRead(position=None, permissions=[])
    return MyPositionRead(
        position=_serialize_position(current, today),
        permissions=list(POSITION_PERMISSIONS.get(current.position_type, [])),
    )
