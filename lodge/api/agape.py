from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import get_current_user, require_module, user_can_access_module
from ..core.errors import ValidationError
from ..models.models import AgapeConsumption, AgapeMenuItem, AgapeSession, User
from ..schemas.schemas import (
    AgapeBrotherTotal,
    AgapeConsumptionCreate,
    AgapeConsumptionRead,
    AgapeConsumptionUpdate,
    AgapeMenuItemCreate,
    AgapeMenuItemRead,
    AgapeMenuItemUpdate,
    AgapeMonthlyEntry,
    AgapeSessionCreate,
    AgapeSessionRead,
    AgapeSessionTotals,
    AgapeSessionUpdate,
    ConsumptionSaveResponse,
)
from ..services import agape as agape_service
from ..services.audit import audit_log, snapshot

router = APIRouter(prefix="/agape", tags=["agape"])

require_agape = require_module("agape")

MENU_AUDIT_FIELDS = ("name", "price", "category", "is_active")


def _own_brother_id(user: User) -> int:
    if user.brother is None:
        raise ValidationError("Your account is not linked to a brother")
    return user.brother.id


def _check_consumption_access(db: Session, user: User, consumption: AgapeConsumption) -> None:
    if user.brother is not None and user.brother.id == consumption.brother_id:
        return
    if not user_can_access_module(db, user, "agape"):
        raise HTTPException(status_code=403, detail="You may only change your own consumption")


# --- Sessions ---


@router.get("/sessions", response_model=List[AgapeSessionRead])
def list_sessions(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> List[AgapeSession]:
    query = db.query(AgapeSession)
    if status:
        query = query.filter(AgapeSession.status == status)
    return query.order_by(AgapeSession.date.desc(), AgapeSession.id.desc()).all()


@router.post("/sessions", response_model=AgapeSessionRead, status_code=201)
def create_session(
    payload: AgapeSessionCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_agape),
) -> AgapeSession:
    session = AgapeSession(**payload.model_dump(), created_by_user_id=actor.id)
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


@router.patch("/sessions/{session_id}", response_model=AgapeSessionRead)
def update_session(
    session_id: int,
    payload: AgapeSessionUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_agape),
) -> AgapeSession:
    session = get_or_404(db, AgapeSession, session_id, "Agape session")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(session, key, value)
    db.commit()
    db.refresh(session)
    return session


def _transition(db: Session, actor: User, session: AgapeSession, target: str) -> AgapeSession:
    before = session.status
    session = agape_service.transition_session(db, session, target)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action=f"agape.session.{target}",
        target_entity_type="AgapeSession",
        target_entity_id=str(session.id),
        before={"status": before},
        after={"status": session.status},
    )
    return session


@router.post("/sessions/{session_id}/close", response_model=AgapeSessionRead)
def close_session(
    session_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_agape),
) -> AgapeSession:
    session = get_or_404(db, AgapeSession, session_id, "Agape session")
    return _transition(db, actor, session, "closed")


@router.post("/sessions/{session_id}/finalize", response_model=AgapeSessionRead)
def finalize_session(
    session_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_agape),
) -> AgapeSession:
    session = get_or_404(db, AgapeSession, session_id, "Agape session")
    return _transition(db, actor, session, "finalized")


@router.delete("/sessions/{session_id}", status_code=204)
def delete_session(
    session_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_agape),
) -> Response:
    session = get_or_404(db, AgapeSession, session_id, "Agape session")
    if session.status == "finalized":
        raise ValidationError("Finalized agape sessions cannot be deleted")
    db.delete(session)
    db.commit()
    return Response(status_code=204)


@router.get("/sessions/{session_id}/totals", response_model=AgapeSessionTotals)
def session_totals(
    session_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_agape),
) -> AgapeSessionTotals:
    session = get_or_404(db, AgapeSession, session_id, "Agape session")
    return AgapeSessionTotals(**agape_service.session_totals(session))


@router.get("/sessions/{session_id}/my-total", response_model=AgapeBrotherTotal)
def my_session_total(
    session_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AgapeBrotherTotal:
    session = get_or_404(db, AgapeSession, session_id, "Agape session")
    return AgapeBrotherTotal(**agape_service.brother_session_total(session, _own_brother_id(user)))


# --- Menu ---


@router.get("/menu-items", response_model=List[AgapeMenuItemRead])
def list_menu_items(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> List[AgapeMenuItem]:
    query = db.query(AgapeMenuItem)
    if not include_inactive:
        query = query.filter(AgapeMenuItem.is_active.is_(True))
    return query.order_by(AgapeMenuItem.category.asc(), AgapeMenuItem.name.asc()).all()


@router.post("/menu-items", response_model=AgapeMenuItemRead, status_code=201)
def create_menu_item(
    payload: AgapeMenuItemCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_agape),
) -> AgapeMenuItem:
    item = AgapeMenuItem(**payload.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@router.patch("/menu-items/{item_id}", response_model=AgapeMenuItemRead)
def update_menu_item(
    item_id: int,
    payload: AgapeMenuItemUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_agape),
) -> AgapeMenuItem:
    item = get_or_404(db, AgapeMenuItem, item_id, "Menu item")
    before = snapshot(item, *MENU_AUDIT_FIELDS)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="agape.menu_item.update",
        target_entity_type="AgapeMenuItem",
        target_entity_id=str(item.id),
        before=before,
        after=snapshot(item, *MENU_AUDIT_FIELDS),
    )
    return item


@router.delete("/menu-items/{item_id}", status_code=204)
def delete_menu_item(
    item_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_agape),
) -> Response:
    item = get_or_404(db, AgapeMenuItem, item_id, "Menu item")
    agape_service.delete_menu_item(db, item)
    return Response(status_code=204)


# --- Consumption ---


@router.get("/sessions/{session_id}/consumptions", response_model=List[AgapeConsumptionRead])
def list_consumptions(
    session_id: int,
    brother_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> List[AgapeConsumption]:
    get_or_404(db, AgapeSession, session_id, "Agape session")
    query = db.query(AgapeConsumption).filter(AgapeConsumption.session_id == session_id)
    if not user_can_access_module(db, user, "agape"):
        brother_id = _own_brother_id(user)
    if brother_id is not None:
        query = query.filter(AgapeConsumption.brother_id == brother_id)
    return query.order_by(AgapeConsumption.id.asc()).all()


@router.post("/sessions/{session_id}/consumptions", response_model=ConsumptionSaveResponse, status_code=201)
def add_consumption(
    session_id: int,
    payload: AgapeConsumptionCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ConsumptionSaveResponse:
    session = get_or_404(db, AgapeSession, session_id, "Agape session")
    own_id = user.brother.id if user.brother is not None else None
    brother_id = payload.brother_id if payload.brother_id is not None else own_id
    if brother_id is None:
        raise ValidationError("Your account is not linked to a brother")
    if brother_id != own_id and not user_can_access_module(db, user, "agape"):
        raise HTTPException(status_code=403, detail="You may only record your own consumption")

    consumption, merged = agape_service.add_consumption(
        db,
        session,
        brother_id=brother_id,
        menu_item_id=payload.menu_item_id,
        quantity=payload.quantity,
        notes=payload.notes,
    )
    return ConsumptionSaveResponse(consumption=AgapeConsumptionRead.model_validate(consumption), merged=merged)


@router.patch("/consumptions/{consumption_id}", response_model=AgapeConsumptionRead)
def update_consumption(
    consumption_id: int,
    payload: AgapeConsumptionUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AgapeConsumption:
    consumption = get_or_404(db, AgapeConsumption, consumption_id, "Consumption")
    _check_consumption_access(db, user, consumption)
    return agape_service.update_consumption(db, consumption, payload.model_dump(exclude_unset=True))


@router.delete("/consumptions/{consumption_id}", status_code=204)
def delete_consumption(
    consumption_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    consumption = get_or_404(db, AgapeConsumption, consumption_id, "Consumption")
    _check_consumption_access(db, user, consumption)
    agape_service.delete_consumption(db, consumption)
    return Response(status_code=204)


# --- Reports ---


@router.get("/reports/monthly", response_model=List[AgapeMonthlyEntry])
def monthly_report(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
    _: User = Depends(require_module("agape", "financial", "reports")),
) -> List[AgapeMonthlyEntry]:
    return [AgapeMonthlyEntry(**asdict(entry)) for entry in agape_service.monthly_report(db, year, month)]
