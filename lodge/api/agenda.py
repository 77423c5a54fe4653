from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import get_current_user, require_module
from ..models.models import Event, Location, User
from ..schemas.schemas import (
    EventConflictCheck,
    EventConflictResult,
    EventCreate,
    EventRead,
    EventSaveResponse,
    EventUpdate,
    LocationCreate,
    LocationRead,
    LocationUpdate,
)
from ..services import agenda as agenda_service
from ..services.audit import audit_log

router = APIRouter(prefix="/agenda", tags=["agenda"])

require_agenda = require_module("agenda")


def _serialize_event(event: Event) -> EventRead:
    return EventRead(
        id=event.id,
        title=event.title,
        date=event.date,
        time=event.time,
        type=event.type,
        location_id=event.location_id,
        location=event.location,
        location_name=agenda_service.event_location_name(event),
        description=event.description,
    )


def _save_response(event: Event, conflicts: List[Event]) -> EventSaveResponse:
    return EventSaveResponse(
        event=_serialize_event(event),
        conflicts=[_serialize_event(other) for other in conflicts],
    )


# --- Locations ---


@router.get("/locations", response_model=List[LocationRead])
def list_locations(
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> List[Location]:
    return db.query(Location).order_by(Location.name.asc()).all()


@router.post("/locations", response_model=LocationRead, status_code=201)
def create_location(
    payload: LocationCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_agenda),
) -> Location:
    return agenda_service.create_location(db, payload.name, payload.address)


@router.patch("/locations/{location_id}", response_model=LocationRead)
def update_location(
    location_id: int,
    payload: LocationUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_agenda),
) -> Location:
    location = get_or_404(db, Location, location_id, "Location")
    return agenda_service.update_location(db, location, payload.model_dump(exclude_unset=True))


@router.delete("/locations/{location_id}", status_code=204)
def delete_location(
    location_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_agenda),
) -> Response:
    location = get_or_404(db, Location, location_id, "Location")
    # Keep the place visible on events that pointed at it.
    for event in location.events:
        event.location = event.location or location.name
        event.location_id = None
    db.delete(location)
    db.commit()
    return Response(status_code=204)


# --- Events ---


@router.get("/events", response_model=List[EventRead])
def list_events(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> List[EventRead]:
    return [_serialize_event(event) for event in agenda_service.list_events(db, start, end)]


@router.post("/events", response_model=EventSaveResponse, status_code=201)
def create_event(
    payload: EventCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_agenda),
) -> EventSaveResponse:
    event = Event(created_by_user_id=actor.id)
    conflicts = agenda_service.save_event(db, event, payload.model_dump())
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="agenda.event.create",
        target_entity_type="Event",
        target_entity_id=str(event.id),
        after={"title": event.title, "date": event.date, "time": event.time, "conflicts": len(conflicts)},
    )
    return _save_response(event, conflicts)


@router.get("/events/{event_id}", response_model=EventRead)
def get_event(
    event_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> EventRead:
    return _serialize_event(get_or_404(db, Event, event_id, "Event"))


@router.patch("/events/{event_id}", response_model=EventSaveResponse)
def update_event(
    event_id: int,
    payload: EventUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_agenda),
) -> EventSaveResponse:
    event = get_or_404(db, Event, event_id, "Event")
    before = {"title": event.title, "date": event.date, "time": event.time}
    conflicts = agenda_service.save_event(db, event, payload.model_dump(exclude_unset=True))
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="agenda.event.update",
        target_entity_type="Event",
        target_entity_id=str(event.id),
        before=before,
        after={"title": event.title, "date": event.date, "time": event.time, "conflicts": len(conflicts)},
    )
    return _save_response(event, conflicts)


@router.delete("/events/{event_id}", status_code=204)
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_agenda),
) -> Response:
    event = get_or_404(db, Event, event_id, "Event")
    db.delete(event)
    db.commit()
    return Response(status_code=204)


@router.post("/events/check", response_model=EventConflictResult)
def check_event_conflicts(
    payload: EventConflictCheck,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> EventConflictResult:
    location_name = agenda_service.resolve_location(db, payload.location_id, payload.location)
    conflicts = agenda_service.find_conflicts(
        db, payload.date, payload.time, location_name, exclude_event_id=payload.exclude_event_id
    )
    return EventConflictResult(
        has_conflicts=bool(conflicts),
        conflicts=[_serialize_event(event) for event in conflicts],
    )
