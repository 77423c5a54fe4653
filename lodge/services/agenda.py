"""Calendar events and the scheduling clash heuristic.

Times are compared on the HHMM integer scale (``19:30`` becomes ``1930``), so
the distance between 23:30 and 00:10 is 2320 and events either side of midnight
are never flagged. Clashes are reported, never enforced.
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..constants import EVENT_CONFLICT_THRESHOLD
from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..models.models import Event, Location

logger = logging.getLogger(__name__)


def _time_value(value: str) -> int:
    try:
        return int(value.replace(":", ""))
    except (AttributeError, ValueError) as exc:
        raise ValidationError(f"Invalid time: {value!r}") from exc


def time_distance(first: str, second: str) -> int:
    return abs(_time_value(first) - _time_value(second))


def normalize_time(value: str) -> str:
    parts = (value or "").strip().split(":")
    if len(parts) < 2:
        raise ValidationError("Time must use the HH:MM format")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise ValidationError("Time must use the HH:MM format") from exc
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValidationError("Time must use the HH:MM format")
    return f"{hours:02d}:{minutes:02d}"


def _location_key(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def resolve_location(db: Session, location_id: Optional[int], location: Optional[str]) -> str:
    if location_id is not None:
        place = db.get(Location, location_id)
        if place is None:
            raise NotFoundError("Location not found")
        return place.name
    return location or ""


def event_location_name(event: Event) -> str:
    if event.location_id is not None and event.location_ref is not None:
        return event.location_ref.name
    return event.location or ""


def find_conflicts(
    db: Session,
    event_date: date,
    time: str,
    location_name: str,
    exclude_event_id: Optional[int] = None,
) -> List[Event]:
    key = _location_key(location_name)
    if not key:
        return []
    query = (
        db.query(Event)
        .options(joinedload(Event.location_ref))
        .filter(Event.date == event_date)
    )
    if exclude_event_id is not None:
        query = query.filter(Event.id != exclude_event_id)
    conflicts = []
    for other in query.order_by(Event.time).all():
        if _location_key(event_location_name(other)) != key:
            continue
        if time_distance(time, other.time) < EVENT_CONFLICT_THRESHOLD:
            conflicts.append(other)
    return conflicts


def list_events(db: Session, start: Optional[date] = None, end: Optional[date] = None) -> List[Event]:
    query = db.query(Event).options(joinedload(Event.location_ref))
    if start:
        query = query.filter(Event.date >= start)
    if end:
        query = query.filter(Event.date <= end)
    return query.order_by(Event.date.asc(), Event.time.asc()).all()


def save_event(db: Session, event: Event, values: Dict) -> List[Event]:
    """Apply ``values`` to ``event`` and persist it. Returns clashing events."""
    if "time" in values:
        values["time"] = normalize_time(values["time"])
    for key, value in values.items():
        setattr(event, key, value)
    location_name = resolve_location(db, event.location_id, event.location)
    conflicts = find_conflicts(db, event.date, event.time, location_name, exclude_event_id=event.id)
    db.add(event)
    db.commit()
    db.refresh(event)
    if conflicts:
        logger.info(
            "Event %s on %s at %s overlaps %s other event(s)", event.id, event.date, event.time, len(conflicts)
        )
    return conflicts


def create_location(db: Session, name: str, address: Optional[str] = None) -> Location:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Location name is required")
    existing = db.query(Location).filter(Location.name == cleaned).first()
    if existing:
        raise ConflictError(f"Location '{cleaned}' already exists")
    location = Location(name=cleaned, address=address)
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


def update_location(db: Session, location: Location, updates: Dict) -> Location:
    if "name" in updates:
        cleaned = (updates["name"] or "").strip()
        if not cleaned:
            raise ValidationError("Location name is required")
        clash = (
            db.query(Location)
            .filter(Location.name == cleaned, Location.id != location.id)
            .first()
        )
        if clash:
            raise ConflictError(f"Location '{cleaned}' already exists")
        updates = {**updates, "name": cleaned}
    for key, value in updates.items():
        setattr(location, key, value)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Location name already exists") from exc
    db.refresh(location)
    return location
