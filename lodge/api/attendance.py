from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import require_module
from ..models.models import Brother, Event, SessionRecord, User, VisitorAttendance
from ..schemas.schemas import (
    AttendanceBulkSave,
    AttendanceRecordRead,
    FrequencyRead,
    SessionAttendanceRead,
    SessionRecordCreate,
    SessionRecordRead,
    SessionRecordUpdate,
    SessionSummary,
    VisitorAttendanceCreate,
    VisitorAttendanceRead,
    VisitorBulkSave,
)
from ..services import attendance as attendance_service
from ..services.audit import audit_log

router = APIRouter(prefix="/attendance", tags=["attendance"])

require_chancellor = require_module("chancellor")


def _serialize_session_attendance(db: Session, session_record: SessionRecord) -> SessionAttendanceRead:
    roster_size = db.query(Brother).filter(Brother.status == "Ativo").count()
    summary = attendance_service.session_summary(session_record, roster_size)
    return SessionAttendanceRead(
        session=SessionRecordRead.model_validate(session_record),
        records=[AttendanceRecordRead.model_validate(record) for record in session_record.attendance],
        summary=SessionSummary(**summary),
    )


@router.get("/sessions", response_model=List[SessionRecordRead])
def list_sessions(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(require_chancellor),
) -> List[SessionRecord]:
    query = db.query(SessionRecord)
    if status:
        query = query.filter(SessionRecord.status == status)
    return query.order_by(SessionRecord.date.desc(), SessionRecord.id.desc()).all()


@router.post("/sessions", response_model=SessionRecordRead, status_code=201)
def create_session(
    payload: SessionRecordCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_chancellor),
) -> SessionRecord:
    if payload.event_id is not None:
        get_or_404(db, Event, payload.event_id, "Event")
    session_record = SessionRecord(**payload.model_dump())
    db.add(session_record)
    db.commit()
    db.refresh(session_record)
    return session_record


@router.get("/sessions/{session_id}", response_model=SessionAttendanceRead)
def get_session(
    session_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_chancellor),
) -> SessionAttendanceRead:
    session_record = get_or_404(db, SessionRecord, session_id, "Session record")
    return _serialize_session_attendance(db, session_record)


@router.patch("/sessions/{session_id}", response_model=SessionRecordRead)
def update_session(
    session_id: int,
    payload: SessionRecordUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_chancellor),
) -> SessionRecord:
    session_record = get_or_404(db, SessionRecord, session_id, "Session record")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(session_record, key, value)
    db.commit()
    db.refresh(session_record)
    return session_record


@router.delete("/sessions/{session_id}", status_code=204)
def delete_session(
    session_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_chancellor),
) -> Response:
    session_record = get_or_404(db, SessionRecord, session_id, "Session record")
    db.delete(session_record)
    db.commit()
    return Response(status_code=204)


@router.put("/sessions/{session_id}/attendance", response_model=SessionAttendanceRead)
def save_attendance(
    session_id: int,
    payload: AttendanceBulkSave,
    db: Session = Depends(get_db),
    actor: User = Depends(require_chancellor),
) -> SessionAttendanceRead:
    entries = [
        attendance_service.AttendanceEntry(
            brother_id=record.brother_id,
            status=record.status,
            justification=record.justification,
        )
        for record in payload.records
    ]
    session_record = attendance_service.save_session_attendance(db, session_id, entries, finalize=payload.finalize)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="attendance.save",
        target_entity_type="SessionRecord",
        target_entity_id=str(session_id),
        after={"records": len(entries), "status": session_record.status},
    )
    return _serialize_session_attendance(db, session_record)


@router.get("/frequency", response_model=List[FrequencyRead])
def attendance_frequency(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    _: User = Depends(require_module("chancellor", "reports")),
) -> List[FrequencyRead]:
    frequencies = attendance_service.frequency_for_all(db, active_only=not include_inactive)
    return [FrequencyRead(**asdict(entry)) for entry in frequencies]


@router.get("/sessions/{session_id}/visitors", response_model=List[VisitorAttendanceRead])
def list_visitors(
    session_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_chancellor),
) -> List[VisitorAttendance]:
    session_record = get_or_404(db, SessionRecord, session_id, "Session record")
    return list(session_record.visitors)


@router.post("/sessions/{session_id}/visitors", response_model=VisitorAttendanceRead, status_code=201)
def add_visitor(
    session_id: int,
    payload: VisitorAttendanceCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_chancellor),
) -> VisitorAttendance:
    get_or_404(db, SessionRecord, session_id, "Session record")
    visitor = VisitorAttendance(session_record_id=session_id, **payload.model_dump())
    db.add(visitor)
    db.commit()
    db.refresh(visitor)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="attendance.visitor.add",
        target_entity_type="SessionRecord",
        target_entity_id=str(session_id),
        after={"visitor": visitor.name, "lodge": visitor.lodge, "lodge_number": visitor.lodge_number},
    )
    return visitor


@router.put("/sessions/{session_id}/visitors", response_model=List[VisitorAttendanceRead])
def save_visitors(
    session_id: int,
    payload: VisitorBulkSave,
    db: Session = Depends(get_db),
    actor: User = Depends(require_chancellor),
) -> List[VisitorAttendance]:
    session_record = get_or_404(db, SessionRecord, session_id, "Session record")
    visitors = attendance_service.replace_visitors(
        db, session_record, [visitor.model_dump() for visitor in payload.visitors]
    )
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="attendance.visitors.save",
        target_entity_type="SessionRecord",
        target_entity_id=str(session_id),
        after={"visitors": len(visitors)},
    )
    return visitors


@router.delete("/visitors/{visitor_id}", status_code=204)
def delete_visitor(
    visitor_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_chancellor),
) -> Response:
    visitor = get_or_404(db, VisitorAttendance, visitor_id, "Visitor")
    db.delete(visitor)
    db.commit()
    return Response(status_code=204)
