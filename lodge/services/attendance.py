from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..constants import ATTENDANCE_STATUSES, COUNTED_ATTENDANCE_STATUSES
from ..core.errors import NotFoundError, ValidationError
from ..models.models import AttendanceRecord, Brother, SessionRecord, VisitorAttendance

logger = logging.getLogger(__name__)

FINALIZED = "Finalizada"


@dataclass
class BrotherFrequency:
    brother_id: int
    name: str
    presences: int
    total_sessions: int
    percentage: int


@dataclass
class AttendanceEntry:
    brother_id: int
    status: str
    justification: Optional[str] = None


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def attendance_frequency(
    brothers: Iterable[Brother],
    sessions: Iterable[SessionRecord],
    attendance: Iterable[AttendanceRecord],
) -> List[BrotherFrequency]:
    """Per-brother presence over finalized sessions.

    ``Presente`` and ``Justificado`` both count as a presence. With no finalized
    sessions every brother scores zero.
    """
    finalized_ids = {session.id for session in sessions if session.status == FINALIZED}
    total = len(finalized_ids)

    counts: dict[int, int] = {}
    for record in attendance:
        if record.session_record_id not in finalized_ids:
            continue
        if record.status not in COUNTED_ATTENDANCE_STATUSES:
            continue
        counts[record.brother_id] = counts.get(record.brother_id, 0) + 1

    results = []
    for brother in brothers:
        presences = counts.get(brother.id, 0) if total else 0
        percentage = _round_half_up(Decimal(presences) / Decimal(total) * 100) if total else 0
        results.append(
            BrotherFrequency(
                brother_id=brother.id,
                name=brother.name,
                presences=presences,
                total_sessions=total,
                percentage=percentage,
            )
        )
    return results


def session_summary(session_record: SessionRecord, roster_size: int) -> dict:
    present = sum(1 for record in session_record.attendance if record.status == "Presente")
    justified = sum(1 for record in session_record.attendance if record.status == "Justificado")
    visitors = len(session_record.visitors)
    denominator = roster_size or 1
    return {
        "present": present,
        "justified": justified,
        "absent": len(session_record.attendance) - present - justified,
        "percentage": _round_half_up(Decimal(present) / Decimal(denominator) * 100),
        "visitors": visitors,
        "total_participants": present + visitors,
    }


def frequency_for_all(db: Session, active_only: bool = True) -> List[BrotherFrequency]:
    brothers_query = db.query(Brother)
    if active_only:
        brothers_query = brothers_query.filter(Brother.status == "Ativo")
    brothers = brothers_query.order_by(Brother.name).all()
    sessions = db.query(SessionRecord).all()
    records = db.query(AttendanceRecord).all()
    return attendance_frequency(brothers, sessions, records)


def save_session_attendance(
    db: Session,
    session_record_id: int,
    entries: Sequence[AttendanceEntry],
    finalize: bool = True,
) -> SessionRecord:
    """Replace every attendance row of a session with ``entries``."""
    session_record = db.get(SessionRecord, session_record_id)
    if session_record is None:
        raise NotFoundError("Session record not found")

    seen = set()
    for entry in entries:
        if entry.status not in ATTENDANCE_STATUSES:
            raise ValidationError(f"Invalid attendance status: {entry.status}")
        if entry.brother_id in seen:
            raise ValidationError(f"Brother {entry.brother_id} listed more than once")
        seen.add(entry.brother_id)

    if seen:
        known = {row.id for row in db.query(Brother.id).filter(Brother.id.in_(seen)).all()}
        missing = seen - known
        if missing:
            raise NotFoundError(f"Brother not found: {sorted(missing)[0]}")

    try:
        db.query(AttendanceRecord).filter(AttendanceRecord.session_record_id == session_record_id).delete(
            synchronize_session=False
        )
        for entry in entries:
            db.add(
                AttendanceRecord(
                    session_record_id=session_record_id,
                    brother_id=entry.brother_id,
                    status=entry.status,
                    justification=entry.justification,
                )
            )
        if finalize:
            session_record.status = FINALIZED
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(session_record)
    logger.info("Saved %s attendance rows for session %s", len(entries), session_record_id)
    return session_record


def replace_visitors(db: Session, session_record: SessionRecord, visitors: Sequence[dict]) -> List[VisitorAttendance]:
    """Replace the visitor list of a session with ``visitors``."""
    try:
        db.query(VisitorAttendance).filter(VisitorAttendance.session_record_id == session_record.id).delete(
            synchronize_session=False
        )
        for visitor in visitors:
            db.add(VisitorAttendance(session_record_id=session_record.id, **visitor))
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(session_record)
    logger.info("Saved %s visitors for session %s", len(visitors), session_record.id)
    return list(session_record.visitors)
