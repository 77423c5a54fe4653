"""Lodge officer terms.

Each position type has at most one active holder. Replacing or removing a holder
archives the outgoing term into ``lodge_position_history`` within the same
transaction, so a failed write never leaves a position without its previous
holder.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from ..constants import POSITION_PERMISSIONS, POSITION_TERM_YEARS, POSITION_TYPES
from ..core.errors import NotFoundError, ValidationError
from ..models.models import LodgePosition, LodgePositionHistory, User

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100


def has_module_permission(position_type: Optional[str], module: str) -> bool:
    if not position_type:
        return False
    allowed = POSITION_PERMISSIONS.get(position_type, [])
    return "*" in allowed or module in allowed


def current_position_for_user(
    positions: Iterable[LodgePosition], user_id: int, today: date
) -> Optional[LodgePosition]:
    for position in positions:
        if position.user_id != user_id:
            continue
        if position.start_date <= today <= position.end_date:
            return position
    return None


def default_end_date(start_date: date) -> date:
    """Suggested end of a term. Callers may pick any other end date."""
    try:
        return start_date.replace(year=start_date.year + POSITION_TERM_YEARS)
    except ValueError:
        # 29 February
        return start_date.replace(year=start_date.year + POSITION_TERM_YEARS, day=28)


def _archive(db: Session, position: LodgePosition) -> LodgePositionHistory:
    entry = LodgePositionHistory(
        position_type=position.position_type,
        user_id=position.user_id,
        start_date=position.start_date,
        end_date=position.end_date,
    )
    db.add(entry)
    return entry


def list_positions(db: Session) -> List[LodgePosition]:
    return (
        db.query(LodgePosition)
        .options(joinedload(LodgePosition.user))
        .order_by(LodgePosition.position_type)
        .all()
    )


def list_history(db: Session, limit: int = HISTORY_LIMIT) -> List[LodgePositionHistory]:
    return (
        db.query(LodgePositionHistory)
        .options(joinedload(LodgePositionHistory.user))
        .order_by(LodgePositionHistory.start_date.desc(), LodgePositionHistory.id.desc())
        .limit(limit)
        .all()
    )


def assign_position(
    db: Session,
    position_type: str,
    user_id: int,
    start_date: date,
    end_date: date,
) -> LodgePosition:
    if position_type not in POSITION_TYPES:
        raise ValidationError(f"Unknown position type: {position_type}")
    if db.get(User, user_id) is None:
        raise NotFoundError("Member not found")

    try:
        current = db.query(LodgePosition).filter(LodgePosition.position_type == position_type).first()
        if current is not None:
            _archive(db, current)
            db.delete(current)
            db.flush()
        position = LodgePosition(
            position_type=position_type,
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
        )
        db.add(position)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to assign %s to user %s", position_type, user_id)
        raise

    db.refresh(position)
    logger.info("Assigned %s to user %s (%s to %s)", position_type, user_id, start_date, end_date)
    return position


def remove_position(db: Session, position_id: int) -> LodgePositionHistory:
    position = db.get(LodgePosition, position_id)
    if position is None:
        raise NotFoundError("Position not found")

    try:
        entry = _archive(db, position)
        db.delete(position)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to remove position %s", position_id)
        raise

    logger.info("Removed %s holder (position %s)", entry.position_type, position_id)
    return entry
