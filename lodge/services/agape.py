"""Agape (fraternal meal) sessions, menu and per-brother consumption."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..constants import AGAPE_SESSION_TRANSITIONS
from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..models.models import AgapeConsumption, AgapeMenuItem, AgapeSession, Brother

logger = logging.getLogger(__name__)

OPEN = "open"


@dataclass
class BrotherAgapeTotal:
    brother_id: int
    name: str
    sessions: int
    total_items: int
    total_amount: Decimal


def _line_total(unit_price, quantity: int) -> Decimal:
    return (Decimal(str(unit_price)) * quantity).quantize(Decimal("0.01"))


def _ensure_open(session: AgapeSession) -> None:
    if session.status != OPEN:
        raise ValidationError(f"Agape session is {session.status}; consumptions can no longer change")


def transition_session(db: Session, session: AgapeSession, target: str) -> AgapeSession:
    if AGAPE_SESSION_TRANSITIONS.get(session.status) != target:
        raise ValidationError(f"Cannot move agape session from {session.status} to {target}")
    session.status = target
    db.commit()
    db.refresh(session)
    logger.info("Agape session %s is now %s", session.id, target)
    return session


def delete_menu_item(db: Session, item: AgapeMenuItem) -> None:
    in_use = db.query(AgapeConsumption.id).filter(AgapeConsumption.menu_item_id == item.id).first()
    if in_use is not None:
        raise ConflictError("Menu item has consumptions; deactivate it instead")
    db.delete(item)
    db.commit()


def add_consumption(
    db: Session,
    session: AgapeSession,
    brother_id: int,
    menu_item_id: int,
    quantity: int = 1,
    notes: Optional[str] = None,
) -> Tuple[AgapeConsumption, bool]:
    """Record what a brother consumed.

    A second entry for the same brother and menu item in one session is merged
    into the first: quantities add up and the total is recomputed from the price
    stored on the original row. Returns the row and whether it was merged.
    """
    _ensure_open(session)
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    if db.get(Brother, brother_id) is None:
        raise NotFoundError("Brother not found")
    item = db.get(AgapeMenuItem, menu_item_id)
    if item is None:
        raise NotFoundError("Menu item not found")
    if not item.is_active:
        raise ValidationError(f"Menu item '{item.name}' is not available")

    consumption = AgapeConsumption(
        session_id=session.id,
        brother_id=brother_id,
        menu_item_id=item.id,
        quantity=quantity,
        unit_price=item.price,
        total_amount=_line_total(item.price, quantity),
        notes=notes,
    )
    session_id = session.id
    db.add(consumption)
    try:
        db.commit()
        merged = False
    except IntegrityError:
        db.rollback()
        consumption = (
            db.query(AgapeConsumption)
            .filter(
                AgapeConsumption.session_id == session_id,
                AgapeConsumption.brother_id == brother_id,
                AgapeConsumption.menu_item_id == menu_item_id,
            )
            .one()
        )
        consumption.quantity += quantity
        consumption.total_amount = _line_total(consumption.unit_price, consumption.quantity)
        if notes:
            consumption.notes = notes
        db.commit()
        merged = True
    db.refresh(consumption)
    return consumption, merged


def update_consumption(db: Session, consumption: AgapeConsumption, updates: Dict) -> AgapeConsumption:
    _ensure_open(consumption.session)
    quantity = updates.get("quantity", consumption.quantity)
    if quantity is None or quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    consumption.quantity = quantity
    if "notes" in updates:
        consumption.notes = updates["notes"]
    consumption.total_amount = _line_total(consumption.unit_price, quantity)
    db.commit()
    db.refresh(consumption)
    return consumption


def delete_consumption(db: Session, consumption: AgapeConsumption) -> None:
    _ensure_open(consumption.session)
    db.delete(consumption)
    db.commit()


def session_totals(session: AgapeSession) -> dict:
    consumptions = session.consumptions
    return {
        "session_id": session.id,
        "total_brothers": len({row.brother_id for row in consumptions}),
        "total_items": sum(row.quantity for row in consumptions),
        "total_amount": sum((Decimal(str(row.total_amount)) for row in consumptions), Decimal("0.00")),
    }


def brother_session_total(session: AgapeSession, brother_id: int) -> dict:
    rows = [row for row in session.consumptions if row.brother_id == brother_id]
    return {
        "session_id": session.id,
        "brother_id": brother_id,
        "total_items": sum(row.quantity for row in rows),
        "total_amount": sum((Decimal(str(row.total_amount)) for row in rows), Decimal("0.00")),
    }


def monthly_report(db: Session, year: int, month: int) -> List[BrotherAgapeTotal]:
    """What each brother owes for the agape sessions held in ``month``."""
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    rows = (
        db.query(AgapeConsumption)
        .join(AgapeSession, AgapeConsumption.session_id == AgapeSession.id)
        .filter(AgapeSession.date >= first, AgapeSession.date <= last)
        .all()
    )

    totals: Dict[int, BrotherAgapeTotal] = {}
    sessions: Dict[int, set] = {}
    for row in rows:
        entry = totals.get(row.brother_id)
        if entry is None:
            entry = totals[row.brother_id] = BrotherAgapeTotal(
                brother_id=row.brother_id,
                name=row.brother.name,
                sessions=0,
                total_items=0,
                total_amount=Decimal("0.00"),
            )
        entry.total_items += row.quantity
        entry.total_amount += Decimal(str(row.total_amount))
        sessions.setdefault(row.brother_id, set()).add(row.session_id)

    for brother_id, entry in totals.items():
        entry.sessions = len(sessions[brother_id])
    return sorted(totals.values(), key=lambda entry: entry.name)
