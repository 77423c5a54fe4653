from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_module
from ..config import settings
from ..core.rate_limit import rate_limit_dependency
from ..models.models import ContactMessage, User
from ..schemas.schemas import (
    ContactMessageCreate,
    ContactMessageRead,
    MessageReplyRequest,
    MessageReplyResponse,
    MessageStatusUpdate,
)
from ..services import messages as message_service
from ..services import reports as report_service
from ..services.audit import audit_log
from ..utils.csv_utils import csv_response

router = APIRouter(prefix="/messages", tags=["messages"])

require_secretariat = require_module("secretariat")
contact_rate_limit = rate_limit_dependency(
    "messages.contact", limit=settings.contact_messages_limit, window_seconds=settings.contact_window_seconds
)


@router.post("/contact", response_model=ContactMessageRead, status_code=201, dependencies=[Depends(contact_rate_limit)])
def submit_contact_message(
    payload: ContactMessageCreate,
    db: Session = Depends(get_db),
) -> ContactMessage:
    return message_service.create_message(db, payload.name, payload.email, payload.message, payload.category)


@router.get("/", response_model=List[ContactMessageRead])
def list_messages(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(require_secretariat),
) -> List[ContactMessage]:
    return message_service.list_messages(db, status=status, category=category, search=search)


@router.get("/export.csv")
def export_messages_csv(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: User = Depends(require_secretariat),
) -> Response:
    report = report_service.contact_messages_report(db, status=status)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="messages.export",
        target_entity_type="ContactMessage",
        after={"status": status},
    )
    return csv_response(report.filename, report.content)


@router.get("/{message_id}", response_model=ContactMessageRead)
def get_message(
    message_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_secretariat),
) -> ContactMessage:
    message = message_service.get_message(db, message_id)
    if message.status == "new":
        message = message_service.update_status(db, message_id, "read")
    return message


@router.patch("/{message_id}/status", response_model=ContactMessageRead)
def update_message_status(
    message_id: int,
    payload: MessageStatusUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_secretariat),
) -> ContactMessage:
    return message_service.update_status(db, message_id, payload.status)


@router.post("/{message_id}/reply", response_model=MessageReplyResponse)
def reply_to_message(
    message_id: int,
    payload: MessageReplyRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(require_secretariat),
) -> MessageReplyResponse:
    message, email_sent = message_service.reply_to_message(db, message_id, payload.reply_text, actor.id)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="messages.reply",
        target_entity_type="ContactMessage",
        target_entity_id=str(message_id),
        after={"email_sent": email_sent},
    )
    db.refresh(message)
    return MessageReplyResponse(message=ContactMessageRead.model_validate(message), email_sent=email_sent)


@router.delete("/{message_id}", status_code=204)
def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_secretariat),
) -> Response:
    message_service.delete_message(db, message_id)
    return Response(status_code=204)
