import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..constants import MESSAGE_STATUSES
from ..core.errors import NotFoundError, ValidationError
from ..models.models import ContactMessage, utcnow
from ..utils.csv_utils import rows_to_csv
from ..utils.format_utils import format_datetime_br
from . import email as email_service

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "ID",
    "Nome",
    "Email",
    "Mensagem",
    "Status",
    "Categoria",
    "Data de Envio",
    "Data de Atualização",
    "Resposta",
    "Data de Resposta",
]


def create_message(
    db: Session,
    name: str,
    email: str,
    message: str,
    category: Optional[str] = None,
) -> ContactMessage:
    if not (name or "").strip() or not (message or "").strip():
        raise ValidationError("Name and message are required")
    entry = ContactMessage(
        name=name.strip(),
        email=email.strip(),
        message=message.strip(),
        category=category,
        status="new",
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("Contact message %s received (category=%s)", entry.id, category)
    return entry


def list_messages(
    db: Session,
    status: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> List[ContactMessage]:
    query = db.query(ContactMessage)
    if status:
        query = query.filter(ContactMessage.status == status)
    if category:
        query = query.filter(ContactMessage.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                ContactMessage.name.ilike(pattern),
                ContactMessage.email.ilike(pattern),
                ContactMessage.message.ilike(pattern),
            )
        )
    return query.order_by(ContactMessage.created_at.desc(), ContactMessage.id.desc()).all()


def get_message(db: Session, message_id: int) -> ContactMessage:
    entry = db.get(ContactMessage, message_id)
    if entry is None:
        raise NotFoundError("Message not found")
    return entry


def update_status(db: Session, message_id: int, status: str) -> ContactMessage:
    if status not in MESSAGE_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(MESSAGE_STATUSES)}")
    entry = get_message(db, message_id)
    entry.status = status
    db.commit()
    db.refresh(entry)
    return entry


def reply_to_message(db: Session, message_id: int, reply_text: str, actor_user_id: Optional[int]) -> tuple:
    """Store the reply and try to email it. Returns ``(message, email_sent)``."""
    if not (reply_text or "").strip():
        raise ValidationError("Reply text is required")
    entry = get_message(db, message_id)
    entry.reply_text = reply_text.strip()
    entry.replied_at = utcnow()
    entry.replied_by_user_id = actor_user_id
    entry.status = "replied"
    db.commit()
    db.refresh(entry)

    email_sent = email_service.send_contact_reply(entry.email, entry.name, entry.message, entry.reply_text)
    if not email_sent:
        logger.warning("Reply to message %s saved but email was not delivered", entry.id)
    return entry, email_sent


def delete_message(db: Session, message_id: int) -> None:
    entry = get_message(db, message_id)
    db.delete(entry)
    db.commit()


def export_filename(today: Optional[date] = None) -> str:
    return f"mensagens-contato-{(today or date.today()).isoformat()}.csv"


def messages_to_csv(messages: List[ContactMessage]) -> str:
    rows = [
        [
            entry.id,
            entry.name,
            entry.email,
            entry.message,
            entry.status,
            entry.category or "",
            format_datetime_br(entry.created_at, seconds=True),
            format_datetime_br(entry.updated_at, seconds=True),
            entry.reply_text or "",
            format_datetime_br(entry.replied_at, seconds=True),
        ]
        for entry in messages
    ]
    return rows_to_csv(CSV_HEADERS, rows, bom=True)
