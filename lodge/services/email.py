import logging
import smtplib
import ssl
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail

from ..config import settings

logger = logging.getLogger(__name__)

MAX_LOG_RECIPIENTS = 3
MAX_SUBJECT_PREVIEW = 12

# Reply dispatch runs off the request thread so it can be abandoned after the timeout.
_reply_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="contact-reply")


@dataclass
class SendResult:
    backend: str
    status_code: Optional[int]
    request_id: Optional[str]
    error: Optional[str]


def _mask_email(value: str) -> str:
    if "@" not in value:
        return "***"
    name, domain = value.split("@", 1)
    if not name:
        masked = "***"
    elif len(name) <= 2:
        masked = f"{name[0]}***"
    else:
        masked = f"{name[0]}***{name[-1]}"
    return f"{masked}@{domain}"


def _mask_subject(subject: str) -> str:
    if not subject:
        return ""
    preview = subject[:MAX_SUBJECT_PREVIEW]
    return f"{preview}... (len={len(subject)})"


def _backend_name() -> str:
    return (settings.email_backend or "local").strip().strip("'\"").lower()


def _normalize_recipients(recipients: Iterable[str]) -> List[str]:
    normalized: List[str] = []
    seen = set()
    for email in recipients:
        if not email:
            continue
        cleaned = email.strip()
        if not cleaned:
            continue
        lowered = cleaned.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        normalized.append(cleaned)
    return normalized


def _resolve_sender() -> Tuple[str, str]:
    from_address = settings.email_from_address or "secretaria@loja.local"
    display_name = settings.email_from_name or settings.lodge_name
    return from_address, display_name


def _write_local_email(subject: str, body: str, recipients: List[str]) -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    safe_subject = "".join(ch for ch in subject if ch.isalnum() or ch in (" ", "_", "-")).strip() or "email"
    filename = f"{timestamp}_{safe_subject.replace(' ', '_')}.txt"
    output_dir = Path(settings.email_output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / filename
    contents = "\n".join(
        [
            f"Subject: {subject}",
            f"Recipients: {', '.join(recipients)}",
            "",
            body,
        ]
    )
    path.write_text(contents, encoding="utf-8")
    logger.info("[LOCAL EMAIL] %s", path)
    return str(path)


def _send_via_sendgrid(subject: str, body: str, recipients: List[str]) -> SendResult:
    from_address, display_name = _resolve_sender()
    if not settings.sendgrid_api_key:
        raise RuntimeError("SendGrid backend requires SENDGRID_API_KEY.")

    reply_to = settings.email_reply_to or from_address
    message = Mail(
        from_email=Email(email=from_address, name=display_name),
        to_emails=recipients,
        subject=subject,
        plain_text_content=body,
    )
    message.reply_to = Email(email=reply_to)
    client = SendGridAPIClient(settings.sendgrid_api_key)
    response = client.send(message)

    request_id = None
    if isinstance(response.headers, dict):
        request_id = response.headers.get("X-Message-Id") or response.headers.get("X-Request-Id")
    logger.info(
        "Sent email via SendGrid to %d recipients (status=%s request_id=%s).",
        len(recipients),
        response.status_code,
        request_id,
    )
    return SendResult(backend="sendgrid", status_code=response.status_code, request_id=request_id, error=None)


def _send_via_smtp(subject: str, body: str, recipients: List[str], timeout: Optional[float] = None) -> SendResult:
    if not settings.email_host:
        raise RuntimeError("SMTP backend requires EMAIL_HOST.")
    from_address, display_name = _resolve_sender()

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = formataddr((display_name, from_address))
    message["To"] = ", ".join(recipients)
    message["Reply-To"] = settings.email_reply_to or from_address
    message.set_content(body)

    port = settings.email_port or 587
    context = ssl.create_default_context()
    smtp_kwargs = {"timeout": timeout} if timeout else {}
    with smtplib.SMTP(settings.email_host, port, **smtp_kwargs) as connection:
        connection.ehlo()
        if settings.email_use_tls:
            connection.starttls(context=context)
            connection.ehlo()
        if settings.email_host_user and settings.email_host_password:
            connection.login(settings.email_host_user, settings.email_host_password)
        connection.send_message(message)
    logger.info("Sent email via SMTP to %d recipients.", len(recipients))
    return SendResult(backend="smtp", status_code=250, request_id=None, error=None)


def _dispatch(subject: str, body: str, recipients: List[str], timeout: Optional[float] = None) -> SendResult:
    backend = _backend_name()
    masked = [_mask_email(addr) for addr in recipients[:MAX_LOG_RECIPIENTS]]
    if len(recipients) > MAX_LOG_RECIPIENTS:
        masked.append(f"+{len(recipients) - MAX_LOG_RECIPIENTS} more")
    logger.info("Dispatching email backend=%s to=%s subject=%s", backend, masked, _mask_subject(subject))

    if backend == "sendgrid":
        return _send_via_sendgrid(subject, body, recipients)
    if backend == "smtp":
        return _send_via_smtp(subject, body, recipients, timeout=timeout)
    if backend != "local":
        logger.warning("Unknown EMAIL_BACKEND '%s'. Defaulting to local stub.", backend)
    _write_local_email(subject, body, recipients)
    return SendResult(backend="local", status_code=200, request_id=None, error=None)


def send_email(
    subject: str, body: str, recipients: Iterable[str], timeout: Optional[float] = None
) -> SendResult:
    recipient_list = _normalize_recipients(recipients)
    if not recipient_list:
        logger.info("Email dispatch skipped: no recipients (subject=%s).", _mask_subject(subject))
        return SendResult(backend=_backend_name(), status_code=None, request_id=None, error="No recipients provided.")
    try:
        return _dispatch(subject, body, recipient_list, timeout=timeout)
    except Exception as exc:
        logger.exception("Email dispatch failed for backend=%s.", _backend_name())
        return SendResult(backend=_backend_name(), status_code=None, request_id=None, error=str(exc))


def build_reply_body(name: str, original_message: str, reply_text: str) -> str:
    return "\n".join(
        [
            f"Olá {name},",
            "",
            reply_text,
            "",
            "---",
            "Sua mensagem original:",
            original_message,
            "",
            f"Atenciosamente,\n{settings.lodge_name}",
        ]
    )


def send_contact_reply(recipient: str, name: str, original_message: str, reply_text: str) -> bool:
    """Email a reply to a contact form sender.

    Bounded by ``email_reply_timeout_seconds``. Failures are logged and reported
    as ``False``; the caller keeps the stored reply either way.
    """
    timeout = settings.email_reply_timeout_seconds
    subject = f"Resposta: contato com {settings.lodge_name}"
    body = build_reply_body(name, original_message, reply_text)
    future = _reply_executor.submit(send_email, subject, body, [recipient], timeout)
    try:
        result = future.result(timeout=timeout)
    except FutureTimeout:
        logger.warning("Contact reply to %s timed out after %.1fs.", _mask_email(recipient), timeout)
        return False
    return result.error is None
