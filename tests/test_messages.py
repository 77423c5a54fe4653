import time

from lodge.config import settings
from lodge.models.models import ContactMessage
from lodge.services import email as email_service
from lodge.services import messages as message_service
from lodge.services.email import SendResult


def _submit(client, **overrides):
    payload = {
        "name": "Maria Souza",
        "email": "maria@example.com",
        "message": "Gostaria de visitar a loja.",
        "category": "visita",
    }
    payload.update(overrides)
    return client.post("/messages/contact", json=payload)


def test_public_contact_form_creates_new_message(db_session, api_client):
    client = api_client()
    response = _submit(client)
    assert response.status_code == 201
    assert response.json()["status"] == "new"

    assert _submit(client, message="oi").status_code == 422


def test_contact_form_is_rate_limited(db_session, api_client):
    client = api_client()
    statuses = [_submit(client).status_code for _ in range(6)]
    assert statuses[:5] == [201] * 5
    assert statuses[5] == 429


def test_contact_limit_tracks_forwarded_client_when_proxy_is_trusted(db_session, api_client, monkeypatch):
    monkeypatch.setattr(settings, "trust_forwarded_for", True)
    client = api_client()
    payload = {"name": "Maria Souza", "email": "maria@example.com", "message": "Gostaria de visitar a loja."}

    def submit(address):
        return client.post("/messages/contact", json=payload, headers={"X-Forwarded-For": f"{address}, 10.0.0.1"})

    assert [submit("203.0.113.7").status_code for _ in range(5)] == [201] * 5
    throttled = submit("203.0.113.7")
    assert throttled.status_code == 429
    assert int(throttled.headers["Retry-After"]) > 0
    assert submit("198.51.100.2").status_code == 201


def test_reading_message_marks_it_read(db_session, create_user, api_client):
    admin = create_user(email="secretaria@example.com", role_name="ADMIN")
    entry = message_service.create_message(db_session, "Maria", "maria@example.com", "Olá, tudo bem?")
    client = api_client(admin)

    response = client.get(f"/messages/{entry.id}")
    assert response.status_code == 200
    assert response.json()["status"] == "read"

    response = client.patch(f"/messages/{entry.id}/status", json={"status": "archived"})
    assert response.status_code == 200
    assert response.json()["status"] == "archived"


def test_reply_is_saved_when_email_times_out(db_session, create_user, api_client, monkeypatch):
    admin = create_user(email="reply@example.com", role_name="ADMIN")
    entry = message_service.create_message(db_session, "João", "joao@example.com", "Quando é a próxima sessão?")

    def _slow_dispatch(subject, body, recipients, timeout=None):
        time.sleep(0.5)
        return SendResult(backend="local", status_code=200, request_id=None, error=None)

    monkeypatch.setattr(email_service, "_dispatch", _slow_dispatch)
    monkeypatch.setattr(settings, "email_reply_timeout_seconds", 0.05)
    client = api_client(admin)

    response = client.post(f"/messages/{entry.id}/reply", json={"reply_text": "Na próxima quinta."})
    assert response.status_code == 200
    body = response.json()
    assert body["email_sent"] is False
    assert body["message"]["status"] == "replied"
    assert body["message"]["reply_text"] == "Na próxima quinta."

    stored = db_session.get(ContactMessage, entry.id)
    assert stored.replied_at is not None


def test_reply_reports_delivery(db_session, create_user, api_client, monkeypatch):
    admin = create_user(email="reply-ok@example.com", role_name="ADMIN")
    entry = message_service.create_message(db_session, "Ana", "ana@example.com", "Pedido de informação")
    sent = []

    def _record_dispatch(subject, body, recipients, timeout=None):
        sent.append((subject, body, recipients))
        return SendResult(backend="local", status_code=200, request_id=None, error=None)

    monkeypatch.setattr(email_service, "_dispatch", _record_dispatch)
    client = api_client(admin)

    response = client.post(f"/messages/{entry.id}/reply", json={"reply_text": "Entraremos em contato."})
    assert response.json()["email_sent"] is True
    assert sent[0][2] == ["ana@example.com"]
    assert "Entraremos em contato." in sent[0][1]
    assert "Pedido de informação" in sent[0][1]


def test_export_csv_has_bom_and_headers(db_session, create_user, api_client):
    admin = create_user(email="export@example.com", role_name="ADMIN")
    message_service.create_message(db_session, "Pedro", "pedro@example.com", "Mensagem com acentuação")
    client = api_client(admin)

    response = client.get("/messages/export.csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "mensagens-contato-" in response.headers["content-disposition"]

    text = response.content.decode("utf-8")
    assert text.startswith("\ufeff")
    header = text.lstrip("\ufeff").splitlines()[0]
    assert header.split(",") == message_service.CSV_HEADERS
    assert "Mensagem com acentuação" in text


def test_messages_listing_requires_secretariat(db_session, create_user, api_client):
    member = create_user(email="curious@example.com", role_name="MEMBER")
    client = api_client(member)
    assert client.get("/messages/").status_code == 403
