from datetime import date

from lodge.models.models import AuditLog
from lodge.services.audit import audit_log


def test_register_writes_audit_log(db_session, create_user, create_role, api_client):
    """ADMIN user creation should emit an audit_log row."""
    admin = create_user(email="admin@example.com", role_name="ADMIN")
    create_role("MEMBER")
    client = api_client(admin)

    payload = {
        "email": "new.user@example.com",
        "full_name": "New User",
        "password": "changeme123",
        "roles": ["MEMBER"],
    }
    response = client.post("/auth/register", json=payload)
    assert response.status_code == 200

    logs = (
        db_session.query(AuditLog)
        .filter(AuditLog.action == "user.register", AuditLog.target_entity_type == "User")
        .all()
    )
    assert len(logs) == 1
    entry = logs[0]
    assert entry.actor_user_id == admin.id
    assert "new.user@example.com" in (entry.after or "")


def test_audit_log_serializes_dates_and_accents(db_session, create_user):
    user = create_user(email="serializer@example.com")
    audit_log(
        db_session,
        actor_user_id=user.id,
        action="brothers.update",
        target_entity_type="Brother",
        target_entity_id="1",
        before={"degree": "Aprendiz"},
        after={"degree": "Mestre", "initiation_date": date(2024, 1, 2), "name": "José"},
    )
    entry = db_session.query(AuditLog).one()
    assert '"initiation_date": "2024-01-02"' in entry.after
    assert "José" in entry.after


def test_audit_log_listing_filters_by_action(db_session, create_user, api_client):
    admin = create_user(email="auditor@example.com", role_name="ADMIN")
    for action in ("finance.transaction.create", "finance.transaction.delete", "positions.assign"):
        audit_log(db_session, actor_user_id=admin.id, action=action)
    client = api_client(admin)

    response = client.get("/audit-logs/", params={"action": "finance."})
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert {item["action"] for item in body["items"]} == {"finance.transaction.create", "finance.transaction.delete"}
    assert body["items"][0]["actor"]["email"] == "auditor@example.com"


def test_audit_log_listing_requires_admin(db_session, create_user, api_client):
    member = create_user(email="nosy@example.com", role_name="MEMBER")
    client = api_client(member)
    assert client.get("/audit-logs/").status_code == 403


def test_audit_log_masks_personal_identifiers(db_session, create_user):
    user = create_user(email="secretario@example.com")
    audit_log(
        db_session,
        actor_user_id=user.id,
        action="brothers.update",
        target_entity_type="Brother",
        target_entity_id="1",
        before={"name": "José", "cpf": "529.982.247-25", "phone": None},
        after={"name": "José", "cpf": "52998224725", "phone": "(11) 99999-0000"},
    )
    entry = db_session.query(AuditLog).one()
    assert "52998224725" not in entry.after
    assert "529.982.247-25" not in entry.before
    assert '"cpf": "***25"' in entry.after
    assert '"phone": "***00"' in entry.after
    assert '"phone": null' in entry.before
