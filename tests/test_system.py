from lodge.models.models import SiteSetting
from lodge.services import site_settings


def test_version_and_health(db_session, api_client):
    client = api_client()

    version = client.get("/system/version")
    assert version.status_code == 200
    assert "version" in version.json()

    health = client.get("/system/health")
    assert health.status_code == 200
    assert health.json() == {"status": "ok", "database": "ok"}


def test_runtime_requires_admin(db_session, create_user, api_client):
    member = create_user(email="runtime-member@example.com", role_name="MEMBER")
    assert api_client(member).get("/system/runtime").status_code == 403

    admin = create_user(email="runtime-admin@example.com", role_name="ADMIN")
    response = api_client(admin).get("/system/runtime")
    assert response.status_code == 200
    assert "email_backend" in response.json()


def test_responses_carry_request_id_and_security_headers(db_session, api_client):
    client = api_client()
    response = client.get("/system/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "Cache-Control" not in response.headers

    response = client.get("/system/health", headers={"Authorization": "Bearer token"})
    assert response.headers["Cache-Control"] == "no-store"


def test_site_settings_defaults_and_update(db_session, create_user, api_client):
    site_settings.ensure_defaults(db_session)
    admin = create_user(email="settings@example.com", role_name="ADMIN")
    client = api_client(admin)

    public = client.get("/settings/").json()
    assert "lodge_info" in public

    value = {"name": "Loja Estrela do Oriente", "number": 42, "city": "Campinas"}
    response = client.put("/settings/lodge_info", json={"value": value})
    assert response.status_code == 200
    assert db_session.query(SiteSetting).filter(SiteSetting.key == "lodge_info").one().value == value

    member = create_user(email="settings-member@example.com", role_name="MEMBER")
    response = api_client(member).put("/settings/lodge_info", json={"value": {}})
    assert response.status_code == 403


def test_venerables_are_public_and_editor_managed(db_session, create_user, api_client):
    editor = create_user(email="editor@example.com", role_name="EDITOR")
    client = api_client(editor)

    response = client.post("/venerables/", json={"name": "Antônio Prado", "term_start": 2019, "term_end": 2021})
    assert response.status_code == 201
    venerable_id = response.json()["id"]
    assert client.post("/venerables/", json={"name": "Errado", "term_start": 2022, "term_end": 2020}).status_code == 422
    assert client.patch(f"/venerables/{venerable_id}", json={"term_end": 2010}).status_code == 400

    public = api_client().get("/venerables/").json()
    assert [item["name"] for item in public] == ["Antônio Prado"]
