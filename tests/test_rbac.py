from datetime import date, timedelta

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from lodge.api.dependencies import get_db
from lodge.auth.jwt import get_current_user, require_module, require_roles, user_can_access_module
from lodge.core.errors import register_exception_handlers
from lodge.models.models import LodgePosition


class DummyUser:
    def __init__(self, *roles: str):
        self._roles = set(roles)

    def has_any_role(self, *role_names: str) -> bool:
        return any(role in self._roles for role in role_names)


def _build_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/admin")
    def admin_route(_: object = Depends(require_roles("ADMIN"))):
        return {"ok": True}

    @app.get("/content")
    def content_route(_: object = Depends(require_roles("EDITOR", "ADMIN"))):
        return {"ok": True}

    @app.get("/finance")
    def finance_route(_: object = Depends(require_module("financial"))):
        return {"ok": True}

    return app


def test_admin_route_requires_admin_role():
    app = _build_app()
    client = TestClient(app)

    app.dependency_overrides[get_current_user] = lambda: DummyUser("MEMBER")
    response = client.get("/admin")
    assert response.status_code == 403

    app.dependency_overrides[get_current_user] = lambda: DummyUser("ADMIN")
    response = client.get("/admin")
    assert response.status_code == 200


def test_content_route_allows_editor_or_admin():
    app = _build_app()
    client = TestClient(app)

    app.dependency_overrides[get_current_user] = lambda: DummyUser("MEMBER")
    assert client.get("/content").status_code == 403

    app.dependency_overrides[get_current_user] = lambda: DummyUser("EDITOR")
    assert client.get("/content").status_code == 200

    app.dependency_overrides[get_current_user] = lambda: DummyUser("ADMIN")
    assert client.get("/content").status_code == 200


def test_module_access_follows_current_office(db_session, create_user):
    user = create_user(email="office@example.com", role_name="MEMBER")
    today = date(2025, 6, 1)
    db_session.add(
        LodgePosition(
            position_type="tesoureiro",
            user_id=user.id,
            start_date=today - timedelta(days=30),
            end_date=today + timedelta(days=30),
        )
    )
    db_session.commit()

    assert user_can_access_module(db_session, user, "financial", today=today)
    assert not user_can_access_module(db_session, user, "secretariat", today=today)
    # Expired term
    assert not user_can_access_module(db_session, user, "financial", today=today + timedelta(days=31))


def test_worshipful_master_and_admin_reach_every_module(db_session, create_user):
    master = create_user(email="vm@example.com", role_name="MEMBER")
    admin = create_user(email="root@example.com", role_name="ADMIN")
    today = date(2025, 6, 1)
    db_session.add(
        LodgePosition(position_type="veneravel_mestre", user_id=master.id, start_date=today, end_date=today)
    )
    db_session.commit()

    assert user_can_access_module(db_session, master, "chancellor", today=today)
    assert user_can_access_module(db_session, admin, "financial", today=today)


def test_require_module_dependency(db_session, create_user):
    member = create_user(email="module@example.com", role_name="MEMBER")
    app = _build_app()

    def _db():
        yield db_session

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_current_user] = lambda: member
    client = TestClient(app)

    response = client.get("/finance")
    assert response.status_code == 403
    assert response.json()["detail"] == "Your lodge office does not grant access to this area"
