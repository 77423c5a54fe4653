import pytest
from fastapi import HTTPException
from fastapi.security import OAuth2PasswordRequestForm

from lodge.api import auth as auth_api
from lodge.auth.jwt import decode_token, verify_password
from lodge.models.models import User
from lodge.schemas.schemas import PasswordChange, TokenRefreshRequest


def _form(username, password="changeme"):
    return OAuth2PasswordRequestForm(
        grant_type="password",
        username=username,
        password=password,
        scope="",
        client_id=None,
        client_secret=None,
    )


def test_login_returns_tokens_with_roles(db_session, create_user):
    user = create_user(email="login@example.com", role_name="EDITOR")

    token = auth_api.login(_form(user.email), db_session)

    assert token.roles == ["EDITOR"]
    assert token.primary_role == "EDITOR"
    payload = decode_token(token.access_token)
    assert payload["sub"] == str(user.id)
    assert payload["type"] == "access"


def test_login_rejects_bad_password_and_inactive_users(db_session, create_user):
    user = create_user(email="inactive@example.com", role_name="MEMBER")

    with pytest.raises(HTTPException) as exc:
        auth_api.login(_form(user.email, "wrong"), db_session)
    assert exc.value.status_code == 401

    user.is_active = False
    db_session.commit()
    with pytest.raises(HTTPException) as exc:
        auth_api.login(_form(user.email), db_session)
    assert exc.value.status_code == 403


def test_refresh_token_flow_returns_new_tokens(db_session, create_user):
    user = create_user(email="refresh@example.com", role_name="ADMIN")
    initial = auth_api.login(_form(user.email), db_session)

    refreshed = auth_api.refresh_token(TokenRefreshRequest(refresh_token=initial.refresh_token), db_session)

    assert isinstance(refreshed.access_token, str) and len(refreshed.access_token) > 20
    assert isinstance(refreshed.refresh_token, str) and len(refreshed.refresh_token) > 20

    with pytest.raises(HTTPException) as exc:
        auth_api.refresh_token(TokenRefreshRequest(refresh_token=initial.access_token), db_session)
    assert exc.value.status_code == 401


def test_change_password(db_session, create_user):
    user = create_user(email="password@example.com", role_name="MEMBER")

    with pytest.raises(HTTPException) as exc:
        auth_api.change_password(
            PasswordChange(current_password="wrong-password", new_password="nova-senha-123"), db_session, current_user=user
        )
    assert exc.value.status_code == 400

    auth_api.change_password(
        PasswordChange(current_password="changeme", new_password="nova-senha-123"), db_session, current_user=user
    )
    stored = db_session.get(User, user.id)
    assert verify_password("nova-senha-123", stored.hashed_password)


def test_register_requires_known_roles(db_session, create_user, create_role, api_client):
    admin = create_user(email="register-admin@example.com", role_name="ADMIN")
    create_role("MEMBER")
    client = api_client(admin)

    response = client.post(
        "/auth/register",
        json={"email": "novo@example.com", "full_name": "Novo Irmão", "password": "changeme123", "roles": ["MEMBER"]},
    )
    assert response.status_code == 200
    assert [role["name"] for role in response.json()["roles"]] == ["MEMBER"]

    response = client.post(
        "/auth/register",
        json={"email": "outro@example.com", "full_name": "Outro", "password": "changeme123", "roles": ["EDITOR"]},
    )
    assert response.status_code == 400
