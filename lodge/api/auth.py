from typing import List, Sequence

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db
from ..auth.jwt import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    get_password_hash,
    require_roles,
    verify_password,
)
from ..config import settings
from ..constants import ROLE_PRIORITY
from ..core.rate_limit import rate_limit_dependency
from ..models.models import Role, User
from ..schemas.schemas import (
    PasswordChange,
    Token,
    TokenRefreshRequest,
    UserCreate,
    UserRead,
    UserSelfUpdate,
)
from ..services.audit import audit_log

router = APIRouter()

login_rate_limit = rate_limit_dependency("auth.login", limit=settings.login_attempts_per_minute, window_seconds=60)


def _sort_roles_by_priority(roles: Sequence[Role]) -> List[Role]:
    return sorted(roles, key=lambda role: ROLE_PRIORITY.get(role.name, 0), reverse=True)


def _build_token_response(user: User) -> Token:
    primary_role = user.highest_priority_role
    primary_role_name = primary_role.name if primary_role else None
    role_names = [role.name for role in _sort_roles_by_priority(user.roles)]

    access_payload = {
        "sub": str(user.id),
        "roles": role_names,
        "primary_role": primary_role_name,
        "type": "access",
    }
    return Token(
        access_token=create_access_token(access_payload),
        refresh_token=create_refresh_token(str(user.id)),
        token_type="bearer",
        roles=role_names,
        primary_role=primary_role_name,
        expires_in=settings.access_token_expire_minutes * 60,
        refresh_expires_in=settings.refresh_token_expire_minutes * 60,
    )


def _load_user(db: Session, user_id: int) -> User:
    user = db.query(User).options(joinedload(User.roles)).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found.")
    return user


@router.post("/register", response_model=UserRead)
def register_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_roles("ADMIN")),
):
    existing = db.query(User).filter(User.email == payload.email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    requested = set(payload.roles)
    roles = db.query(Role).filter(Role.name.in_(requested)).all()
    if len(roles) != len(requested):
        raise HTTPException(status_code=400, detail="One or more roles not found")

    user = User(
        email=payload.email,
        full_name=payload.full_name,
        hashed_password=get_password_hash(payload.password),
    )
    user.roles = _sort_roles_by_priority(roles)
    db.add(user)
    db.commit()

    user = _load_user(db, user.id)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="user.register",
        target_entity_type="User",
        target_entity_id=str(user.id),
        after={"email": user.email, "roles": user.role_names},
    )
    return user


@router.post("/login", response_model=Token, dependencies=[Depends(login_rate_limit)])
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    user = (
        db.query(User)
        .options(joinedload(User.roles))
        .filter(User.email == form_data.username)
        .first()
    )
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is inactive.")

    return _build_token_response(user)


@router.post("/refresh", response_model=Token)
def refresh_token(
    payload: TokenRefreshRequest,
    db: Session = Depends(get_db),
):
    credentials_exception = HTTPException(status_code=401, detail="Invalid refresh token")
    try:
        decoded = decode_token(payload.refresh_token)
    except JWTError as exc:
        raise credentials_exception from exc

    if decoded.get("type") != "refresh":
        raise credentials_exception

    user_id = decoded.get("sub")
    if not user_id:
        raise credentials_exception

    user = db.query(User).options(joinedload(User.roles)).filter(User.id == int(user_id)).first()
    if not user or not user.is_active:
        raise credentials_exception

    return _build_token_response(user)


@router.get("/me", response_model=UserRead)
def read_current_user(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.patch("/me", response_model=UserRead)
def update_current_user_profile(
    payload: UserSelfUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> User:
    updates = payload.model_dump(exclude_unset=True)
    db_user = _load_user(db, current_user.id)
    if not updates:
        return db_user

    before = {"email": db_user.email, "full_name": db_user.full_name}
    current_password = updates.pop("current_password", None)

    if "email" in updates:
        new_email = updates["email"]
        if new_email and (db_user.email or "").lower() != new_email.lower():
            if not current_password or not verify_password(current_password, db_user.hashed_password):
                raise HTTPException(status_code=400, detail="Current password required to change email.")
            existing = (
                db.query(User)
                .filter(User.email == new_email, User.id != current_user.id)
                .first()
            )
            if existing:
                raise HTTPException(status_code=400, detail="Email already in use.")
            db_user.email = new_email

    if "full_name" in updates:
        db_user.full_name = updates["full_name"]

    db.commit()
    refreshed = _load_user(db, current_user.id)

    after = {"email": refreshed.email, "full_name": refreshed.full_name}
    if before != after:
        audit_log(
            db_session=db,
            actor_user_id=current_user.id,
            action="user.profile_update",
            target_entity_type="User",
            target_entity_id=str(current_user.id),
            before=before,
            after=after,
        )
    return refreshed


@router.post("/me/password", status_code=204)
def change_password(
    payload: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> None:
    db_user = _load_user(db, current_user.id)
    if not verify_password(payload.current_password, db_user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect.")
    db_user.hashed_password = get_password_hash(payload.new_password)
    db.commit()
    audit_log(
        db_session=db,
        actor_user_id=current_user.id,
        action="user.password_change",
        target_entity_type="User",
        target_entity_id=str(current_user.id),
    )
