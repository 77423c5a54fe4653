import logging
from io import BytesIO

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles
from jose import JWTError
from sqlalchemy.orm import Session

from .api import (
    agape,
    agenda,
    attendance,
    audit_logs,
    auth,
    brothers,
    documents,
    finance,
    messages,
    minutes,
    positions,
    reports,
    settings as settings_api,
    system,
    venerables,
)
from .auth.jwt import decode_token
from .config import Base, SessionLocal, engine, settings
from .constants import DEFAULT_CATEGORIES, DEFAULT_ROLES
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import RequestIdMiddleware
from .core.security import SecurityHeadersMiddleware, log_security_warnings
from .models.models import Role, User
from .services import finance as finance_service
from .services import site_settings as site_settings_service
from .services.audit import audit_log
from .services.storage import StorageBackend, storage_service

configure_logging(settings.log_level, settings.log_json)
logger = logging.getLogger(__name__)

app = FastAPI(title="Lodge Administration")

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIdMiddleware)

uploads_route = "/" + settings.uploads_public_prefix.strip("/")
if storage_service.backend == StorageBackend.LOCAL:
    uploads_dir = settings.uploads_root_path
    uploads_dir.mkdir(parents=True, exist_ok=True)
    app.mount(uploads_route, StaticFiles(directory=str(uploads_dir)), name="uploads")
else:

    @app.get(f"{uploads_route}/{{path:path}}", include_in_schema=False)
    def proxy_uploads(path: str):
        file_data = storage_service.retrieve_file(path)
        return StreamingResponse(BytesIO(file_data.content), media_type=file_data.content_type)


def ensure_default_roles(session: Session) -> None:
    for name, description in DEFAULT_ROLES:
        role = session.query(Role).filter(Role.name == name).first()
        if not role:
            session.add(Role(name=name, description=description))
    session.commit()


def ensure_default_categories(session: Session) -> None:
    for name, type in DEFAULT_CATEGORIES:
        finance_service.ensure_category(session, name, type, commit=False)
    session.commit()


def ensure_bootstrap_admin(session: Session) -> None:
    """Grant ADMIN to the account named by ADMIN_BOOTSTRAP_EMAIL, if it exists."""
    email = (settings.admin_bootstrap_email or "").strip().lower()
    if not email:
        return
    user = session.query(User).filter(User.email == email).first()
    if user is None:
        logger.warning("Bootstrap admin %s has no account yet; register it first.", email)
        return
    if user.has_role("ADMIN"):
        return
    admin_role = session.query(Role).filter(Role.name == "ADMIN").one()
    user.roles.append(admin_role)
    session.commit()
    logger.info("Granted ADMIN role to bootstrap account id=%s", user.id)


@app.on_event("startup")
def startup() -> None:
    # Tables are created on boot; there is no migration tool in this project.
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_default_roles(session)
        ensure_default_categories(session)
        site_settings_service.ensure_defaults(session)
        ensure_bootstrap_admin(session)
    log_security_warnings(
        settings.jwt_secret,
        settings.email_backend,
        settings.file_storage_backend,
        settings.cors_allow_origins,
    )


app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(brothers.router)
app.include_router(finance.router)
app.include_router(positions.router)
app.include_router(agenda.router)
app.include_router(attendance.router)
app.include_router(agape.router)
app.include_router(minutes.router)
app.include_router(messages.router)
app.include_router(documents.router)
app.include_router(venerables.router)
app.include_router(settings_api.router)
app.include_router(reports.router)
app.include_router(audit_logs.router)
app.include_router(system.router)


@app.middleware("http")
async def audit_trail(request: Request, call_next):
    response = await call_next(request)
    if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
        return response
    actor_id = None
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1]
        try:
            payload = decode_token(token)
            actor_id = int(payload.get("sub"))
        except (JWTError, TypeError, ValueError):
            actor_id = None
    with SessionLocal() as session:
        audit_log(
            db_session=session,
            actor_user_id=actor_id,
            action=f"{request.method} {request.url.path}",
            target_entity_type="HTTP",
            target_entity_id=request.url.path,
            after={"status": response.status_code},
        )
    return response
