import sys
from collections.abc import Callable, Generator
from datetime import date
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lodge.config import Base  # noqa: E402
import lodge.config as app_config  # noqa: E402
import lodge.main as app_main  # noqa: E402
from lodge.api.dependencies import get_db  # noqa: E402
from lodge.auth.jwt import get_current_user, get_password_hash  # noqa: E402
from lodge.core.rate_limit import limiter  # noqa: E402
# Import the full models module so all tables (including audit_logs) register with Base metadata.
from lodge.models import models as _all_models  # noqa: E402,F401
from lodge.models.models import Brother, Role, User  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Configure the app-wide SessionLocal/engine so the audit middleware writes to a DB with all tables."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    db_path = db_dir / "app.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.SessionLocal = SessionLocal
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def create_role(db_session: Session) -> Callable[[str], Role]:
    def _create(name: str) -> Role:
        existing = db_session.query(Role).filter(Role.name == name).first()
        if existing:
            return existing
        role = Role(name=name)
        db_session.add(role)
        db_session.commit()
        return role

    return _create


@pytest.fixture
def create_user(db_session: Session, create_role: Callable[[str], Role]) -> Callable[..., User]:
    def _create(
        email: str = "user@example.com",
        role_name: str = "ADMIN",
        full_name: Optional[str] = None,
    ) -> User:
        role = create_role(role_name)
        user = User(email=email, full_name=full_name, hashed_password=get_password_hash("changeme"))
        user.roles.append(role)
        db_session.add(user)
        db_session.commit()
        return user

    return _create


@pytest.fixture
def create_brother(db_session: Session) -> Callable[..., Brother]:
    counter = {"value": 0}

    def _create(name: str = "Irmão", status: str = "Ativo", user: Optional[User] = None) -> Brother:
        counter["value"] += 1
        brother = Brother(
            name=f"{name} {counter['value']}",
            email=f"irmao{counter['value']}@example.com",
            phone="11999990000",
            initiation_date=date(2020, 1, 1),
            degree="Mestre",
            status=status,
            user_id=user.id if user else None,
        )
        db_session.add(brother)
        db_session.commit()
        return brother

    return _create


def _override_get_db(session):
    def _generator():
        try:
            yield session
        finally:
            pass

    return _generator


@pytest.fixture
def api_client(db_session: Session) -> Generator[Callable[[Optional[User]], TestClient], None, None]:
    """Build a TestClient bound to ``db_session``, optionally authenticated as ``user``."""
    clients = []

    def _build(user: Optional[User] = None) -> TestClient:
        app_main.app.dependency_overrides[get_db] = _override_get_db(db_session)
        if user is None:
            app_main.app.dependency_overrides.pop(get_current_user, None)
        else:
            app_main.app.dependency_overrides[get_current_user] = lambda: user
        client = TestClient(app_main.app)
        clients.append(client)
        return client

    yield _build

    for client in clients:
        client.close()
    app_main.app.dependency_overrides.clear()
