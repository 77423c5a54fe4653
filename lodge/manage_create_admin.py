"""Create the initial ADMIN user for the lodge administration backend.

Run: `python -m lodge.manage_create_admin --email admin@example.com --password changeme`
"""

import argparse
from contextlib import contextmanager

from .auth.jwt import get_password_hash
from .config import Base, SessionLocal, engine
from .constants import DEFAULT_ROLES
from .models.models import Role, User


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ensure_roles(db):
    for name, description in DEFAULT_ROLES:
        role = db.query(Role).filter(Role.name == name).first()
        if not role:
            db.add(Role(name=name, description=description))
    db.flush()


def main():
    parser = argparse.ArgumentParser(description="Create the initial ADMIN user")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--full-name", default="Administrador")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    with session_scope() as db:
        ensure_roles(db)
        admin_role = db.query(Role).filter(Role.name == "ADMIN").one()

        existing_user = db.query(User).filter(User.email == args.email).first()
        if existing_user:
            print("User already exists with that email.")
            return

        user = User(
            email=args.email,
            full_name=args.full_name,
            hashed_password=get_password_hash(args.password),
        )
        user.roles.append(admin_role)
        db.add(user)
        db.flush()
        print(f"Created ADMIN user with id {user.id}")


if __name__ == "__main__":
    main()
