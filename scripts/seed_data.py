#!/usr/bin/env python
"""
Seed script to populate the database with sample data for local development.

Usage:
    python scripts/seed_data.py --brothers 5
"""

import argparse
from datetime import date, timedelta
from decimal import Decimal

from lodge.auth.jwt import get_password_hash
from lodge.config import Base, SessionLocal, engine
from lodge.main import ensure_default_categories, ensure_default_roles
from lodge.models.models import BankAccount, Brother, Event, Location, Role, User
from lodge.services import finance as finance_service
from lodge.services import positions as position_service
from lodge.services import site_settings as site_settings_service

SAMPLE_NAMES = [
    "João da Silva",
    "Carlos Pereira",
    "Antônio Souza",
    "Marcos Oliveira",
    "Paulo Santos",
    "Ricardo Lima",
    "Eduardo Costa",
    "Fernando Rocha",
]
DEGREES = ["Aprendiz", "Companheiro", "Mestre"]


def get_role(session, name: str) -> Role:
    role = session.query(Role).filter(Role.name == name).first()
    if not role:
        raise RuntimeError(f"Role '{name}' is not defined. Run ensure_default_roles first.")
    return role


def create_admin_user(session) -> User:
    admin = session.query(User).filter(User.email == "admin@example.com").first()
    if admin:
        return admin

    admin = User(
        email="admin@example.com",
        full_name="Administrador",
        hashed_password=get_password_hash("changeme"),
        is_active=True,
    )
    admin.roles.append(get_role(session, "ADMIN"))
    session.add(admin)
    session.flush()
    return admin


def create_brother_bundle(session, index: int) -> Brother:
    member_role = get_role(session, "MEMBER")
    name = SAMPLE_NAMES[(index - 1) % len(SAMPLE_NAMES)]
    if index > len(SAMPLE_NAMES):
        name = f"{name} {index}"
    email = f"irmao{index}@example.com"

    user = User(
        email=email,
        full_name=name,
        hashed_password=get_password_hash("changeme"),
        is_active=True,
    )
    user.roles.append(member_role)
    session.add(user)
    session.flush()

    brother = Brother(
        name=name,
        email=email,
        degree=DEGREES[index % len(DEGREES)],
        status="Ativo",
        initiation_date=date(2015, 1, 1) + timedelta(days=90 * index),
        user_id=user.id,
    )
    session.add(brother)
    session.flush()
    return brother


def create_sample_finance(session, admin: User) -> None:
    if session.query(BankAccount).count():
        return
    account = BankAccount(name="Conta Corrente", type="Corrente", initial_balance=Decimal("1000.00"), color="#1f6feb")
    session.add(account)
    session.commit()

    today = date.today()
    finance_service.create_transaction(
        session,
        date=today.replace(day=1),
        description="Mensalidades do mês",
        category="Mensalidades",
        type="Receita",
        amount=Decimal("800.00"),
        account_id=account.id,
        created_by_user_id=admin.id,
    )
    finance_service.create_transaction(
        session,
        date=today.replace(day=1),
        description="Conta de energia",
        category="Utilidades",
        type="Despesa",
        amount=Decimal("230.50"),
        account_id=account.id,
        created_by_user_id=admin.id,
    )


def create_sample_agenda(session, admin: User) -> None:
    if session.query(Event).count():
        return
    temple = Location(name="Templo Principal", address="Rua das Acácias, 33")
    session.add(temple)
    session.flush()
    session.add(
        Event(
            title="Sessão Ordinária",
            date=date.today() + timedelta(days=7),
            time="20:00",
            type="Sessão",
            location_id=temple.id,
            location=temple.name,
            created_by_user_id=admin.id,
        )
    )
    session.commit()


def seed_database(brothers: int) -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_default_roles(session)
        ensure_default_categories(session)
        site_settings_service.ensure_defaults(session)

        admin = create_admin_user(session)

        existing = session.query(Brother).count()
        targets = max(brothers, 0)
        start_index = existing + 1
        created = [create_brother_bundle(session, start_index + offset) for offset in range(targets)]
        session.commit()

        if created and not position_service.list_positions(session):
            today = date.today()
            position_service.assign_position(
                session, "tesoureiro", created[0].user_id, today, position_service.default_end_date(today)
            )

        create_sample_finance(session, admin)
        create_sample_agenda(session, admin)
        print(f"Seed complete. Created {targets} brother accounts (password: 'changeme').")


def main():
    parser = argparse.ArgumentParser(description="Seed the lodge database with sample data.")
    parser.add_argument("--brothers", type=int, default=5, help="Number of brother accounts to create")
    args = parser.parse_args()
    seed_database(args.brothers)


if __name__ == "__main__":
    main()
