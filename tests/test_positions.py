from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from lodge.core.errors import NotFoundError, ValidationError
from lodge.models.models import LodgePosition, LodgePositionHistory
from lodge.services import positions as position_service


def test_reassigning_position_archives_previous_holder(db_session, create_user):
    first = create_user(email="first@example.com", role_name="MEMBER")
    second = create_user(email="second@example.com", role_name="MEMBER")

    position_service.assign_position(db_session, "tesoureiro", first.id, date(2023, 1, 1), date(2024, 12, 31))
    position_service.assign_position(db_session, "tesoureiro", second.id, date(2025, 1, 1), date(2026, 12, 31))

    active = db_session.query(LodgePosition).filter(LodgePosition.position_type == "tesoureiro").all()
    assert len(active) == 1
    assert active[0].user_id == second.id

    history = db_session.query(LodgePositionHistory).all()
    assert len(history) == 1
    assert history[0].user_id == first.id
    assert history[0].start_date == date(2023, 1, 1)
    assert history[0].end_date == date(2024, 12, 31)


def test_failed_assignment_keeps_original_holder(db_session, create_user):
    holder = create_user(email="holder@example.com", role_name="MEMBER")
    other = create_user(email="other@example.com", role_name="MEMBER")
    position_service.assign_position(db_session, "orador", holder.id, date(2024, 1, 1), date(2025, 12, 31))

    # A missing end date violates NOT NULL after the old holder was archived and deleted.
    with pytest.raises(IntegrityError):
        position_service.assign_position(db_session, "orador", other.id, date(2026, 1, 1), None)

    active = db_session.query(LodgePosition).filter(LodgePosition.position_type == "orador").all()
    assert len(active) == 1
    assert active[0].user_id == holder.id
    assert db_session.query(LodgePositionHistory).count() == 0


def test_assign_rejects_unknown_type_and_user(db_session, create_user):
    user = create_user(email="member@example.com", role_name="MEMBER")
    with pytest.raises(ValidationError):
        position_service.assign_position(db_session, "porteiro", user.id, date(2024, 1, 1), date(2025, 1, 1))
    with pytest.raises(NotFoundError):
        position_service.assign_position(db_session, "orador", 9999, date(2024, 1, 1), date(2025, 1, 1))


def test_remove_position_moves_row_to_history(db_session, create_user):
    user = create_user(email="chanceler@example.com", role_name="MEMBER")
    position = position_service.assign_position(db_session, "chanceler", user.id, date(2024, 1, 1), date(2025, 12, 31))

    entry = position_service.remove_position(db_session, position.id)

    assert entry.position_type == "chanceler"
    assert db_session.query(LodgePosition).count() == 0
    assert db_session.query(LodgePositionHistory).count() == 1
    with pytest.raises(NotFoundError):
        position_service.remove_position(db_session, position.id)


def test_history_is_newest_first_and_limited(db_session, create_user):
    user = create_user(email="historian@example.com", role_name="MEMBER")
    for year in (2018, 2022, 2020):
        db_session.add(
            LodgePositionHistory(
                position_type="secretario",
                user_id=user.id,
                start_date=date(year, 1, 1),
                end_date=date(year + 1, 12, 31),
            )
        )
    db_session.commit()

    history = position_service.list_history(db_session)
    assert [entry.start_date.year for entry in history] == [2022, 2020, 2018]
    assert len(position_service.list_history(db_session, limit=2)) == 2


def test_current_position_for_user_respects_term_window():
    positions = [
        LodgePosition(position_type="tesoureiro", user_id=1, start_date=date(2024, 1, 1), end_date=date(2025, 12, 31)),
        LodgePosition(position_type="orador", user_id=2, start_date=date(2024, 1, 1), end_date=date(2025, 12, 31)),
    ]
    current = position_service.current_position_for_user(positions, 1, date(2025, 6, 1))
    assert current is not None and current.position_type == "tesoureiro"
    assert position_service.current_position_for_user(positions, 1, date(2026, 1, 1)) is None
    assert position_service.current_position_for_user(positions, 3, date(2025, 6, 1)) is None


def test_module_permissions():
    assert position_service.has_module_permission("veneravel_mestre", "financial")
    assert position_service.has_module_permission("tesoureiro", "financial")
    assert not position_service.has_module_permission("tesoureiro", "secretariat")
    assert position_service.has_module_permission("secretario", "library")
    assert not position_service.has_module_permission(None, "agenda")


def test_default_end_date_is_two_years_later():
    assert position_service.default_end_date(date(2024, 3, 15)) == date(2026, 3, 15)
    assert position_service.default_end_date(date(2024, 2, 29)) == date(2026, 2, 28)


def test_position_api_assign_and_history(db_session, create_user, api_client):
    admin = create_user(email="admin@example.com", role_name="ADMIN")
    first = create_user(email="vm1@example.com", role_name="MEMBER", full_name="Primeiro")
    second = create_user(email="vm2@example.com", role_name="MEMBER", full_name="Segundo")
    client = api_client(admin)

    payload = {"position_type": "veneravel_mestre", "user_id": first.id, "start_date": "2024-01-01", "end_date": "2025-12-31"}
    response = client.post("/positions/", json=payload)
    assert response.status_code == 201
    assert response.json()["label"] == "Venerável Mestre"

    payload.update({"user_id": second.id, "start_date": "2026-01-01", "end_date": "2027-12-31"})
    response = client.post("/positions/", json=payload)
    assert response.status_code == 201
    assert response.json()["holder_name"] == "Segundo"

    listing = client.get("/positions/").json()
    assert len(listing) == 1
    history = client.get("/positions/history").json()
    assert len(history) == 1
    assert history[0]["holder_name"] == "Primeiro"

    suggestion = client.get("/positions/term-default", params={"start_date": "2025-05-10"}).json()
    assert suggestion["end_date"] == "2027-05-10"


def test_position_api_requires_admin(db_session, create_user, api_client):
    member = create_user(email="plain@example.com", role_name="MEMBER")
    client = api_client(member)
    payload = {"position_type": "orador", "user_id": member.id, "start_date": "2024-01-01", "end_date": "2025-12-31"}
    response = client.post("/positions/", json=payload)
    assert response.status_code == 403


def test_my_position_lists_permissions(db_session, create_user, api_client):
    treasurer = create_user(email="treasurer@example.com", role_name="MEMBER")
    today = date.today()
    position_service.assign_position(
        db_session, "tesoureiro", treasurer.id, today, position_service.default_end_date(today)
    )
    client = api_client(treasurer)

    response = client.get("/positions/me")
    assert response.status_code == 200
    body = response.json()
    assert body["position"]["position_type"] == "tesoureiro"
    assert body["permissions"] == ["financial"]
