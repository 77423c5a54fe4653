from datetime import date

import pytest

from lodge.core.errors import ValidationError
from lodge.models.models import Event, Location
from lodge.services import agenda as agenda_service


def test_time_distance_uses_hhmm_scale():
    assert agenda_service.time_distance("19:00", "20:00") == 100
    assert agenda_service.time_distance("19:00", "21:10") == 210
    # Events either side of midnight are far apart on this scale.
    assert agenda_service.time_distance("23:30", "00:10") == 2320


def test_normalize_time():
    assert agenda_service.normalize_time("9:5") == "09:05"
    with pytest.raises(ValidationError):
        agenda_service.normalize_time("25:00")
    with pytest.raises(ValidationError):
        agenda_service.normalize_time("noon")


def test_conflicts_same_date_and_location(db_session):
    db_session.add(Event(title="Sessão", date=date(2024, 4, 10), time="19:00", type="Sessão", location="Templo"))
    db_session.commit()

    clash = agenda_service.find_conflicts(db_session, date(2024, 4, 10), "20:00", "Templo")
    assert len(clash) == 1
    assert agenda_service.find_conflicts(db_session, date(2024, 4, 10), "21:10", "Templo") == []
    assert agenda_service.find_conflicts(db_session, date(2024, 4, 11), "19:30", "Templo") == []
    assert agenda_service.find_conflicts(db_session, date(2024, 4, 10), "19:30", "Salão") == []


def test_conflicts_resolve_location_reference_case_insensitively(db_session):
    temple = Location(name="Templo Principal")
    db_session.add(temple)
    db_session.flush()
    db_session.add(
        Event(title="Sessão Magna", date=date(2024, 4, 10), time="19:00", type="Sessão", location_id=temple.id)
    )
    db_session.commit()

    clash = agenda_service.find_conflicts(db_session, date(2024, 4, 10), "19:45", "  templo principal ")
    assert [event.title for event in clash] == ["Sessão Magna"]


def test_empty_location_never_conflicts(db_session):
    db_session.add(Event(title="Sem local", date=date(2024, 4, 10), time="19:00", type="Outro", location=None))
    db_session.commit()
    assert agenda_service.find_conflicts(db_session, date(2024, 4, 10), "19:00", "") == []


def test_event_api_reports_conflicts_without_blocking(db_session, create_user, api_client):
    admin = create_user(email="agenda@example.com", role_name="ADMIN")
    client = api_client(admin)

    first = client.post(
        "/agenda/events",
        json={"title": "Sessão Ordinária", "date": "2024-04-10", "time": "19:00", "location": "Templo"},
    )
    assert first.status_code == 201
    assert first.json()["conflicts"] == []

    second = client.post(
        "/agenda/events",
        json={"title": "Reunião da Diretoria", "date": "2024-04-10", "time": "20:00", "location": "templo", "type": "Reunião"},
    )
    assert second.status_code == 201
    conflicts = second.json()["conflicts"]
    assert [item["title"] for item in conflicts] == ["Sessão Ordinária"]

    third = client.post(
        "/agenda/events",
        json={"title": "Ágape", "date": "2024-04-10", "time": "21:10", "location": "Templo", "type": "Evento Social"},
    )
    assert third.status_code == 201
    assert [item["title"] for item in third.json()["conflicts"]] == ["Reunião da Diretoria"]

    assert db_session.query(Event).count() == 3


def test_event_check_endpoint_does_not_save(db_session, create_user, api_client):
    member = create_user(email="viewer@example.com", role_name="MEMBER")
    db_session.add(Event(title="Sessão", date=date(2024, 4, 10), time="19:00", type="Sessão", location="Templo"))
    db_session.commit()
    client = api_client(member)

    response = client.post("/agenda/events/check", json={"date": "2024-04-10", "time": "20:30", "location": "Templo"})
    assert response.status_code == 200
    assert response.json()["has_conflicts"] is True

    response = client.post("/agenda/events/check", json={"date": "2024-04-10", "time": "21:10", "location": "Templo"})
    assert response.json()["has_conflicts"] is False
    assert db_session.query(Event).count() == 1


def test_duplicate_location_is_rejected(db_session, create_user, api_client):
    admin = create_user(email="locations@example.com", role_name="ADMIN")
    client = api_client(admin)
    assert client.post("/agenda/locations", json={"name": "Templo"}).status_code == 201
    assert client.post("/agenda/locations", json={"name": "Templo"}).status_code == 409


def test_renaming_location_onto_existing_name_is_rejected(db_session, create_user, api_client):
    admin = create_user(email="rename-location@example.com", role_name="ADMIN")
    client = api_client(admin)
    client.post("/agenda/locations", json={"name": "Templo"})
    hall = client.post("/agenda/locations", json={"name": "Salão de Banquetes"}).json()

    response = client.patch(f"/agenda/locations/{hall['id']}", json={"name": " Templo "})
    assert response.status_code == 409

    response = client.patch(f"/agenda/locations/{hall['id']}", json={"name": "Salão Nobre"})
    assert response.status_code == 200
    assert response.json()["name"] == "Salão Nobre"


def test_event_update_rejects_null_title(db_session, create_user, api_client):
    admin = create_user(email="event-null@example.com", role_name="ADMIN")
    client = api_client(admin)
    event = client.post(
        "/agenda/events",
        json={"title": "Sessão Ordinária", "date": "2024-05-02", "time": "20:00", "location": "Templo"},
    ).json()["event"]

    response = client.patch(f"/agenda/events/{event['id']}", json={"title": None})
    assert response.status_code == 422
    assert db_session.get(Event, event["id"]).title == "Sessão Ordinária"
