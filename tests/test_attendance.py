from datetime import date

import pytest
from pydantic import ValidationError as SchemaError

from lodge.core.errors import NotFoundError, ValidationError
from lodge.models.models import AttendanceRecord, Brother, SessionRecord, VisitorAttendance
from lodge.services import attendance as attendance_service
from lodge.schemas.schemas import VisitorAttendanceCreate
from lodge.services.attendance import AttendanceEntry


def _brother(id, name):
    return Brother(id=id, name=name)


def _session(id, status):
    return SessionRecord(id=id, date=date(2024, 1, id), status=status)


def _record(session_id, brother_id, status):
    return AttendanceRecord(session_record_id=session_id, brother_id=brother_id, status=status)


def test_frequency_is_zero_without_finalized_sessions():
    brothers = [_brother(1, "A"), _brother(2, "B")]
    sessions = [_session(1, "Agendada")]
    records = [_record(1, 1, "Presente")]

    result = attendance_service.attendance_frequency(brothers, sessions, records)

    assert [(entry.presences, entry.percentage) for entry in result] == [(0, 0), (0, 0)]
    assert all(entry.total_sessions == 0 for entry in result)


def test_frequency_counts_present_and_justified_over_finalized_sessions():
    brothers = [_brother(1, "A"), _brother(2, "B")]
    sessions = [_session(1, "Finalizada"), _session(2, "Finalizada"), _session(3, "Finalizada"), _session(4, "Agendada")]
    records = [
        _record(1, 1, "Presente"),
        _record(2, 1, "Justificado"),
        _record(3, 1, "Ausente"),
        _record(4, 1, "Presente"),
        _record(1, 2, "Presente"),
    ]

    result = {entry.brother_id: entry for entry in attendance_service.attendance_frequency(brothers, sessions, records)}

    assert result[1].presences == 2
    assert result[1].total_sessions == 3
    assert result[1].percentage == 67
    assert result[2].presences == 1
    assert result[2].percentage == 33


def test_frequency_rounds_half_up():
    brothers = [_brother(1, "A")]
    sessions = [_session(index, "Finalizada") for index in range(1, 9)]
    records = [_record(index, 1, "Presente") for index in range(1, 6)]

    # 5 / 8 = 62.5%
    result = attendance_service.attendance_frequency(brothers, sessions, records)
    assert result[0].percentage == 63


def test_save_session_attendance_replaces_rows(db_session, create_brother):
    first = create_brother()
    second = create_brother()
    record = SessionRecord(date=date(2024, 5, 2), status="Agendada")
    db_session.add(record)
    db_session.commit()

    attendance_service.save_session_attendance(
        db_session,
        record.id,
        [AttendanceEntry(first.id, "Presente"), AttendanceEntry(second.id, "Ausente")],
    )
    saved = attendance_service.save_session_attendance(
        db_session,
        record.id,
        [AttendanceEntry(first.id, "Justificado", "Viagem")],
    )

    rows = db_session.query(AttendanceRecord).filter(AttendanceRecord.session_record_id == record.id).all()
    assert len(rows) == 1
    assert rows[0].status == "Justificado"
    assert rows[0].justification == "Viagem"
    assert saved.status == "Finalizada"


def test_save_session_attendance_rejects_bad_input(db_session, create_brother):
    brother = create_brother()
    record = SessionRecord(date=date(2024, 5, 2), status="Agendada")
    db_session.add(record)
    db_session.commit()

    with pytest.raises(ValidationError):
        attendance_service.save_session_attendance(
            db_session, record.id, [AttendanceEntry(brother.id, "Presente"), AttendanceEntry(brother.id, "Ausente")]
        )
    with pytest.raises(ValidationError):
        attendance_service.save_session_attendance(db_session, record.id, [AttendanceEntry(brother.id, "Talvez")])
    with pytest.raises(NotFoundError):
        attendance_service.save_session_attendance(db_session, record.id, [AttendanceEntry(9999, "Presente")])
    with pytest.raises(NotFoundError):
        attendance_service.save_session_attendance(db_session, 9999, [])


def test_attendance_api_bulk_save_and_frequency(db_session, create_user, create_brother, api_client):
    admin = create_user(email="chancellor@example.com", role_name="ADMIN")
    present = create_brother(name="Presente")
    absent = create_brother(name="Ausente")
    client = api_client(admin)

    response = client.post("/attendance/sessions", json={"date": "2024-06-06"})
    assert response.status_code == 201
    session_id = response.json()["id"]
    assert response.json()["status"] == "Agendada"

    response = client.put(
        f"/attendance/sessions/{session_id}/attendance",
        json={
            "records": [
                {"brother_id": present.id, "status": "Presente"},
                {"brother_id": absent.id, "status": "Ausente"},
            ]
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["session"]["status"] == "Finalizada"
    assert body["summary"] == {
        "present": 1,
        "justified": 0,
        "absent": 1,
        "percentage": 50,
        "visitors": 0,
        "total_participants": 1,
    }

    frequency = {entry["brother_id"]: entry for entry in client.get("/attendance/frequency").json()}
    assert frequency[present.id]["percentage"] == 100
    assert frequency[absent.id]["percentage"] == 0


VISITOR = {
    "name": "  José   da Silva ",
    "degree": "Mestre",
    "lodge": " Estrela  do Oriente ",
    "lodge_number": " 123 ",
    "obedience": "GOB",
    "masonic_number": "12.345-6",
}


def test_visitor_input_is_normalized():
    visitor = VisitorAttendanceCreate(**VISITOR)
    assert visitor.name == "José da Silva"
    assert visitor.lodge == "Estrela do Oriente"
    assert visitor.lodge_number == "123"
    assert visitor.masonic_number == "12.345-6"

    assert VisitorAttendanceCreate(**{**VISITOR, "masonic_number": "   "}).masonic_number is None


def test_visitor_short_name_and_missing_lodge_are_rejected():
    with pytest.raises(SchemaError) as excinfo:
        VisitorAttendanceCreate(**{**VISITOR, "name": "Jo", "lodge": ""})
    assert {error["loc"][0] for error in excinfo.value.errors()} == {"name", "lodge"}


@pytest.mark.parametrize(
    "field, value",
    [
        ("lodge_number", "12A"),
        ("lodge_number", "12345678901"),
        ("masonic_number", "ABC-123"),
        ("obedience", "  "),
    ],
)
def test_visitor_invalid_fields_are_rejected(field, value):
    with pytest.raises(SchemaError):
        VisitorAttendanceCreate(**{**VISITOR, field: value})


def test_visitor_api_adds_replaces_and_counts_visitors(db_session, create_user, create_brother, api_client):
    admin = create_user(email="chancellor@example.com", role_name="ADMIN")
    brother = create_brother()
    client = api_client(admin)
    session_id = client.post("/attendance/sessions", json={"date": "2024-06-13"}).json()["id"]

    response = client.post(f"/attendance/sessions/{session_id}/visitors", json=VISITOR)
    assert response.status_code == 201
    assert response.json()["name"] == "José da Silva"

    response = client.post(f"/attendance/sessions/{session_id}/visitors", json={**VISITOR, "lodge_number": "12A"})
    assert response.status_code == 422

    response = client.put(
        f"/attendance/sessions/{session_id}/attendance",
        json={"records": [{"brother_id": brother.id, "status": "Presente"}]},
    )
    summary = response.json()["summary"]
    assert summary["visitors"] == 1
    assert summary["total_participants"] == 2

    response = client.put(
        f"/attendance/sessions/{session_id}/visitors",
        json={"visitors": [{**VISITOR, "name": "Pedro Alves"}, {**VISITOR, "name": "Paulo Reis", "degree": "Aprendiz"}]},
    )
    assert response.status_code == 200
    assert [visitor["name"] for visitor in response.json()] == ["Pedro Alves", "Paulo Reis"]

    visitors = client.get(f"/attendance/sessions/{session_id}/visitors").json()
    assert len(visitors) == 2
    assert client.delete(f"/attendance/visitors/{visitors[0]['id']}").status_code == 204
    assert client.delete(f"/attendance/visitors/{visitors[0]['id']}").status_code == 404

    client.delete(f"/attendance/sessions/{session_id}")
    assert db_session.query(VisitorAttendance).count() == 0


def test_visitor_routes_require_chancellor_module(db_session, create_user, api_client):
    member = create_user(email="member@example.com", role_name="MEMBER")
    record = SessionRecord(date=date(2024, 6, 20), status="Agendada")
    db_session.add(record)
    db_session.commit()
    client = api_client(member)

    assert client.post(f"/attendance/sessions/{record.id}/visitors", json=VISITOR).status_code == 403
