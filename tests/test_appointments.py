"""Tests for staff appointment endpoints."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictException
from app.models.appointments import appointments
from app.services import lifecycle
from app.services.appointment_service import AppointmentService
from app.services.availability_service import clinic_now
from tests.conftest import OBGYNE_DOCTOR, PEDIATRICIAN, next_weekday

MONDAY = next_weekday(0)


async def create_patient(
    client: AsyncClient, headers: dict, name: str = "Maria Cruz", patient_type: str = "ob-gyne"
) -> dict:
    response = await client.post(
        "/api/v1/patients/",
        json={"patient_type": patient_type, "full_name": name, "contact_number": "09171112222"},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


async def book(
    client: AsyncClient,
    headers: dict,
    patient_id: str,
    time: str = "09:00 AM",
    day=MONDAY,
    doctor_type: str = "ob-gyne",
    service_type: str = "PRENATAL_CHECKUP",
):
    return await client.post(
        "/api/v1/appointments/",
        json={
            "patient_id": patient_id,
            "doctor_type": doctor_type,
            "appointment_date": day.isoformat(),
            "appointment_time": time,
            "service_type": service_type,
            "reason": "Checkup",
        },
        headers=headers,
    )


async def set_status(client: AsyncClient, headers: dict, appointment_id: str, status: str, **extra):
    return await client.patch(
        f"/api/v1/appointments/{appointment_id}/status",
        json={"status": status, **extra},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_create_appointment(client: AsyncClient, staff_headers: dict) -> None:
    """Staff booking starts scheduled with a dated clinic ID."""
    patient = await create_patient(client, staff_headers)

    response = await book(client, staff_headers, patient["id"], time="9:00 am")

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "scheduled"
    assert data["appointment_time"] == "09:00 AM"
    assert data["end_time"] == "09:30 AM"
    assert data["doctor_name"] == OBGYNE_DOCTOR
    assert data["booking_source"] == "staff"
    assert data["patient_name"] == "Maria Cruz"
    assert data["appointment_id"] == f"APT{clinic_now():%Y%m%d}001"


@pytest.mark.asyncio
async def test_appointment_ids_increment(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)

    first = (await book(client, staff_headers, patient["id"], time="08:00 AM")).json()
    second = (await book(client, staff_headers, patient["id"], time="08:30 AM")).json()

    assert int(second["appointment_id"][-3:]) == int(first["appointment_id"][-3:]) + 1


@pytest.mark.asyncio
async def test_create_appointment_validation(client: AsyncClient, staff_headers: dict) -> None:
    """Malformed input is reported as 400."""
    patient = await create_patient(client, staff_headers)

    response = await book(client, staff_headers, patient["id"], time="25:00")
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"

    # Service does not belong to the specialty
    response = await book(client, staff_headers, patient["id"], service_type="EAR_PIERCING")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_outside_doctor_hours(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)

    # Monday closes at 12:00 for the OB-GYNE
    response = await book(client, staff_headers, patient["id"], time="12:00 PM")
    assert response.status_code == 400
    assert response.json()["error"] == "SlotUnavailableException"

    # No OB-GYNE clinic on Tuesdays
    response = await book(client, staff_headers, patient["id"], day=next_weekday(1))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_in_past_rejected(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)
    last_week = MONDAY - timedelta(days=14)

    response = await book(client, staff_headers, patient["id"], day=last_week)

    assert response.status_code == 400
    assert "past" in response.json()["message"]


@pytest.mark.asyncio
async def test_double_schedule_tolerated_but_second_confirm_conflicts(
    client: AsyncClient, staff_headers: dict
) -> None:
    """Two scheduled bookings may share a slot; only one can be confirmed."""
    first_patient = await create_patient(client, staff_headers, "Maria Cruz")
    second_patient = await create_patient(client, staff_headers, "Liza Reyes")

    first = await book(client, staff_headers, first_patient["id"])
    second = await book(client, staff_headers, second_patient["id"])
    assert first.status_code == 201
    assert second.status_code == 201

    response = await set_status(client, staff_headers, first.json()["appointment_id"], "confirmed")
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"
    assert response.json()["confirmed_by"] == "Frontdesk Account"

    response = await set_status(client, staff_headers, second.json()["appointment_id"], "confirmed")
    assert response.status_code == 400
    assert response.json()["error"] == "SlotUnavailableException"

    # A third booking cannot take the confirmed slot either
    third = await book(client, staff_headers, second_patient["id"])
    assert third.status_code == 400


@pytest.mark.asyncio
async def test_pediatric_booking_uses_pediatrician(
    client: AsyncClient, staff_headers: dict
) -> None:
    child = await create_patient(client, staff_headers, "Baby Cruz", patient_type="pediatric")
    assert child["patient_id"].startswith("PED")

    response = await book(
        client,
        staff_headers,
        child["id"],
        time="01:00 PM",
        doctor_type="pediatric",
        service_type="WELL_BABY_CHECKUP",
    )

    assert response.status_code == 201
    assert response.json()["doctor_name"] == PEDIATRICIAN

    # The OB-GYNE's name cannot take a pediatric booking
    response = await client.post(
        "/api/v1/appointments/",
        json={
            "patient_id": child["id"],
            "doctor_type": "pediatric",
            "doctor_name": OBGYNE_DOCTOR,
            "appointment_date": MONDAY.isoformat(),
            "appointment_time": "02:00 PM",
            "service_type": "WELL_BABY_CHECKUP",
        },
        headers=staff_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_confirm_activates_new_patient(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)
    assert patient["status"] == "New"

    appointment = (await book(client, staff_headers, patient["id"])).json()
    await set_status(client, staff_headers, appointment["appointment_id"], "confirmed")

    response = await client.get(f"/api/v1/patients/{patient['patient_id']}", headers=staff_headers)
    assert response.json()["status"] == "Active"


@pytest.mark.asyncio
async def test_terminal_status_is_final(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)
    appointment = (await book(client, staff_headers, patient["id"])).json()

    response = await set_status(client, staff_headers, appointment["appointment_id"], "completed")
    assert response.status_code == 200
    assert response.json()["completed_at"] is not None

    response = await set_status(client, staff_headers, appointment["appointment_id"], "confirmed")
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidTransitionException"


@pytest.mark.asyncio
async def test_cancel_frees_slot(client: AsyncClient, staff_headers: dict) -> None:
    first_patient = await create_patient(client, staff_headers, "Maria Cruz")
    second_patient = await create_patient(client, staff_headers, "Liza Reyes")
    first = (await book(client, staff_headers, first_patient["id"])).json()
    await set_status(client, staff_headers, first["appointment_id"], "confirmed")

    response = await set_status(
        client, staff_headers, first["appointment_id"], "cancelled", reason="Patient called"
    )
    assert response.status_code == 200
    assert response.json()["cancellation_reason"] == "Patient called"

    second = await book(client, staff_headers, second_patient["id"])
    assert second.status_code == 201
    response = await set_status(client, staff_headers, second.json()["appointment_id"], "confirmed")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_status_update_stores_notes(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)
    appointment = (await book(client, staff_headers, patient["id"])).json()

    response = await set_status(
        client, staff_headers, appointment["appointment_id"], "confirmed", notes="Bring lab results"
    )

    assert response.json()["notes"] == "Bring lab results"
    stored = await client.get(
        f"/api/v1/appointments/{appointment['appointment_id']}", headers=staff_headers
    )
    assert stored.json()["notes"] == "Bring lab results"


@pytest.mark.asyncio
async def test_no_show_strikes_lock_and_unlock(
    client: AsyncClient, staff_headers: dict, patient_headers: dict
) -> None:
    """Three distinct no-shows lock booking and repeats do not count; staff unlock resets."""
    patient = await create_patient(client, staff_headers)
    booked = []
    for time in ("08:00 AM", "08:30 AM", "09:00 AM"):
        booked.append((await book(client, staff_headers, patient["id"], time=time)).json())

    response = await set_status(client, staff_headers, booked[0]["appointment_id"], "no-show")
    assert response.status_code == 200
    assert response.json()["no_show_at"] is not None

    # Marking the same appointment again adds no strike
    response = await set_status(client, staff_headers, booked[0]["appointment_id"], "no-show")
    assert response.status_code == 200
    record = await client.get(f"/api/v1/patients/{patient['id']}", headers=staff_headers)
    assert record.json()["no_show_count"] == 1
    assert record.json()["appointment_locked"] is False

    await set_status(client, staff_headers, booked[1]["appointment_id"], "no-show")
    record = await client.get(f"/api/v1/patients/{patient['id']}", headers=staff_headers)
    assert record.json()["no_show_count"] == 2
    assert record.json()["appointment_locked"] is False

    await set_status(client, staff_headers, booked[2]["appointment_id"], "no-show")
    record = await client.get(f"/api/v1/patients/{patient['id']}", headers=staff_headers)
    assert record.json()["no_show_count"] == 3
    assert record.json()["appointment_locked"] is True

    response = await book(client, staff_headers, patient["id"], time="10:00 AM")
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "AppointmentLockedException"
    assert body["details"] == {"no_show_count": 3, "appointment_locked": True}

    # Portal accounts cannot unlock
    response = await client.patch(
        f"/api/v1/patients/{patient['patient_id']}/unlock-appointments", headers=patient_headers
    )
    assert response.status_code == 403

    response = await client.patch(
        f"/api/v1/patients/{patient['patient_id']}/unlock-appointments", headers=staff_headers
    )
    assert response.status_code == 200
    assert response.json()["no_show_count"] == 0
    assert response.json()["appointment_locked"] is False

    response = await book(client, staff_headers, patient["id"], time="10:00 AM")
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_staff_reschedule_of_staff_booking(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)
    appointment = (await book(client, staff_headers, patient["id"])).json()

    response = await client.patch(
        f"/api/v1/appointments/{appointment['appointment_id']}/reschedule",
        json={"new_date": MONDAY.isoformat(), "new_time": "10:30 AM", "reason": "Doctor late"},
        headers=staff_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["appointment_time"] == "10:30 AM"
    assert data["end_time"] == "11:00 AM"
    assert data["rescheduled_from"]["appointment_time"] == "09:00 AM"
    assert data["rescheduled_from"]["reason"] == "Doctor late"


@pytest.mark.asyncio
async def test_staff_reschedule_target_must_be_free(
    client: AsyncClient, staff_headers: dict
) -> None:
    """Reschedule targets are blocked by any live booking, scheduled ones included."""
    first_patient = await create_patient(client, staff_headers, "Maria Cruz")
    second_patient = await create_patient(client, staff_headers, "Liza Reyes")
    await book(client, staff_headers, first_patient["id"], time="10:00 AM")
    moving = (await book(client, staff_headers, second_patient["id"], time="11:00 AM")).json()

    response = await client.patch(
        f"/api/v1/appointments/{moving['appointment_id']}/reschedule",
        json={"new_date": MONDAY.isoformat(), "new_time": "10:00 AM"},
        headers=staff_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "SlotUnavailableException"

    response = await client.patch(
        f"/api/v1/appointments/{moving['appointment_id']}/reschedule",
        json={"new_date": MONDAY.isoformat(), "new_time": "04:00 PM"},
        headers=staff_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_and_filter(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)
    other = await create_patient(client, staff_headers, "Liza Reyes")
    first = (await book(client, staff_headers, patient["id"], time="08:00 AM")).json()
    await book(client, staff_headers, other["id"], time="08:30 AM")
    await set_status(client, staff_headers, first["appointment_id"], "confirmed")

    response = await client.get("/api/v1/appointments/", headers=staff_headers)
    assert response.json()["total"] == 2

    response = await client.get(
        "/api/v1/appointments/", params={"status": "confirmed"}, headers=staff_headers
    )
    assert [a["appointment_id"] for a in response.json()["items"]] == [first["appointment_id"]]

    response = await client.get(
        "/api/v1/appointments/",
        params={"patient_id": other["patient_id"], "date": MONDAY.isoformat()},
        headers=staff_headers,
    )
    assert response.json()["total"] == 1
    assert response.json()["items"][0]["patient_name"] == "Liza Reyes"


@pytest.mark.asyncio
async def test_get_appointment_not_found(client: AsyncClient, staff_headers: dict) -> None:
    response = await client.get("/api/v1/appointments/APT19990101001", headers=staff_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_daily_schedule(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)
    await book(client, staff_headers, patient["id"], time="08:30 AM")

    response = await client.get(
        "/api/v1/appointments/daily",
        params={"doctor_name": OBGYNE_DOCTOR.lower(), "date": MONDAY.isoformat()},
        headers=staff_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["working"] is True
    assert data["doctor_name"] == OBGYNE_DOCTOR
    assert [slot["time"] for slot in data["slots"]][:2] == ["08:00 AM", "08:30 AM"]
    assert len(data["slots"]) == 8
    assert len(data["slots"][1]["appointments"]) == 1
    assert data["slots"][0]["appointments"] == []


@pytest.mark.asyncio
async def test_daily_report(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)
    first = (await book(client, staff_headers, patient["id"], time="08:00 AM")).json()
    await book(client, staff_headers, patient["id"], time="08:30 AM")
    await set_status(client, staff_headers, first["appointment_id"], "confirmed")

    response = await client.get(
        "/api/v1/reports/daily", params={"date": MONDAY.isoformat()}, headers=staff_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["by_status"] == {"confirmed": 1, "scheduled": 1}
    assert data["by_doctor"] == {OBGYNE_DOCTOR: 2}
    assert data["by_service_type"] == {"PRENATAL_CHECKUP": 2}


@pytest.mark.asyncio
async def test_weekly_and_monthly_reports(client: AsyncClient, staff_headers: dict) -> None:
    patient = await create_patient(client, staff_headers)
    first = (await book(client, staff_headers, patient["id"], time="08:00 AM")).json()
    await book(client, staff_headers, patient["id"], time="08:30 AM")
    await set_status(
        client, staff_headers, first["appointment_id"], "cancelled", reason="Patient called"
    )

    response = await client.get(
        "/api/v1/reports/weekly",
        params={"start_date": MONDAY.isoformat()},
        headers=staff_headers,
    )

    assert response.status_code == 200
    data = response.json()
    # Weeks run Sunday to Saturday
    assert data["week_start"] == (MONDAY - timedelta(days=1)).isoformat()
    assert data["week_end"] == (MONDAY + timedelta(days=5)).isoformat()
    assert data["total"] == 2
    assert data["by_status"] == {"cancelled": 1, "scheduled": 1}
    assert data["days"]["monday"]["total"] == 2
    assert data["days"]["monday"]["cancelled"] == 1
    assert data["days"]["tuesday"]["total"] == 0

    response = await client.get(
        "/api/v1/reports/monthly",
        params={"month": MONDAY.month, "year": MONDAY.year},
        headers=staff_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["by_doctor_type"] == {"ob-gyne": 2}
    assert data["days"][str(MONDAY.day)]["total"] == 2
    assert data["days"][str(MONDAY.day)]["by_doctor_type"] == {"ob-gyne": 2}

    response = await client.get(
        "/api/v1/reports/monthly", params={"month": 13}, headers=staff_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_dashboard_lists_upcoming_in_slot_order(
    client: AsyncClient, staff_headers: dict
) -> None:
    mother = await create_patient(client, staff_headers)
    child = await create_patient(client, staff_headers, "Baby Cruz", patient_type="pediatric")
    await book(
        client,
        staff_headers,
        child["id"],
        time="01:00 PM",
        doctor_type="pediatric",
        service_type="WELL_BABY_CHECKUP",
    )
    await book(client, staff_headers, mother["id"], time="11:00 AM")

    response = await client.get("/api/v1/reports/dashboard", headers=staff_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["patients"] == {"total": 2, "pediatric": 1, "ob-gyne": 1}
    # Morning slot first even though "01:00 PM" sorts lower as text
    assert [item["appointment_time"] for item in data["upcoming"]] == ["11:00 AM", "01:00 PM"]
    assert data["today"]["total"] == 0


@pytest.mark.asyncio
async def test_patient_stats_overview(client: AsyncClient, staff_headers: dict) -> None:
    await create_patient(client, staff_headers)
    await create_patient(client, staff_headers, "Baby Cruz", patient_type="pediatric")
    await create_patient(client, staff_headers, "Baby Reyes", patient_type="pediatric")

    response = await client.get("/api/v1/patients/stats/overview", headers=staff_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert data["by_type"] == {"pediatric": 2, "ob-gyne": 1}
    assert data["by_status"] == {"New": 3, "Active": 0, "Inactive": 0}
    assert data["recent"] == 3
    assert data["locked"] == 0


@pytest.mark.asyncio
async def test_staff_endpoints_require_staff_token(
    client: AsyncClient, patient_headers: dict
) -> None:
    response = await client.get("/api/v1/appointments/", headers=patient_headers)
    assert response.status_code == 403

    response = await client.get(
        "/api/v1/appointments/", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_stale_version_is_rejected(
    client: AsyncClient, staff_headers: dict, db_session
) -> None:
    """A write based on an outdated read loses with a conflict."""
    patient = await create_patient(client, staff_headers)
    appointment = (await book(client, staff_headers, patient["id"])).json()

    service = AppointmentService(db_session)
    stale = await service._get_row(appointment["appointment_id"])
    await db_session.execute(
        update(appointments)
        .where(appointments.c.id == stale["id"])
        .values(version=stale["version"] + 1)
    )
    await db_session.commit()

    with pytest.raises(ConflictException):
        await service._apply(stale, lifecycle.Confirm(), "frontdesk")


@pytest.mark.asyncio
async def test_confirmed_slot_unique_index(db_session) -> None:
    """The database refuses a second confirmed appointment in a slot."""
    values = {
        "patient_name": "Maria Cruz",
        "doctor_type": "ob-gyne",
        "doctor_name": OBGYNE_DOCTOR,
        "appointment_date": MONDAY,
        "appointment_time": "09:00 AM",
        "service_type": "PRENATAL_CHECKUP",
        "status": "confirmed",
    }
    await db_session.execute(insert(appointments).values(appointment_id="APT20990101001", **values))
    await db_session.commit()

    with pytest.raises(IntegrityError):
        await db_session.execute(
            insert(appointments).values(appointment_id="APT20990101002", **values)
        )
    await db_session.rollback()
