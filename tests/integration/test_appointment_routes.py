"""
Route tests for the appointment API.

The service layer is mocked; these cover HTTP status mapping, response
shapes and locale selection.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from conftest import at, make_appointment
from fastapi.testclient import TestClient

from localedge.main import app
from localedge.scheduling.flow import FlowState
from localedge.services.appointment_service import (
    AppointmentNotFoundError,
    AppointmentServiceError,
    RescheduleInProgressError,
    ScheduleOutcome,
    appointment_service,
)
from localedge.services.calendar.sync_service import CalendarSyncResult, calendar_sync_service
from localedge.services.reminder_service import ReminderError, reminder_service


@pytest.fixture
def client(apply_auth_override):
    apply_auth_override(app)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_requires_authentication():
    response = TestClient(app).get("/appointments/abc")

    assert response.status_code in (401, 403)


def test_reschedule_committed(client):
    outcome = ScheduleOutcome(
        state=FlowState.COMMITTED,
        appointment=make_appointment("5", at(14, day=16), 30),
        calendar_sync=CalendarSyncResult(success=True, event_id="evt-1"),
    )
    with patch.object(
        appointment_service, "reschedule_appointment", AsyncMock(return_value=outcome)
    ) as mock:
        response = client.post(
            "/appointments/5/reschedule",
            json={"target_date": "2025-01-16"},
            headers={"Accept-Language": "en-US"},
        )

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "committed"
    assert data["appointment"]["end_at"] == "2025-01-16T14:30:00Z"
    assert data["calendar_sync"]["event_id"] == "evt-1"
    assert data["message"] == "Appointment moved to Thursday, January 16 at 02:00 PM."
    assert mock.await_args.kwargs["acknowledge_conflicts"] is False


def test_reschedule_conflict_returns_409_with_sorted_conflicts(client, contact_summary):
    outcome = ScheduleOutcome(
        state=FlowState.AWAITING_ACKNOWLEDGEMENT,
        appointment=make_appointment("5", at(9), 30),
        conflicts=[
            make_appointment("6", at(9, 45, day=16), 30, contact=contact_summary),
            make_appointment("7", at(10, 15, day=16), 30, service_type="Color"),
        ],
    )
    with patch.object(
        appointment_service, "reschedule_appointment", AsyncMock(return_value=outcome)
    ):
        response = client.post(
            "/appointments/5/reschedule",
            json={"target_date": "2025-01-16", "target_time": "10:00"},
            headers={"Accept-Language": "he-IL"},
        )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["state"] == "awaiting_acknowledgement"
    assert [c["id"] for c in detail["conflicts"]] == ["6", "7"]
    assert detail["conflicts"][0]["local_time"] == "09:45"
    assert detail["conflicts"][0]["display_name"] == "Noa"
    assert detail["conflicts"][1]["display_name"] == "Unknown"
    assert detail["message"] == "השעה הזו חופפת ל-2 תורים קיימים."


def test_reschedule_in_progress(client):
    with patch.object(
        appointment_service,
        "reschedule_appointment",
        AsyncMock(side_effect=RescheduleInProgressError("5")),
    ):
        response = client.post("/appointments/5/reschedule", json={"target_date": "2025-01-16"})

    assert response.status_code == 409


def test_reschedule_persistence_failure_is_localized(client):
    with patch.object(
        appointment_service,
        "reschedule_appointment",
        AsyncMock(side_effect=AppointmentServiceError("db", "persistence_failed")),
    ):
        response = client.post(
            "/appointments/5/reschedule",
            json={"target_date": "2025-01-16"},
            headers={"Accept-Language": "en"},
        )

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to save the appointment. Please try again."


def test_get_missing_appointment(client):
    with patch.object(
        appointment_service,
        "get_appointment",
        AsyncMock(side_effect=AppointmentNotFoundError("x")),
    ):
        response = client.get("/appointments/x")

    assert response.status_code == 404


def test_list_range_groups_by_day(client):
    appointments = [
        make_appointment("b", at(15)),
        make_appointment("a", at(9)),
        make_appointment("c", at(10, day=17), status="cancelled"),
    ]
    with patch.object(appointment_service, "list_range", AsyncMock(return_value=appointments)):
        response = client.get("/appointments", params={"start": "2025-01-15", "end": "2025-01-17"})

    assert response.status_code == 200
    data = response.json()
    assert len(data["appointments"]) == 3
    assert [day["day"] for day in data["days"]] == ["2025-01-15"]
    assert [slot["appointment_id"] for slot in data["days"][0]["slots"]] == ["a", "b"]
    assert data["status_counts"]["cancelled"] == 1


@pytest.mark.parametrize(
    "params",
    [{"start": "2025-01-17", "end": "2025-01-15"}, {"start": "2025-01-01", "end": "2025-06-01"}],
)
def test_list_range_rejects_bad_ranges(client, params):
    response = client.get("/appointments", params=params)

    assert response.status_code == 400


def test_conflict_check(client):
    conflict = make_appointment("1", at(10), 30)
    with patch.object(
        appointment_service, "check_conflicts", AsyncMock(return_value=[conflict])
    ) as mock:
        response = client.post(
            "/appointments/conflicts",
            json={"start": "2025-01-15T10:15:00Z", "duration_minutes": 30, "exclude_id": "9"},
        )

    assert response.status_code == 200
    assert response.json()["has_conflicts"] is True
    candidate = mock.await_args.args[1]
    assert candidate.exclude_id == "9"
    assert candidate.start == datetime(2025, 1, 15, 10, 15, tzinfo=UTC)


def test_conflict_check_requires_timezone(client):
    response = client.post(
        "/appointments/conflicts", json={"start": "2025-01-15T10:15:00", "duration_minutes": 30}
    )

    assert response.status_code == 422


def test_create_appointment_schedules_calendar_sync(client):
    outcome = ScheduleOutcome(
        state=FlowState.COMMITTED,
        appointment=make_appointment("new-1", at(9), 30),
        created_ids=["new-1"],
    )
    with (
        patch.object(appointment_service, "create_appointment", AsyncMock(return_value=outcome)),
        patch.object(calendar_sync_service, "sync_many", AsyncMock()) as sync_many,
    ):
        response = client.post(
            "/appointments",
            json={
                "scheduled_at": "2025-01-15T09:00:00Z",
                "duration_minutes": 30,
                "contact_phone": "+15550002222",
            },
        )

    assert response.status_code == 201
    assert response.json()["created_ids"] == ["new-1"]
    sync_many.assert_awaited_once_with("biz-1", ["new-1"])


def test_create_appointment_requires_contact(client):
    response = client.post(
        "/appointments", json={"scheduled_at": "2025-01-15T09:00:00Z", "duration_minutes": 30}
    )

    assert response.status_code == 422


def test_manual_reminder(client):
    with patch.object(
        reminder_service, "send_manual_reminder", AsyncMock(return_value="SM123")
    ):
        response = client.post("/appointments/5/reminder")

    assert response.status_code == 200
    assert response.json() == {"success": True, "messageSid": "SM123"}


def test_manual_reminder_error_status(client):
    with patch.object(
        reminder_service,
        "send_manual_reminder",
        AsyncMock(side_effect=ReminderError("Contact has opted out of messages")),
    ):
        response = client.post("/appointments/5/reminder")

    assert response.status_code == 400
    assert response.json()["detail"] == "Contact has opted out of messages"
