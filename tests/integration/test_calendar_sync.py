"""
Calendar sync against a mocked Google API (pytest-httpx).
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio
from conftest import at, make_appointment

from localedge.config import settings
from localedge.db.helpers import DatabaseError
from localedge.models.domain.appointment_domain import Business, ContactSummary
from localedge.repositories.appointment_repository import AppointmentRepository
from localedge.repositories.business_repository import BusinessRepository
from localedge.repositories.calendar_token_repository import CalendarTokenRepository
from localedge.security.signing import sign_state
from localedge.services.calendar import google_client as google_module
from localedge.services.calendar.google_client import (
    CALENDAR_API_BASE_URL,
    GOOGLE_TOKEN_URL,
    GoogleCalendarClient,
)
from localedge.services.calendar.sync_service import (
    STATE_NAMESPACE,
    CalendarConnectionError,
    CalendarSyncService,
    build_event,
)

EVENTS_URL = f"{CALENDAR_API_BASE_URL}/calendars/primary/events"


@pytest.fixture(autouse=True)
def google_settings(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "client-id")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "client-secret")
    monkeypatch.setattr(settings, "STATE_SIGNING_SECRET", "test-signing-secret-0123456789")
    monkeypatch.setattr(google_module.asyncio, "sleep", AsyncMock())


def _tokens(expires_in=timedelta(hours=1), **overrides):
    tokens = {
        "business_id": "biz-1",
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "token_expires_at": datetime.now(UTC) + expires_in,
        "calendar_id": None,
    }
    tokens.update(overrides)
    return tokens


@pytest.fixture
def repos(monkeypatch):
    appointment = make_appointment(
        "5",
        at(9),
        30,
        service_type="Haircut",
        contact=ContactSummary(name="Noa", phone_number="+15550002222"),
    )
    mocks = {
        "token_get": AsyncMock(return_value=_tokens()),
        "token_update": AsyncMock(),
        "token_upsert": AsyncMock(),
        "business_get": AsyncMock(return_value=Business(id="biz-1", name="Salon")),
        "appointment_get": AsyncMock(return_value=appointment),
        "set_event_id": AsyncMock(),
    }
    monkeypatch.setattr(CalendarTokenRepository, "get", mocks["token_get"])
    monkeypatch.setattr(CalendarTokenRepository, "update_access_token", mocks["token_update"])
    monkeypatch.setattr(CalendarTokenRepository, "upsert", mocks["token_upsert"])
    monkeypatch.setattr(BusinessRepository, "get", mocks["business_get"])
    monkeypatch.setattr(AppointmentRepository, "get", mocks["appointment_get"])
    monkeypatch.setattr(AppointmentRepository, "set_calendar_event_id", mocks["set_event_id"])
    return mocks


@pytest_asyncio.fixture
async def service():
    sync = CalendarSyncService(GoogleCalendarClient(httpx.AsyncClient()))
    yield sync
    await sync.close()


def test_build_event():
    appointment = make_appointment(
        "5", at(9), None, service_type="Haircut", contact=ContactSummary(name="Noa")
    )

    event = build_event(appointment, Business(id="biz-1", name="Salon", timezone="Asia/Jerusalem"))

    assert event["summary"] == "Haircut - Noa"
    assert event["start"] == {"dateTime": "2025-01-15T09:00:00+00:00", "timeZone": "Asia/Jerusalem"}
    assert event["end"]["dateTime"] == "2025-01-15T10:00:00+00:00"
    assert "Phone: N/A" in event["description"]


@pytest.mark.asyncio
async def test_sync_creates_event(httpx_mock, service, repos):
    httpx_mock.add_response(
        method="POST", url=EVENTS_URL, json={"id": "evt-1", "htmlLink": "https://cal/evt-1"}
    )

    result = await service.sync_appointment("biz-1", "5")

    assert result.success
    assert result.event_id == "evt-1"
    repos["set_event_id"].assert_awaited_once_with("5", "evt-1")
    request = httpx_mock.get_requests()[0]
    assert request.headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_sync_updates_existing_event(httpx_mock, service, repos):
    repos["appointment_get"].return_value = make_appointment(
        "5", at(9), 30, google_calendar_event_id="evt-1"
    )
    httpx_mock.add_response(method="PUT", url=f"{EVENTS_URL}/evt-1", json={"id": "evt-1"})

    result = await service.sync_appointment("biz-1", "5")

    assert result.success
    repos["set_event_id"].assert_not_awaited()


@pytest.mark.asyncio
async def test_expired_token_is_refreshed(httpx_mock, service, repos):
    repos["token_get"].return_value = _tokens(expires_in=timedelta(minutes=-5))
    httpx_mock.add_response(
        method="POST", url=GOOGLE_TOKEN_URL, json={"access_token": "access-2", "expires_in": 3600}
    )
    httpx_mock.add_response(method="POST", url=EVENTS_URL, json={"id": "evt-2"})

    result = await service.sync_appointment("biz-1", "5")

    assert result.success
    repos["token_update"].assert_awaited_once()
    refresh_request, event_request = httpx_mock.get_requests()
    assert parse_qs(refresh_request.content.decode())["grant_type"] == ["refresh_token"]
    assert event_request.headers["Authorization"] == "Bearer access-2"


@pytest.mark.asyncio
async def test_not_connected_is_skipped(service, repos):
    repos["token_get"].return_value = None

    result = await service.sync_appointment("biz-1", "5")

    assert result.skipped and not result.success


@pytest.mark.asyncio
async def test_api_error_is_reported_not_raised(httpx_mock, service, repos):
    httpx_mock.add_response(
        method="POST",
        url=EVENTS_URL,
        status_code=403,
        json={"error": {"code": 403, "message": "Insufficient Permission"}},
    )

    result = await service.sync_appointment("biz-1", "5")

    assert not result.success
    assert result.error == "Insufficient Permission"


@pytest.mark.asyncio
async def test_transient_error_is_retried(httpx_mock, service, repos):
    httpx_mock.add_response(method="POST", url=EVENTS_URL, status_code=503)
    httpx_mock.add_response(method="POST", url=EVENTS_URL, json={"id": "evt-3"})

    result = await service.sync_appointment("biz-1", "5")

    assert result.event_id == "evt-3"
    assert len(httpx_mock.get_requests()) == 2


@pytest.mark.asyncio
async def test_sync_many_tallies_outcomes(httpx_mock, service, repos):
    repos["appointment_get"].side_effect = [make_appointment("1", at(9)), None]
    httpx_mock.add_response(method="POST", url=EVENTS_URL, json={"id": "evt-1"})

    counts = await service.sync_many("biz-1", ["1", "2"])

    assert counts == {"synced": 1, "skipped": 0, "failed": 1, "total": 2}


@pytest.mark.asyncio
async def test_sync_many_counts_database_errors_as_failed(service, repos):
    repos["business_get"].side_effect = DatabaseError("connection reset", "fetch_one")

    counts = await service.sync_many("biz-1", ["a1", "a2"])

    assert counts == {"synced": 0, "skipped": 0, "failed": 2, "total": 2}


@pytest.mark.asyncio
async def test_sync_many_keeps_going_after_database_error(httpx_mock, service, repos):
    repos["business_get"].side_effect = [
        DatabaseError("connection reset", "fetch_one"),
        Business(id="biz-1", name="Salon"),
    ]
    httpx_mock.add_response(method="POST", url=EVENTS_URL, json={"id": "evt-2"})

    counts = await service.sync_many("biz-1", ["a1", "a2"])

    assert counts == {"synced": 1, "skipped": 0, "failed": 1, "total": 2}


@pytest.mark.asyncio
async def test_unreadable_tokens_are_a_failed_sync(service, repos):
    repos["token_get"].side_effect = DatabaseError("statement timeout", "fetch_one")

    result = await service.sync_appointment("biz-1", "5")

    assert not result.success and not result.skipped
    assert "statement timeout" in result.error


@pytest.mark.asyncio
async def test_event_id_write_failure_keeps_created_event_id(httpx_mock, service, repos):
    repos["set_event_id"].side_effect = DatabaseError("connection reset", "execute")
    httpx_mock.add_response(
        method="POST", url=EVENTS_URL, json={"id": "evt-9", "htmlLink": "https://cal/evt-9"}
    )

    result = await service.sync_appointment("biz-1", "5")

    assert not result.success
    assert result.event_id == "evt-9"
    assert result.event_link == "https://cal/evt-9"


@pytest.mark.asyncio
async def test_sync_all_requires_connection(service, repos):
    repos["token_get"].return_value = None

    with pytest.raises(CalendarConnectionError):
        await service.sync_all("biz-1")


@pytest.mark.asyncio
async def test_auth_url_carries_signed_state(service):
    url = service.build_auth_url("biz-1", settings.calendar_redirect_uri())

    query = parse_qs(urlparse(url).query)
    assert query["client_id"] == ["client-id"]
    assert query["access_type"] == ["offline"]
    assert query["state"][0].count(".") == 1


@pytest.mark.asyncio
async def test_callback_exchanges_code_and_stores_tokens(httpx_mock, service, repos):
    state = sign_state({"business_id": "biz-1"}, namespace=STATE_NAMESPACE)
    httpx_mock.add_response(
        method="POST",
        url=GOOGLE_TOKEN_URL,
        json={"access_token": "access-9", "refresh_token": "refresh-9", "expires_in": 3600},
    )

    payload = await service.handle_callback("auth-code", state)

    assert payload["business_id"] == "biz-1"
    assert repos["token_upsert"].await_args.kwargs["refresh_token"] == "refresh-9"


@pytest.mark.asyncio
async def test_callback_rejects_forged_state(service, repos):
    with pytest.raises(CalendarConnectionError) as exc_info:
        await service.handle_callback("auth-code", "forged.state")

    assert exc_info.value.error_code == "invalid_state"
    repos["token_upsert"].assert_not_awaited()
