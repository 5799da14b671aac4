"""
Tests for inbound call routing and missed-call textback.
"""

from datetime import time
from unittest.mock import AsyncMock

import pytest

from localedge.config import settings
from localedge.models.domain.appointment_domain import Business, Contact
from localedge.repositories.business_repository import BusinessRepository, ContactRepository
from localedge.repositories.call_repository import CallRepository
from localedge.services.telephony.voice_service import VoiceService


def _business(**overrides):
    data = {
        "id": "biz-1",
        "name": "Dana's Salon",
        "twilio_phone_number": "+15550001111",
        "ai_language": "english",
        # Equal bounds: never quiet
        "quiet_hours_start": time(0, 0),
        "quiet_hours_end": time(0, 0),
    }
    data.update(overrides)
    return Business(**data)


@pytest.fixture
def repos(monkeypatch):
    contact = Contact(id="contact-1", business_id="biz-1", phone_number="+15550002222")
    mocks = {
        (BusinessRepository, "get_by_twilio_number"): AsyncMock(return_value=_business()),
        (BusinessRepository, "get"): AsyncMock(return_value=_business()),
        (ContactRepository, "get_or_create"): AsyncMock(return_value=contact),
        (ContactRepository, "get"): AsyncMock(return_value=contact),
        (CallRepository, "create_ringing"): AsyncMock(return_value="call-1"),
        (CallRepository, "get_by_sid"): AsyncMock(
            return_value={"id": "call-1", "business_id": "biz-1", "contact_id": "contact-1"}
        ),
        (CallRepository, "record_dial_result"): AsyncMock(),
        (CallRepository, "mark_textback_sent"): AsyncMock(),
    }
    for (owner, name), mock in mocks.items():
        monkeypatch.setattr(owner, name, mock)
    return {f"{owner.__name__}.{name}": mock for (owner, name), mock in mocks.items()}


@pytest.fixture
def sms():
    client = AsyncMock()
    client.send.return_value = "SM1"
    return client


@pytest.mark.asyncio
async def test_incoming_call_forwards_to_team(repos, sms):
    repos["BusinessRepository.get_by_twilio_number"].return_value = _business(
        forward_to_phones=["+15550003333"]
    )

    document = await VoiceService(sms).handle_incoming("+15550001111", "+15550002222", "CA1")

    assert "<Dial" in document and "+15550003333" in document
    repos["CallRepository.create_ringing"].assert_awaited_once()


@pytest.mark.asyncio
async def test_incoming_call_without_forwarding_connects_receptionist(monkeypatch, repos, sms):
    monkeypatch.setattr(settings, "VOICE_REALTIME_STREAM_URL", "wss://voice.example.com/stream")

    document = await VoiceService(sms).handle_incoming("+15550001111", "+15550002222", "CA1")

    assert "<Stream" in document


@pytest.mark.asyncio
async def test_incoming_call_to_unknown_number(repos, sms):
    repos["BusinessRepository.get_by_twilio_number"].return_value = None

    document = await VoiceService(sms).handle_incoming("+15559999999", "+15550002222", "CA1")

    assert "This number is not configured" in document


@pytest.mark.asyncio
async def test_incoming_call_failure_still_returns_twiml(repos, sms):
    repos["BusinessRepository.get_by_twilio_number"].side_effect = RuntimeError("db down")

    document = await VoiceService(sms).handle_incoming("+15550001111", "+15550002222", "CA1")

    assert "An error occurred" in document


@pytest.mark.asyncio
async def test_missed_call_sends_textback(monkeypatch, repos, sms):
    monkeypatch.setattr(settings, "VOICE_REALTIME_STREAM_URL", None)

    document = await VoiceService(sms).handle_dial_result("CA1", "no-answer", 0, "+15550002222")

    assert "<Hangup" in document
    sms.send.assert_awaited_once()
    assert "we missed your call to Dana's Salon" in sms.send.await_args.kwargs["body"]
    repos["CallRepository.mark_textback_sent"].assert_awaited_once_with("call-1")
    assert repos["CallRepository.record_dial_result"].await_args.kwargs["was_answered"] is False


@pytest.mark.asyncio
async def test_no_textback_during_quiet_hours(repos, sms):
    repos["BusinessRepository.get"].return_value = _business(
        quiet_hours_start=time(0, 0), quiet_hours_end=time.max
    )

    await VoiceService(sms).handle_dial_result("CA1", "busy", 0, "+15550002222")

    sms.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_textback_for_opted_out_contact(repos, sms):
    repos["ContactRepository.get"].return_value = Contact(
        id="contact-1", business_id="biz-1", phone_number="+15550002222", opted_out=True
    )

    await VoiceService(sms).handle_dial_result("CA1", "no-answer", 0, "+15550002222")

    sms.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_answered_call_is_recorded(repos, sms):
    await VoiceService(sms).handle_dial_result("CA1", "completed", 42, "+15550002222")

    kwargs = repos["CallRepository.record_dial_result"].await_args.kwargs
    assert kwargs == {"status": "completed", "was_answered": True, "duration_seconds": 42}
    sms.send.assert_not_awaited()
