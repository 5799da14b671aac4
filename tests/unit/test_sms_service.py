"""
Tests for inbound SMS handling (opt-out, AI replies, daily cap) and
console-initiated texts.
"""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from localedge.config import settings
from localedge.db.helpers import DatabaseError
from localedge.models.domain.appointment_domain import Business, Contact
from localedge.repositories.business_repository import BusinessRepository, ContactRepository
from localedge.repositories.conversation_repository import ConversationRepository
from localedge.services.telephony.sms_client import TwilioSMSError
from localedge.services.telephony.sms_service import (
    SMSService,
    SMSServiceError,
    is_opt_out,
    local_midnight,
)

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


def _business(**overrides):
    data = {
        "id": "biz-1",
        "name": "Dana's Salon",
        "twilio_phone_number": "+15550001111",
        "ai_language": "english",
    }
    data.update(overrides)
    return Business(**data)


def _contact(**overrides):
    data = {"id": "contact-1", "business_id": "biz-1", "phone_number": "+15550002222"}
    data.update(overrides)
    return Contact(**data)


def _completion(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def repos(monkeypatch):
    mocks = {
        (BusinessRepository, "get_by_twilio_number"): AsyncMock(return_value=_business()),
        (ContactRepository, "get_or_create"): AsyncMock(return_value=_contact()),
        (ContactRepository, "get"): AsyncMock(return_value=_contact()),
        (ContactRepository, "find_by_phone"): AsyncMock(return_value=None),
        (ContactRepository, "set_opted_out"): AsyncMock(),
        (ConversationRepository, "get_or_create_active"): AsyncMock(return_value="conv-1"),
        (ConversationRepository, "add_message"): AsyncMock(return_value="msg-1"),
        (ConversationRepository, "count_outbound_since"): AsyncMock(return_value=0),
        (ConversationRepository, "recent_messages"): AsyncMock(
            return_value=[{"direction": "inbound", "body": "Are you open Friday?"}]
        ),
        (ConversationRepository, "touch"): AsyncMock(),
    }
    for (owner, name), mock in mocks.items():
        monkeypatch.setattr(owner, name, mock)
    return {f"{owner.__name__}.{name}": mock for (owner, name), mock in mocks.items()}


@pytest.fixture
def sms():
    client = AsyncMock()
    client.send.return_value = "SM1"
    return client


@pytest.fixture
def service(monkeypatch, sms):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    return SMSService(sms)


async def _incoming(service, body, **kwargs):
    await service.handle_incoming(
        to_number="+15550001111",
        from_number="+15550002222",
        body=body,
        message_sid="SM-in",
        now=NOW,
        **kwargs,
    )


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ("STOP", True),
        ("  unsubscribe ", True),
        ("עצור", True),
        ("stop texting me", False),
        ("", False),
        (None, False),
    ],
)
def test_is_opt_out(body, expected):
    assert is_opt_out(body) is expected


def test_local_midnight_uses_business_timezone():
    business = _business(timezone="America/New_York")

    # 03:00 UTC is still the previous evening in New York
    since = local_midnight(business, datetime(2025, 1, 15, 3, 0, tzinfo=UTC))

    assert since == datetime(2025, 1, 14, 5, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_stop_keyword_opts_contact_out_and_confirms(repos, sms, service):
    await _incoming(service, "Stop")

    repos["ContactRepository.set_opted_out"].assert_awaited_once_with("contact-1")
    sms.send.assert_awaited_once_with(
        from_number="+15550001111",
        to_number="+15550002222",
        body="You have been unsubscribed. You will no longer receive messages from us.",
    )
    repos["ConversationRepository.add_message"].assert_not_awaited()


@pytest.mark.asyncio
async def test_hebrew_keyword_gets_hebrew_confirmation(repos, sms, service):
    repos["BusinessRepository.get_by_twilio_number"].return_value = _business(
        ai_language="hebrew"
    )

    await _incoming(service, "הסר")

    repos["ContactRepository.set_opted_out"].assert_awaited_once_with("contact-1")
    assert sms.send.await_args.kwargs["body"].startswith("הוסרת מרשימת ההודעות")


@pytest.mark.asyncio
async def test_opted_out_contact_is_ignored(repos, sms, service):
    repos["ContactRepository.get_or_create"].return_value = _contact(opted_out=True)

    await _incoming(service, "Hello again")

    sms.send.assert_not_awaited()
    repos["ConversationRepository.get_or_create_active"].assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_number_is_ignored(repos, sms, service):
    repos["BusinessRepository.get_by_twilio_number"].return_value = None

    await _incoming(service, "Hello")

    repos["ContactRepository.get_or_create"].assert_not_awaited()
    sms.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_reply_is_sent_and_recorded(repos, sms, service):
    await _incoming(service, "Are you open Friday?")

    sms.send.assert_awaited_once_with(
        from_number="+15550001111",
        to_number="+15550002222",
        body="Thank you for your message.",
    )
    calls = repos["ConversationRepository.add_message"].await_args_list
    assert calls[0].kwargs == {
        "direction": "inbound",
        "body": "Are you open Friday?",
        "twilio_sid": "SM-in",
    }
    assert calls[1].kwargs["direction"] == "outbound"
    assert calls[1].kwargs["ai_generated"] is True
    assert calls[1].kwargs["twilio_sid"] == "SM1"
    repos["ConversationRepository.touch"].assert_awaited_once_with("conv-1")


@pytest.mark.asyncio
async def test_daily_reply_cap_stops_replies(repos, sms, service):
    repos["ConversationRepository.count_outbound_since"].return_value = 10

    await _incoming(service, "Hello?")

    sms.send.assert_not_awaited()
    # The inbound text is still kept
    repos["ConversationRepository.add_message"].assert_awaited_once()
    since = repos["ConversationRepository.count_outbound_since"].await_args.args[1]
    assert since == datetime(2025, 1, 15, 0, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_ai_reply_uses_history(monkeypatch, repos, sms):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    service = SMSService(sms)
    create = AsyncMock(return_value=_completion("  Yes, 9 to 5.  "))
    service._client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create))
    )

    await _incoming(service, "Are you open Friday?")

    messages = create.await_args.kwargs["messages"]
    assert messages[0]["role"] == "system"
    assert "Dana's Salon" in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "Are you open Friday?"}
    assert create.await_args.kwargs["max_tokens"] == 200
    assert sms.send.await_args.kwargs["body"] == "Yes, 9 to 5."


@pytest.mark.asyncio
async def test_ai_failure_sends_apology(monkeypatch, repos, sms):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    service = SMSService(sms)
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    create = AsyncMock(side_effect=openai.APIConnectionError(request=request))
    service._client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create))
    )

    await _incoming(service, "Hi")

    assert sms.send.await_args.kwargs["body"] == (
        "Sorry, an error occurred. Please try again later."
    )


@pytest.mark.asyncio
async def test_incoming_failure_is_logged_not_raised(repos, sms, service):
    repos["ContactRepository.get_or_create"].side_effect = DatabaseError("db down")

    await _incoming(service, "Hello")

    sms.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_manual_sms_to_contact(repos, sms, service):
    result = await service.send_manual(
        _business(), message=" See you soon ", contact_id="contact-1"
    )

    assert result == {"message_sid": "SM1", "sent_to": "+15550002222"}
    sms.send.assert_awaited_once_with(
        from_number="+15550001111", to_number="+15550002222", body="See you soon"
    )
    kwargs = repos["ConversationRepository.add_message"].await_args.kwargs
    assert kwargs == {"direction": "outbound", "body": "See you soon", "twilio_sid": "SM1"}


@pytest.mark.asyncio
async def test_manual_sms_to_new_number_is_not_recorded(repos, sms, service):
    result = await service.send_manual(
        _business(), message="Hello", contact_phone="+1 555 000 3333"
    )

    assert result["sent_to"] == "+15550003333"
    repos["ConversationRepository.get_or_create_active"].assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("kwargs", "status_code"),
    [
        ({"message": "   ", "contact_id": "contact-1"}, 400),
        ({"message": "x" * 1601, "contact_id": "contact-1"}, 400),
        ({"message": "Hi"}, 400),
        ({"message": "Hi", "contact_phone": "0501234567"}, 400),
    ],
)
async def test_manual_sms_validation(repos, sms, service, kwargs, status_code):
    with pytest.raises(SMSServiceError) as exc_info:
        await service.send_manual(_business(), **kwargs)

    assert exc_info.value.status_code == status_code
    sms.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_manual_sms_requires_twilio_number(repos, sms, service):
    with pytest.raises(SMSServiceError) as exc_info:
        await service.send_manual(
            _business(twilio_phone_number=None), message="Hi", contact_id="contact-1"
        )

    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_manual_sms_unknown_contact(repos, sms, service):
    repos["ContactRepository.get"].return_value = None

    with pytest.raises(SMSServiceError) as exc_info:
        await service.send_manual(_business(), message="Hi", contact_id="missing")

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_manual_sms_refuses_opted_out_contact(repos, sms, service):
    repos["ContactRepository.find_by_phone"].return_value = _contact(opted_out=True)

    with pytest.raises(SMSServiceError) as exc_info:
        await service.send_manual(_business(), message="Hi", contact_phone="+15550002222")

    assert exc_info.value.status_code == 400
    sms.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_manual_sms_twilio_rejection(repos, sms, service):
    sms.send.side_effect = TwilioSMSError("invalid number", status_code=400)

    with pytest.raises(SMSServiceError) as exc_info:
        await service.send_manual(_business(), message="Hi", contact_id="contact-1")

    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_manual_sms_survives_conversation_write_failure(repos, sms, service):
    repos["ConversationRepository.add_message"].side_effect = DatabaseError("db down")

    result = await service.send_manual(_business(), message="Hi", contact_id="contact-1")

    assert result["message_sid"] == "SM1"
