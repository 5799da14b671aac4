"""
Inbound voice call handling.

Every entry point returns a TwiML string and never raises: Twilio reads the
caller a message on failure instead of playing its own error tone.
"""

from datetime import UTC, datetime, time

from localedge.config import settings
from localedge.db.helpers import DatabaseError
from localedge.i18n.messages import MessageBundle, language_for_voice
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.domain.appointment_domain import Business
from localedge.repositories.business_repository import BusinessRepository, ContactRepository
from localedge.repositories.call_repository import CallRepository
from localedge.services.telephony import twiml
from localedge.services.telephony.sms_client import TwilioSMSClient, TwilioSMSError, sms_client

logger = get_logger(__name__)

DEFAULT_RING_TIMEOUT = 30
DEFAULT_VOICE_LANGUAGE = "he-IL"
DEFAULT_VOICE_GENDER = "female"
MISSED_DIAL_STATUSES = frozenset({"no-answer", "busy", "failed", "canceled"})
DEFAULT_QUIET_START = time(22, 0)
DEFAULT_QUIET_END = time(7, 0)


def in_quiet_hours(now_local: time, quiet_start: time, quiet_end: time) -> bool:
    """Whether `now_local` falls in [quiet_start, quiet_end), wrapping past midnight."""
    if quiet_start <= quiet_end:
        return quiet_start <= now_local < quiet_end
    return now_local >= quiet_start or now_local < quiet_end


class VoiceSettings:
    """Per-business call handling options from `twilio_settings`."""

    def __init__(self, business: Business):
        raw = business.twilio_settings
        self.ring_timeout = int(raw.get("ringTimeout") or DEFAULT_RING_TIMEOUT)
        self.voice_language = raw.get("voiceLanguage") or DEFAULT_VOICE_LANGUAGE
        self.voice_gender = raw.get("voiceGender") or DEFAULT_VOICE_GENDER
        self.ai_receptionist = raw.get("enableAiReceptionist") is not False


class VoiceService:
    def __init__(self, sms: TwilioSMSClient | None = None):
        self.sms = sms or sms_client

    def _receptionist_or_unavailable(
        self, business: Business, voice: VoiceSettings, call_sid: str
    ) -> str:
        if voice.ai_receptionist and settings.VOICE_REALTIME_STREAM_URL:
            logger.info("Connecting call to AI receptionist", business_id=business.id)
            return twiml.receptionist_response(
                twiml.stream_url(
                    settings.VOICE_REALTIME_STREAM_URL,
                    business_id=business.id,
                    call_sid=call_sid,
                )
            )

        bundle = MessageBundle(language_for_voice(voice.voice_language))
        return twiml.unavailable_response(
            bundle.get("voice_unavailable"),
            voice_language=voice.voice_language,
            voice_gender=voice.voice_gender,
        )

    async def handle_incoming(self, called: str | None, caller: str | None, call_sid: str) -> str:
        """Route a new inbound call: forward, AI receptionist or voicemail-style message."""
        if not called or not caller:
            logger.warning("Incoming call missing numbers", call_sid=call_sid)
            return twiml.say_response(twiml.CALL_PROCESSING_ERROR)

        try:
            business = await BusinessRepository.get_by_twilio_number(called)
            if not business:
                logger.warning("Call to unconfigured number", called=called)
                return twiml.say_response(twiml.NUMBER_NOT_CONFIGURED)

            contact = await ContactRepository.get_or_create(business.id, caller)
            try:
                await CallRepository.create_ringing(
                    business_id=business.id,
                    contact_id=contact.id,
                    caller_phone=caller,
                    call_sid=call_sid,
                )
            except DatabaseError as e:
                # The call still goes through without a record
                logger.error("Failed to create call record", call_sid=call_sid, error=str(e))

            voice = VoiceSettings(business)
            if business.forward_to_phones:
                return twiml.forward_response(
                    business.forward_to_phones,
                    ring_timeout=voice.ring_timeout,
                    callback_url=settings.public_url("/twilio/voice/dial-result"),
                )
            return self._receptionist_or_unavailable(business, voice, call_sid)

        except Exception as e:
            logger.exception("Error handling incoming call", call_sid=call_sid, error=str(e))
            return twiml.say_response(twiml.GENERIC_ERROR)

    async def _send_textback(self, business: Business, call: dict, caller: str) -> None:
        """Text a caller whose call went unanswered, outside quiet hours."""
        contact = None
        if call.get("contact_id"):
            contact = await ContactRepository.get(business.id, str(call["contact_id"]))
        if contact and contact.opted_out:
            logger.info("Contact opted out, skipping textback", business_id=business.id)
            return

        now_local = datetime.now(UTC).astimezone(business.tz).time()
        if in_quiet_hours(
            now_local,
            business.quiet_hours_start or DEFAULT_QUIET_START,
            business.quiet_hours_end or DEFAULT_QUIET_END,
        ):
            logger.info("Quiet hours, skipping textback", business_id=business.id)
            return

        if not business.twilio_phone_number:
            return

        bundle = MessageBundle.for_business(business.ai_language)
        message = bundle.get("missed_call_textback").format(business=business.name)
        try:
            await self.sms.send(
                from_number=business.twilio_phone_number, to_number=caller, body=message
            )
        except TwilioSMSError as e:
            logger.error("Textback SMS failed", business_id=business.id, error=str(e))
            return
        await CallRepository.mark_textback_sent(str(call["id"]))

    async def handle_dial_result(
        self,
        call_sid: str,
        dial_status: str | None,
        dial_duration: int,
        caller: str | None,
    ) -> str:
        """Outcome of forwarding: record it and pick up missed calls."""
        try:
            call = await CallRepository.get_by_sid(call_sid)
            if not call:
                logger.warning("Dial result for unknown call", call_sid=call_sid)
                return twiml.hangup_response()

            business = await BusinessRepository.get(str(call["business_id"]))
            if not business:
                return twiml.hangup_response()

            missed = dial_status in MISSED_DIAL_STATUSES
            answered = dial_status == "completed" and dial_duration > 0
            await CallRepository.record_dial_result(
                str(call["id"]),
                status=dial_status or "unknown",
                was_answered=answered,
                duration_seconds=dial_duration,
            )
            logger.info(
                "Dial result recorded",
                call_sid=call_sid,
                status=dial_status,
                answered=answered,
                duration=dial_duration,
            )

            if not missed:
                return twiml.hangup_response()

            if not call.get("textback_sent") and caller:
                await self._send_textback(business, call, caller)

            voice = VoiceSettings(business)
            if voice.ai_receptionist and settings.VOICE_REALTIME_STREAM_URL:
                return self._receptionist_or_unavailable(business, voice, call_sid)
            return twiml.hangup_response()

        except Exception as e:
            logger.exception("Error handling dial result", call_sid=call_sid, error=str(e))
            return twiml.hangup_response()


voice_service = VoiceService()
