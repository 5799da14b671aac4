"""TwiML documents returned to Twilio voice webhooks."""

from urllib.parse import urlencode

from twilio.twiml.voice_response import Connect, Dial, VoiceResponse

from localedge.i18n.messages import polly_voice

DIAL_STATUS_EVENTS = "initiated ringing answered completed"

CALL_PROCESSING_ERROR = "Sorry, there was an error processing your call."
NUMBER_NOT_CONFIGURED = "This number is not configured. Goodbye."
GENERIC_ERROR = "An error occurred. Please try again later."


def say_response(message: str) -> str:
    response = VoiceResponse()
    response.say(message)
    return str(response)


def hangup_response() -> str:
    response = VoiceResponse()
    response.hangup()
    return str(response)


def forward_response(phones: list[str], *, ring_timeout: int, callback_url: str) -> str:
    """Ring every forwarding number at once; Twilio posts the outcome to `callback_url`."""
    response = VoiceResponse()
    dial = Dial(timeout=ring_timeout, action=callback_url, method="POST")
    for phone in phones:
        dial.number(
            phone,
            status_callback=callback_url,
            status_callback_event=DIAL_STATUS_EVENTS,
        )
    response.append(dial)
    return str(response)


def stream_url(base_url: str, *, business_id: str, call_sid: str) -> str:
    return f"{base_url}?{urlencode({'businessId': business_id, 'callSid': call_sid})}"


def receptionist_response(url: str) -> str:
    """Hand the call's audio to the AI receptionist media stream."""
    response = VoiceResponse()
    connect = Connect()
    connect.stream(url=url)
    response.append(connect)
    return str(response)


def unavailable_response(message: str, *, voice_language: str, voice_gender: str) -> str:
    response = VoiceResponse()
    response.say(message, voice=polly_voice(voice_language, voice_gender), language=voice_language)
    response.hangup()
    return str(response)


def empty_response() -> str:
    return str(VoiceResponse())
