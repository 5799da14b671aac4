"""
Twilio voice webhooks.

Both endpoints take Twilio's form-encoded callbacks and always answer 200 with
TwiML; only a bad signature is rejected.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from twilio.request_validator import RequestValidator

from localedge.config import settings
from localedge.infrastructure.observability.logging import get_logger
from localedge.services.telephony import twiml
from localedge.services.telephony.voice_service import voice_service

logger = get_logger(__name__)

router = APIRouter(prefix="/twilio/voice", tags=["voice"])

TWILIO_SIGNATURE_HEADER = "x-twilio-signature"
TWIML_MEDIA_TYPE = "text/xml"


async def twilio_form(request: Request) -> dict[str, str]:
    """Parsed webhook form, after checking Twilio's request signature."""
    form = {key: str(value) for key, value in (await request.form()).items()}

    if settings.TWILIO_VALIDATE_SIGNATURES and settings.TWILIO_AUTH_TOKEN:
        # Twilio signs the public URL it called, not the one seen behind the proxy
        url = settings.public_url(request.url.path)
        if request.url.query:
            url = f"{url}?{request.url.query}"
        validator = RequestValidator(settings.TWILIO_AUTH_TOKEN)
        signature = request.headers.get(TWILIO_SIGNATURE_HEADER, "")
        if not validator.validate(url, form, signature):
            logger.warning("Rejected Twilio webhook with bad signature", path=request.url.path)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    return form


@router.post("/incoming")
async def incoming_call(form: dict[str, str] = Depends(twilio_form)):
    call_sid = form.get("CallSid", "")
    logger.info("Incoming call", call_sid=call_sid, called=form.get("Called") or form.get("To"))
    document = await voice_service.handle_incoming(
        called=form.get("Called") or form.get("To"),
        caller=form.get("From"),
        call_sid=call_sid,
    )
    return Response(content=document, media_type=TWIML_MEDIA_TYPE)


@router.post("/dial-result")
async def dial_result(form: dict[str, str] = Depends(twilio_form)):
    """
    <Dial action> callback once the forwarded leg ends.

    Per-number status events are posted here too; they carry no
    DialCallStatus and are only acknowledged.
    """
    if "DialCallStatus" not in form:
        logger.debug(
            "Dial leg status", call_sid=form.get("CallSid"), status=form.get("CallStatus")
        )
        return Response(content=twiml.empty_response(), media_type=TWIML_MEDIA_TYPE)

    try:
        duration = int(form.get("DialCallDuration") or 0)
    except ValueError:
        duration = 0

    document = await voice_service.handle_dial_result(
        call_sid=form.get("CallSid", ""),
        dial_status=form.get("DialCallStatus"),
        dial_duration=duration,
        caller=form.get("From"),
    )
    return Response(content=document, media_type=TWIML_MEDIA_TYPE)
