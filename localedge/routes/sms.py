"""
Twilio SMS webhook.

Answers every signed request with an empty TwiML response; replies to the
sender are sent through the REST API, not the webhook body.
"""

from fastapi import APIRouter, Depends, Response

from localedge.infrastructure.observability.logging import get_logger
from localedge.routes.voice import TWIML_MEDIA_TYPE, twilio_form
from localedge.services.telephony import twiml
from localedge.services.telephony.sms_service import sms_service

logger = get_logger(__name__)

router = APIRouter(prefix="/twilio/sms", tags=["sms"])


@router.post("/incoming")
async def incoming_sms(form: dict[str, str] = Depends(twilio_form)):
    message_sid = form.get("MessageSid") or form.get("SmsSid")
    logger.info("Incoming SMS", message_sid=message_sid, to_number=form.get("To"))
    await sms_service.handle_incoming(
        to_number=form.get("To"),
        from_number=form.get("From"),
        body=form.get("Body"),
        message_sid=message_sid,
    )
    return Response(content=twiml.empty_response(), media_type=TWIML_MEDIA_TYPE)
