"""
Two-way SMS with contacts.

Inbound texts arrive on the business's Twilio number. STOP-style keywords opt
the contact out of every future message; other texts from contacts who have
not opted out get a short AI reply, at most DAILY_REPLY_LIMIT per business-local
day per conversation. Staff can also text a contact from the console.
"""

import re
from datetime import UTC, datetime, time

import openai
from openai import AsyncOpenAI

from localedge.config import settings
from localedge.db.helpers import DatabaseError
from localedge.i18n.messages import MessageBundle
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.domain.appointment_domain import Business, Contact
from localedge.repositories.business_repository import BusinessRepository, ContactRepository
from localedge.repositories.conversation_repository import ConversationRepository
from localedge.services.telephony.sms_client import TwilioSMSClient, TwilioSMSError, sms_client

logger = get_logger(__name__)

OPT_OUT_KEYWORDS = frozenset({"stop", "unsubscribe", "עצור", "הסר", "הפסק"})
DAILY_REPLY_LIMIT = 10
HISTORY_LIMIT = 20
REPLY_MAX_TOKENS = 200
MAX_SMS_LENGTH = 1600
E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")

REPLY_SYSTEM_PROMPT = """You answer text messages on behalf of {business}.
Keep every reply short enough for a single SMS and friendly.
Do not promise appointment times; offer to have the team follow up instead.
Reply in {language} unless the customer writes in another language.
{instructions}"""


def is_opt_out(body: str | None) -> bool:
    return (body or "").strip().lower() in OPT_OUT_KEYWORDS


def normalize_phone(value: str | None) -> str:
    return re.sub(r"\s+", "", value or "")


def local_midnight(business: Business, now: datetime) -> datetime:
    """Start of the business-local day containing `now`, in UTC."""
    local_now = now.astimezone(business.tz)
    return datetime.combine(local_now.date(), time.min, tzinfo=business.tz).astimezone(UTC)


class SMSServiceError(Exception):
    """Manual send failure with the HTTP status the console should see."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SMSService:
    def __init__(self, sms: TwilioSMSClient | None = None):
        self.sms = sms or sms_client
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI | None:
        if self._client is None and settings.OPENAI_API_KEY:
            self._client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY, timeout=settings.OPENAI_TIMEOUT
            )
        return self._client

    async def handle_incoming(
        self,
        *,
        to_number: str | None,
        from_number: str | None,
        body: str | None,
        message_sid: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Process one inbound text. Failures are logged, never raised."""
        if not to_number or not from_number:
            logger.warning("Inbound SMS missing numbers", message_sid=message_sid)
            return

        try:
            business = await BusinessRepository.get_by_twilio_number(to_number)
            if not business:
                logger.warning("Inbound SMS for unknown number", message_sid=message_sid)
                return

            contact = await ContactRepository.get_or_create(business.id, from_number)
            bundle = MessageBundle.for_business(business.ai_language)

            if is_opt_out(body):
                await ContactRepository.set_opted_out(contact.id)
                await self.sms.send(
                    from_number=to_number,
                    to_number=from_number,
                    body=bundle.get("sms_opted_out"),
                )
                return

            if contact.opted_out:
                logger.info(
                    "Ignoring SMS from opted-out contact",
                    business_id=business.id,
                    contact_id=contact.id,
                )
                return

            await self._reply(business, contact, bundle, body or "", message_sid, now)

        except Exception as e:
            logger.exception("Error handling incoming SMS", message_sid=message_sid, error=str(e))

    async def _reply(
        self,
        business: Business,
        contact: Contact,
        bundle: MessageBundle,
        body: str,
        message_sid: str | None,
        now: datetime | None,
    ) -> None:
        conversation_id = await ConversationRepository.get_or_create_active(
            business.id, contact.id
        )
        await ConversationRepository.add_message(
            conversation_id, direction="inbound", body=body, twilio_sid=message_sid
        )

        since = local_midnight(business, now or datetime.now(UTC))
        sent_today = await ConversationRepository.count_outbound_since(conversation_id, since)
        if sent_today >= DAILY_REPLY_LIMIT:
            logger.warning(
                "SMS reply limit reached",
                business_id=business.id,
                conversation_id=conversation_id,
                sent_today=sent_today,
            )
            return

        history = await ConversationRepository.recent_messages(conversation_id, HISTORY_LIMIT)
        reply = await self.generate_reply(business, bundle, history)

        sid = await self.sms.send(
            from_number=business.twilio_phone_number,
            to_number=contact.phone_number,
            body=reply,
        )
        await ConversationRepository.add_message(
            conversation_id, direction="outbound", body=reply, twilio_sid=sid, ai_generated=True
        )
        await ConversationRepository.touch(conversation_id)
        logger.info("SMS reply sent", business_id=business.id, conversation_id=conversation_id)

    async def generate_reply(
        self, business: Business, bundle: MessageBundle, history: list[dict]
    ) -> str:
        """AI reply to the conversation so far; a canned message if the model is unavailable."""
        client = self._get_client()
        if client is None:
            logger.warning("OpenAI not configured, sending default SMS reply")
            return bundle.get("sms_reply_default")

        prompt = REPLY_SYSTEM_PROMPT.format(
            business=business.name,
            language=bundle.language,
            instructions=business.ai_instructions or "",
        )
        messages = [{"role": "system", "content": prompt.strip()}]
        for message in history:
            role = "user" if message["direction"] == "inbound" else "assistant"
            messages.append({"role": role, "content": message["body"]})

        try:
            response = await client.chat.completions.create(
                model=settings.OPENAI_MODEL,
                messages=messages,
                max_tokens=REPLY_MAX_TOKENS,
            )
        except openai.APIError as e:
            logger.error("SMS reply generation failed", business_id=business.id, error=str(e))
            return bundle.get("sms_reply_failed")

        content = response.choices[0].message.content if response.choices else None
        return (content or "").strip() or bundle.get("sms_reply_default")

    async def send_manual(
        self,
        business: Business,
        *,
        message: str,
        contact_id: str | None = None,
        contact_phone: str | None = None,
    ) -> dict:
        """Text a contact from the console; returns `{message_sid, sent_to}`."""
        body = (message or "").strip()
        if not body:
            raise SMSServiceError("Message is required")
        if len(body) > MAX_SMS_LENGTH:
            raise SMSServiceError(f"Message must be at most {MAX_SMS_LENGTH} characters")
        if not business.twilio_phone_number:
            raise SMSServiceError("Business has no Twilio number configured")

        contact = await self._manual_recipient(business, contact_id, contact_phone)
        to_number = contact.phone_number if contact else normalize_phone(contact_phone)

        try:
            sid = await self.sms.send(
                from_number=business.twilio_phone_number, to_number=to_number, body=body
            )
        except TwilioSMSError as e:
            raise SMSServiceError(str(e), status_code=502) from e

        if contact:
            await self._record_manual(business, contact, body, sid)
        return {"message_sid": sid, "sent_to": to_number}

    async def _manual_recipient(
        self, business: Business, contact_id: str | None, contact_phone: str | None
    ) -> Contact | None:
        if contact_id:
            contact = await ContactRepository.get(business.id, contact_id)
            if not contact:
                raise SMSServiceError("Contact not found", status_code=404)
        else:
            phone = normalize_phone(contact_phone)
            if not phone:
                raise SMSServiceError("contact_id or contact_phone is required")
            if not E164_PATTERN.match(phone):
                raise SMSServiceError("Phone number must be in E.164 format")
            contact = await ContactRepository.find_by_phone(business.id, phone)

        if contact and contact.opted_out:
            raise SMSServiceError("Contact has opted out of SMS")
        return contact

    async def _record_manual(
        self, business: Business, contact: Contact, body: str, sid: str | None
    ) -> None:
        # The text is already out; a logging failure must not fail the request
        try:
            conversation_id = await ConversationRepository.get_or_create_active(
                business.id, contact.id
            )
            await ConversationRepository.add_message(
                conversation_id, direction="outbound", body=body, twilio_sid=sid
            )
            await ConversationRepository.touch(conversation_id)
        except DatabaseError as e:
            logger.warning(
                "Manual SMS sent but not recorded",
                business_id=business.id,
                contact_id=contact.id,
                error=str(e),
            )


sms_service = SMSService()
