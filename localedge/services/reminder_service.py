"""
Appointment reminder SMS.

The daily job texts every customer with an active appointment on the next
workday; the console can also send one reminder on demand. Message text comes
from the business's custom template when set, otherwise from the locale bundle.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from localedge.db.helpers import DatabaseError
from localedge.i18n.messages import MessageBundle
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.domain.appointment_domain import Appointment, Business, ContactSummary
from localedge.repositories.appointment_repository import AppointmentRepository
from localedge.repositories.business_repository import ContactRepository
from localedge.services.telephony.sms_client import TwilioSMSClient, TwilioSMSError, sms_client

logger = get_logger(__name__)

FRIDAY = 4
_PLACEHOLDER = re.compile(r"\{(name|business|service|time|date)\}", re.IGNORECASE)


class ReminderError(Exception):
    """A manual reminder that cannot be sent; `status_code` is the HTTP mapping."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ReminderRunResult:
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)

    def record(self, appointment_id: str, status: str, error: str | None = None) -> None:
        setattr(self, status, getattr(self, status) + 1)
        entry = {"appointment_id": appointment_id, "status": status}
        if error:
            entry["error"] = error
        self.details.append(entry)


def next_workday(today: date) -> date:
    """Friday reminds for Sunday (Saturday is closed); any other day for tomorrow."""
    if today.weekday() == FRIDAY:
        return today + timedelta(days=2)
    return today + timedelta(days=1)


def build_reminder_message(
    appointment: Appointment, contact: ContactSummary, business: Business
) -> str:
    bundle = MessageBundle.for_business(business.ai_language)
    settings_ = business.twilio_settings
    templates = settings_.get("appointmentReminderTemplates") or {}
    custom = templates.get(bundle.language) or settings_.get("appointmentReminderTemplate")
    template = custom if custom and custom.strip() else bundle.get("reminder_template")

    local_start = appointment.scheduled_at.astimezone(business.tz)
    values = {
        "name": f" {contact.name}" if contact.name else "",
        "business": business.name,
        "service": appointment.service_type or bundle.get("default_service"),
        "time": bundle.format_time(local_start),
        "date": bundle.format_date(local_start),
    }
    # Placeholders are case-insensitive and unknown braces are left alone
    return _PLACEHOLDER.sub(lambda match: values[match.group(1).lower()], template)


def _split_row(row: dict) -> tuple[Appointment, ContactSummary, Business]:
    contact = ContactSummary(
        id=str(row["contact_id"]) if row.get("contact_id") else None,
        name=row.get("contact_name"),
        phone_number=row.get("contact_phone_number"),
    )
    business = Business(
        id=row["business_id"],
        name=row["business_name"],
        timezone=row.get("timezone"),
        twilio_phone_number=row.get("twilio_phone_number"),
        ai_language=row.get("ai_language"),
        twilio_settings=row.get("twilio_settings"),
    )
    appointment = Appointment(
        id=row["id"],
        business_id=row["business_id"],
        scheduled_at=row["scheduled_at"],
        duration_minutes=row.get("duration_minutes"),
        status=row.get("status"),
        service_type=row.get("service_type"),
        confirmation_code=row.get("confirmation_code"),
        contact=contact,
    )
    return appointment, contact, business


class ReminderService:
    def __init__(self, sms: TwilioSMSClient | None = None):
        self.sms = sms or sms_client

    async def _deliver(
        self, appointment: Appointment, contact: ContactSummary, business: Business
    ) -> str:
        message = build_reminder_message(appointment, contact, business)
        sid = await self.sms.send(
            from_number=business.twilio_phone_number,
            to_number=contact.phone_number,
            body=message,
        )
        try:
            await AppointmentRepository.mark_reminder_sent(appointment.id)
        except DatabaseError as e:
            # Already delivered; a retry would text the customer twice
            logger.error(
                "Failed to record reminder", appointment_id=appointment.id, error=str(e)
            )
        return sid

    async def send_due_reminders(self, now: datetime) -> ReminderRunResult:
        """
        Remind every active appointment on its business's next workday.

        "Next workday" is measured in each business's own timezone, so the
        query covers a UTC window wide enough for every offset and rows are
        filtered per business afterwards.
        """
        utc_day = now.astimezone(UTC).date()
        window_start = datetime.combine(utc_day, time.min, tzinfo=UTC)
        window_end = window_start + timedelta(days=4)
        rows = await AppointmentRepository.list_due_for_reminder(window_start, window_end)
        logger.info("Reminder run started", candidates=len(rows))

        result = ReminderRunResult()
        for row in rows:
            appointment, contact, business = _split_row(row)
            target = next_workday(now.astimezone(business.tz).date())
            if appointment.scheduled_at.astimezone(business.tz).date() != target:
                continue
            if not business.reminders_enabled:
                result.record(
                    appointment.id, "skipped", "Appointment reminders disabled for this business"
                )
                continue
            if not contact.phone_number or not business.twilio_phone_number:
                result.record(appointment.id, "skipped", "Missing phone number configuration")
                continue

            try:
                await self._deliver(appointment, contact, business)
            except TwilioSMSError as e:
                logger.error(
                    "Reminder send failed", appointment_id=appointment.id, error=str(e)
                )
                result.record(appointment.id, "failed", str(e))
                continue
            result.record(appointment.id, "sent")

        logger.info(
            "Reminder run finished",
            sent=result.sent,
            failed=result.failed,
            skipped=result.skipped,
        )
        return result

    async def send_manual_reminder(self, business: Business, appointment_id: str) -> str:
        """Send one reminder now. Returns the message SID."""
        appointment = await AppointmentRepository.get(business.id, appointment_id)
        if not appointment:
            raise ReminderError("Appointment not found", status_code=404)

        contact = None
        if appointment.contact and appointment.contact.id:
            contact = await ContactRepository.get(business.id, appointment.contact.id)
        if contact and contact.opted_out:
            raise ReminderError("Contact has opted out of messages")
        if not contact or not contact.phone_number or not business.twilio_phone_number:
            raise ReminderError("Missing phone number configuration")
        if appointment.status in ("cancelled", "completed"):
            raise ReminderError("Cannot send reminder for cancelled or completed appointments")

        summary = ContactSummary(id=contact.id, name=contact.name, phone_number=contact.phone_number)
        try:
            sid = await self._deliver(appointment, summary, business)
        except TwilioSMSError as e:
            raise ReminderError(str(e), status_code=502) from e

        logger.info(
            "Manual reminder sent",
            business_id=business.id,
            appointment_id=appointment_id,
            message_sid=sid,
        )
        return sid


reminder_service = ReminderService()
