"""
Appointment domain models.

Rows come out of psycopg as dicts; `from_row` maps them (including the joined
`contact_*` columns) into these models.
"""

from datetime import UTC, datetime, time, timedelta
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

AppointmentStatus = Literal["pending", "confirmed", "completed", "cancelled"]

APPOINTMENT_STATUSES: tuple[str, ...] = ("pending", "confirmed", "completed", "cancelled")
ACTIVE_STATUSES: tuple[str, ...] = ("pending", "confirmed")

UNKNOWN_CONTACT_NAME = "Unknown"


class ContactSummary(BaseModel):
    """The slice of a contact carried on an appointment."""

    id: str | None = None
    name: str | None = None
    phone_number: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.phone_number or UNKNOWN_CONTACT_NAME


class Contact(BaseModel):
    """A customer of a business, identified by phone number."""

    model_config = ConfigDict(extra="allow")

    id: str
    business_id: str
    phone_number: str
    name: str | None = None
    opted_out: bool = False


class Appointment(BaseModel):
    """A scheduled booking. Never hard-deleted; cancelled ones stay in storage."""

    model_config = ConfigDict(extra="allow")

    id: str
    business_id: str
    scheduled_at: datetime
    duration_minutes: int | None = None
    status: AppointmentStatus = "pending"
    service_type: str | None = None
    notes: str | None = None
    confirmation_code: str | None = None
    contact: ContactSummary | None = None
    google_calendar_event_id: str | None = None
    reminder_sent_at: datetime | None = None
    recurrence_pattern: str | None = None
    parent_appointment_id: str | None = None

    @field_validator("id", "business_id", "parent_appointment_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("scheduled_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Storage hands back naive timestamps in UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return value or "pending"

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def display_name(self) -> str:
        return self.contact.display_name if self.contact else UNKNOWN_CONTACT_NAME

    def effective_duration(self, default_minutes: int) -> int:
        return self.duration_minutes or default_minutes

    def end_at(self, default_minutes: int) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.effective_duration(default_minutes))

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Appointment":
        """Build from an appointments row optionally joined with contact columns."""
        data = dict(row)
        contact = None
        if any(key in data for key in ("contact_name", "contact_phone_number")):
            contact = ContactSummary(
                id=_str_or_none(data.get("contact_id")),
                name=data.pop("contact_name", None),
                phone_number=data.pop("contact_phone_number", None),
            )
        elif data.get("contact_id"):
            contact = ContactSummary(id=str(data["contact_id"]))
        data["contact"] = contact
        return cls(**data)


class Business(BaseModel):
    """A tenant of the console."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    owner_user_id: str | None = None
    timezone: str = "UTC"
    twilio_phone_number: str | None = None
    forward_to_phones: list[str] = Field(default_factory=list)
    ai_language: str | None = None
    ai_instructions: str | None = None
    twilio_settings: dict[str, Any] = Field(default_factory=dict)
    quiet_hours_start: time | None = None
    quiet_hours_end: time | None = None

    @field_validator("id", "owner_user_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("timezone", mode="before")
    @classmethod
    def _default_timezone(cls, value: Any) -> Any:
        return value or "UTC"

    @field_validator("forward_to_phones", mode="before")
    @classmethod
    def _default_phones(cls, value: Any) -> Any:
        return [phone for phone in (value or []) if phone]

    @field_validator("twilio_settings", mode="before")
    @classmethod
    def _default_settings(cls, value: Any) -> Any:
        return value or {}

    @property
    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")

    @property
    def reminders_enabled(self) -> bool:
        return self.twilio_settings.get("enableAppointmentReminders") is not False


def _str_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None
