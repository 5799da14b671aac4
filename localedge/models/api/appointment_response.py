# localedge/models/api/appointment_response.py
"""
Appointment API response models.
Used by routes for output formatting.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


class ContactResponse(BaseModel):
    id: str | None = None
    name: str | None = None
    phone_number: str | None = None
    display_name: str


class AppointmentResponse(BaseModel):
    id: str
    scheduled_at: datetime
    duration_minutes: int | None
    end_at: datetime
    status: str
    service_type: str | None = None
    notes: str | None = None
    contact: ContactResponse | None = None
    google_calendar_event_id: str | None = None


class ConflictResponse(BaseModel):
    """One line of the conflict acknowledgement prompt."""

    id: str
    scheduled_at: datetime
    local_time: str = Field(..., description="HH:MM in the business timezone")
    display_name: str
    service_type: str | None = None
    duration_minutes: int
    status: str


class CalendarSyncResponse(BaseModel):
    success: bool
    event_id: str | None = None
    event_link: str | None = None
    skipped: bool = False
    error: str | None = None


class ScheduleOutcomeResponse(BaseModel):
    """Result of a reschedule or booking attempt."""

    state: str = Field(..., description="committed or awaiting_acknowledgement")
    appointment: AppointmentResponse | None = None
    created_ids: list[str] = Field(default_factory=list)
    conflicts: list[ConflictResponse] = Field(default_factory=list)
    calendar_sync: CalendarSyncResponse | None = None
    message: str | None = None


class ConflictCheckResponse(BaseModel):
    has_conflicts: bool
    conflicts: list[ConflictResponse]


class PreviewSlotResponse(BaseModel):
    appointment_id: str
    start: datetime
    end: datetime
    local_time: str
    duration_minutes: int
    status: str
    display_name: str
    service_type: str | None = None


class DayPreviewResponse(BaseModel):
    day: date
    count: int
    slots: list[PreviewSlotResponse]


class AppointmentRangeResponse(BaseModel):
    start: date
    end: date
    timezone: str
    appointments: list[AppointmentResponse]
    days: list[DayPreviewResponse]
    status_counts: dict[str, int]


class TimeSlotResponse(BaseModel):
    start: datetime
    local_time: str
    available: bool
    busy: bool
    past: bool
    current: bool


class RescheduleOptionsDay(BaseModel):
    day: date
    slots: list[TimeSlotResponse]


class RescheduleOptionsResponse(BaseModel):
    appointment_id: str
    timezone: str
    days: list[RescheduleOptionsDay]
