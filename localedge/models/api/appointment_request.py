# localedge/models/api/appointment_request.py
"""
Appointment API request models.
Used by routes for input validation.
"""

from datetime import date, time

from pydantic import AwareDatetime, BaseModel, Field, model_validator

from localedge.models.domain.appointment_domain import AppointmentStatus
from localedge.scheduling.recurrence import RecurrencePattern


class RescheduleRequest(BaseModel):
    """Drop of an appointment card onto a new day (and optionally a time)."""

    target_date: date = Field(..., description="Business-local day the card was dropped on")
    target_time: time | None = Field(
        default=None, description="Drop target time; omitted keeps the original time of day"
    )
    acknowledge_conflicts: bool = Field(
        default=False, description="Proceed even if the new slot overlaps other appointments"
    )


class ConflictCheckRequest(BaseModel):
    """Read-only conflict check for a proposed window."""

    start: AwareDatetime = Field(..., description="Candidate start (timezone-aware)")
    duration_minutes: int = Field(default=60, gt=0, le=24 * 60)
    exclude_id: str | None = Field(default=None, description="Appointment being moved")


class CreateAppointmentRequest(BaseModel):
    """New booking from the console."""

    scheduled_at: AwareDatetime = Field(..., description="Start (timezone-aware)")
    duration_minutes: int = Field(default=60, gt=0, le=24 * 60)
    contact_id: str | None = Field(default=None, description="Existing contact")
    contact_phone: str | None = Field(
        default=None, min_length=3, max_length=32, description="Phone for a new or existing contact"
    )
    contact_name: str | None = Field(default=None, max_length=200)
    service_type: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=2000)
    recurrence_pattern: RecurrencePattern = "none"
    recurrence_end_date: date | None = None
    acknowledge_conflicts: bool = False

    @model_validator(mode="after")
    def _check_contact_and_recurrence(self) -> "CreateAppointmentRequest":
        if not self.contact_id and not self.contact_phone:
            raise ValueError("contact_id or contact_phone is required")
        if self.recurrence_pattern != "none" and self.recurrence_end_date is None:
            raise ValueError("recurrence_end_date is required for recurring appointments")
        if (
            self.recurrence_end_date is not None
            and self.recurrence_end_date < self.scheduled_at.date()
        ):
            raise ValueError("recurrence_end_date cannot be before the first appointment")
        return self


class UpdateStatusRequest(BaseModel):
    status: AppointmentStatus


class BulkSyncRequest(BaseModel):
    appointment_ids: list[str] = Field(..., min_length=1, max_length=500)
