"""
Appointment API Routes
Calendar views, conflict checks, bookings, drag-and-drop reschedules and
manual reminders for the authenticated user's business.
"""

from datetime import UTC, date, datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, status

from localedge.auth.verify import current_business
from localedge.config import settings
from localedge.i18n.messages import MessageBundle, console_bundle
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.api.appointment_request import (
    ConflictCheckRequest,
    CreateAppointmentRequest,
    RescheduleRequest,
    UpdateStatusRequest,
)
from localedge.models.api.appointment_response import (
    AppointmentRangeResponse,
    AppointmentResponse,
    CalendarSyncResponse,
    ConflictCheckResponse,
    ConflictResponse,
    ContactResponse,
    DayPreviewResponse,
    PreviewSlotResponse,
    RescheduleOptionsDay,
    RescheduleOptionsResponse,
    ScheduleOutcomeResponse,
    TimeSlotResponse,
)
from localedge.models.domain.appointment_domain import Appointment, Business
from localedge.scheduling.conflicts import ConflictCandidate, InvalidCandidateError, describe_conflict
from localedge.scheduling.flow import FlowState
from localedge.scheduling.grouping import DayPreview, day_preview, group_by_day, status_counts
from localedge.services.appointment_service import (
    AppointmentNotFoundError,
    AppointmentServiceError,
    ContactNotFoundError,
    InvalidScheduleError,
    RescheduleInProgressError,
    ScheduleOutcome,
    appointment_service,
)
from localedge.services.calendar.sync_service import calendar_sync_service
from localedge.services.reminder_service import ReminderError, reminder_service

logger = get_logger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])

MAX_RANGE_DAYS = 62


def _default_duration() -> int:
    return settings.DEFAULT_APPOINTMENT_DURATION_MINUTES


def _appointment_response(appointment: Appointment) -> AppointmentResponse:
    contact = None
    if appointment.contact:
        contact = ContactResponse(
            id=appointment.contact.id,
            name=appointment.contact.name,
            phone_number=appointment.contact.phone_number,
            display_name=appointment.contact.display_name,
        )
    return AppointmentResponse(
        id=appointment.id,
        scheduled_at=appointment.scheduled_at,
        duration_minutes=appointment.duration_minutes,
        end_at=appointment.end_at(_default_duration()),
        status=appointment.status,
        service_type=appointment.service_type,
        notes=appointment.notes,
        contact=contact,
        google_calendar_event_id=appointment.google_calendar_event_id,
    )


def _conflict_response(appointment: Appointment, business: Business) -> ConflictResponse:
    local_time, display_name, service_type = describe_conflict(appointment, business.tz)
    return ConflictResponse(
        id=appointment.id,
        scheduled_at=appointment.scheduled_at,
        local_time=local_time,
        display_name=display_name,
        service_type=service_type,
        duration_minutes=appointment.effective_duration(_default_duration()),
        status=appointment.status,
    )


def _preview_response(preview: DayPreview, business: Business) -> DayPreviewResponse:
    return DayPreviewResponse(
        day=preview.day,
        count=preview.count,
        slots=[
            PreviewSlotResponse(
                appointment_id=slot.appointment_id,
                start=slot.start,
                end=slot.end,
                local_time=slot.start.astimezone(business.tz).strftime("%H:%M"),
                duration_minutes=slot.duration_minutes,
                status=slot.status,
                display_name=slot.display_name,
                service_type=slot.service_type,
            )
            for slot in preview.slots
        ],
    )


def _outcome_response(
    outcome: ScheduleOutcome, business: Business, bundle: MessageBundle, *, success_key: str
) -> ScheduleOutcomeResponse:
    conflicts = [_conflict_response(conflict, business) for conflict in outcome.conflicts]
    message = None
    if outcome.state == FlowState.AWAITING_ACKNOWLEDGEMENT:
        message = bundle.conflict_summary(len(conflicts))
    elif outcome.appointment:
        local_start = outcome.appointment.scheduled_at.astimezone(business.tz)
        message = bundle.get(success_key).format(
            date=bundle.format_date(local_start), time=bundle.format_time(local_start)
        )

    return ScheduleOutcomeResponse(
        state=outcome.state.value,
        appointment=_appointment_response(outcome.appointment) if outcome.appointment else None,
        created_ids=outcome.created_ids,
        conflicts=conflicts,
        calendar_sync=(
            CalendarSyncResponse(**outcome.calendar_sync.to_dict())
            if outcome.calendar_sync
            else None
        ),
        message=message,
    )


def _raise_for_service_error(e: AppointmentServiceError, bundle: MessageBundle):
    if isinstance(e, (AppointmentNotFoundError, ContactNotFoundError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    if isinstance(e, RescheduleInProgressError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    if isinstance(e, InvalidScheduleError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=bundle.get("persistence_failed"),
    ) from e


@router.get("", response_model=AppointmentRangeResponse)
async def list_appointments(
    start: date = Query(..., description="First business-local day"),
    end: date = Query(..., description="Last business-local day (inclusive)"),
    business: Business = Depends(current_business),
):
    """Every appointment in a date range, with per-day previews and status totals."""
    if end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end is before start")
    if (end - start).days + 1 > MAX_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Range cannot exceed {MAX_RANGE_DAYS} days",
        )

    appointments = await appointment_service.list_range(business, start, end)
    days = group_by_day(appointments, business.tz, default_duration_minutes=_default_duration())
    return AppointmentRangeResponse(
        start=start,
        end=end,
        timezone=business.timezone,
        appointments=[_appointment_response(appointment) for appointment in appointments],
        days=[_preview_response(preview, business) for preview in days.values()],
        status_counts=status_counts(appointments),
    )


@router.get("/day-preview", response_model=DayPreviewResponse)
async def get_day_preview(
    day: date = Query(..., description="Business-local day"),
    business: Business = Depends(current_business),
):
    """Active appointments on one day, in start order (hover card)."""
    appointments = await appointment_service.list_range(business, day, day)
    preview = day_preview(
        day, appointments, business.tz, default_duration_minutes=_default_duration()
    )
    return _preview_response(preview, business)


@router.post("/conflicts", response_model=ConflictCheckResponse)
async def check_conflicts(
    request: ConflictCheckRequest, business: Business = Depends(current_business)
):
    """Which live appointments a proposed window would overlap."""
    try:
        candidate = ConflictCandidate(
            start=request.start,
            duration_minutes=request.duration_minutes,
            exclude_id=request.exclude_id,
        )
    except InvalidCandidateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    conflicts = await appointment_service.check_conflicts(business, candidate)
    return ConflictCheckResponse(
        has_conflicts=bool(conflicts),
        conflicts=[_conflict_response(conflict, business) for conflict in conflicts],
    )


@router.post("", response_model=ScheduleOutcomeResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    request: CreateAppointmentRequest,
    background_tasks: BackgroundTasks,
    business: Business = Depends(current_business),
    accept_language: str | None = Header(default=None),
):
    """
    Book an appointment (or a recurring series).

    Responds 409 with the conflicting appointments when the slot is taken and
    `acknowledge_conflicts` is false.
    """
    bundle = console_bundle(accept_language, business.ai_language)
    try:
        outcome = await appointment_service.create_appointment(business, request)
    except InvalidCandidateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except AppointmentServiceError as e:
        _raise_for_service_error(e, bundle)

    response = _outcome_response(outcome, business, bundle, success_key="booked")
    if not outcome.committed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=response.model_dump(mode="json")
        )

    background_tasks.add_task(calendar_sync_service.sync_many, business.id, outcome.created_ids)
    return response


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(appointment_id: str, business: Business = Depends(current_business)):
    try:
        appointment = await appointment_service.get_appointment(business, appointment_id)
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return _appointment_response(appointment)


@router.post("/{appointment_id}/reschedule", response_model=ScheduleOutcomeResponse)
async def reschedule_appointment(
    appointment_id: str,
    request: RescheduleRequest,
    business: Business = Depends(current_business),
    accept_language: str | None = Header(default=None),
):
    """
    Drop an appointment card on a new day.

    Responds 409 with the conflicts sorted by start time when the new slot
    overlaps and the caller has not acknowledged it; nothing is saved then.
    Resend with `acknowledge_conflicts: true` to proceed.
    """
    bundle = console_bundle(accept_language, business.ai_language)
    try:
        outcome = await appointment_service.reschedule_appointment(
            business,
            appointment_id,
            target_date=request.target_date,
            target_time=request.target_time,
            acknowledge_conflicts=request.acknowledge_conflicts,
        )
    except InvalidCandidateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except AppointmentServiceError as e:
        _raise_for_service_error(e, bundle)

    response = _outcome_response(outcome, business, bundle, success_key="rescheduled")
    if not outcome.committed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=response.model_dump(mode="json")
        )
    return response


@router.patch("/{appointment_id}/status", response_model=ScheduleOutcomeResponse)
async def update_appointment_status(
    appointment_id: str,
    request: UpdateStatusRequest,
    business: Business = Depends(current_business),
    accept_language: str | None = Header(default=None),
):
    bundle = console_bundle(accept_language, business.ai_language)
    try:
        appointment, sync = await appointment_service.update_status(
            business, appointment_id, request.status
        )
    except AppointmentServiceError as e:
        _raise_for_service_error(e, bundle)

    return ScheduleOutcomeResponse(
        state=FlowState.COMMITTED.value,
        appointment=_appointment_response(appointment),
        calendar_sync=CalendarSyncResponse(**sync.to_dict()),
    )


@router.get("/{appointment_id}/reschedule-options", response_model=RescheduleOptionsResponse)
async def get_reschedule_options(
    appointment_id: str,
    start: date | None = Query(default=None, description="First day; defaults to today"),
    days: int = Query(default=5, ge=1, le=14),
    business: Business = Depends(current_business),
):
    """Half-hour availability grid for the quick reschedule picker."""
    now = datetime.now(UTC)
    start_day = start or now.astimezone(business.tz).date()
    try:
        grid = await appointment_service.reschedule_options(
            business, appointment_id, start_day, days, now=now
        )
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return RescheduleOptionsResponse(
        appointment_id=appointment_id,
        timezone=business.timezone,
        days=[
            RescheduleOptionsDay(
                day=day,
                slots=[
                    TimeSlotResponse(
                        start=slot.start,
                        local_time=slot.start.astimezone(business.tz).strftime("%H:%M"),
                        available=slot.available,
                        busy=slot.busy,
                        past=slot.past,
                        current=slot.current,
                    )
                    for slot in slots
                ],
            )
            for day, slots in grid.items()
        ],
    )


@router.post("/{appointment_id}/reminder")
async def send_reminder(appointment_id: str, business: Business = Depends(current_business)):
    """Text the customer a reminder now."""
    try:
        sid = await reminder_service.send_manual_reminder(business, appointment_id)
    except ReminderError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return {"success": True, "messageSid": sid}
