"""
Appointment scheduling service.

Reschedules and bookings follow the same validate-then-write flow:

1. Build the candidate window (RescheduleFlow drop).
2. Inside one transaction holding the business's schedule lock, load the live
   appointments around the window and run the conflict detector.
3. No conflicts, or conflicts the caller acknowledged: write and commit.
   Unacknowledged conflicts: return them, sorted by start, without writing.
4. After commit, push the change to Google Calendar. Sync failures are logged
   and reported but never undo the commit.
"""

import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta

from localedge.config import settings
from localedge.db.helpers import DatabaseError
from localedge.db.pool import get_db_transaction
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.api.appointment_request import CreateAppointmentRequest
from localedge.models.domain.appointment_domain import Appointment, Business, Contact
from localedge.repositories.appointment_repository import AppointmentRepository
from localedge.repositories.business_repository import ContactRepository
from localedge.scheduling.conflicts import ConflictCandidate, find_conflicts, sort_conflicts
from localedge.scheduling.flow import (
    FlowState,
    RescheduleFlow,
    local_day_bounds,
    resolve_drop_start,
)
from localedge.scheduling.grouping import TimeSlot, day_time_slots
from localedge.scheduling.recurrence import generate_occurrences
from localedge.services.calendar.sync_service import CalendarSyncResult, calendar_sync_service
from localedge.services.redis_client import fast_redis

logger = get_logger(__name__)

# Appointments longer than this are not looked for before the candidate's day
LOOKBACK = timedelta(days=1)


class AppointmentServiceError(Exception):
    """Base exception for scheduling failures."""

    def __init__(
        self, message: str, error_code: str = "appointment_error", recoverable: bool = False
    ):
        super().__init__(message)
        self.error_code = error_code
        self.recoverable = recoverable


class AppointmentNotFoundError(AppointmentServiceError):
    def __init__(self, appointment_id: str):
        super().__init__(f"Appointment {appointment_id} not found", "not_found")


class ContactNotFoundError(AppointmentServiceError):
    def __init__(self, contact_id: str):
        super().__init__(f"Contact {contact_id} not found", "contact_not_found")


class RescheduleInProgressError(AppointmentServiceError):
    def __init__(self, appointment_id: str):
        super().__init__(
            f"Appointment {appointment_id} is already being rescheduled",
            "reschedule_in_progress",
            recoverable=True,
        )


class InvalidScheduleError(AppointmentServiceError):
    def __init__(self, message: str):
        super().__init__(message, "invalid_schedule")


@dataclass
class ScheduleOutcome:
    """What a reschedule or booking attempt ended in."""

    state: FlowState
    appointment: Appointment | None = None
    conflicts: list[Appointment] = field(default_factory=list)
    created_ids: list[str] = field(default_factory=list)
    calendar_sync: CalendarSyncResult | None = None

    @property
    def committed(self) -> bool:
        return self.state == FlowState.COMMITTED


def _default_duration() -> int:
    return settings.DEFAULT_APPOINTMENT_DURATION_MINUTES


def conflict_window(
    candidates: Sequence[ConflictCandidate], business: Business
) -> tuple[datetime, datetime]:
    """
    Fetch window covering every candidate.

    Starts a day before the first candidate's local day so appointments that
    began the previous evening and run past midnight are still seen.
    """
    first = min(candidate.start for candidate in candidates)
    last_end = max(candidate.end for candidate in candidates)
    day_start, day_end = local_day_bounds(first.astimezone(business.tz).date(), business.tz)
    return day_start - LOOKBACK, max(day_end, last_end)


@asynccontextmanager
async def reschedule_guard(appointment_id: str) -> AsyncIterator[None]:
    """
    Refuse a second concurrent reschedule of the same appointment.

    Backed by a Redis key with a TTL. When Redis is unavailable the guard is
    skipped; the schedule lock taken at write time still keeps the data
    consistent.
    """
    key = f"reschedule:{appointment_id}"
    token = uuid.uuid4().hex
    acquired = await fast_redis.set_if_absent(key, token, settings.RESCHEDULE_LOCK_TTL_SECONDS)
    if acquired is False:
        raise RescheduleInProgressError(appointment_id)
    if acquired is None:
        logger.warning("Reschedule guard unavailable, relying on database lock", key=key)

    try:
        yield
    finally:
        if acquired:
            await fast_redis.delete_if_equals(key, token)


async def _sync_best_effort(business_id: str, appointment_id: str) -> CalendarSyncResult:
    try:
        result = await calendar_sync_service.sync_appointment(business_id, appointment_id)
    except Exception as e:
        logger.warning(
            "Calendar sync raised after commit",
            business_id=business_id,
            appointment_id=appointment_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return CalendarSyncResult(success=False, error=str(e))

    if not result.success and not result.skipped:
        logger.warning(
            "Calendar sync failed after commit",
            business_id=business_id,
            appointment_id=appointment_id,
            error=result.error,
        )
    return result


def _persistence_failure(flow: RescheduleFlow, error: DatabaseError, operation: str):
    if flow.in_flight:
        flow.mark_failed()
    elif flow.state != FlowState.IDLE:
        flow.cancel()
    logger.error(
        f"Failed to {operation}",
        appointment_id=flow.appointment_id,
        error=str(error),
        db_operation=error.operation,
    )
    return AppointmentServiceError(
        f"Failed to {operation}. Please try again.",
        "persistence_failed",
        recoverable=error.recoverable,
    )


class AppointmentService:
    """Scheduling operations for one business."""

    async def get_appointment(self, business: Business, appointment_id: str) -> Appointment:
        appointment = await AppointmentRepository.get(business.id, appointment_id)
        if not appointment:
            raise AppointmentNotFoundError(appointment_id)
        return appointment

    async def list_range(
        self, business: Business, start_day: date, end_day: date
    ) -> list[Appointment]:
        """Every appointment (cancelled included) starting on business-local days in range."""
        window_start, _ = local_day_bounds(start_day, business.tz)
        _, window_end = local_day_bounds(end_day, business.tz)
        return await AppointmentRepository.list_in_window(
            business.id, window_start, window_end, include_cancelled=True
        )

    async def check_conflicts(
        self, business: Business, candidate: ConflictCandidate
    ) -> list[Appointment]:
        """Read-only detector run against the current snapshot."""
        window_start, window_end = conflict_window([candidate], business)
        existing = await AppointmentRepository.list_in_window(
            business.id, window_start, window_end
        )
        conflicts = find_conflicts(
            candidate, existing, default_duration_minutes=_default_duration()
        )
        return sort_conflicts(conflicts)

    async def reschedule_appointment(
        self,
        business: Business,
        appointment_id: str,
        *,
        target_date: date,
        target_time: time | None = None,
        acknowledge_conflicts: bool = False,
    ) -> ScheduleOutcome:
        """
        Move an appointment to a new day (and optionally time).

        Returns an awaiting_acknowledgement outcome listing the conflicts when
        the slot is taken and `acknowledge_conflicts` is false; nothing is
        written in that case.
        """
        async with reschedule_guard(appointment_id):
            appointment = await self.get_appointment(business, appointment_id)
            if appointment.is_cancelled:
                raise InvalidScheduleError("Cancelled appointments cannot be rescheduled")

            flow = RescheduleFlow(appointment.id)
            flow.start_drag()
            new_start = resolve_drop_start(
                appointment.scheduled_at, target_date, business.tz, target_time
            )
            candidate = ConflictCandidate(
                start=new_start,
                duration_minutes=appointment.effective_duration(_default_duration()),
                exclude_id=appointment.id,
            )
            flow.drop(candidate)

            try:
                async with await get_db_transaction() as conn:
                    await AppointmentRepository.lock_business_schedule(
                        business.id, connection=conn
                    )
                    window_start, window_end = conflict_window([candidate], business)
                    existing = await AppointmentRepository.list_in_window(
                        business.id, window_start, window_end, connection=conn
                    )
                    conflicts = find_conflicts(
                        candidate, existing, default_duration_minutes=_default_duration()
                    )

                    if flow.evaluate(conflicts) == FlowState.AWAITING_ACKNOWLEDGEMENT:
                        if not acknowledge_conflicts:
                            pending = flow.conflicts
                            flow.cancel()
                            logger.info(
                                "Reschedule needs conflict acknowledgement",
                                business_id=business.id,
                                appointment_id=appointment.id,
                                conflict_count=len(pending),
                            )
                            return ScheduleOutcome(
                                state=FlowState.AWAITING_ACKNOWLEDGEMENT,
                                appointment=appointment,
                                conflicts=pending,
                            )
                        flow.acknowledge()

                    await AppointmentRepository.update_scheduled_at(
                        business.id, appointment.id, new_start, connection=conn
                    )
            except DatabaseError as e:
                raise _persistence_failure(flow, e, "reschedule appointment") from e

            flow.mark_committed()

        logger.info(
            "Appointment rescheduled",
            business_id=business.id,
            appointment_id=appointment.id,
            new_start=new_start.isoformat(),
            acknowledged_conflicts=len(flow.conflicts),
        )

        sync = await _sync_best_effort(business.id, appointment.id)
        return ScheduleOutcome(
            state=FlowState.COMMITTED,
            appointment=appointment.model_copy(
                update={
                    "scheduled_at": new_start.astimezone(UTC),
                    "google_calendar_event_id": sync.event_id
                    or appointment.google_calendar_event_id,
                }
            ),
            conflicts=flow.conflicts,
            calendar_sync=sync,
        )

    async def _resolve_contact(
        self, business: Business, request: CreateAppointmentRequest, conn
    ) -> Contact:
        if request.contact_id:
            contact = await ContactRepository.get(business.id, request.contact_id)
            if not contact:
                raise ContactNotFoundError(request.contact_id)
            return contact
        return await ContactRepository.get_or_create(
            business.id, request.contact_phone, request.contact_name, connection=conn
        )

    async def create_appointment(
        self, business: Business, request: CreateAppointmentRequest
    ) -> ScheduleOutcome:
        """
        Book an appointment, expanding a recurrence into one row per occurrence.

        The first occurrence is the parent; the rest point back to it. Every
        occurrence is conflict-checked before anything is written.
        """
        first_start = request.scheduled_at.astimezone(business.tz)
        occurrences = generate_occurrences(
            first_start,
            request.recurrence_pattern,
            request.recurrence_end_date,
            max_occurrences=settings.RECURRENCE_MAX_OCCURRENCES,
        )
        candidates = [
            ConflictCandidate(start=start, duration_minutes=request.duration_minutes)
            for start in occurrences
        ]

        flow = RescheduleFlow()
        flow.start_drag()
        flow.drop(candidates[0])
        created_ids: list[str] = []

        try:
            async with await get_db_transaction() as conn:
                await AppointmentRepository.lock_business_schedule(business.id, connection=conn)
                window_start, window_end = conflict_window(candidates, business)
                existing = await AppointmentRepository.list_in_window(
                    business.id, window_start, window_end, connection=conn
                )

                seen: set[str] = set()
                conflicts: list[Appointment] = []
                for candidate in candidates:
                    for conflict in find_conflicts(
                        candidate, existing, default_duration_minutes=_default_duration()
                    ):
                        if conflict.id not in seen:
                            seen.add(conflict.id)
                            conflicts.append(conflict)

                if flow.evaluate(conflicts) == FlowState.AWAITING_ACKNOWLEDGEMENT:
                    if not request.acknowledge_conflicts:
                        pending = flow.conflicts
                        flow.cancel()
                        return ScheduleOutcome(
                            state=FlowState.AWAITING_ACKNOWLEDGEMENT, conflicts=pending
                        )
                    flow.acknowledge()

                contact = await self._resolve_contact(business, request, conn)
                pattern = None if request.recurrence_pattern == "none" else request.recurrence_pattern
                parent_id = None
                for start in occurrences:
                    appointment_id = await AppointmentRepository.insert(
                        business_id=business.id,
                        contact_id=contact.id,
                        scheduled_at=start,
                        duration_minutes=request.duration_minutes,
                        service_type=request.service_type,
                        notes=request.notes,
                        recurrence_pattern=pattern,
                        parent_appointment_id=parent_id,
                        connection=conn,
                    )
                    parent_id = parent_id or appointment_id
                    created_ids.append(appointment_id)
        except DatabaseError as e:
            raise _persistence_failure(flow, e, "create appointment") from e

        flow.mark_committed()
        logger.info(
            "Appointment created",
            business_id=business.id,
            appointment_id=created_ids[0],
            occurrences=len(created_ids),
            acknowledged_conflicts=len(flow.conflicts),
        )

        appointment = await AppointmentRepository.get(business.id, created_ids[0])
        return ScheduleOutcome(
            state=FlowState.COMMITTED,
            appointment=appointment,
            conflicts=flow.conflicts,
            created_ids=created_ids,
        )

    async def update_status(
        self, business: Business, appointment_id: str, status: str
    ) -> tuple[Appointment, CalendarSyncResult]:
        try:
            updated = await AppointmentRepository.update_status(business.id, appointment_id, status)
        except DatabaseError as e:
            logger.error("Failed to update appointment status", error=str(e))
            raise AppointmentServiceError(
                "Failed to update appointment status. Please try again.",
                "persistence_failed",
                recoverable=e.recoverable,
            ) from e
        if not updated:
            raise AppointmentNotFoundError(appointment_id)

        logger.info(
            "Appointment status updated",
            business_id=business.id,
            appointment_id=appointment_id,
            status=status,
        )
        sync = await _sync_best_effort(business.id, appointment_id)
        return await self.get_appointment(business, appointment_id), sync

    async def reschedule_options(
        self,
        business: Business,
        appointment_id: str,
        start_day: date,
        days: int = 5,
        *,
        now: datetime | None = None,
    ) -> dict[date, list[TimeSlot]]:
        """Half-hour availability grid for the quick reschedule picker."""
        appointment = await self.get_appointment(business, appointment_id)
        tz = business.tz
        window_start, _ = local_day_bounds(start_day, tz)
        _, window_end = local_day_bounds(start_day + timedelta(days=days - 1), tz)
        existing = await AppointmentRepository.list_in_window(
            business.id, window_start - LOOKBACK, window_end
        )

        now = now or datetime.now(UTC)
        return {
            start_day + timedelta(days=offset): day_time_slots(
                start_day + timedelta(days=offset),
                existing,
                tz,
                now=now,
                exclude_id=appointment.id,
                default_duration_minutes=_default_duration(),
            )
            for offset in range(days)
        }


appointment_service = AppointmentService()
