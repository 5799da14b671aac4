"""
Day and range grouping for preview surfaces (hover previews, month cells,
busy-time bars, the quick reschedule grid).

All functions take a flat list of appointments and return new structures; the
input list and its elements are never modified.
"""

from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from localedge.models.domain.appointment_domain import APPOINTMENT_STATUSES, Appointment
from localedge.scheduling.conflicts import DEFAULT_DURATION_MINUTES, overlaps

SLOT_MINUTES = 30
FIRST_SLOT = time(7, 0)
LAST_SLOT = time(20, 0)


@dataclass(frozen=True)
class PreviewSlot:
    appointment_id: str
    start: datetime
    end: datetime
    duration_minutes: int
    status: str
    display_name: str
    service_type: str | None


@dataclass
class DayPreview:
    day: date
    slots: list[PreviewSlot] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.slots)


@dataclass(frozen=True)
class TimeSlot:
    """One cell of the quick reschedule grid."""

    start: datetime
    end: datetime
    busy: bool
    past: bool
    current: bool

    @property
    def available(self) -> bool:
        return not (self.busy or self.past)


def local_day(appointment: Appointment, tz: ZoneInfo) -> date:
    return appointment.scheduled_at.astimezone(tz).date()


def active_sorted(appointments: Iterable[Appointment]) -> list[Appointment]:
    """Drop cancelled entries and sort by start. Ties keep input order."""
    return sorted(
        (appointment for appointment in appointments if not appointment.is_cancelled),
        key=lambda appointment: appointment.scheduled_at,
    )


def _to_slot(appointment: Appointment, default_duration_minutes: int) -> PreviewSlot:
    duration = appointment.effective_duration(default_duration_minutes)
    return PreviewSlot(
        appointment_id=appointment.id,
        start=appointment.scheduled_at,
        end=appointment.scheduled_at + timedelta(minutes=duration),
        duration_minutes=duration,
        status=appointment.status,
        display_name=appointment.display_name,
        service_type=appointment.service_type,
    )


def day_preview(
    day: date,
    appointments: Iterable[Appointment],
    tz: ZoneInfo,
    *,
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> DayPreview:
    """Non-cancelled appointments starting on `day` (business-local), ascending."""
    on_day = [appointment for appointment in appointments if local_day(appointment, tz) == day]
    return DayPreview(
        day=day,
        slots=[_to_slot(item, default_duration_minutes) for item in active_sorted(on_day)],
    )


def group_by_day(
    appointments: Iterable[Appointment],
    tz: ZoneInfo,
    *,
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> dict[date, DayPreview]:
    """Bucket a range of appointments into per-day previews, days ascending."""
    buckets: dict[date, list[Appointment]] = defaultdict(list)
    for appointment in active_sorted(appointments):
        buckets[local_day(appointment, tz)].append(appointment)

    return {
        day: DayPreview(
            day=day,
            slots=[_to_slot(item, default_duration_minutes) for item in buckets[day]],
        )
        for day in sorted(buckets)
    }


def status_counts(appointments: Iterable[Appointment]) -> dict[str, int]:
    counts = Counter(appointment.status for appointment in appointments)
    return {status: counts.get(status, 0) for status in APPOINTMENT_STATUSES}


def day_time_slots(
    day: date,
    appointments: Sequence[Appointment],
    tz: ZoneInfo,
    *,
    now: datetime,
    exclude_id: str | None = None,
    slot_minutes: int = SLOT_MINUTES,
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> list[TimeSlot]:
    """
    Half-hour grid from 07:00 to 20:00 business-local time.

    A slot is busy when any other non-cancelled appointment overlaps it, past
    when it starts before `now`, and current when `now` falls inside it.
    """
    others = [
        appointment
        for appointment in appointments
        if not appointment.is_cancelled and appointment.id != exclude_id
    ]

    slots = []
    cursor = datetime.combine(day, FIRST_SLOT, tzinfo=tz)
    last = datetime.combine(day, LAST_SLOT, tzinfo=tz)
    step = timedelta(minutes=slot_minutes)
    while cursor <= last:
        slot_end = cursor + step
        busy = any(
            overlaps(
                cursor,
                slot_end,
                appointment.scheduled_at,
                appointment.end_at(default_duration_minutes),
            )
            for appointment in others
        )
        slots.append(
            TimeSlot(
                start=cursor,
                end=slot_end,
                busy=busy,
                past=cursor < now,
                current=cursor <= now < slot_end,
            )
        )
        cursor = slot_end
    return slots
