"""
Appointment conflict detection.

A candidate window ``[start, start + duration)`` conflicts with an existing
appointment when the two half-open intervals overlap. Appointments that merely
touch (one ends exactly when the other starts) do not conflict.

The detector is pure: it never touches storage, never mutates its input and
returns matches in the order they were given.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from localedge.models.domain.appointment_domain import Appointment

DEFAULT_DURATION_MINUTES = 60


class InvalidCandidateError(ValueError):
    """Raised when a candidate window cannot be checked."""


@dataclass(frozen=True)
class ConflictCandidate:
    """The window being booked or moved to."""

    start: datetime
    duration_minutes: int
    exclude_id: str | None = None

    def __post_init__(self):
        if self.start.tzinfo is None or self.start.utcoffset() is None:
            raise InvalidCandidateError("Candidate start must be timezone-aware")
        if isinstance(self.duration_minutes, bool) or not isinstance(self.duration_minutes, int):
            raise InvalidCandidateError("Candidate duration must be an integer number of minutes")
        if self.duration_minutes <= 0:
            raise InvalidCandidateError("Candidate duration must be positive")

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap."""
    return start_a < end_b and start_b < end_a


def find_conflicts(
    candidate: ConflictCandidate,
    existing: Iterable[Appointment],
    *,
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> list[Appointment]:
    """
    Return every non-cancelled appointment whose window overlaps the candidate.

    Args:
        candidate: Window being proposed
        existing: Appointments to check against (typically one business day)
        default_duration_minutes: Length assumed for appointments without a duration

    Returns:
        Conflicting appointments, in input order
    """
    start, end = candidate.start, candidate.end
    conflicts = []
    for appointment in existing:
        if appointment.is_cancelled:
            continue
        if candidate.exclude_id is not None and appointment.id == candidate.exclude_id:
            continue
        other_end = appointment.end_at(default_duration_minutes)
        if overlaps(start, end, appointment.scheduled_at, other_end):
            conflicts.append(appointment)
    return conflicts


def sort_conflicts(conflicts: Iterable[Appointment]) -> list[Appointment]:
    """Ascending by start time. Stable, so equal starts keep detector order."""
    return sorted(conflicts, key=lambda appointment: appointment.scheduled_at)


def describe_conflict(appointment: Appointment, tz: ZoneInfo) -> tuple[str, str, str | None]:
    """(local start time, display name, service type) for the acknowledgement prompt."""
    local_start = appointment.scheduled_at.astimezone(tz)
    return local_start.strftime("%H:%M"), appointment.display_name, appointment.service_type
