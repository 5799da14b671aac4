"""
Reschedule/booking validation state machine.

    idle -> dragging -> dropped -> committing -> committed
                           |          ^
                           v          |
                awaiting_acknowledgement

`cancel()` from any pre-commit state returns to idle without persisting
anything. `mark_failed()` reverts a failed commit to idle so the card snaps
back to its original slot.
"""

from collections.abc import Sequence
from datetime import date, datetime, time, timedelta
from enum import Enum
from zoneinfo import ZoneInfo

from localedge.models.domain.appointment_domain import Appointment
from localedge.scheduling.conflicts import ConflictCandidate, sort_conflicts


class FlowState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    DROPPED = "dropped"
    AWAITING_ACKNOWLEDGEMENT = "awaiting_acknowledgement"
    COMMITTING = "committing"
    COMMITTED = "committed"


class InvalidTransitionError(RuntimeError):
    """Raised when an operation is not allowed from the current state."""

    def __init__(self, operation: str, state: FlowState):
        super().__init__(f"Cannot {operation} while {state.value}")
        self.operation = operation
        self.state = state


_CANCELLABLE = frozenset(
    {FlowState.DRAGGING, FlowState.DROPPED, FlowState.AWAITING_ACKNOWLEDGEMENT}
)


class RescheduleFlow:
    """Tracks one appointment move from drag start to commit."""

    def __init__(self, appointment_id: str | None = None):
        self.appointment_id = appointment_id
        self.state = FlowState.IDLE
        self.candidate: ConflictCandidate | None = None
        self.conflicts: list[Appointment] = []

    def _require(self, operation: str, *allowed: FlowState) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(operation, self.state)

    def _reset(self) -> None:
        self.state = FlowState.IDLE
        self.candidate = None
        self.conflicts = []

    def start_drag(self) -> None:
        # A card with an in-flight commit cannot be picked up again
        self._require("start drag", FlowState.IDLE, FlowState.COMMITTED)
        self.candidate = None
        self.conflicts = []
        self.state = FlowState.DRAGGING

    def drop(self, candidate: ConflictCandidate) -> None:
        self._require("drop", FlowState.DRAGGING)
        self.candidate = candidate
        self.state = FlowState.DROPPED

    def evaluate(self, conflicts: Sequence[Appointment]) -> FlowState:
        """Feed detector output. Returns the resulting state."""
        self._require("evaluate", FlowState.DROPPED)
        if conflicts:
            self.conflicts = sort_conflicts(conflicts)
            self.state = FlowState.AWAITING_ACKNOWLEDGEMENT
        else:
            self.conflicts = []
            self.state = FlowState.COMMITTING
        return self.state

    def acknowledge(self) -> None:
        self._require("acknowledge", FlowState.AWAITING_ACKNOWLEDGEMENT)
        self.state = FlowState.COMMITTING

    def cancel(self) -> None:
        if self.state not in _CANCELLABLE:
            raise InvalidTransitionError("cancel", self.state)
        self._reset()

    def mark_committed(self) -> None:
        self._require("mark committed", FlowState.COMMITTING)
        self.state = FlowState.COMMITTED

    def mark_failed(self) -> None:
        self._require("mark failed", FlowState.COMMITTING)
        self._reset()

    @property
    def in_flight(self) -> bool:
        return self.state == FlowState.COMMITTING


def resolve_drop_start(
    original_start: datetime,
    target_date: date,
    tz: ZoneInfo,
    target_time: time | None = None,
) -> datetime:
    """
    New start for a dropped card.

    Keeps the original business-local time of day unless the drop target
    carries its own time.
    """
    local_original = original_start.astimezone(tz)
    wall_time = target_time or local_original.time()
    return datetime.combine(target_date, wall_time, tzinfo=tz)


def local_day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC-comparable [start, end) of a business-local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    return start, datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
