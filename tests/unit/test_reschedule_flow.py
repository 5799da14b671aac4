"""
Tests for the reschedule/booking validation state machine.
"""

from datetime import date, time
from zoneinfo import ZoneInfo

import pytest
from conftest import at, make_appointment

from localedge.scheduling.conflicts import ConflictCandidate, find_conflicts
from localedge.scheduling.flow import (
    FlowState,
    InvalidTransitionError,
    RescheduleFlow,
    local_day_bounds,
    resolve_drop_start,
)


def _dropped_flow(candidate=None) -> RescheduleFlow:
    flow = RescheduleFlow("5")
    flow.start_drag()
    flow.drop(candidate or ConflictCandidate(start=at(10), duration_minutes=30, exclude_id="5"))
    return flow


def test_clean_drop_goes_straight_to_committing():
    """No conflicts means no prompt."""
    flow = _dropped_flow()

    assert flow.evaluate([]) == FlowState.COMMITTING
    assert flow.in_flight

    flow.mark_committed()
    assert flow.state == FlowState.COMMITTED
    assert not flow.in_flight


def test_conflicting_drop_waits_for_acknowledgement():
    existing = [make_appointment("9", at(10, 15), 30), make_appointment("8", at(9, 45), 30)]
    candidate = ConflictCandidate(start=at(10), duration_minutes=30, exclude_id="5")
    flow = _dropped_flow(candidate)

    state = flow.evaluate(find_conflicts(candidate, existing))

    assert state == FlowState.AWAITING_ACKNOWLEDGEMENT
    # Prompt lists conflicts by start time
    assert [appointment.id for appointment in flow.conflicts] == ["8", "9"]

    flow.acknowledge()
    assert flow.state == FlowState.COMMITTING


@pytest.mark.parametrize("stage", ["dragging", "dropped", "awaiting"])
def test_cancel_returns_to_idle_from_any_pre_commit_state(stage):
    flow = RescheduleFlow("5")
    flow.start_drag()
    if stage in ("dropped", "awaiting"):
        flow.drop(ConflictCandidate(start=at(10), duration_minutes=30))
    if stage == "awaiting":
        flow.evaluate([make_appointment("9", at(10), 30)])

    flow.cancel()

    assert flow.state == FlowState.IDLE
    assert flow.candidate is None
    assert flow.conflicts == []


def test_failed_commit_reverts_to_idle():
    flow = _dropped_flow()
    flow.evaluate([])

    flow.mark_failed()

    assert flow.state == FlowState.IDLE
    assert flow.candidate is None


def test_cannot_start_a_new_drag_while_committing():
    flow = _dropped_flow()
    flow.evaluate([])

    with pytest.raises(InvalidTransitionError) as exc_info:
        flow.start_drag()

    assert exc_info.value.state == FlowState.COMMITTING


def test_cannot_cancel_while_committing():
    flow = _dropped_flow()
    flow.evaluate([])

    with pytest.raises(InvalidTransitionError):
        flow.cancel()


def test_acknowledge_requires_a_prompt():
    flow = _dropped_flow()

    with pytest.raises(InvalidTransitionError):
        flow.acknowledge()


def test_card_can_be_dragged_again_after_commit():
    flow = _dropped_flow()
    flow.evaluate([])
    flow.mark_committed()

    flow.start_drag()

    assert flow.state == FlowState.DRAGGING


def test_drop_keeps_original_local_time_of_day():
    tz = ZoneInfo("Asia/Jerusalem")
    # 07:30 UTC on Jan 15 is 09:30 in Jerusalem
    new_start = resolve_drop_start(at(7, 30), date(2025, 1, 20), tz)

    assert new_start.tzinfo == tz
    assert (new_start.date(), new_start.time()) == (date(2025, 1, 20), time(9, 30))


def test_drop_target_time_wins():
    tz = ZoneInfo("UTC")

    new_start = resolve_drop_start(at(7, 30), date(2025, 1, 20), tz, time(16, 0))

    assert new_start == at(16, 0, day=20)


def test_local_day_bounds_are_half_open():
    tz = ZoneInfo("Asia/Jerusalem")
    start, end = local_day_bounds(date(2025, 1, 15), tz)

    assert start == at(22, 0, day=14)
    assert end == at(22, 0, day=15)
