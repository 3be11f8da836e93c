# tests/test_stages.py

import pytest
from datetime import datetime, timezone

from errors import OutOfOrderTransitionError
from journey.stages import track_stage_transitions, compute_sales_cycle_days, current_stage
from models import StatusChange

START = datetime(2025, 3, 1, 8, 5, tzinfo=timezone.utc)
WON = ["customer", "closed-won", "closed_won", "won"]


def _change(to_status, day, hour=0, from_status=None):
    return StatusChange(
        to_status=to_status,
        changed_at=datetime(2025, 3, day, hour, tzinfo=timezone.utc),
        from_status=from_status,
    )


class TestTrackStageTransitions:

    def test_no_changes(self):
        assert track_stage_transitions([], START) == []

    def test_first_transition_measured_from_journey_start(self):
        transitions = track_stage_transitions([_change("qualified", 3, 8)], START)

        assert len(transitions) == 1
        assert transitions[0].from_stage == "lead"
        assert transitions[0].to_stage == "qualified"
        # 2 jours moins 5 minutes
        assert transitions[0].days_in_stage == 2.0

    def test_from_stage_chains_previous_to_stage(self):
        transitions = track_stage_transitions([
            _change("qualified", 2, from_status="new"),
            _change("customer", 4, from_status="ignored"),
        ], START)

        assert transitions[0].from_stage == "new"
        assert transitions[1].from_stage == "qualified"
        assert transitions[1].days_in_stage == 2.0

    def test_without_start_days_is_zero(self):
        transitions = track_stage_transitions([_change("qualified", 2)], None)
        assert transitions[0].days_in_stage == 0.0

    def test_change_before_start_is_clamped(self):
        transitions = track_stage_transitions([_change("qualified", 1, 0)], START)
        assert transitions[0].days_in_stage == 0.0

    def test_out_of_order_raises(self):
        with pytest.raises(OutOfOrderTransitionError) as exc:
            track_stage_transitions([
                _change("qualified", 4),
                _change("customer", 2),
            ], START)

        assert exc.value.index == 1
        assert exc.value.code == "OUT_OF_ORDER_TRANSITION"

    def test_same_timestamp_is_accepted(self):
        transitions = track_stage_transitions([
            _change("qualified", 3),
            _change("customer", 3),
        ], START)
        assert transitions[1].days_in_stage == 0.0


class TestSalesCycle:

    def test_days_to_first_won_status(self):
        transitions = track_stage_transitions([
            _change("qualified", 2, 8),
            _change("Customer", 6, 8),
        ], START)

        assert compute_sales_cycle_days(transitions, START, WON) == 5.0

    def test_never_won(self):
        transitions = track_stage_transitions([_change("qualified", 2)], START)
        assert compute_sales_cycle_days(transitions, START, WON) is None

    def test_without_first_touch(self):
        transitions = track_stage_transitions([_change("won", 2)], None)
        assert compute_sales_cycle_days(transitions, None, WON) is None


def test_current_stage():
    transitions = track_stage_transitions([_change("qualified", 2)], START)

    assert current_stage(transitions, "lead") == "qualified"
    assert current_stage([], "lead") == "lead"
    assert current_stage([], "") == "unknown"
