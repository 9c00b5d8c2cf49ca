from __future__ import annotations

from datetime import datetime

import pytest

from src.domain.algorithms.progress import ProgressTracker
from src.domain.exceptions import InvalidPositionReport
from src.domain.models import (
    Direction,
    PositionReport,
    TrackingPhase,
    TransitRoute,
    VehicleTrackState,
)


def _tracker(route: TransitRoute | None) -> ProgressTracker:
    return ProgressTracker(VehicleTrackState(vehicle_id="bus-1", route=route))


def _ids(stops) -> list[str]:
    return [s.id for s in stops]


def test_first_report_at_first_stop_reads_as_finished_reverse_run(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)

    tracker.apply(make_report(0.0))

    progress = tracker.current_progress()
    assert progress.direction is Direction.REVERSE
    assert progress.phase is TrackingPhase.COMPLETED
    assert progress.next_stop is None


def test_second_report_establishes_forward_direction(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.0))

    change = tracker.apply(make_report(0.016, seconds=60))

    progress = tracker.current_progress()
    assert change.direction_changed
    assert progress.direction is Direction.FORWARD
    assert progress.phase is TrackingPhase.TRACKING
    assert progress.next_stop is not None and progress.next_stop.id == "C"
    assert _ids(progress.passed_stops) == ["A", "B"]
    assert _ids(progress.remaining_stops) == ["C", "D"]


def test_reapplying_the_same_report_is_a_no_op(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.004))
    tracker.apply(make_report(0.016, seconds=60))
    before = tracker.current_progress()

    change = tracker.apply(make_report(0.016, seconds=60))

    assert not change.any
    assert tracker.current_progress() == before


def test_next_stop_never_moves_backwards_within_a_run(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.004))
    indices = []
    for i, lon in enumerate([0.012, 0.016, 0.026, 0.0265, 0.029]):
        tracker.apply(make_report(lon, seconds=60 * (i + 1)))
        indices.append(tracker.state.next_stop_index)
        assert tracker.current_progress().direction is Direction.FORWARD

    assert indices == sorted(indices)
    assert tracker.current_progress().next_stop.id == "D"


def test_vehicle_past_last_stop_completes_the_run(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.016))
    tracker.apply(make_report(0.075, seconds=300))

    progress = tracker.current_progress()
    assert progress.phase is TrackingPhase.COMPLETED
    assert progress.next_stop is None
    assert progress.remaining_stops == ()


def test_reaching_last_stop_within_threshold_completes(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.016))
    tracker.apply(make_report(0.0301, seconds=120))

    assert tracker.current_progress().phase is TrackingPhase.COMPLETED


def test_turnaround_after_completion_starts_a_new_run(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.016))
    tracker.apply(make_report(0.0301, seconds=120))

    tracker.apply(make_report(0.024, seconds=240))

    progress = tracker.current_progress()
    assert progress.direction is Direction.REVERSE
    assert progress.phase is TrackingPhase.TRACKING
    assert progress.next_stop.id == "C"
    assert _ids(progress.passed_stops) == ["D"]


def test_short_backward_jump_keeps_established_direction(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.016))
    tracker.apply(make_report(0.017, seconds=6))

    # ~50 m back: beyond the noise floor, short of a turnaround.
    change = tracker.apply(make_report(0.01655, seconds=12))

    progress = tracker.current_progress()
    assert not change.direction_changed
    assert progress.direction is Direction.FORWARD
    assert progress.next_stop.id == "C"

    tracker.apply(make_report(0.018, seconds=18))
    assert tracker.current_progress().direction is Direction.FORWARD
    assert tracker.state.pending_direction is Direction.UNKNOWN


def test_repeated_backward_moves_confirm_a_turnaround(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.016))
    tracker.apply(make_report(0.017, seconds=6))
    tracker.apply(make_report(0.01655, seconds=12))

    change = tracker.apply(make_report(0.0161, seconds=18))

    progress = tracker.current_progress()
    assert change.direction_changed
    assert progress.direction is Direction.REVERSE
    assert progress.next_stop.id == "B"


def test_long_backward_move_flips_direction_at_once(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.016))
    tracker.apply(make_report(0.017, seconds=6))

    # ~170 m back in one fix.
    tracker.apply(make_report(0.0155, seconds=30))

    assert tracker.current_progress().direction is Direction.REVERSE


@pytest.mark.parametrize(
    "kwargs",
    [
        {"lat": 91.0, "lon": 0.0},
        {"lat": 0.0, "lon": -181.0},
        {"lat": float("nan"), "lon": 0.0},
        {"lat": 0.0, "lon": 0.0, "speed_kmh": -1.0},
        {"lat": 0.0, "lon": 0.0, "heading_deg": 400.0},
    ],
)
def test_invalid_reports_are_rejected_without_mutation(
    route_abcd: TransitRoute, make_report, kwargs
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.016))
    before = tracker.current_progress()
    position = tracker.state.current_position

    good = make_report(0.0, seconds=60)
    bad = PositionReport(
        vehicle_id=good.vehicle_id, timestamp=good.timestamp, **kwargs
    )
    with pytest.raises(InvalidPositionReport):
        tracker.apply(bad)

    assert tracker.current_progress() is before
    assert tracker.state.current_position == position


def test_out_of_order_report_is_rejected(route_abcd: TransitRoute, make_report) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.016, seconds=60))

    with pytest.raises(InvalidPositionReport):
        tracker.apply(make_report(0.018, seconds=30))
    assert tracker.state.current_position.lon == 0.016


def test_naive_timestamp_is_rejected(route_abcd: TransitRoute) -> None:
    tracker = _tracker(route_abcd)
    report = PositionReport(
        vehicle_id="bus-1", lat=0.0, lon=0.01, timestamp=datetime(2026, 3, 2, 8, 0)
    )
    with pytest.raises(InvalidPositionReport):
        tracker.apply(report)


def test_offline_then_new_report_starts_from_scratch(
    route_abcd: TransitRoute, make_report
) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.004))
    tracker.apply(make_report(0.016, seconds=60))
    assert tracker.current_progress().direction is Direction.FORWARD

    tracker.mark_offline()
    offline = tracker.current_progress()
    assert offline.phase is TrackingPhase.OFFLINE
    assert offline.direction is Direction.UNKNOWN
    assert tracker.state.current_position is None

    # Older than the pre-offline fix: accepted because history was dropped.
    tracker.apply(make_report(0.004, seconds=30))
    progress = tracker.current_progress()
    assert progress.phase is TrackingPhase.TRACKING
    assert progress.direction is Direction.REVERSE
    assert progress.next_stop.id == "A"


def test_tracker_without_route_only_records_position(make_report) -> None:
    tracker = _tracker(None)

    tracker.apply(make_report(0.01))

    assert tracker.state.current_position is not None
    assert tracker.state.last_seen_at is not None
    assert tracker.current_progress().phase is TrackingPhase.UNINITIALIZED


def test_attach_route_is_idempotent(route_abcd: TransitRoute, make_report) -> None:
    tracker = _tracker(None)
    tracker.attach_route(route_abcd)
    other = TransitRoute(id="R2", stops=route_abcd.stops[:2])
    tracker.attach_route(other)

    assert tracker.state.route is route_abcd


def test_progress_reads_are_cached(route_abcd: TransitRoute, make_report) -> None:
    tracker = _tracker(route_abcd)
    tracker.apply(make_report(0.016))

    assert tracker.current_progress() is tracker.current_progress()
