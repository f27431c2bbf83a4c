import pytest

from src.exceptions import ValidationError
from src.goals.pacer import (
    DAY_SECONDS,
    WEEK_SECONDS,
    GoalPacer,
    GoalState,
    Urgency,
    UrgencyThresholds,
    expected_return,
)

T0 = 1_700_000_000.0


def make_pacer(target: float = 0.05, start: float = 10_000.0) -> GoalPacer:
    return GoalPacer.start(starting_value=start, weekly_target_return=target, now=T0)


def test_halfway_behind_target():
    pacer = make_pacer()
    progress = pacer.evaluate(T0 + 3.5 * DAY_SECONDS, 10_100.0)

    assert progress.expected_return == pytest.approx(0.025)
    assert progress.expected_value == pytest.approx(10_250.0)
    assert progress.actual_return == pytest.approx(0.01)
    assert progress.is_on_track is False
    assert progress.target_achieved is False
    assert progress.days_remaining == pytest.approx(3.5)
    assert progress.time_progress == pytest.approx(0.5)
    assert progress.urgency is Urgency.MEDIUM
    assert progress.progress_ratio == pytest.approx(0.4)
    assert progress.target_value == pytest.approx(10_500.0)


def test_on_track_and_target_met():
    pacer = make_pacer()

    on_track = pacer.evaluate(T0 + 1 * DAY_SECONDS, 10_200.0)
    assert on_track.is_on_track is True
    assert on_track.target_achieved is False

    met = pacer.evaluate(T0 + 2 * DAY_SECONDS, 10_600.0)
    assert met.target_achieved is True
    assert met.remaining_return == pytest.approx(-0.01)


def test_high_urgency_only_when_behind():
    pacer = make_pacer()
    late = T0 + 5.5 * DAY_SECONDS

    assert pacer.evaluate(late, 10_000.0).urgency is Urgency.HIGH
    # On track inside the high window falls through to MEDIUM
    assert pacer.evaluate(late, 10_500.0).urgency is Urgency.MEDIUM


def test_low_urgency_early_in_week():
    progress = make_pacer().evaluate(T0 + 1 * DAY_SECONDS, 9_000.0)
    assert progress.urgency is Urgency.LOW


def test_custom_thresholds():
    pacer = GoalPacer.start(
        starting_value=10_000.0,
        weekly_target_return=0.05,
        now=T0,
        thresholds=UrgencyThresholds(high_days=4.0, medium_days=6.0),
    )
    progress = pacer.evaluate(T0 + 3.5 * DAY_SECONDS, 10_000.0)
    assert progress.urgency is Urgency.HIGH


def test_rollover_after_seven_days():
    pacer = make_pacer()
    now = T0 + WEEK_SECONDS

    progress = pacer.evaluate(now, 10_300.0)

    assert progress.rolled_over is True
    assert pacer.state.week_start_timestamp == now
    assert pacer.state.starting_value == 10_300.0
    assert pacer.state.weekly_target_return == 0.05
    assert progress.actual_return == 0.0
    assert progress.time_progress == 0.0
    assert progress.days_remaining == pytest.approx(7.0)
    assert progress.urgency is Urgency.LOW


def test_no_rollover_before_seven_days():
    pacer = make_pacer()
    progress = pacer.evaluate(T0 + WEEK_SECONDS - 1, 10_300.0)

    assert progress.rolled_over is False
    assert pacer.state.week_start_timestamp == T0
    assert progress.days_remaining == pytest.approx(1 / DAY_SECONDS)


def test_expected_return_saturates():
    state = GoalState(starting_value=10_000.0, weekly_target_return=0.05, week_start_timestamp=T0)

    assert expected_return(state, T0 + 30 * DAY_SECONDS) == pytest.approx(0.05)
    assert expected_return(state, T0 - DAY_SECONDS) == 0.0


def test_clock_before_week_start_treated_as_start():
    progress = make_pacer().evaluate(T0 - 60.0, 10_000.0)

    assert progress.time_progress == 0.0
    assert progress.days_remaining == pytest.approx(7.0)
    assert progress.is_on_track is True


def test_zero_target_is_always_met():
    progress = make_pacer(target=0.0).evaluate(T0 + DAY_SECONDS, 10_000.0)
    assert progress.target_achieved is True
    assert progress.progress_ratio == 0.0


@pytest.mark.parametrize("starting_value", [0.0, -100.0])
def test_invalid_starting_value(starting_value):
    with pytest.raises(ValidationError):
        GoalState(
            starting_value=starting_value,
            weekly_target_return=0.05,
            week_start_timestamp=T0,
        )
