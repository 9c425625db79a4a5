import pytest

from clock import days_between, next_midnight, week_start
from gamification import (
    cumulative_xp_for_level,
    level_from_total_xp,
    milestone_reward,
    next_streak,
    next_streak_milestone,
    streak_multiplier,
    xp_progress,
    xp_required_for_level,
    xp_to_next_level,
)

TODAY = "2026-03-12"


class TestLevelCurve:
    def test_step_requirements(self):
        assert xp_required_for_level(1) == 1000
        assert xp_required_for_level(2) == 1100
        assert xp_required_for_level(3) == 1210

    def test_level_boundaries(self):
        assert level_from_total_xp(0) == 1
        assert level_from_total_xp(999) == 1
        assert level_from_total_xp(1000) == 2
        assert level_from_total_xp(2099) == 2
        assert level_from_total_xp(2100) == 3

    def test_level_below_one_is_an_error(self):
        with pytest.raises(ValueError):
            xp_required_for_level(0)

    @pytest.mark.parametrize("base, growth", [(0, 1.1), (1000, 0.5), (-5, 1.0)])
    def test_curve_without_positive_steps_is_an_error(self, base, growth):
        with pytest.raises(ValueError):
            level_from_total_xp(5000, base, growth)

    def test_monotonic_under_credit(self):
        previous = level_from_total_xp(0)
        for xp in range(0, 20_000, 37):
            level = level_from_total_xp(xp)
            assert level >= previous
            previous = level

    def test_cumulative_and_remaining(self):
        assert cumulative_xp_for_level(1) == 0
        assert cumulative_xp_for_level(3) == 2100
        assert xp_to_next_level(0) == 1000
        assert xp_to_next_level(1500) == 600

    def test_progress_inside_level(self):
        progress = xp_progress(1550)
        assert progress["level"] == 2
        assert progress["level_xp"] == 550
        assert progress["needed_xp"] == 1100
        assert progress["progress"] == pytest.approx(50.0)
        assert progress["xp_to_next"] == 550

    def test_custom_curve(self):
        assert xp_required_for_level(2, base=100, growth=2.0) == 200
        assert level_from_total_xp(300, base=100, growth=2.0) == 3


class TestNextStreak:
    def test_yesterday_extends(self):
        result = next_streak(5, "2026-03-11", TODAY)
        assert (result.value, result.broken, result.continued) == (6, False, True)

    def test_same_day_is_idempotent(self):
        result = next_streak(5, TODAY, TODAY)
        assert (result.value, result.broken, result.continued) == (5, False, True)

    def test_gap_restarts_at_one(self):
        result = next_streak(5, "2026-03-09", TODAY)
        assert (result.value, result.broken, result.continued) == (1, True, False)
        assert result.days_inactive == 3

    def test_first_activity(self):
        result = next_streak(0, "", TODAY)
        assert (result.value, result.broken, result.continued) == (1, False, False)

    def test_idle_two_days_does_not_continue(self):
        result = next_streak(3, "2026-03-09", TODAY)
        assert result.value == 1
        assert result.broken

    def test_clock_moved_back_keeps_streak(self):
        result = next_streak(4, "2026-03-14", TODAY)
        assert (result.value, result.broken) == (4, False)

    def test_timestamps_are_reduced_to_dates(self):
        result = next_streak(2, "2026-03-11T23:59:00", "2026-03-12T00:01:00")
        assert result.value == 3


def test_streak_multiplier_steps():
    assert streak_multiplier(0) == 1.0
    assert streak_multiplier(3) == 1.1
    assert streak_multiplier(7) == 1.2
    assert streak_multiplier(30) == 1.5
    assert streak_multiplier(400) == 3.0


def test_milestones():
    assert milestone_reward(2) is None
    assert milestone_reward(7)["badge"] == "week_warrior"
    assert milestone_reward(100)["title"] == "Century Master"
    assert next_streak_milestone(0) == 1
    assert next_streak_milestone(7) == 14
    assert next_streak_milestone(5000) == 2000


def test_calendar_helpers():
    from datetime import datetime

    assert days_between("2026-03-12", "2026-03-10") == 0
    assert days_between("2026-03-10", "2026-03-12") == 2
    assert week_start("2026-03-15") == "2026-03-09"
    assert week_start("2026-03-16") == "2026-03-16"
    assert next_midnight(datetime(2026, 12, 31, 18, 30)) == datetime(2027, 1, 1)
