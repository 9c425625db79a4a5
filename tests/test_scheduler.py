from datetime import datetime, timedelta

from models import (
    ActivatePowerUp,
    ActivePowerUp,
    PerformDailyReset,
    TaskRef,
)
from progression import apply, apply_intent, new_state
from scheduler import FRESH, STALE, overdue_penalty, reset_phase

WED_EVENING = datetime(2026, 3, 11, 20, 0)
THU_MORNING = datetime(2026, 3, 12, 9, 0)
FRI_MORNING = datetime(2026, 3, 13, 9, 0)


def _types(events):
    return [e.type for e in events]


def _idle_player(cfg, last_activity="2026-03-10", streak=3, xp=500):
    """Last active on ``last_activity``; session last reset Wednesday evening."""
    state = new_state(WED_EVENING, cfg)
    glob = state.streaks["global"]
    glob.current_streak = streak
    glob.longest_streak = streak
    glob.last_activity_date = last_activity
    state.ledger.current_xp = xp
    state.ledger.total_xp_earned = xp
    return state


class TestResetPhase:
    def test_same_day_is_fresh(self, cfg):
        state = new_state(WED_EVENING, cfg)
        assert reset_phase(state, WED_EVENING + timedelta(hours=3)) == FRESH

    def test_after_midnight_is_stale(self, cfg):
        state = new_state(WED_EVENING, cfg)
        assert reset_phase(state, datetime(2026, 3, 12, 0, 0, 1)) == STALE

    def test_clock_moved_back_stays_fresh(self, cfg):
        state = new_state(WED_EVENING, cfg)
        assert reset_phase(state, datetime(2026, 3, 10, 12, 0)) == FRESH


class TestDailyReset:
    def test_runs_once_per_day(self, cfg):
        state = _idle_player(cfg)
        first, events = apply(state, PerformDailyReset(), THU_MORNING, cfg)
        assert "daily_reset" in _types(events)

        second, events = apply(first, PerformDailyReset(), THU_MORNING + timedelta(hours=2), cfg)
        assert events == []
        assert second == first

    def test_inactivity_penalty(self, cfg):
        state = _idle_player(cfg)
        after, events = apply(state, PerformDailyReset(), THU_MORNING, cfg)

        assert after.streaks["global"].current_streak == 0
        assert after.streaks["global"].longest_streak == 3
        assert after.ledger.current_xp == 400
        assert after.ledger.total_xp_earned == 500
        assert after.health.current == 80
        assert _types(events)[:3] == ["streak_broken", "xp_lost", "penalty_applied"]
        assert events[2].data["kind"] == "inactivity"

    def test_one_day_gap_is_within_grace(self, cfg):
        state = _idle_player(cfg, last_activity="2026-03-11")
        after, events = apply(state, PerformDailyReset(), THU_MORNING, cfg)

        assert after.streaks["global"].current_streak == 3
        assert after.ledger.current_xp == 500
        assert "penalty_applied" not in _types(events)

    def test_inactivity_is_charged_once_per_gap(self, cfg):
        state = _idle_player(cfg)
        after, _ = apply(state, PerformDailyReset(), THU_MORNING, cfg)
        later, events = apply(after, PerformDailyReset(), FRI_MORNING, cfg)

        assert later.ledger.current_xp == 400
        assert later.health.current == 80
        assert "penalty_applied" not in _types(events)
        assert "daily_reset" in _types(events)

    def test_perfect_streak_shields_everything(self, cfg):
        state = _idle_player(cfg)
        state.active_power_ups.append(
            ActivePowerUp(id="pu-19", expires_at=WED_EVENING + timedelta(days=7))
        )
        overdue = TaskRef(id="t1", xp=200, due_date=WED_EVENING)

        after, events = apply(state, PerformDailyReset(tasks=[overdue]), THU_MORNING, cfg)

        assert after.streaks["global"].current_streak == 3
        assert after.ledger.current_xp == 500
        assert "shield_protected" in _types(events)
        assert "penalty_applied" not in _types(events)
        # perfect streak keeps running
        assert [p.id for p in after.active_power_ups] == ["pu-19"]

    def test_streak_shield_is_consumed(self, cfg):
        state = _idle_player(cfg)
        state.active_power_ups.append(
            ActivePowerUp(id="pu-6", expires_at=WED_EVENING + timedelta(hours=20))
        )
        after, events = apply(state, PerformDailyReset(), THU_MORNING, cfg)

        assert after.streaks["global"].current_streak == 3
        assert after.ledger.current_xp == 500
        assert events[0].type == "shield_protected"
        assert events[0].data["consumed"] == "pu-6"
        assert events[1].type == "power_up_expired"
        assert events[1].data["id"] == "pu-6"
        assert after.active_power_ups == []

    def test_streak_shield_does_not_cover_overdue_tasks(self, cfg):
        state = _idle_player(cfg, last_activity="2026-03-11")
        state.active_power_ups.append(
            ActivePowerUp(id="pu-6", expires_at=WED_EVENING + timedelta(hours=20))
        )
        overdue = TaskRef(id="t1", xp=200, due_date=WED_EVENING)

        after, events = apply(state, PerformDailyReset(tasks=[overdue]), THU_MORNING, cfg)

        assert after.ledger.current_xp == 480
        assert "penalty_applied" in _types(events)

    def test_stream_streaks_break_on_their_own_gap(self, cfg):
        state = _idle_player(cfg, last_activity="2026-03-11")
        coding = state.streaks["coding"]
        coding.current_streak = 4
        coding.last_activity_date = "2026-03-08"
        task = state.streaks["task"]
        task.current_streak = 2
        task.last_activity_date = "2026-03-11"

        after, _ = apply(state, PerformDailyReset(), THU_MORNING, cfg)

        assert after.streaks["coding"].current_streak == 0
        assert after.streaks["task"].current_streak == 2
        assert after.streaks["global"].current_streak == 3


class TestOverdue:
    def test_penalty_rounding_and_cap(self, cfg):
        assert overdue_penalty(TaskRef(id="a", xp=25), cfg) == 3
        assert overdue_penalty(TaskRef(id="b", xp=15), cfg) == 2
        assert overdue_penalty(TaskRef(id="c", xp=200), cfg) == 20
        assert overdue_penalty(TaskRef(id="d", xp=5000), cfg) == 50

    def test_overdue_tasks_are_charged_once(self, cfg):
        state = _idle_player(cfg, last_activity="2026-03-11")
        tasks = [
            TaskRef(id="t1", xp=200, due_date=WED_EVENING),
            TaskRef(id="t2", xp=1000, due_date=WED_EVENING),
            TaskRef(id="t3", xp=300, due_date=WED_EVENING, completed=True),
            TaskRef(id="t4", xp=300, due_date=FRI_MORNING + timedelta(days=1)),
        ]

        after, events = apply(state, PerformDailyReset(tasks=tasks), THU_MORNING, cfg)
        penalty = [e for e in events if e.type == "penalty_applied"][0]

        assert after.ledger.current_xp == 430
        assert after.health.current == 95
        assert penalty.data["tasks"] == ["t1", "t2"]
        assert sorted(after.penalized_task_ids) == ["t1", "t2"]

        after.streaks["global"].last_activity_date = "2026-03-12"
        later, events = apply(after, PerformDailyReset(tasks=tasks), FRI_MORNING, cfg)
        assert later.ledger.current_xp == 430
        assert "penalty_applied" not in _types(events)

    def test_penalty_never_drives_xp_negative(self, cfg):
        state = _idle_player(cfg, last_activity="2026-03-11", xp=10)
        tasks = [TaskRef(id="t1", xp=5000, due_date=WED_EVENING)]
        after, _ = apply(state, PerformDailyReset(tasks=tasks), THU_MORNING, cfg)
        assert after.ledger.current_xp == 0

    def test_utc_due_date_from_client(self, cfg):
        # JSON clients send ``toISOString()`` values
        task = TaskRef.model_validate(
            {"id": "t1", "xp": 200, "due_date": "2026-03-11T10:00:00.000Z"}
        )
        assert task.due_date.tzinfo is None

        state = _idle_player(cfg, last_activity="2026-03-11")
        outcome = apply_intent(state, PerformDailyReset(tasks=[task]), THU_MORNING, cfg)

        assert outcome.applied
        assert "penalty_applied" in _types(outcome.events)
        assert outcome.state.penalized_task_ids == ["t1"]


class TestCounters:
    def test_daily_counters_reset(self, cfg):
        state = new_state(WED_EVENING, cfg)
        state.counters.problems_today = 4
        state.counters.tasks_today = 2
        state.counters.xp_today = 300
        state.counters.total_solved = 40

        after, events = apply(state, PerformDailyReset(), THU_MORNING, cfg)

        assert after.counters.problems_today == 0
        assert after.counters.tasks_today == 0
        assert after.counters.xp_today == 0
        assert after.counters.total_solved == 40
        daily = [e for e in events if e.type == "daily_reset"][0]
        assert daily.data["yesterday"] == {"problems": 4, "tasks": 2, "xp": 300}
        assert after.daily_reset.last_reset_date == "2026-03-12"
        assert after.daily_reset.next_reset_time == datetime(2026, 3, 13)
        assert after.daily_reset.reset_countdown == 15 * 3600

    def test_weekly_counters_reset_on_new_week(self, cfg):
        sunday = datetime(2026, 3, 15, 20, 0)
        state = new_state(sunday, cfg)
        state.counters.weekly_progress = 7
        state.counters.weekly_xp = 900

        monday, events = apply(state, PerformDailyReset(), datetime(2026, 3, 16, 8, 0), cfg)
        assert "weekly_reset" in _types(events)
        assert monday.counters.weekly_progress == 0
        assert monday.counters.weekly_xp == 0
        assert monday.last_weekly_reset == "2026-03-16"

        monday.counters.weekly_progress = 2
        tuesday, events = apply(monday, PerformDailyReset(), datetime(2026, 3, 17, 8, 0), cfg)
        assert "weekly_reset" not in _types(events)
        assert tuesday.counters.weekly_progress == 2

    def test_expired_power_ups_are_swept(self, cfg):
        state = new_state(WED_EVENING, cfg)
        state.active_power_ups.append(
            ActivePowerUp(id="pu-1", expires_at=WED_EVENING + timedelta(minutes=30))
        )
        after, events = apply(state, PerformDailyReset(), THU_MORNING, cfg)
        assert after.active_power_ups == []
        assert "power_up_expired" in _types(events)


class TestTimeFreeze:
    def test_postpones_the_reset(self, cfg):
        late = datetime(2026, 3, 11, 22, 0)
        state = new_state(late, cfg)
        state.owned_power_ups["pu-11"] = 1

        frozen, events = apply(state, ActivatePowerUp(power_up_id="pu-11"), late, cfg)
        assert "time_frozen" in _types(events)
        assert frozen.daily_reset.next_reset_time == datetime(2026, 3, 12, 6, 0)

        outcome = apply_intent(frozen, PerformDailyReset(), datetime(2026, 3, 12, 1, 0), cfg)
        assert outcome.applied
        assert outcome.events == []

        after, events = apply(frozen, PerformDailyReset(), datetime(2026, 3, 12, 6, 0), cfg)
        assert "daily_reset" in _types(events)
        assert after.daily_reset.next_reset_time == datetime(2026, 3, 13)
