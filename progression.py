"""
Progression engine — the single ``apply(state, intent)`` entry point.

Every intent is a total function over a well-formed state: it either yields a
new snapshot plus the events to show, or it is rejected with a reason and the
caller's snapshot comes back untouched.  Nothing here raises for gameplay
input, so callers can retry any dispatch safely.

The input state is never mutated; handlers work on a deep copy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import boosts
from clock import as_local_naive, countdown_seconds, next_midnight, now_local, today_str, week_start, SECONDS_PER_DAY
from config import GameConfig
from energy import mood_for, regenerate, restore_energy, spend_energy
from gamification import (
    milestone_reward,
    next_streak,
    next_streak_milestone,
    xp_progress as _xp_progress,
    xp_required_for_level,
)
from ledger import adjust_hp, credit_xp, debit_xp, refresh_multiplier, round_half_up, sweep_power_ups
from models import (
    STREAMS,
    ActivatePowerUp,
    ActivePowerUp,
    ActivityCounters,
    BuyPowerUp,
    CompleteTask,
    ConvertXPToGold,
    CreditXP,
    DailyActivity,
    DailyResetState,
    DebitXP,
    EarnGold,
    EnergyState,
    ExpirePowerUp,
    GameEvent,
    HealthState,
    Intent,
    Mood,
    Outcome,
    PerformDailyReset,
    ProgressionState,
    RecordActivity,
    RestoreEnergy,
    SolveProblem,
    SpendEnergy,
    SpendGold,
    StreakState,
    Tick,
    XPLedger,
)
from scheduler import perform_daily_reset, refresh_countdown

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Rejected:
    reason: str


HandlerResult = list[GameEvent] | Rejected


# ──────────────────────────────────────────────────────────────
# Construction / persistence
# ──────────────────────────────────────────────────────────────

def new_state(now: datetime | None = None, cfg: GameConfig | None = None) -> ProgressionState:
    """A zeroed session starting at ``now``."""
    if cfg is None:
        cfg = GameConfig()
    now = as_local_naive(now or now_local())
    today = today_str(now)
    next_reset = next_midnight(now)

    return ProgressionState(
        ledger=XPLedger(xp_to_next_level=xp_required_for_level(1, cfg.level_base_xp, cfg.level_growth)),
        streaks={stream: StreakState(streak_start_date=today) for stream in STREAMS},
        daily_reset=DailyResetState(
            last_reset_date=today,
            next_reset_time=next_reset,
            reset_countdown=countdown_seconds(next_reset, now),
            has_reset_today=True,
        ),
        last_weekly_reset=week_start(today),
        energy=EnergyState(current=cfg.max_energy, max=cfg.max_energy, last_updated=now),
        health=HealthState(current=cfg.max_hp, max=cfg.max_hp),
        counters=ActivityCounters(weekly_target=cfg.weekly_problem_target),
    )


def to_snapshot(state: ProgressionState) -> dict:
    """Plain JSON-safe dict for the storage collaborator."""
    return state.model_dump(mode="json")


def from_snapshot(data: dict) -> ProgressionState:
    state = ProgressionState.model_validate(data)
    for stream in STREAMS:
        state.streaks.setdefault(stream, StreakState())
    return state


# ──────────────────────────────────────────────────────────────
# Activity & streaks
# ──────────────────────────────────────────────────────────────

def _record(
    state: ProgressionState,
    stream: str,
    kind: str,
    xp: int,
    minutes: int,
    now: datetime,
    cfg: GameConfig,
) -> list[GameEvent]:
    """
    Log activity on ``stream`` and advance its streak.

    Coding and task activity is mirrored into the global stream inside the
    same transition so the two logs cannot drift apart.
    """
    today = today_str(now)
    targets = [stream] if stream == "global" else [stream, "global"]
    events: list[GameEvent] = []

    for name in targets:
        streak = state.streaks[name]

        day = streak.daily_activity.setdefault(today, DailyActivity())
        if kind == "problem_solved":
            day.problems_solved += 1
        elif kind == "task_completed":
            day.tasks_completed += 1
        day.xp_earned += xp
        day.active_minutes += minutes
        day.last_activity_time = now

        before = streak.current_streak
        first = not streak.last_activity_date
        result = next_streak(before, streak.last_activity_date, today)

        streak.current_streak = result.value
        streak.longest_streak = max(streak.longest_streak, streak.current_streak)
        if first or result.broken:
            streak.streak_start_date = today
        if first or today > streak.last_activity_date:
            streak.last_activity_date = today

        if result.broken and before > 0:
            events.append(GameEvent(
                type="streak_broken",
                message=f"Your {before}-day {name} streak has been broken",
                data={"stream": name, "lost_streak": before, "days_inactive": result.days_inactive},
            ))
        if result.broken or streak.current_streak > before:
            started = first or result.broken or before == 0
            events.append(GameEvent(
                type="streak_started" if started else "streak_extended",
                message=(
                    f"New {name} streak started!" if started
                    else f"{streak.current_streak}-day {name} streak!"
                ),
                data={"stream": name, "streak": streak.current_streak},
            ))
            if name == "global":
                events.extend(_award_milestone(state, streak.current_streak, now, cfg))

    return events


def _award_milestone(
    state: ProgressionState,
    streak: int,
    now: datetime,
    cfg: GameConfig,
) -> list[GameEvent]:
    reward = milestone_reward(streak)
    if reward is None:
        return []
    events = [GameEvent(
        type="streak_milestone",
        message=f"{streak}-day streak milestone reached!",
        data=reward,
    )]
    _, xp_events = credit_xp(state, reward["xp"], 1.0, f"streak_milestone_{streak}", now, cfg)
    events.extend(xp_events)
    state.gold += reward["gold"]
    return events


# ──────────────────────────────────────────────────────────────
# Handlers
# ──────────────────────────────────────────────────────────────

def _on_credit_xp(state: ProgressionState, intent: CreditXP, now: datetime, cfg: GameConfig) -> HandlerResult:
    _, events = credit_xp(state, intent.amount, intent.multiplier, intent.source, now, cfg)
    return events


def _on_debit_xp(state: ProgressionState, intent: DebitXP, now: datetime, cfg: GameConfig) -> HandlerResult:
    _, events = debit_xp(state, intent.amount, intent.reason, cfg)
    return events


def _on_record_activity(state: ProgressionState, intent: RecordActivity, now: datetime, cfg: GameConfig) -> HandlerResult:
    return _record(state, intent.stream, intent.kind, intent.xp, intent.minutes, now, cfg)


def _on_complete_task(state: ProgressionState, intent: CompleteTask, now: datetime, cfg: GameConfig) -> HandlerResult:
    task = intent.task
    if task.completed:
        return Rejected(f"task {task.id} is already completed")

    credited, events = credit_xp(state, task.xp, 1.0, f'Completed "{task.title or task.id}"', now, cfg)
    events.extend(_record(state, "task", "task_completed", credited, 0, now, cfg))

    state.counters.tasks_today += 1
    state.counters.total_tasks += 1
    state.gold += cfg.task_gold_reward
    adjust_hp(state, cfg.task_hp_reward)
    events.append(GameEvent(
        type="gold_changed",
        message=f"+{cfg.task_gold_reward} gold",
        data={"amount": cfg.task_gold_reward, "gold": state.gold},
    ))
    return events


def _on_solve_problem(state: ProgressionState, intent: SolveProblem, now: datetime, cfg: GameConfig) -> HandlerResult:
    credited, events = credit_xp(state, intent.xp, 1.0, f"{intent.difficulty} problem", now, cfg)
    events.extend(_record(state, "coding", "problem_solved", credited, 1, now, cfg))

    counters = state.counters
    counters.problems_today += 1
    counters.weekly_progress += 1
    counters.total_solved += 1
    difficulty = intent.difficulty.lower()
    counters.difficulty_counts[difficulty] = counters.difficulty_counts.get(difficulty, 0) + 1
    if intent.platform:
        platform = intent.platform.lower()
        counters.platform_counts[platform] = counters.platform_counts.get(platform, 0) + 1
    if intent.topic:
        counters.topic_counts[intent.topic] = counters.topic_counts.get(intent.topic, 0) + 1
    return events


def _on_buy_power_up(state: ProgressionState, intent: BuyPowerUp, now: datetime, cfg: GameConfig) -> HandlerResult:
    meta = boosts.get_power_up(intent.power_up_id)
    if meta is None:
        return Rejected(f"unknown power-up {intent.power_up_id}")
    cost = meta.cost if intent.cost is None else intent.cost
    if state.gold < cost:
        return Rejected(f"insufficient gold: need {cost}, have {state.gold}")

    state.gold -= cost
    state.owned_power_ups[meta.id] = state.owned_power_ups.get(meta.id, 0) + 1
    return [GameEvent(
        type="power_up_purchased",
        message=f"Bought {meta.name}",
        data={"id": meta.id, "cost": cost, "owned": state.owned_power_ups[meta.id]},
    )]


def _on_activate_power_up(state: ProgressionState, intent: ActivatePowerUp, now: datetime, cfg: GameConfig) -> HandlerResult:
    meta = boosts.get_power_up(intent.power_up_id)
    if meta is None:
        return Rejected(f"unknown power-up {intent.power_up_id}")
    owned = state.owned_power_ups.get(meta.id, 0)
    if owned <= 0:
        return Rejected(f"no {meta.id} left to activate")

    state.owned_power_ups[meta.id] = owned - 1
    events: list[GameEvent] = []

    # ── Instant: consumed on the spot, never enters the active set ──
    if meta.is_instant:
        if meta.type == boosts.PowerUpType.ENERGY_BOOST:
            state.energy = regenerate(state.energy, state.streaks["global"].current_streak, now, cfg)
            amount = round_half_up(state.energy.max * meta.reward_energy_pct)
            state.energy = restore_energy(state.energy, amount, now)
            data = {"id": meta.id, "energy": amount}
        else:
            credited, xp_events = credit_xp(state, meta.reward_xp, 1.0, meta.name, now, cfg, apply_bonus=False)
            events.extend(xp_events)
            data = {"id": meta.id, "xp": credited}
        events.insert(0, GameEvent(type="instant_reward", message=f"{meta.name} used", data=data))
        return events

    # ── Timed ──
    expires_at = now + timedelta(minutes=meta.duration)
    state.active_power_ups.append(ActivePowerUp(id=meta.id, expires_at=expires_at))
    refresh_multiplier(state, now)
    events.append(GameEvent(
        type="power_up_activated",
        message=f"{meta.name} activated",
        data={
            "id": meta.id,
            "expires_at": expires_at.isoformat(),
            "effective_multiplier": state.ledger.xp_multiplier,
        },
    ))

    if meta.type == boosts.PowerUpType.TIME_FREEZE:
        reset = state.daily_reset
        reset.next_reset_time = reset.next_reset_time + timedelta(minutes=meta.duration)
        refresh_countdown(state, now)
        events.append(GameEvent(
            type="time_frozen",
            message=f"Daily reset postponed by {meta.duration} minutes",
            data={"next_reset_time": reset.next_reset_time.isoformat()},
        ))
    return events


def _on_expire_power_up(state: ProgressionState, intent: ExpirePowerUp, now: datetime, cfg: GameConfig) -> HandlerResult:
    return sweep_power_ups(state, now, intent.power_up_id)


def _energy_event(before: int, after: int) -> list[GameEvent]:
    if before == after:
        return []
    delta = after - before
    return [GameEvent(
        type="energy_changed",
        message=f"{delta:+d} energy",
        data={"delta": delta, "energy": after},
    )]


def _on_restore_energy(state: ProgressionState, intent: RestoreEnergy, now: datetime, cfg: GameConfig) -> HandlerResult:
    state.energy = regenerate(state.energy, state.streaks["global"].current_streak, now, cfg)
    before = state.energy.current
    state.energy = restore_energy(state.energy, intent.amount, now)
    return _energy_event(before, state.energy.current)


def _on_spend_energy(state: ProgressionState, intent: SpendEnergy, now: datetime, cfg: GameConfig) -> HandlerResult:
    state.energy = regenerate(state.energy, state.streaks["global"].current_streak, now, cfg)
    before = state.energy.current
    state.energy = spend_energy(state.energy, intent.amount, now)
    return _energy_event(before, state.energy.current)


def _on_earn_gold(state: ProgressionState, intent: EarnGold, now: datetime, cfg: GameConfig) -> HandlerResult:
    state.gold += intent.amount
    return [GameEvent(
        type="gold_changed",
        message=f"+{intent.amount} gold",
        data={"amount": intent.amount, "gold": state.gold, "source": intent.source},
    )]


def _on_spend_gold(state: ProgressionState, intent: SpendGold, now: datetime, cfg: GameConfig) -> HandlerResult:
    if state.gold < intent.amount:
        return Rejected(f"insufficient gold: need {intent.amount}, have {state.gold}")
    state.gold -= intent.amount
    return [GameEvent(
        type="gold_changed",
        message=f"-{intent.amount} gold",
        data={"amount": -intent.amount, "gold": state.gold, "item": intent.item},
    )]


def _on_convert_xp_to_gold(state: ProgressionState, intent: ConvertXPToGold, now: datetime, cfg: GameConfig) -> HandlerResult:
    xp_cost = intent.amount * cfg.xp_per_gold
    if state.ledger.current_xp < xp_cost:
        return Rejected(f"insufficient XP: need {xp_cost}, have {state.ledger.current_xp}")

    _, events = debit_xp(state, xp_cost, "converted to gold", cfg)
    state.gold += intent.amount
    events.append(GameEvent(
        type="gold_changed",
        message=f"+{intent.amount} gold",
        data={"amount": intent.amount, "gold": state.gold, "xp_cost": xp_cost},
    ))
    return events


def _on_perform_daily_reset(state: ProgressionState, intent: PerformDailyReset, now: datetime, cfg: GameConfig) -> HandlerResult:
    return perform_daily_reset(state, intent.tasks, now, cfg)


def _on_tick(state: ProgressionState, intent: Tick, now: datetime, cfg: GameConfig) -> HandlerResult:
    """
    One polling pass: expiry sweep, day boundary, passive energy, countdown.

    Everything is derived from ``now`` against stored timestamps, so ticks
    may arrive at any cadence (or not at all while the app is closed).
    """
    events = sweep_power_ups(state, now)
    events.extend(perform_daily_reset(state, intent.tasks, now, cfg))
    state.energy = regenerate(state.energy, state.streaks["global"].current_streak, now, cfg)
    refresh_countdown(state, now)
    return events


_HANDLERS: dict[str, Callable[..., HandlerResult]] = {
    "credit_xp": _on_credit_xp,
    "debit_xp": _on_debit_xp,
    "record_activity": _on_record_activity,
    "complete_task": _on_complete_task,
    "solve_problem": _on_solve_problem,
    "buy_power_up": _on_buy_power_up,
    "activate_power_up": _on_activate_power_up,
    "expire_power_up": _on_expire_power_up,
    "restore_energy": _on_restore_energy,
    "spend_energy": _on_spend_energy,
    "earn_gold": _on_earn_gold,
    "spend_gold": _on_spend_gold,
    "convert_xp_to_gold": _on_convert_xp_to_gold,
    "perform_daily_reset": _on_perform_daily_reset,
    "tick": _on_tick,
}


# ──────────────────────────────────────────────────────────────
# Entry points
# ──────────────────────────────────────────────────────────────

def apply_intent(
    state: ProgressionState,
    intent: Intent,
    now: datetime | None = None,
    cfg: GameConfig | None = None,
) -> Outcome:
    """Apply ``intent`` and report whether it was applied or rejected."""
    if cfg is None:
        cfg = GameConfig()
    now = as_local_naive(now or now_local())

    work = state.model_copy(deep=True)
    result = _HANDLERS[intent.type](work, intent, now, cfg)

    if isinstance(result, Rejected):
        logger.info(f"Rejected {intent.type}: {result.reason}")
        return Outcome(state=state, events=[], status="rejected", reason=result.reason)
    return Outcome(state=work, events=result)


def apply(
    state: ProgressionState,
    intent: Intent,
    now: datetime | None = None,
    cfg: GameConfig | None = None,
) -> tuple[ProgressionState, list[GameEvent]]:
    """apply(state, intent) → (state', events)"""
    outcome = apply_intent(state, intent, now, cfg)
    return outcome.state, outcome.events


# ──────────────────────────────────────────────────────────────
# Selectors (read-only)
# ──────────────────────────────────────────────────────────────

def effective_multiplier(state: ProgressionState, now: datetime | None = None) -> float:
    return boosts.effective_multiplier(state.active_power_ups, now)


def days_until_reset(state: ProgressionState, now: datetime | None = None) -> float:
    """Fraction of a day until the next reset (uses the stored countdown without ``now``)."""
    if now is None:
        seconds = state.daily_reset.reset_countdown
    else:
        seconds = countdown_seconds(state.daily_reset.next_reset_time, now)
    return seconds / SECONDS_PER_DAY


def current_streak(state: ProgressionState, stream: str = "global") -> int:
    return state.streaks[stream].current_streak


def mood(state: ProgressionState) -> Mood:
    return mood_for(state.energy.current, state.energy.max)


def xp_progress(state: ProgressionState, cfg: GameConfig | None = None) -> dict:
    if cfg is None:
        cfg = GameConfig()
    return _xp_progress(state.ledger.current_xp, cfg.level_base_xp, cfg.level_growth)


def next_milestone(state: ProgressionState) -> int:
    return next_streak_milestone(current_streak(state))
