"""
Reset scheduler — daily / weekly boundary transitions and penalties.

Algorithm (one pass per calendar day):
  1. Skip unless the day is stale (date advanced and the reset time reached)
  2. Inactivity: a gap of more than one day since the last global activity
     zeroes the streak, costs 20 % of current XP and some HP, unless a shield
     is running
  3. Overdue tasks cost min(50, round(xp × 0.1)) each, unless Perfect Streak
     is running
  4. Daily counters reset; weekly counters reset when the ISO week moved
  5. Expired power-ups are swept
  6. Stamp today's date and schedule the next midnight

Running it again on the same date changes nothing.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from boosts import PowerUpType, active_of_type, get_power_up, has_perfect_streak, SHIELD_TYPES
from clock import countdown_seconds, days_between, next_midnight, today_str, week_start
from config import GameConfig
from ledger import adjust_hp, debit_xp, round_half_up, sweep_power_ups
from models import ActivePowerUp, GameEvent, ProgressionState, TaskRef

logger = logging.getLogger(__name__)

FRESH = "fresh"
STALE = "stale"


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def reset_phase(state: ProgressionState, now: datetime) -> str:
    """
    ``stale`` once the calendar date has moved past ``last_reset_date`` and
    the (possibly frozen) reset time has been reached; ``fresh`` otherwise.

    A date earlier than the last reset (clock moved back) stays fresh.
    """
    reset = state.daily_reset
    if today_str(now) <= reset.last_reset_date:
        return FRESH
    if now < reset.next_reset_time:
        return FRESH
    return STALE


def refresh_countdown(state: ProgressionState, now: datetime) -> None:
    reset = state.daily_reset
    reset.reset_countdown = countdown_seconds(reset.next_reset_time, now)
    reset.has_reset_today = reset.last_reset_date == today_str(now)


def overdue_penalty(task: TaskRef, cfg: GameConfig) -> int:
    return min(cfg.overdue_xp_cap, round_half_up(task.xp * cfg.overdue_xp_rate))


def _consume_streak_shield(state: ProgressionState, now: datetime) -> ActivePowerUp | None:
    """Use up the soonest-expiring Streak Shield."""
    shields = active_of_type(state.active_power_ups, now, PowerUpType.STREAK_SHIELD)
    if not shields:
        return None
    used = min(shields, key=lambda p: p.expires_at)
    state.active_power_ups.remove(used)
    return used


# ──────────────────────────────────────────────────────────────
# Penalty passes
# ──────────────────────────────────────────────────────────────

def _settle_inactivity(
    state: ProgressionState,
    today: str,
    now: datetime,
    cfg: GameConfig,
) -> list[GameEvent]:
    events: list[GameEvent] = []
    glob = state.streaks["global"]
    shielded = bool(active_of_type(state.active_power_ups, now, *SHIELD_TYPES))

    # ── Stream streaks follow their own gap ──
    for name in ("coding", "task"):
        stream = state.streaks[name]
        if (
            stream.last_activity_date
            and stream.current_streak > 0
            and days_between(stream.last_activity_date, today) > cfg.inactivity_grace_days
            and not shielded
        ):
            stream.current_streak = 0

    if not glob.last_activity_date:
        return events
    gap = days_between(glob.last_activity_date, today)
    if gap <= cfg.inactivity_grace_days:
        return events
    if state.inactivity_settled_for == glob.last_activity_date:
        return events

    # ── Shielded: no penalty for this gap ──
    if shielded:
        perfect = has_perfect_streak(state.active_power_ups, now)
        used = None if perfect else _consume_streak_shield(state, now)
        state.inactivity_settled_for = glob.last_activity_date
        logger.info(f"Shield absorbed a {gap}-day inactivity gap")
        events.append(GameEvent(
            type="shield_protected",
            message=f"Your shield protected your {glob.current_streak}-day streak",
            data={"days_inactive": gap, "consumed": used.id if used else None},
        ))
        if used is not None:
            events.append(GameEvent(
                type="power_up_expired",
                message=f"{get_power_up(used.id).name} used up",
                data={"id": used.id, "expires_at": used.expires_at.isoformat(), "consumed": True},
            ))
        return events

    # ── Unshielded: break the streak and charge XP + HP ──
    lost_streak = glob.current_streak
    glob.current_streak = 0
    xp_penalty = round_half_up(state.ledger.current_xp * cfg.inactivity_xp_rate)
    taken, xp_events = debit_xp(state, xp_penalty, "inactivity", cfg)
    adjust_hp(state, -cfg.inactivity_hp_penalty)
    state.inactivity_settled_for = glob.last_activity_date
    logger.info(f"Inactivity penalty: {gap} days idle, -{taken} XP, -{cfg.inactivity_hp_penalty} HP")

    events.append(GameEvent(
        type="streak_broken",
        message=f"Your {lost_streak}-day streak has been broken",
        data={"stream": "global", "lost_streak": lost_streak, "days_inactive": gap},
    ))
    events.extend(xp_events)
    events.append(GameEvent(
        type="penalty_applied",
        message=f"Inactivity: -{taken} XP, -{cfg.inactivity_hp_penalty} HP",
        data={"kind": "inactivity", "xp": taken, "hp": cfg.inactivity_hp_penalty, "days_inactive": gap},
    ))
    return events


def _settle_overdue(
    state: ProgressionState,
    tasks: Iterable[TaskRef],
    now: datetime,
    cfg: GameConfig,
) -> list[GameEvent]:
    tasks = list(tasks)
    already = set(state.penalized_task_ids)
    overdue = [
        t for t in tasks
        if not t.completed and t.due_date is not None and t.due_date < now and t.id not in already
    ]

    # Forget ids the task collaborator no longer reports
    if tasks:
        known = {t.id for t in tasks}
        state.penalized_task_ids = [tid for tid in state.penalized_task_ids if tid in known]

    if not overdue:
        return []

    state.penalized_task_ids.extend(t.id for t in overdue)

    if has_perfect_streak(state.active_power_ups, now):
        logger.info(f"Perfect Streak waived penalties for {len(overdue)} overdue task(s)")
        return []

    total = sum(overdue_penalty(t, cfg) for t in overdue)
    taken, xp_events = debit_xp(state, total, "overdue tasks", cfg)
    adjust_hp(state, -cfg.overdue_hp_penalty)
    logger.info(f"Overdue penalty: {len(overdue)} task(s), -{taken} XP")

    return [*xp_events, GameEvent(
        type="penalty_applied",
        message=f"-{taken} XP deducted for overdue quests",
        data={
            "kind": "overdue",
            "xp": taken,
            "hp": cfg.overdue_hp_penalty,
            "tasks": [t.id for t in overdue],
        },
    )]


# ──────────────────────────────────────────────────────────────
# Main transition
# ──────────────────────────────────────────────────────────────

def perform_daily_reset(
    state: ProgressionState,
    tasks: Iterable[TaskRef],
    now: datetime,
    cfg: GameConfig | None = None,
) -> list[GameEvent]:
    """
    Run the day-boundary transition on ``state`` (a working copy).

    Returns the emitted events; an empty list means the day was already
    reset and nothing changed.
    """
    if cfg is None:
        cfg = GameConfig()

    if reset_phase(state, now) == FRESH:
        return []

    today = today_str(now)
    previous = state.daily_reset.last_reset_date
    events: list[GameEvent] = []

    # ── Penalties ──
    events.extend(_settle_inactivity(state, today, now, cfg))
    events.extend(_settle_overdue(state, tasks, now, cfg))

    # ── Daily counters ──
    counters = state.counters
    summary = {
        "problems": counters.problems_today,
        "tasks": counters.tasks_today,
        "xp": counters.xp_today,
    }
    counters.problems_today = 0
    counters.tasks_today = 0
    counters.xp_today = 0

    # ── Weekly counters ──
    monday = week_start(today)
    if state.last_weekly_reset != monday:
        events.append(GameEvent(
            type="weekly_reset",
            message="A new week begins",
            data={"week_start": monday, "weekly_progress": counters.weekly_progress, "weekly_xp": counters.weekly_xp},
        ))
        counters.weekly_progress = 0
        counters.weekly_xp = 0
        counters.weekly_target = cfg.weekly_problem_target
        state.last_weekly_reset = monday

    # ── Power-ups ──
    events.extend(sweep_power_ups(state, now))

    # ── Stamp ──
    reset = state.daily_reset
    reset.last_reset_date = today
    reset.next_reset_time = next_midnight(now)
    refresh_countdown(state, now)

    logger.info(f"Daily reset {previous} → {today}")
    events.append(GameEvent(
        type="daily_reset",
        message="A new day begins",
        data={"date": today, "previous": previous, "yesterday": summary},
    ))
    return events
