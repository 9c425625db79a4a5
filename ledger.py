"""
XP ledger and power-up bookkeeping on a working copy of the state.

These helpers mutate the ``ProgressionState`` they are given and return the
events produced.  ``progression.apply`` hands them a private deep copy, so the
caller's snapshot is never touched.
"""

from __future__ import annotations

import math
from datetime import datetime

from boosts import bonus_expiry, effective_multiplier, get_power_up, sweep_expired
from config import GameConfig
from gamification import level_from_total_xp, xp_to_next_level
from models import GameEvent, ProgressionState


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _relevel(state: ProgressionState, cfg: GameConfig) -> list[GameEvent]:
    ledger = state.ledger
    before = ledger.current_level
    ledger.current_level = level_from_total_xp(ledger.current_xp, cfg.level_base_xp, cfg.level_growth)
    ledger.xp_to_next_level = xp_to_next_level(ledger.current_xp, cfg.level_base_xp, cfg.level_growth)

    if ledger.current_level > before:
        return [GameEvent(
            type="level_up",
            message=f"Level up! You reached level {ledger.current_level}",
            data={"from": before, "to": ledger.current_level},
        )]
    if ledger.current_level < before:
        return [GameEvent(
            type="level_down",
            message=f"Dropped to level {ledger.current_level}",
            data={"from": before, "to": ledger.current_level},
        )]
    return []


def credit_xp(
    state: ProgressionState,
    amount: int,
    multiplier: float,
    source: str,
    now: datetime,
    cfg: GameConfig,
    apply_bonus: bool = True,
) -> tuple[int, list[GameEvent]]:
    """
    Credit ``floor(amount × multiplier × ledger multiplier)`` XP.

    ``apply_bonus=False`` credits a fixed amount (instant rewards).  Returns
    the credited amount alongside the events.
    """
    refresh_multiplier(state, now)
    ledger = state.ledger
    bonus = ledger.xp_multiplier if apply_bonus else 1.0
    final = math.floor(amount * multiplier * bonus)
    if final <= 0:
        return 0, []

    ledger.current_xp += final
    ledger.total_xp_earned += final
    state.counters.xp_today += final
    state.counters.weekly_xp += final

    events = [GameEvent(
        type="xp_gained",
        message=f"+{final} XP earned!",
        data={"amount": final, "source": source, "multiplier": bonus * multiplier},
    )]
    events.extend(_relevel(state, cfg))
    return final, events


def debit_xp(
    state: ProgressionState,
    amount: int,
    reason: str,
    cfg: GameConfig,
) -> tuple[int, list[GameEvent]]:
    """Remove up to ``amount`` XP; the balance floors at zero."""
    ledger = state.ledger
    taken = min(ledger.current_xp, max(0, amount))
    if taken <= 0:
        return 0, []

    ledger.current_xp -= taken
    events = [GameEvent(
        type="xp_lost",
        message=f"-{taken} XP ({reason})" if reason else f"-{taken} XP",
        data={"amount": taken, "requested": amount, "reason": reason},
    )]
    events.extend(_relevel(state, cfg))
    return taken, events


def refresh_multiplier(state: ProgressionState, now: datetime) -> None:
    """Recompute the ledger's multiplier fields from the live power-ups."""
    ledger = state.ledger
    ledger.xp_multiplier = effective_multiplier(state.active_power_ups, now)
    ledger.bonus_expiry = bonus_expiry(state.active_power_ups, now)
    ledger.bonus_active = ledger.bonus_expiry is not None


def sweep_power_ups(
    state: ProgressionState,
    now: datetime,
    power_up_id: str | None = None,
) -> list[GameEvent]:
    """
    Drop every instance expired at ``now`` (only those of ``power_up_id`` when
    given).  A no-op once they are gone.
    """
    remaining, expired = sweep_expired(state.active_power_ups, now)
    if power_up_id is not None:
        remaining.extend(p for p in expired if p.id != power_up_id)
        expired = [p for p in expired if p.id == power_up_id]
    state.active_power_ups = remaining
    refresh_multiplier(state, now)

    events = []
    for inst in expired:
        meta = get_power_up(inst.id)
        name = meta.name if meta else inst.id
        events.append(GameEvent(
            type="power_up_expired",
            message=f"{name} has worn off",
            data={"id": inst.id, "expires_at": inst.expires_at.isoformat()},
        ))
    return events


def adjust_hp(state: ProgressionState, delta: int) -> None:
    health = state.health
    health.current = max(0, min(health.max, health.current + delta))
