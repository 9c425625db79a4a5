"""
Energy & mood model — pure math, no I/O.

Energy regenerates one unit per *effective interval*; the interval shrinks
with a long global streak and a good mood.  Regeneration is always derived
from wall-clock deltas, so one catch-up after the app was closed gives the
same result as ticking through the same period.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from config import GameConfig
from gamification import streak_multiplier
from models import EnergyState, Mood

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────
# 1. Mood (derived from energy)
# ──────────────────────────────────────────────────────────────

def mood_for(current: int, maximum: int) -> Mood:
    """Energized ≥ 80 %, Motivated ≥ 50 %, Tired ≥ 20 %, else Exhausted."""
    pct = current / maximum * 100 if maximum else 0
    if pct >= 80:
        return Mood(label="Energized", value=100)
    if pct >= 50:
        return Mood(label="Motivated", value=75)
    if pct >= 20:
        return Mood(label="Tired", value=40)
    return Mood(label="Exhausted", value=10)


def mood_multiplier(label: str, cfg: GameConfig | None = None) -> float:
    if cfg is None:
        cfg = GameConfig()
    return cfg.mood_multipliers.get(label, 1.0)


# ──────────────────────────────────────────────────────────────
# 2. Regeneration interval
# ──────────────────────────────────────────────────────────────

def effective_interval_seconds(
    streak: int,
    mood_label: str,
    cfg: GameConfig | None = None,
) -> float:
    """clip(base / (streak_mult × mood_mult), min, max)"""
    if cfg is None:
        cfg = GameConfig()
    raw = cfg.energy_base_interval / (streak_multiplier(streak) * mood_multiplier(mood_label, cfg))
    return max(cfg.energy_min_interval, min(raw, cfg.energy_max_interval))


def _interval_at(current: int, maximum: int, streak: int, cfg: GameConfig) -> timedelta:
    label = mood_for(current, maximum).label
    return timedelta(seconds=effective_interval_seconds(streak, label, cfg))


# ──────────────────────────────────────────────────────────────
# 3. Catch-up
# ──────────────────────────────────────────────────────────────

def regenerate(
    energy: EnergyState,
    streak: int,
    now: datetime,
    cfg: GameConfig | None = None,
) -> EnergyState:
    """
    Credit every whole interval elapsed since ``energy.last_updated``.

    The interval is re-derived after each unit because the mood (and so the
    rate) moves with the energy level.  ``last_updated`` only advances by the
    intervals actually consumed, so a partial interval carries over to the
    next call.  At max the clock re-anchors to ``now``: a full bar banks
    nothing.
    """
    if cfg is None:
        cfg = GameConfig()

    if energy.last_updated > now:
        logger.warning(
            f"Energy timestamp {energy.last_updated.isoformat()} is ahead of now; "
            f"treating as zero elapsed"
        )
        return energy.model_copy(update={"last_updated": now})

    current = min(energy.current, energy.max)
    anchor = energy.last_updated
    while current < energy.max:
        step = _interval_at(current, energy.max, streak, cfg)
        if now - anchor < step:
            break
        anchor += step
        current += 1

    if current >= energy.max:
        anchor = now

    return energy.model_copy(update={"current": current, "last_updated": anchor})


def time_to_full_seconds(
    energy: EnergyState,
    streak: int,
    cfg: GameConfig | None = None,
) -> float:
    """Seconds of uninterrupted regeneration until the bar is full."""
    if cfg is None:
        cfg = GameConfig()
    total = timedelta()
    for level in range(energy.current, energy.max):
        total += _interval_at(level, energy.max, streak, cfg)
    return total.total_seconds()


# ──────────────────────────────────────────────────────────────
# 4. Spend / restore (clamped)
# ──────────────────────────────────────────────────────────────

def restore_energy(energy: EnergyState, amount: int, now: datetime) -> EnergyState:
    current = max(0, min(energy.max, energy.current + amount))
    update = {"current": current}
    if current >= energy.max:
        update["last_updated"] = now
    return energy.model_copy(update=update)


def spend_energy(energy: EnergyState, amount: int, now: datetime) -> EnergyState:
    current = max(0, min(energy.max, energy.current - amount))
    update = {"current": current}
    if energy.current >= energy.max:
        # a full bar starts regenerating from the moment it is drained
        update["last_updated"] = now
    return energy.model_copy(update=update)
