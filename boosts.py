"""
Power-up catalog and boost composition.

Composition rule: the effective XP multiplier is the *maximum* multiplier
over the active multiplicative instances (never a sum or product), floored
at 1.0.  Shields carry no multiplier; they only suppress reset penalties.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from models import ActivePowerUp


class PowerUpType(str, Enum):
    XP_BOOST = "xp_boost"
    FOCUS_MODE = "focus_mode"
    COMBO_MULTIPLIER = "combo_multiplier"
    TASK_BOOST = "task_boost"
    CODING_BOOST = "coding_boost"
    STREAK_SHIELD = "streak_shield"
    PERFECT_STREAK = "perfect_streak"
    TIME_FREEZE = "time_freeze"
    INSTANT_REWARD = "instant_reward"
    ENERGY_BOOST = "energy_boost"


MULTIPLICATIVE_TYPES = frozenset({
    PowerUpType.XP_BOOST,
    PowerUpType.FOCUS_MODE,
    PowerUpType.COMBO_MULTIPLIER,
    PowerUpType.TASK_BOOST,
    PowerUpType.CODING_BOOST,
})
SHIELD_TYPES = frozenset({PowerUpType.STREAK_SHIELD, PowerUpType.PERFECT_STREAK})
INSTANT_TYPES = frozenset({PowerUpType.INSTANT_REWARD, PowerUpType.ENERGY_BOOST})


class PowerUpDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: PowerUpType
    duration: int = 0               # minutes
    multiplier: Optional[float] = None
    cost: int = 0                   # gold
    reward_xp: int = 0              # instant_reward
    reward_energy_pct: float = 0.0  # energy_boost

    @property
    def is_multiplicative(self) -> bool:
        return self.type in MULTIPLICATIVE_TYPES

    @property
    def is_instant(self) -> bool:
        return self.type in INSTANT_TYPES


# ── Catalog ───────────────────────────────────────────────────

POWER_UPS: tuple[PowerUpDefinition, ...] = (
    PowerUpDefinition(id="pu-1", name="XP Surge", type=PowerUpType.XP_BOOST,
                      duration=30, multiplier=2.0, cost=500),
    PowerUpDefinition(id="pu-2", name="Focus Mode", type=PowerUpType.FOCUS_MODE,
                      duration=45, multiplier=1.25, cost=250),
    PowerUpDefinition(id="pu-3", name="Energy Drink", type=PowerUpType.INSTANT_REWARD,
                      cost=100, reward_xp=100),
    PowerUpDefinition(id="pu-5", name="Task Master", type=PowerUpType.TASK_BOOST,
                      duration=120, multiplier=2.0, cost=400),
    PowerUpDefinition(id="pu-6", name="Streak Shield", type=PowerUpType.STREAK_SHIELD,
                      duration=1440, cost=1000),
    PowerUpDefinition(id="pu-8", name="Coding Mastery", type=PowerUpType.CODING_BOOST,
                      duration=60, multiplier=3.0, cost=600),
    PowerUpDefinition(id="pu-9", name="Combo Multiplier", type=PowerUpType.COMBO_MULTIPLIER,
                      duration=90, multiplier=2.5, cost=800),
    PowerUpDefinition(id="pu-11", name="Time Freeze", type=PowerUpType.TIME_FREEZE,
                      duration=360, cost=1200),
    PowerUpDefinition(id="pu-12", name="Energy Boost", type=PowerUpType.ENERGY_BOOST,
                      cost=500, reward_energy_pct=0.5),
    PowerUpDefinition(id="pu-19", name="Perfect Streak", type=PowerUpType.PERFECT_STREAK,
                      duration=10080, cost=3000),
    PowerUpDefinition(id="pu-21", name="Mega XP Surge", type=PowerUpType.XP_BOOST,
                      duration=30, multiplier=10.0, cost=4000),
    PowerUpDefinition(id="pu-22", name="Immortal Shield", type=PowerUpType.STREAK_SHIELD,
                      duration=10080, cost=6000),
    PowerUpDefinition(id="pu-37", name="Deep Work Mode", type=PowerUpType.FOCUS_MODE,
                      duration=120, multiplier=2.5, cost=900),
)

_BY_ID: dict[str, PowerUpDefinition] = {p.id: p for p in POWER_UPS}


def get_power_up(power_up_id: str) -> PowerUpDefinition | None:
    return _BY_ID.get(power_up_id)


# ── Composition ───────────────────────────────────────────────

def _live(active: Iterable[ActivePowerUp], now: datetime | None) -> list[ActivePowerUp]:
    if now is None:
        return list(active)
    return [p for p in active if p.expires_at > now]


def _of_types(active: Iterable[ActivePowerUp], types: frozenset) -> list[tuple[ActivePowerUp, PowerUpDefinition]]:
    pairs = []
    for inst in active:
        meta = get_power_up(inst.id)
        if meta is not None and meta.type in types:
            pairs.append((inst, meta))
    return pairs


def effective_multiplier(active: Iterable[ActivePowerUp], now: datetime | None = None) -> float:
    """
    max(1, max multiplier over active multiplicative instances).

    With ``now`` given, instances already past their expiry are ignored even
    if no sweep has removed them yet.
    """
    multipliers = [
        meta.multiplier or 1.0
        for _, meta in _of_types(_live(active, now), MULTIPLICATIVE_TYPES)
    ]
    return max([1.0, *multipliers])


def bonus_expiry(active: Iterable[ActivePowerUp], now: datetime | None = None) -> datetime | None:
    """Latest expiry across active multiplicative instances."""
    expiries = [inst.expires_at for inst, _ in _of_types(_live(active, now), MULTIPLICATIVE_TYPES)]
    return max(expiries) if expiries else None


def sweep_expired(
    active: Iterable[ActivePowerUp],
    now: datetime,
) -> tuple[list[ActivePowerUp], list[ActivePowerUp]]:
    """Split into (still running, expired at or before ``now``)."""
    remaining: list[ActivePowerUp] = []
    expired: list[ActivePowerUp] = []
    for inst in active:
        (expired if inst.expires_at <= now else remaining).append(inst)
    return remaining, expired


def active_of_type(
    active: Iterable[ActivePowerUp],
    now: datetime,
    *types: PowerUpType,
) -> list[ActivePowerUp]:
    return [inst for inst, _ in _of_types(_live(active, now), frozenset(types))]


def has_shield(active: Iterable[ActivePowerUp], now: datetime) -> bool:
    return bool(active_of_type(active, now, *SHIELD_TYPES))


def has_perfect_streak(active: Iterable[ActivePowerUp], now: datetime) -> bool:
    return bool(active_of_type(active, now, PowerUpType.PERFECT_STREAK))
