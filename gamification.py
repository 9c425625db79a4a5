"""
Gamification math — XP curve and streaks.

Mechanics:
  - XP needed from level L to L+1: floor(1000 × 1.1^(L-1))
  - Level from XP: walk the curve from level 1 until the next step doesn't fit
  - Streaks: one-day grace window; a longer gap restarts at day one
  - Streak multiplier: step table used by energy regeneration
  - Milestones: 1, 3, 7, 14, 21, 30 ... days pay out XP + gold once
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from clock import parse_date


# ── Level curve ───────────────────────────────────────────────

BASE_LEVEL_XP = 1000
LEVEL_GROWTH = 1.1


def xp_required_for_level(
    level: int,
    base: int = BASE_LEVEL_XP,
    growth: float = LEVEL_GROWTH,
) -> int:
    """XP delta needed to go from ``level`` to ``level + 1``."""
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return math.floor(base * growth ** (level - 1))


def level_from_total_xp(
    total_xp: int,
    base: int = BASE_LEVEL_XP,
    growth: float = LEVEL_GROWTH,
) -> int:
    """
    Level reached with ``total_xp`` cumulative XP.

    Starts at level 1 and keeps paying each step's requirement while the
    remaining XP covers it.  Monotonic non-decreasing in ``total_xp``.
    """
    level = 1
    remaining = max(0, int(total_xp))
    while True:
        needed = xp_required_for_level(level, base, growth)
        if needed <= 0:
            raise ValueError(f"level {level} requires {needed} XP; base and growth must keep steps positive")
        if needed > remaining:
            break
        remaining -= needed
        level += 1
    return level


def cumulative_xp_for_level(
    level: int,
    base: int = BASE_LEVEL_XP,
    growth: float = LEVEL_GROWTH,
) -> int:
    """Total XP needed to reach ``level`` from zero."""
    return sum(xp_required_for_level(lv, base, growth) for lv in range(1, level))


def xp_to_next_level(
    total_xp: int,
    base: int = BASE_LEVEL_XP,
    growth: float = LEVEL_GROWTH,
) -> int:
    level = level_from_total_xp(total_xp, base, growth)
    return cumulative_xp_for_level(level + 1, base, growth) - max(0, int(total_xp))


def xp_progress(
    total_xp: int,
    base: int = BASE_LEVEL_XP,
    growth: float = LEVEL_GROWTH,
) -> dict:
    """Progress inside the current level, for progress bars."""
    total_xp = validate_xp(total_xp)
    level = level_from_total_xp(total_xp, base, growth)
    level_xp = total_xp - cumulative_xp_for_level(level, base, growth)
    needed = xp_required_for_level(level, base, growth)
    return {
        "level": level,
        "level_xp": level_xp,
        "needed_xp": needed,
        "progress": min(max(level_xp / needed * 100, 0.0), 100.0),
        "xp_to_next": needed - level_xp,
    }


def validate_xp(xp: float) -> int:
    return max(0, math.floor(xp))


# ── Streaks ───────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class StreakResult:
    value: int
    broken: bool
    continued: bool
    days_inactive: int = 0


def next_streak(current: int, last_activity_date: str, today: str) -> StreakResult:
    """
    Next streak value after activity on ``today``.

    gap 0 → unchanged, gap 1 → +1, gap > 1 → restart at 1.
    A negative gap (clock skew) is treated as gap 0.
    """
    if not last_activity_date:
        return StreakResult(1, False, False)

    gap = (parse_date(today) - parse_date(last_activity_date)).days
    if gap <= 0:
        return StreakResult(current, False, True)
    if gap == 1:
        return StreakResult(current + 1, False, True)
    return StreakResult(1, True, False, gap)


def streak_multiplier(streak: int) -> float:
    if streak >= 365:
        return 3.0
    if streak >= 100:
        return 2.5
    if streak >= 50:
        return 2.0
    if streak >= 30:
        return 1.5
    if streak >= 14:
        return 1.3
    if streak >= 7:
        return 1.2
    if streak >= 3:
        return 1.1
    return 1.0


# ── Milestones ────────────────────────────────────────────────

STREAK_MILESTONES: dict[int, dict] = {
    1: {"xp": 50, "gold": 10, "badge": "first_step"},
    3: {"xp": 150, "gold": 25, "badge": "getting_started"},
    7: {"xp": 350, "gold": 50, "badge": "week_warrior"},
    14: {"xp": 700, "gold": 100, "badge": "fortnight_fighter"},
    21: {"xp": 1050, "gold": 150, "badge": "three_week_champion"},
    30: {"xp": 1500, "gold": 200, "badge": "monthly_master"},
    50: {"xp": 2500, "gold": 350, "badge": "fifty_day_legend"},
    75: {"xp": 3750, "gold": 500, "badge": "seasoned_veteran"},
    100: {"xp": 5000, "gold": 750, "badge": "century_club", "title": "Century Master"},
    150: {"xp": 7500, "gold": 1000, "badge": "elite_streaker"},
    200: {"xp": 10000, "gold": 1500, "badge": "double_century", "title": "Streak Legend"},
    365: {"xp": 20000, "gold": 5000, "badge": "year_warrior", "title": "Annual Champion"},
    500: {"xp": 30000, "gold": 10000, "badge": "five_hundred_hero", "title": "Half Millennium Master"},
    1000: {"xp": 100000, "gold": 50000, "badge": "thousand_day_titan", "title": "Millennium Legend"},
}


def next_streak_milestone(streak: int) -> int:
    for milestone in sorted(STREAK_MILESTONES):
        if milestone > streak:
            return milestone
    return 2000


def milestone_reward(streak: int) -> dict | None:
    """Reward for landing exactly on a milestone day, else None."""
    reward = STREAK_MILESTONES.get(streak)
    if reward is None:
        return None
    return {"milestone": streak, **reward}
