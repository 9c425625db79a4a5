"""
GameConfig — every tunable coefficient for the progression engine.

Amounts, rates and thresholds are configuration, not engine logic.  The
``/config`` endpoint can update them at runtime.  ``Settings`` carries the
process-level knobs read from the environment (``.env`` supported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields

from dotenv import load_dotenv

load_dotenv()


@dataclass
class GameConfig:
    # ── Level curve ────────────────────────────────────────
    level_base_xp: int = 1000
    level_growth: float = 1.1

    # ── Inactivity penalty (daily reset) ───────────────────
    inactivity_grace_days: int = 1          # gap tolerated before a streak breaks
    inactivity_xp_rate: float = 0.20        # share of current XP lost
    inactivity_hp_penalty: int = 20

    # ── Overdue tasks ──────────────────────────────────────
    overdue_xp_rate: float = 0.1
    overdue_xp_cap: int = 50
    overdue_hp_penalty: int = 5

    # ── Task / coding rewards ──────────────────────────────
    task_gold_reward: int = 25
    task_hp_reward: int = 10
    xp_per_gold: int = 10                   # XP → gold conversion rate

    # ── Vitality ───────────────────────────────────────────
    max_energy: int = 100
    max_hp: int = 100

    # ── Energy regeneration (seconds per unit) ─────────────
    energy_base_interval: float = 30.0
    energy_min_interval: float = 10.0
    energy_max_interval: float = 60.0
    mood_multipliers: dict = field(default_factory=lambda: {
        "Energized": 1.2,
        "Motivated": 1.1,
        "Tired": 0.9,
        "Exhausted": 0.8,
    })

    # ── Weekly targets ─────────────────────────────────────
    weekly_problem_target: int = 10

    def to_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items()}

    def validate(self) -> None:
        """Raise ``ValueError`` for coefficients the engine cannot run with."""
        for f in fields(self):
            key, value = f.name, getattr(self, f.name)
            if key == "mood_multipliers":
                if not isinstance(value, dict):
                    raise ValueError("mood_multipliers must be an object")
                for label, mult in value.items():
                    if not _is_number(mult) or mult <= 0:
                        raise ValueError(f"mood multiplier for {label} must be a positive number")
            elif f.type == "int" and not (isinstance(value, int) and not isinstance(value, bool)):
                raise ValueError(f"{key} must be an integer, got {value!r}")
            elif not _is_number(value):
                raise ValueError(f"{key} must be a number, got {value!r}")

        if self.level_base_xp < 1:
            raise ValueError("level_base_xp must be at least 1")
        if self.level_growth < 1:
            raise ValueError("level_growth must be at least 1")
        if not 0 < self.energy_min_interval <= self.energy_max_interval:
            raise ValueError("energy intervals must satisfy 0 < min <= max")
        if self.energy_base_interval <= 0:
            raise ValueError("energy_base_interval must be positive")
        if self.max_energy <= 0 or self.max_hp <= 0:
            raise ValueError("max_energy and max_hp must be positive")
        if self.xp_per_gold <= 0:
            raise ValueError("xp_per_gold must be positive")
        for key in ("inactivity_grace_days", "inactivity_xp_rate", "inactivity_hp_penalty",
                    "overdue_xp_rate", "overdue_xp_cap", "overdue_hp_penalty",
                    "task_gold_reward", "task_hp_reward", "weekly_problem_target"):
            if getattr(self, key) < 0:
                raise ValueError(f"{key} must not be negative")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class Settings:
    """Process settings with environment overrides."""

    tick_seconds: float = 30.0
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def load(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            tick_seconds=float(os.getenv("TICK_SECONDS", "30")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )
