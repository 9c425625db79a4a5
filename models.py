"""
Pydantic schemas for the progression engine.

Three groups:
  A. State (XPLedger, StreakState, DailyResetState, ... ProgressionState)
  B. Intents dispatched into ``progression.apply``
  C. Results (GameEvent, Outcome)

Every model round-trips through ``model_dump(mode="json")`` so that a snapshot
can be handed to any storage collaborator (dates as ISO strings).
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, Field

from clock import as_local_naive

Stream = Literal["global", "coding", "task"]
STREAMS: tuple[str, ...] = ("global", "coding", "task")

ActivityKind = Literal["problem_solved", "task_completed", "session"]

# Timestamps are kept as naive local time; offset-aware input is converted on load
LocalDateTime = Annotated[datetime, AfterValidator(as_local_naive)]


# ──────────────────────────────────────────────────────────────
# A. State
# ──────────────────────────────────────────────────────────────


class XPLedger(BaseModel):
    current_xp: int = Field(default=0, ge=0)
    current_level: int = Field(default=1, ge=1)
    xp_to_next_level: int = Field(default=1000, ge=0)
    total_xp_earned: int = Field(default=0, ge=0)
    xp_multiplier: float = Field(default=1.0, ge=1)
    bonus_active: bool = False
    bonus_expiry: Optional[LocalDateTime] = None


class DailyActivity(BaseModel):
    problems_solved: int = 0
    tasks_completed: int = 0
    xp_earned: int = 0
    active_minutes: int = 0
    last_activity_time: Optional[LocalDateTime] = None


class StreakState(BaseModel):
    """One independently tracked streak (global / coding / task)."""

    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_activity_date: str = ""
    streak_start_date: str = ""
    daily_activity: dict[str, DailyActivity] = Field(default_factory=dict)


def _default_streaks() -> dict[str, StreakState]:
    return {stream: StreakState() for stream in STREAMS}


class DailyResetState(BaseModel):
    last_reset_date: str
    next_reset_time: LocalDateTime
    reset_countdown: int = Field(default=0, ge=0)
    has_reset_today: bool = True


class ActivePowerUp(BaseModel):
    id: str
    expires_at: LocalDateTime


class EnergyState(BaseModel):
    current: int = Field(default=100, ge=0)
    max: int = Field(default=100, gt=0)
    last_updated: LocalDateTime


class HealthState(BaseModel):
    current: int = Field(default=100, ge=0)
    max: int = Field(default=100, gt=0)


class Mood(BaseModel):
    """Derived from energy; never stored."""

    label: str
    value: int


class ActivityCounters(BaseModel):
    # daily-scoped
    problems_today: int = 0
    tasks_today: int = 0
    xp_today: int = 0
    # weekly-scoped
    weekly_progress: int = 0
    weekly_target: int = 10
    weekly_xp: int = 0
    # lifetime
    total_solved: int = 0
    total_tasks: int = 0
    difficulty_counts: dict[str, int] = Field(default_factory=dict)
    platform_counts: dict[str, int] = Field(default_factory=dict)
    topic_counts: dict[str, int] = Field(default_factory=dict)


class TaskRef(BaseModel):
    """What the task collaborator hands the engine."""

    id: str
    title: str = ""
    completed: bool = False
    due_date: Optional[LocalDateTime] = None
    xp: int = Field(default=0, ge=0)
    priority: str = "Core"


class ProgressionState(BaseModel):
    """The whole mutable aggregate, threaded explicitly through ``apply``."""

    ledger: XPLedger = Field(default_factory=XPLedger)
    streaks: dict[str, StreakState] = Field(default_factory=_default_streaks)
    daily_reset: DailyResetState
    last_weekly_reset: str = ""
    energy: EnergyState
    health: HealthState = Field(default_factory=HealthState)
    gold: int = Field(default=0, ge=0)
    owned_power_ups: dict[str, int] = Field(default_factory=dict)
    active_power_ups: list[ActivePowerUp] = Field(default_factory=list)
    counters: ActivityCounters = Field(default_factory=ActivityCounters)
    penalized_task_ids: list[str] = Field(default_factory=list)
    # last_activity_date of the inactivity gap already settled by a reset
    inactivity_settled_for: str = ""


# ──────────────────────────────────────────────────────────────
# B. Intents
# ──────────────────────────────────────────────────────────────


class CreditXP(BaseModel):
    type: Literal["credit_xp"] = "credit_xp"
    amount: int = Field(..., gt=0)
    multiplier: float = Field(default=1.0, gt=0)
    source: str = ""


class DebitXP(BaseModel):
    type: Literal["debit_xp"] = "debit_xp"
    amount: int = Field(..., gt=0)
    reason: str = ""


class RecordActivity(BaseModel):
    type: Literal["record_activity"] = "record_activity"
    stream: Stream
    kind: ActivityKind = "session"
    xp: int = Field(default=0, ge=0)
    minutes: int = Field(default=1, ge=0)


class CompleteTask(BaseModel):
    type: Literal["complete_task"] = "complete_task"
    task: TaskRef


class SolveProblem(BaseModel):
    type: Literal["solve_problem"] = "solve_problem"
    xp: int = Field(..., gt=0)
    difficulty: Literal["Easy", "Medium", "Hard"] = "Easy"
    platform: str = ""
    topic: str = ""


class BuyPowerUp(BaseModel):
    type: Literal["buy_power_up"] = "buy_power_up"
    power_up_id: str
    cost: Optional[int] = Field(default=None, ge=0, description="Overrides the catalog price")


class ActivatePowerUp(BaseModel):
    type: Literal["activate_power_up"] = "activate_power_up"
    power_up_id: str


class ExpirePowerUp(BaseModel):
    """Sweep expired instances (only those of ``power_up_id`` when given)."""

    type: Literal["expire_power_up"] = "expire_power_up"
    power_up_id: Optional[str] = None


class RestoreEnergy(BaseModel):
    type: Literal["restore_energy"] = "restore_energy"
    amount: int = Field(..., gt=0)


class SpendEnergy(BaseModel):
    type: Literal["spend_energy"] = "spend_energy"
    amount: int = Field(..., gt=0)


class EarnGold(BaseModel):
    type: Literal["earn_gold"] = "earn_gold"
    amount: int = Field(..., gt=0)
    source: str = ""


class SpendGold(BaseModel):
    type: Literal["spend_gold"] = "spend_gold"
    amount: int = Field(..., gt=0)
    item: str = ""


class ConvertXPToGold(BaseModel):
    type: Literal["convert_xp_to_gold"] = "convert_xp_to_gold"
    amount: int = Field(..., gt=0, description="Gold to receive")


class PerformDailyReset(BaseModel):
    type: Literal["perform_daily_reset"] = "perform_daily_reset"
    tasks: list[TaskRef] = Field(default_factory=list)


class Tick(BaseModel):
    type: Literal["tick"] = "tick"
    tasks: list[TaskRef] = Field(default_factory=list)


Intent = Annotated[
    Union[
        CreditXP,
        DebitXP,
        RecordActivity,
        CompleteTask,
        SolveProblem,
        BuyPowerUp,
        ActivatePowerUp,
        ExpirePowerUp,
        RestoreEnergy,
        SpendEnergy,
        EarnGold,
        SpendGold,
        ConvertXPToGold,
        PerformDailyReset,
        Tick,
    ],
    Field(discriminator="type"),
]


# ──────────────────────────────────────────────────────────────
# C. Results
# ──────────────────────────────────────────────────────────────

EventType = Literal[
    "xp_gained",
    "xp_lost",
    "level_up",
    "level_down",
    "streak_started",
    "streak_extended",
    "streak_broken",
    "streak_milestone",
    "penalty_applied",
    "shield_protected",
    "power_up_purchased",
    "power_up_activated",
    "power_up_expired",
    "instant_reward",
    "time_frozen",
    "daily_reset",
    "weekly_reset",
    "energy_changed",
    "gold_changed",
]


class GameEvent(BaseModel):
    """Something the notification collaborator may want to show."""

    type: EventType
    message: str = ""
    data: dict = Field(default_factory=dict)


class Outcome(BaseModel):
    state: ProgressionState
    events: list[GameEvent] = Field(default_factory=list)
    status: Literal["applied", "rejected"] = "applied"
    reason: str = ""

    @property
    def applied(self) -> bool:
        return self.status == "applied"
