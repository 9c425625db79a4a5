"""
ProgressionService — owns the one live snapshot.

Every mutation goes through ``dispatch`` under an ``asyncio.Lock``, so a user
action and the background ticker can never interleave inside a transition.
Readers get the current immutable snapshot without taking the lock.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from clock import now_local
from config import GameConfig
from models import GameEvent, Intent, Outcome, ProgressionState, TaskRef, Tick
from progression import apply_intent, new_state

logger = logging.getLogger(__name__)


class ProgressionService:
    def __init__(
        self,
        state: ProgressionState | None = None,
        cfg: GameConfig | None = None,
        clock: Callable[[], datetime] = now_local,
        on_events: Optional[Callable[[list[GameEvent]], None]] = None,
    ):
        self.cfg = cfg or GameConfig()
        self.clock = clock
        self.on_events = on_events
        self.state = state if state is not None else new_state(clock(), self.cfg)
        self.tasks: list[TaskRef] = []
        self._lock = asyncio.Lock()

    async def dispatch(self, intent: Intent) -> Outcome:
        async with self._lock:
            outcome = apply_intent(self.state, intent, self.clock(), self.cfg)
            self.state = outcome.state
        if outcome.events and self.on_events is not None:
            self.on_events(outcome.events)
        return outcome

    async def tick(self) -> Outcome:
        return await self.dispatch(Tick(tasks=list(self.tasks)))

    def set_tasks(self, tasks: list[TaskRef]) -> None:
        self.tasks = list(tasks)

    async def restore(self, state: ProgressionState) -> None:
        """Swap in a snapshot from storage, then catch up to the present."""
        async with self._lock:
            self.state = state
        await self.tick()

    async def run_ticker(self, interval: float, stop_event: asyncio.Event) -> None:
        """Dispatch ``Tick`` every ``interval`` seconds until ``stop_event`` is set."""
        logger.info(f"Ticker started ({interval:.0f}s)")
        while not stop_event.is_set():
            try:
                outcome = await self.tick()
                for event in outcome.events:
                    logger.info(f"[{event.type}] {event.message}")
            except Exception:
                logger.exception("Tick failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Ticker stopped")
