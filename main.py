"""
FastAPI server for the progression engine.

Endpoints:
  POST /intents       — Apply any intent (XP, tasks, power-ups, energy, gold…)
  POST /tick          — Run one polling pass now
  GET  /state         — Current snapshot
  GET  /selectors     — Derived read-only values (multiplier, mood, countdown…)
  GET  /power-ups     — Power-up catalog
  PUT  /tasks         — Task list from the task collaborator
  GET  /snapshot      — Export for storage
  PUT  /snapshot      — Restore from storage
  GET  /config        — Current GameConfig
  PUT  /config        — Update GameConfig parameters
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import replace

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import TypeAdapter, ValidationError

import boosts
from config import Settings
from energy import time_to_full_seconds
from models import Intent, Outcome, TaskRef
from progression import (
    current_streak,
    days_until_reset,
    effective_multiplier,
    from_snapshot,
    mood,
    next_milestone,
    to_snapshot,
    xp_progress,
)
from service import ProgressionService

settings = Settings.load()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_intent_adapter = TypeAdapter(Intent)


# ── Single in-process session (storage is someone else's job) ──

service = ProgressionService()


# ── Lifespan ──────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the reset/energy ticker; stop it on shutdown."""
    logger.info("🎮 Progression engine starting…")
    stop = asyncio.Event()
    ticker = None
    if settings.tick_seconds > 0:
        ticker = asyncio.create_task(service.run_ticker(settings.tick_seconds, stop))
    yield
    stop.set()
    if ticker is not None:
        await ticker
    logger.info("👋 Shutting down.")


# ── App ───────────────────────────────────────────────────────

app = FastAPI(
    title="Progression Engine",
    description="XP, streaks, power-ups, energy and daily resets for a gamified productivity app",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Helpers ───────────────────────────────────────────────────

def _outcome_out(outcome: Outcome) -> dict:
    if not outcome.applied:
        raise HTTPException(409, outcome.reason)
    return {
        "status": outcome.status,
        "events": [e.model_dump(mode="json") for e in outcome.events],
        "state": outcome.state.model_dump(mode="json"),
    }


def _validation_detail(exc: ValidationError) -> list:
    return json.loads(exc.json(include_url=False))


# ──────────────────────────────────────────────────────────────
# POST /intents — the single write path
# ──────────────────────────────────────────────────────────────

@app.post("/intents")
async def post_intent(payload: dict):
    """
    Apply one intent, discriminated by its ``type`` field.

    Rejections (insufficient gold, unknown power-up, completed task…) come
    back as 409 with the reason; the state is unchanged.
    """
    try:
        intent = _intent_adapter.validate_python(payload)
    except ValidationError as e:
        raise HTTPException(422, _validation_detail(e))
    return _outcome_out(await service.dispatch(intent))


@app.post("/tick")
async def post_tick():
    return _outcome_out(await service.tick())


# ──────────────────────────────────────────────────────────────
# Read side
# ──────────────────────────────────────────────────────────────

@app.get("/state")
async def get_state():
    return service.state.model_dump(mode="json")


@app.get("/selectors")
async def get_selectors():
    """Derived values for the dashboard; nothing here mutates state."""
    state = service.state
    now = service.clock()
    return {
        "effective_multiplier": effective_multiplier(state, now),
        "days_until_reset": days_until_reset(state, now),
        "streaks": {name: current_streak(state, name) for name in state.streaks},
        "next_milestone": next_milestone(state),
        "mood": mood(state).model_dump(),
        "xp_progress": xp_progress(state, service.cfg),
        "energy_full_in_seconds": time_to_full_seconds(
            state.energy, current_streak(state), service.cfg
        ),
        "gold": state.gold,
        "hp": state.health.current,
    }


# ──────────────────────────────────────────────────────────────
# Power-up catalog
# ──────────────────────────────────────────────────────────────

@app.get("/power-ups")
async def list_power_ups():
    return [p.model_dump(mode="json") for p in boosts.POWER_UPS]


@app.get("/power-ups/{power_up_id}")
async def get_power_up(power_up_id: str):
    meta = boosts.get_power_up(power_up_id)
    if meta is None:
        raise HTTPException(404, f"Unknown power-up: {power_up_id}")
    return meta.model_dump(mode="json")


# ──────────────────────────────────────────────────────────────
# Task collaborator
# ──────────────────────────────────────────────────────────────

@app.put("/tasks")
async def put_tasks(tasks: list[TaskRef]):
    """Replace the task list the daily reset checks for overdue work."""
    service.set_tasks(tasks)
    return {"count": len(service.tasks)}


# ──────────────────────────────────────────────────────────────
# Snapshot export / restore
# ──────────────────────────────────────────────────────────────

@app.get("/snapshot")
async def get_snapshot():
    return to_snapshot(service.state)


@app.put("/snapshot")
async def put_snapshot(snapshot: dict):
    """Load a stored snapshot and catch it up to the present."""
    try:
        state = from_snapshot(snapshot)
    except ValidationError as e:
        raise HTTPException(422, _validation_detail(e))
    await service.restore(state)
    return service.state.model_dump(mode="json")


# ──────────────────────────────────────────────────────────────
# GET / PUT /config
# ──────────────────────────────────────────────────────────────

@app.get("/config")
async def get_config():
    """Return the current game configuration."""
    return service.cfg.to_dict()


@app.put("/config")
async def update_config(updates: dict):
    """Update specific configuration parameters."""
    cfg = service.cfg
    known = cfg.to_dict()
    for key in updates:
        if key not in known:
            raise HTTPException(400, f"Unknown config key: {key}")

    candidate = replace(cfg, **updates)
    try:
        candidate.validate()
    except ValueError as e:
        raise HTTPException(400, str(e))

    for key, value in updates.items():
        setattr(cfg, key, value)
    return cfg.to_dict()


# ──────────────────────────────────────────────────────────────
# Health check
# ──────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "healthy", "service": "progression-engine"}
