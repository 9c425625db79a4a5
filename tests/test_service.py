import asyncio
from datetime import datetime, timedelta

from models import CreditXP, SpendGold, TaskRef
from progression import new_state
from service import ProgressionService


class FakeClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now


def _service(clock, **kwargs):
    return ProgressionService(state=new_state(clock()), clock=clock, **kwargs)


def test_dispatch_updates_owned_state():
    clock = FakeClock(datetime(2026, 3, 12, 10, 0))
    service = _service(clock)

    outcome = asyncio.run(service.dispatch(CreditXP(amount=120)))

    assert outcome.applied
    assert service.state.ledger.current_xp == 120


def test_rejection_keeps_state():
    clock = FakeClock(datetime(2026, 3, 12, 10, 0))
    service = _service(clock)
    before = service.state

    outcome = asyncio.run(service.dispatch(SpendGold(amount=5)))

    assert outcome.status == "rejected"
    assert service.state is before


def test_concurrent_dispatches_are_serialised():
    clock = FakeClock(datetime(2026, 3, 12, 10, 0))
    service = _service(clock)

    async def burst():
        await asyncio.gather(*(service.dispatch(CreditXP(amount=10)) for _ in range(25)))

    asyncio.run(burst())
    assert service.state.ledger.current_xp == 250


def test_tick_uses_task_list_and_sink():
    clock = FakeClock(datetime(2026, 3, 12, 10, 0))
    seen = []
    service = _service(clock, on_events=seen.extend)
    service.set_tasks([TaskRef(id="t1", xp=100, due_date=clock.now)])

    clock.now = datetime(2026, 3, 13, 8, 0)
    asyncio.run(service.tick())

    assert service.state.penalized_task_ids == ["t1"]
    assert "daily_reset" in [e.type for e in seen]


def test_ticker_stops_on_event():
    clock = FakeClock(datetime(2026, 3, 12, 10, 0))
    service = _service(clock)

    async def run():
        stop = asyncio.Event()
        task = asyncio.create_task(service.run_ticker(0.01, stop))
        clock.now += timedelta(days=1)
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(run())
    assert service.state.daily_reset.last_reset_date == "2026-03-13"


def test_restore_catches_up():
    clock = FakeClock(datetime(2026, 3, 14, 9, 0))
    service = _service(clock)
    stored = new_state(datetime(2026, 3, 12, 10, 0))

    asyncio.run(service.restore(stored))

    assert service.state.daily_reset.last_reset_date == "2026-03-14"
