from datetime import datetime, timedelta, timezone

import pytest

from conftest import INSTANCE_ID, seed_company
from pulse.agents import schemas
from pulse.agents.scheduling import ScheduleRunner, compute_next_run

UTC = timezone.utc


@pytest.mark.parametrize(
    "cadence, after, expected",
    [
        ("daily", datetime(2024, 3, 4, 9, tzinfo=UTC), datetime(2024, 3, 5, 9, tzinfo=UTC)),
        ("weekly", datetime(2024, 3, 4, 9, tzinfo=UTC), datetime(2024, 3, 11, 9, tzinfo=UTC)),
        ("biweekly", datetime(2024, 3, 4, 9, tzinfo=UTC), datetime(2024, 3, 18, 9, tzinfo=UTC)),
        ("monthly", datetime(2024, 1, 31, 9, tzinfo=UTC), datetime(2024, 2, 29, 9, tzinfo=UTC)),
        ("monthly", datetime(2024, 12, 15, 9, tzinfo=UTC), datetime(2025, 1, 15, 9, tzinfo=UTC)),
        ("once", datetime(2024, 3, 4, 9, tzinfo=UTC), None),
        ("custom", datetime(2024, 3, 4, 9, tzinfo=UTC), None),
    ],
)
def test_compute_next_run(cadence, after, expected):
    assert compute_next_run(cadence, after) == expected


def _schedule(clock, cadence="weekly", next_run_at=None):
    now = clock()
    return schemas.AgentSchedule(
        id="sched-1",
        agent_instance_id=INSTANCE_ID,
        cadence=cadence,
        next_run_at=next_run_at or now - timedelta(minutes=5),
        created_at=now,
        updated_at=now,
    )


def test_due_schedule_triggers_run_and_advances(seeded_store, clock, make_orchestrator):
    orchestrator = make_orchestrator(seeded_store)
    seeded_store.upsert_schedule(_schedule(clock))
    runner = ScheduleRunner(seeded_store, orchestrator, clock=clock)

    [result] = runner.run_due()

    assert result.error is None
    run = seeded_store.get_run(result.run_id)
    assert run.run_type == "scheduled"
    assert run.messages_sent == 3
    schedule = seeded_store.get_schedule(INSTANCE_ID)
    assert schedule.last_run_at == clock()
    assert schedule.next_run_at == clock() - timedelta(minutes=5) + timedelta(days=7)
    assert runner.run_due() == []


def test_missed_slots_are_skipped_forward(seeded_store, clock, make_orchestrator):
    orchestrator = make_orchestrator(seeded_store)
    seeded_store.upsert_schedule(
        _schedule(clock, cadence="daily", next_run_at=clock() - timedelta(days=3, hours=1))
    )
    runner = ScheduleRunner(seeded_store, orchestrator, clock=clock)

    runner.run_due()

    next_run = seeded_store.get_schedule(INSTANCE_ID).next_run_at
    assert clock() < next_run <= clock() + timedelta(days=1)


def test_once_schedule_is_deactivated(seeded_store, clock, make_orchestrator):
    orchestrator = make_orchestrator(seeded_store)
    seeded_store.upsert_schedule(_schedule(clock, cadence="once"))

    ScheduleRunner(seeded_store, orchestrator, clock=clock).run_due()

    schedule = seeded_store.get_schedule(INSTANCE_ID)
    assert schedule.is_active is False
    assert schedule.next_run_at is None


def test_inactive_instance_is_skipped(store, clock, make_orchestrator):
    seed_company(store, clock, status="paused")
    orchestrator = make_orchestrator(store)
    store.upsert_schedule(_schedule(clock))

    [result] = ScheduleRunner(store, orchestrator, clock=clock).run_due()

    assert result.skipped is True
    assert result.run_id is None
    assert store.get_schedule(INSTANCE_ID).last_run_at is None


def test_failed_run_still_advances(seeded_store, clock, make_orchestrator, monkeypatch):
    orchestrator = make_orchestrator(seeded_store)
    seeded_store.upsert_schedule(_schedule(clock))

    def boom(*args, **kwargs):
        raise RuntimeError("store timeout")

    monkeypatch.setattr(orchestrator, "trigger_agent_run", boom)

    [result] = ScheduleRunner(seeded_store, orchestrator, clock=clock).run_due()

    assert result.error == "store timeout"
    assert seeded_store.get_schedule(INSTANCE_ID).next_run_at > clock()
