import asyncio
import importlib
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from conftest import COMPANY_ID, INSTANCE_ID, seed_company
from pulse.agents import schemas
from pulse.agents.insights import InsightFeedService
from pulse.agents.scheduling import ScheduleRunner
from pulse.config import reset_settings_cache
from pulse.dependencies import get_insight_service, get_orchestrator, get_schedule_runner


@pytest.fixture
def main_module(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    reset_settings_cache()
    module = importlib.import_module("pulse.main")
    yield module
    module.app.dependency_overrides.clear()
    module.limiter.reset()
    reset_settings_cache()


@pytest.fixture
def client(main_module, seeded_store, clock, make_orchestrator):
    orchestrator = make_orchestrator(seeded_store)
    app = main_module.app
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_insight_service] = lambda: InsightFeedService(seeded_store, clock=clock)
    app.dependency_overrides[get_schedule_runner] = lambda: ScheduleRunner(seeded_store, orchestrator, clock=clock)
    return TestClient(app)


def test_health_and_version(client, main_module):
    assert client.get("/api/health").json() == {"status": "ok"}
    version = client.get("/api/version").json()
    assert version["version"] == main_module.__version__
    assert set(version) == {"version", "build_date", "commit_sha"}


def test_trigger_run(client, seeded_store):
    resp = client.post(f"/api/agents/instances/{INSTANCE_ID}/trigger", json={})

    assert resp.status_code == 200
    body = resp.json()
    assert body["messages_sent"] == 3
    assert body["conversations_touched"] == 3
    assert seeded_store.get_run(body["run_id"]).status == "completed"


def test_trigger_run_for_selected_employees(client):
    resp = client.post(
        f"/api/agents/instances/{INSTANCE_ID}/trigger",
        json={"target_employees": ["u-cara"]},
    )

    assert resp.json()["messages_sent"] == 1


def test_trigger_errors_map_to_status_codes(client, seeded_store):
    assert client.post("/api/agents/instances/missing/trigger").status_code == 404

    seeded_store.update_instance_status(INSTANCE_ID, "paused")
    resp = client.post(f"/api/agents/instances/{INSTANCE_ID}/trigger")

    assert resp.status_code == 400
    assert "paused" in resp.json()["detail"]


def test_run_due_schedules(client, seeded_store, clock):
    now = clock()
    seeded_store.upsert_schedule(
        schemas.AgentSchedule(
            id="sched-weekly",
            agent_instance_id=INSTANCE_ID,
            cadence="weekly",
            next_run_at=now - timedelta(minutes=1),
            created_at=now,
            updated_at=now,
        )
    )

    resp = client.post("/api/agents/schedules/run-due")

    assert resp.status_code == 200
    [result] = resp.json()["results"]
    assert result["schedule_id"] == "sched-weekly"
    assert result["skipped"] is False
    assert seeded_store.get_run(result["run_id"]).run_type == "scheduled"
    assert client.post("/api/agents/schedules/run-due").json() == {"results": []}


def test_schedule_sweep_runs_until_cancelled(main_module):
    class CountingRunner:
        def __init__(self):
            self.calls = 0

        def run_due(self):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("store unavailable")
            return []

    runner = CountingRunner()

    async def sweep_briefly():
        task = asyncio.create_task(main_module._sweep_schedules(runner, 0.01))
        while runner.calls < 3:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(asyncio.wait_for(sweep_briefly(), timeout=5))

    assert runner.calls >= 3


def test_reply_round_trip(client, seeded_store):
    client.post(f"/api/agents/instances/{INSTANCE_ID}/trigger", json={"target_employees": ["u-ana"]})
    conversation = seeded_store.find_conversation(INSTANCE_ID, "u-ana")

    resp = client.post(
        f"/api/conversations/{conversation.id}/reply",
        json={"content": "Pretty good week overall", "sender_id": "u-ana"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["escalated"] is False
    assert body["response"]["sender_type"] == "agent"
    assert body["response"]["conversation_id"] == conversation.id


def test_reply_escalation(client, seeded_store):
    client.post(f"/api/agents/instances/{INSTANCE_ID}/trigger", json={"target_employees": ["u-ana"]})
    conversation = seeded_store.find_conversation(INSTANCE_ID, "u-ana")

    resp = client.post(
        f"/api/conversations/{conversation.id}/reply",
        json={"content": "My lead keeps harassing me", "sender_id": "u-ana"},
    )

    assert resp.json()["escalated"] is True
    assert resp.json()["response"]["content_type"] == "escalation"


def test_reply_validation_and_missing_conversation(client):
    assert client.post(
        "/api/conversations/missing/reply", json={"content": "", "sender_id": "u-ana"}
    ).status_code == 422
    assert client.post(
        "/api/conversations/missing/reply", json={"content": "hello", "sender_id": "u-ana"}
    ).status_code == 404


def test_reply_is_rate_limited(client, seeded_store, monkeypatch):
    monkeypatch.setenv("REPLY_RATE_LIMIT", "2/minute")
    reset_settings_cache()
    headers = {"X-Forwarded-For": "203.0.113.7"}

    codes = [
        client.post(
            "/api/conversations/missing/reply",
            json={"content": "hello", "sender_id": "u-ana"},
            headers=headers,
        ).status_code
        for _ in range(3)
    ]

    assert codes == [404, 404, 429]


def test_insights_requires_company(client):
    assert client.get("/api/insights").status_code == 400


def test_insights_feed(client):
    by_header = client.get("/api/insights", headers={"X-Company-Id": COMPANY_ID})
    by_query = client.get("/api/insights", params={"company_id": COMPANY_ID, "days": 14})

    assert by_header.status_code == 200
    assert by_header.json()["days"] == 7
    assert by_query.json()["days"] == 14
    assert by_query.json()["stats"]["summaries_count"] == 0


def test_lifespan_builds_sandbox_services(main_module):
    with TestClient(main_module.app) as client:
        services = main_module.app.state.services
        seed_company(services.store)

        resp = client.post(f"/api/agents/instances/{INSTANCE_ID}/trigger")

        assert resp.status_code == 200
        assert resp.json()["messages_sent"] == 3
        assert services.orchestrator.text_generator is None

    assert main_module.app.state.services is None


def test_missing_services_returns_503(main_module):
    resp = TestClient(main_module.app).post(f"/api/agents/instances/{INSTANCE_ID}/trigger")

    assert resp.status_code == 503
