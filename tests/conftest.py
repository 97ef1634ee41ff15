import pathlib
import random
import sys
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI, Request

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from pulse.agents import schemas
from pulse.agents.generation import GenerationResult, GenerationUnavailableError
from pulse.agents.orchestrator import AgentOrchestrator
from pulse.agents.summary_worker import SummaryRefreshWorker
from pulse.app_logging import init_logging
from pulse.models.session import get_sessionmaker
from pulse.store import InMemoryStore, SqlAlchemyStore

COMPANY_ID = "company-1"
TEMPLATE_ID = "tmpl-pulse"
INSTANCE_ID = "inst-weekly"
START = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

MEMBERS = (
    ("u-ana", "Ana Lopez", "engineering", "team-core", "role-eng", "active"),
    ("u-ben", "Ben Okafor", "engineering", "team-core", "role-eng", "active"),
    ("u-cara", "Cara Diaz", "sales", "team-field", "role-ae", "active"),
    ("u-dan", "Dan Moss", "sales", "team-field", "role-ae", "inactive"),
)


class FakeClock:
    """Manually advanced UTC clock shared by the store and the engine."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class StaticGenerator:
    """Text generator returning fixed strings and recording its requests."""

    def __init__(self, opening="Hi from the model!", reply="Tell me more about that.", configured=True):
        self.opening = opening
        self.reply = reply
        self.configured = configured
        self.requests = []

    def is_configured(self) -> bool:
        return self.configured

    def generate_initial_message(self, request):
        self.requests.append(request)
        return self.opening

    def generate_agent_response(self, request):
        self.requests.append(request)
        return GenerationResult(content=self.reply)


class FailingGenerator(StaticGenerator):
    def generate_initial_message(self, request):
        raise GenerationUnavailableError("provider down")

    def generate_agent_response(self, request):
        raise GenerationUnavailableError("provider down")


def seed_company(store, clock=None, *, status="active", config=None, members=MEMBERS):
    """Insert a template, one instance and the roster into ``store``."""

    now = (clock or FakeClock())()
    template = store.add_template(
        schemas.AgentTemplate(
            id=TEMPLATE_ID,
            name="Weekly Pulse",
            slug="weekly-pulse",
            agent_type="pulse_check",
            created_at=now,
            updated_at=now,
        )
    )
    instance = store.add_instance(
        schemas.AgentInstance(
            id=INSTANCE_ID,
            company_id=COMPANY_ID,
            agent_id=TEMPLATE_ID,
            name="Engineering pulse",
            config=config or schemas.AgentInstanceConfig(),
            status=status,
            created_at=now,
            updated_at=now,
        )
    )
    for user_id, name, department, team, role, member_status in members:
        store.add_member(
            schemas.RosterMember(
                user_id=user_id,
                company_id=COMPANY_ID,
                full_name=name,
                email=f"{user_id}@example.com",
                department=department,
                team_id=team,
                role=role,
                status=member_status,
            )
        )
    return template, instance


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


@pytest.fixture
def seeded_store(store, clock):
    seed_company(store, clock)
    return store


@pytest.fixture
def sql_store(tmp_path, clock):
    factory = get_sessionmaker(f"sqlite+pysqlite:///{tmp_path / 'pulse.db'}", create_tables=True)
    yield SqlAlchemyStore(factory, clock=clock)
    factory.kw["bind"].dispose()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_orchestrator(clock):
    created = []

    def _make(store, **kwargs):
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("rng", random.Random(1234))
        kwargs.setdefault(
            "summary_worker",
            SummaryRefreshWorker(1, backoff_seconds=0, sleep=lambda _s: None),
        )
        orchestrator = AgentOrchestrator(store, **kwargs)
        created.append(orchestrator)
        return orchestrator

    yield _make
    for orchestrator in created:
        orchestrator.close()


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app
