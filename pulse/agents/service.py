"""Wiring of the engine components from :class:`~pulse.config.EngineSettings`."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..channels import get_channel_adapter
from ..config import EngineSettings
from ..models.session import get_sessionmaker
from ..store.base import Store
from ..store.memory import InMemoryStore
from ..store.sql import SqlAlchemyStore
from .generation import OpenAITextGenerator
from .insights import InsightFeedService
from .locks import KeyedLocks
from .memory_store import MemoryStore
from .orchestrator import AgentOrchestrator
from .scheduling import ScheduleRunner
from .summary_worker import SummaryRefreshWorker

logger = logging.getLogger(__name__)


@dataclass
class EngineServices:
    """Long-lived collaborators shared by the HTTP layer."""

    store: Store
    orchestrator: AgentOrchestrator
    insights: InsightFeedService
    scheduler: ScheduleRunner

    def close(self) -> None:
        self.orchestrator.close()


def create_store(settings: EngineSettings) -> Store:
    """SQL store when a database is configured, otherwise the sandbox store."""

    if settings.database_url:
        return SqlAlchemyStore(
            get_sessionmaker(settings.database_url, create_tables=True)
        )
    logger.warning("DATABASE_URL is not set; using the in-memory sandbox store")
    return InMemoryStore()


def create_services(settings: EngineSettings, store: Store | None = None) -> EngineServices:
    store = store or create_store(settings)
    locks = KeyedLocks()
    generator = OpenAITextGenerator(model=settings.openai_model)
    orchestrator = AgentOrchestrator(
        store,
        memory=MemoryStore(store, locks),
        channel=get_channel_adapter(store, settings.default_channel),
        text_generator=generator if generator.is_configured() else None,
        summary_worker=SummaryRefreshWorker(
            settings.summary_max_workers,
            max_attempts=settings.summary_max_attempts,
            backoff_seconds=settings.summary_backoff_seconds,
        ),
        locks=locks,
        stale_days=settings.stale_days,
        max_nudges=settings.max_nudges,
        max_workers=settings.run_max_workers,
    )
    return EngineServices(
        store=store,
        orchestrator=orchestrator,
        insights=InsightFeedService(store),
        scheduler=ScheduleRunner(store, orchestrator),
    )


__all__ = ["EngineServices", "create_services", "create_store"]
