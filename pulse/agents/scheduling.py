"""Cadence arithmetic and the due-schedule sweep."""

from __future__ import annotations

import calendar
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..store.base import Store
from . import schemas
from .orchestrator import AgentOrchestrator

logger = logging.getLogger(__name__)

_FIXED_INTERVALS: dict[str, timedelta] = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "biweekly": timedelta(days=14),
}


def _add_month(value: datetime) -> datetime:
    year = value.year + (1 if value.month == 12 else 0)
    month = 1 if value.month == 12 else value.month + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def compute_next_run(cadence: schemas.Cadence, after: datetime) -> Optional[datetime]:
    """Next occurrence of ``cadence`` after ``after``; ``None`` for one-off schedules.

    ``custom`` cadences carry a cron expression that is not evaluated here, so
    they are treated like ``once``.
    """

    if cadence in _FIXED_INTERVALS:
        return after + _FIXED_INTERVALS[cadence]
    if cadence == "monthly":
        return _add_month(after)
    return None


@dataclass(frozen=True)
class ScheduledRunResult:
    schedule_id: str
    agent_instance_id: str
    run_id: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False


class ScheduleRunner:
    """Trigger ``scheduled`` runs for every due schedule."""

    def __init__(
        self,
        store: Store,
        orchestrator: AgentOrchestrator,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def run_due(self, now: datetime | None = None) -> list[ScheduledRunResult]:
        now = now or self._clock()
        results: list[ScheduledRunResult] = []
        for schedule in self.store.list_due_schedules(now):
            instance = self.store.get_instance(schedule.agent_instance_id)
            if instance is None or instance.status != "active":
                logger.debug(
                    "Skipping schedule for inactive instance",
                    extra={"schedule_id": schedule.id},
                )
                results.append(
                    ScheduledRunResult(
                        schedule_id=schedule.id,
                        agent_instance_id=schedule.agent_instance_id,
                        skipped=True,
                    )
                )
                continue

            run_id: Optional[str] = None
            error: Optional[str] = None
            try:
                outcome = self.orchestrator.trigger_agent_run(instance.id, "scheduled")
                run_id = outcome.run_id
            except Exception as exc:
                logger.exception(
                    "Scheduled run failed", extra={"schedule_id": schedule.id}
                )
                error = str(exc) or type(exc).__name__

            self.store.mark_schedule_run(
                schedule.id,
                last_run_at=now,
                next_run_at=self._advance(schedule, now),
            )
            results.append(
                ScheduledRunResult(
                    schedule_id=schedule.id,
                    agent_instance_id=schedule.agent_instance_id,
                    run_id=run_id,
                    error=error,
                )
            )
        return results

    @staticmethod
    def _advance(schedule: schemas.AgentSchedule, now: datetime) -> Optional[datetime]:
        """Step forward from the missed slot until the next one lies in the future."""

        candidate = schedule.next_run_at or now
        while candidate is not None and candidate <= now:
            candidate = compute_next_run(schedule.cadence, candidate)
        return candidate


__all__ = ["ScheduleRunner", "ScheduledRunResult", "compute_next_run"]
