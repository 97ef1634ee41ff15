"""Threaded background runner for conversation summary refreshes."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)


@dataclass
class FailedJob:
    """A job that exhausted its attempts; kept until replayed."""

    job_id: UUID
    key: str
    fn: Callable[[], None]
    attempts: int
    error: str
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SummaryRefreshWorker:
    """Wrapper around :class:`ThreadPoolExecutor` with retries and a dead-letter list.

    Jobs are plain callables. Each one is attempted up to ``max_attempts``
    times with exponential backoff; every failure is logged. Submitting never
    raises into the caller and a failing job never affects other jobs.
    """

    def __init__(
        self,
        max_workers: int = 2,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="summary-refresh"
        )
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._lock = Lock()
        self._futures: dict[UUID, Future] = {}
        self._failed: list[FailedJob] = []

    Job = Callable[[], None]

    def submit(self, key: str, fn: Job) -> Future:
        """Schedule ``fn``; ``key`` identifies the job in logs (e.g. a conversation id)."""

        job_id = uuid4()
        future = self.executor.submit(self._run, job_id, key, fn)
        with self._lock:
            self._futures[job_id] = future
        future.add_done_callback(lambda _f, job_id=job_id: self._forget(job_id))
        return future

    def _forget(self, job_id: UUID) -> None:
        with self._lock:
            self._futures.pop(job_id, None)

    def _run(self, job_id: UUID, key: str, fn: Job) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                fn()
                return True
            except Exception as exc:  # noqa: BLE001 - job failures are contained here
                logger.warning(
                    "Summary refresh failed (attempt %s/%s)",
                    attempt,
                    self.max_attempts,
                    extra={"job_key": key},
                    exc_info=exc,
                )
                if attempt < self.max_attempts:
                    self._sleep(self.backoff_seconds * (2 ** (attempt - 1)))
                else:
                    logger.error(
                        "Summary refresh moved to dead-letter list", extra={"job_key": key}
                    )
                    with self._lock:
                        self._failed.append(
                            FailedJob(
                                job_id=job_id,
                                key=key,
                                fn=fn,
                                attempts=attempt,
                                error=f"{type(exc).__name__}: {exc}",
                            )
                        )
        return False

    def failed_jobs(self) -> list[FailedJob]:
        with self._lock:
            return list(self._failed)

    def retry_failed(self) -> list[Future]:
        """Resubmit every dead-lettered job and clear the list."""

        with self._lock:
            failed, self._failed = self._failed, []
        return [self.submit(job.key, job.fn) for job in failed]

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for outstanding jobs; return ``True`` when all of them finished."""

        with self._lock:
            futures = list(self._futures.values())
        if not futures:
            return True
        _done, not_done = wait_for(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
