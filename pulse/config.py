"""Runtime configuration for the agent engine, read from the environment."""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclasses.dataclass(frozen=True)
class EngineSettings:
    """Tunables for the orchestrator, background worker and HTTP surface.

    ``database_url`` left unset selects the in-memory sandbox store.
    ``schedule_interval_seconds`` of 0 disables the background schedule sweep.
    """

    database_url: str | None = None
    stale_days: int = 7
    max_nudges: int = 2
    run_max_workers: int = 4
    summary_max_workers: int = 2
    summary_max_attempts: int = 3
    summary_backoff_seconds: float = 0.5
    default_channel: str = "inapp"
    openai_model: str = "gpt-4o-mini"
    reply_rate_limit: str = "30/minute"
    schedule_interval_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            stale_days=_int_env("PULSE_STALE_DAYS", 7),
            max_nudges=_int_env("PULSE_MAX_NUDGES", 2),
            run_max_workers=_int_env("PULSE_RUN_MAX_WORKERS", 4),
            summary_max_workers=_int_env("PULSE_SUMMARY_MAX_WORKERS", 2),
            summary_max_attempts=_int_env("PULSE_SUMMARY_MAX_ATTEMPTS", 3),
            summary_backoff_seconds=_float_env("PULSE_SUMMARY_BACKOFF_SECONDS", 0.5),
            default_channel=os.getenv("PULSE_DEFAULT_CHANNEL", "inapp"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            reply_rate_limit=os.getenv("REPLY_RATE_LIMIT", "30/minute"),
            schedule_interval_seconds=_float_env("PULSE_SCHEDULE_INTERVAL_SECONDS", 60.0),
        )


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Load settings once per process."""

    return EngineSettings.from_env()


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()
