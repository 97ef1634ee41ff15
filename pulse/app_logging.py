"""Logging for the Pulse service.

Two loggers are configured by :func:`init_logging`:

- ``pulse``: every engine module logs below it through
  ``logging.getLogger(__name__)``; written to ``app.log``.
- ``uvicorn.access``: one JSON line per HTTP request, written to
  ``access.log`` by the middleware installed with :func:`_install_access_logging`.

Both files rotate at midnight. Sensitive header and body keys are masked and
any free text that does get logged passes through :meth:`PolicyGuard.redact`,
so account, card and social security numbers never reach disk.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request

from .agents.policy_guard import PolicyGuard
from .rate_limit import get_client_ip

APP_LOGGER_NAME = "pulse"
ACCESS_LOGGER_NAME = "uvicorn.access"
UNLOGGED_PATHS = frozenset({"/api/health", "/api/metrics"})

SENSITIVE_FIELDS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "password",
        "token",
        "access_token",
        "refresh_token",
        "x-api-key",
    }
)

# Attributes present on every LogRecord; anything else came in via ``extra``.
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


@dataclasses.dataclass(frozen=True)
class LoggingSettings:
    log_dir: str = "logs"
    level: int = logging.INFO
    json_lines: bool = False
    retention_days: int = 7
    rotate_utc: bool = False

    @classmethod
    def from_env(cls) -> "LoggingSettings":
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        return cls(
            log_dir=os.getenv("LOG_DIR", "logs"),
            level=getattr(logging, level_name, logging.INFO),
            json_lines=_env_flag("LOG_JSON"),
            retention_days=int(os.getenv("LOG_RETENTION_DAYS", "7")),
            rotate_utc=_env_flag("LOG_ROTATE_UTC"),
        )

    def formatter(self) -> logging.Formatter:
        if self.json_lines:
            return JsonFormatter()
        return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")

    def file_handler(self, filename: str) -> TimedRotatingFileHandler:
        handler = TimedRotatingFileHandler(
            os.path.join(self.log_dir, filename),
            when="midnight",
            backupCount=self.retention_days,
            utc=self.rotate_utc,
        )
        handler.setFormatter(self.formatter())
        return handler


class JsonFormatter(logging.Formatter):
    """One JSON object per record, including fields passed via ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _scrub(data: object) -> object:
    """Mask sensitive keys and redact personal numbers, recursively."""

    if isinstance(data, dict):
        return {
            key: "***" if str(key).lower() in SENSITIVE_FIELDS else _scrub(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [_scrub(item) for item in data]
    if isinstance(data, str):
        return PolicyGuard.redact(data)
    return data


async def _buffer_body(request: Request) -> object | None:
    """Read the body for logging and replay it to the route handler."""

    body = await request.body()

    async def receive() -> dict:  # pragma: no cover - internal
        return {"type": "http.request", "body": body, "more_body": False}

    request._receive = receive  # type: ignore[attr-defined]
    if not body:
        return None
    try:
        return _scrub(json.loads(body))
    except ValueError:
        return _scrub(body.decode("utf-8", errors="replace"))


def _install_access_logging(app: FastAPI) -> None:
    """Log every request outside :data:`UNLOGGED_PATHS` with a request id.

    The id comes from the caller's ``X-Request-Id`` header when present and
    is echoed back on the response.
    """

    with_bodies = _env_flag("LOG_REQUEST_BODIES")
    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path in UNLOGGED_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        body = await _buffer_body(request) if with_bodies else None

        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id

        entry: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "client_ip": get_client_ip(request),
            "headers": _scrub(dict(request.headers)),
        }
        if body is not None:
            entry["body"] = body
        access_logger.info(json.dumps(entry, default=str))
        return response


def init_logging(app: FastAPI | None = None) -> None:
    """Attach rotating file handlers to the ``pulse`` and access loggers.

    Handlers on the ``pulse`` logger are added once per process; the access
    logger's handlers are always replaced so uvicorn's defaults do not
    duplicate lines. Passing ``app`` also installs the access middleware.
    """

    settings = LoggingSettings.from_env()
    os.makedirs(settings.log_dir, exist_ok=True)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not app_logger.handlers:
        app_logger.addHandler(settings.file_handler("app.log"))
    app_logger.setLevel(settings.level)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.handlers.clear()
    access_logger.addHandler(settings.file_handler("access.log"))
    access_logger.setLevel(settings.level)

    if app is not None:
        cast(Any, app).logger = app_logger
        _install_access_logging(app)
