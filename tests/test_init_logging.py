import json
import logging
from logging.handlers import TimedRotatingFileHandler

from fastapi import FastAPI

from pulse.app_logging import JsonFormatter, init_logging


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


def test_init_logging_adds_handlers(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    app_logger = _clear_handlers("pulse")
    access_logger = _clear_handlers("uvicorn.access")

    app = FastAPI()
    init_logging(app)

    assert any(isinstance(h, TimedRotatingFileHandler) for h in app_logger.handlers)
    assert any(isinstance(h, TimedRotatingFileHandler) for h in access_logger.handlers)
    assert (tmp_path / "app.log").exists()

    app_logger.handlers.clear()
    access_logger.handlers.clear()


def test_init_logging_replaces_existing_access_handlers(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    access_logger = _clear_handlers("uvicorn.access")

    stream_handler = logging.StreamHandler()
    access_logger.addHandler(stream_handler)

    init_logging()

    assert stream_handler not in access_logger.handlers
    assert any(isinstance(h, TimedRotatingFileHandler) for h in access_logger.handlers)
    access_logger.handlers.clear()


def test_json_formatter_includes_extra_fields():
    record = logging.makeLogRecord(
        {
            "name": "pulse.agents.orchestrator",
            "levelname": "INFO",
            "msg": "Agent run completed",
            "run_id": "run-1",
            "messages_sent": 2,
        }
    )

    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "Agent run completed"
    assert data["logger"] == "pulse.agents.orchestrator"
    assert data["run_id"] == "run-1"
    assert data["messages_sent"] == 2
