import json
import logging

from fastapi import FastAPI, Request
from starlette.testclient import TestClient

from pulse.app_logging import _install_access_logging


def _create_app() -> FastAPI:
    app = FastAPI()

    @app.post("/echo")
    async def echo(request: Request):
        return {"rid": request.state.request_id}

    @app.get("/api/health")
    async def health():  # pragma: no cover - simple
        return {"status": "ok"}

    _install_access_logging(app)
    return app


def test_access_logging_request_id_and_scrubbing(caplog, monkeypatch):
    monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
    app = _create_app()

    with (
        TestClient(app) as client,
        caplog.at_level(logging.INFO, logger="uvicorn.access"),
    ):
        resp = client.post(
            "/echo",
            json={"token": "secret", "content": "my SSN is 123-45-6789", "a": 1},
            headers={"X-Request-Id": "abc", "X-Api-Key": "k-123"},
        )

        assert resp.status_code == 200
        assert resp.headers["X-Request-Id"] == "abc"
        assert resp.json() == {"rid": "abc"}

        record = caplog.records[0]
        data = json.loads(record.getMessage())
        assert data["request_id"] == "abc"
        assert data["headers"]["x-api-key"] == "***"
        assert data["body"]["token"] == "***"
        assert data["body"]["content"] == "my SSN is [SSN REDACTED]"
        assert data["body"]["a"] == 1

        caplog.clear()
        client.get("/api/health")
        assert len(caplog.records) == 0


def test_access_logging_generates_request_id(caplog):
    app = _create_app()

    with (
        TestClient(app) as client,
        caplog.at_level(logging.INFO, logger="uvicorn.access"),
    ):
        resp = client.post("/echo", json={})

    generated = resp.headers["X-Request-Id"]
    assert resp.json() == {"rid": generated}
    data = json.loads(caplog.records[0].getMessage())
    assert data["request_id"] == generated
    assert "body" not in data
