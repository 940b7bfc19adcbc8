from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from ussd_gateway.api.routes import get_context
from ussd_gateway.main import app
from ussd_gateway.queue.jobs import cleanup_sessions_job
from ussd_gateway.settings import settings

HEADERS = {"x-api-key": "ops-secret"}


@pytest.fixture
def client(ctx, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "ops-secret")
    monkeypatch.setattr(settings, "SESSION_BACKEND", "redis")
    app.dependency_overrides[get_context] = lambda: ctx
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_reports_store_up(client):
    body = client.get("/api/health").json()
    assert body["status"] == "OK"
    assert body["sessionStore"] == "up"
    assert body["version"] == settings.APP_VERSION


def test_health_reports_degraded_store(client, ctx):
    ctx.store = MagicMock()
    ctx.store.ping = AsyncMock(return_value=False)
    body = client.get("/api/health").json()
    assert body["status"] == "DEGRADED"
    assert body["sessionStore"] == "down"


def test_cleanup_requires_api_key(client):
    assert client.post("/api/sessions/cleanup").status_code == 401
    assert client.post("/api/sessions/cleanup", headers={"x-api-key": "nope"}).status_code == 401


def test_empty_api_key_setting_rejects_everything(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "")
    assert client.post("/api/sessions/cleanup", headers={"x-api-key": ""}).status_code == 401


@patch("ussd_gateway.api.admin_routes.get_queue")
def test_cleanup_enqueues_job(mock_get_queue, client):
    mock_queue = MagicMock()
    mock_queue.enqueue.return_value = MagicMock(id="job-1")
    mock_get_queue.return_value = mock_queue

    res = client.post("/api/sessions/cleanup", headers=HEADERS)
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Session cleanup queued", "jobId": "job-1"}
    mock_queue.enqueue.assert_called_once_with(cleanup_sessions_job, settings.SESSION_PREFIX)


@patch("ussd_gateway.api.admin_routes.get_queue")
def test_cleanup_enqueue_failure_is_500(mock_get_queue, client):
    mock_get_queue.side_effect = ConnectionError("redis down")
    res = client.post("/api/sessions/cleanup", headers=HEADERS)
    assert res.status_code == 500


@patch("ussd_gateway.api.admin_routes.get_queue")
def test_cleanup_with_memory_backend_is_a_no_op(mock_get_queue, client, monkeypatch):
    monkeypatch.setattr(settings, "SESSION_BACKEND", "memory")
    res = client.post("/api/sessions/cleanup", headers=HEADERS)
    assert res.status_code == 200
    assert res.json()["jobId"] is None
    mock_get_queue.assert_not_called()


def test_stats_counts_requests(client):
    client.get("/api/ussd/256772123456/S1/217")
    client.get("/api/ussd/256772123456/S1/217/1234")

    assert client.get("/admin/stats").status_code == 401
    body = client.get("/admin/stats", headers=HEADERS).json()
    assert body["requests"] == 2
    assert body["sessions_created"] == 1
    assert body["backend_calls"]["success"] == 1
