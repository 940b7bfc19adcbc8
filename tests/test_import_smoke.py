import importlib

import pytest

MODULES = [
    "ussd_gateway.settings",
    "ussd_gateway.main",
    "ussd_gateway.api.routes",
    "ussd_gateway.api.admin_routes",
    "ussd_gateway.core.engine",
    "ussd_gateway.core.menus",
    "ussd_gateway.backend.client",
    "ussd_gateway.store.session_repo",
    "ussd_gateway.queue.jobs",
    "ussd_gateway.queue.rq_conn",
]


@pytest.mark.parametrize("name", MODULES)
def test_module_imports(name):
    assert importlib.import_module(name) is not None


def test_app_routes_registered():
    from ussd_gateway.main import app

    paths = {r.path for r in app.routes}
    assert "/api/ussd/{msisdn}/{session_id}/{shortcode}" in paths
    assert "/api/ussd/{msisdn}/{session_id}/{shortcode}/{response}" in paths
    assert "/api/health" in paths
    assert "/api/sessions/cleanup" in paths
    assert "/admin/stats" in paths


def test_memory_context_builds(monkeypatch):
    from ussd_gateway.core.context import build_context
    from ussd_gateway.settings import settings
    from ussd_gateway.store.session_repo import MemorySessionStore

    monkeypatch.setattr(settings, "SESSION_BACKEND", "memory")
    ctx = build_context(settings)
    assert isinstance(ctx.store, MemorySessionStore)
    assert ctx.graph.entry == "welcome"
