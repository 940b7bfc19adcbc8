import pytest
from fastapi.testclient import TestClient

from ussd_gateway.api.normalize import normalize_ussd_input
from ussd_gateway.api.routes import get_context
from ussd_gateway.main import app
from ussd_gateway.settings import settings

BASE = "/api/ussd/256772123456/S1/217"


@pytest.fixture
def client(ctx):
    app.dependency_overrides[get_context] = lambda: ctx
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def test_first_hit_shows_pin_prompt(client):
    res = client.get(BASE)
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/plain")
    assert res.text == "CON Welcome to EBO SACCO. Please enter your PIN to continue"


def test_pin_keystroke_reaches_main_menu(client, bank):
    client.get(BASE)
    res = client.get(BASE + "/1234")
    assert res.text.startswith("CON 1. Withdraw\n2. Deposit")
    assert len(bank.forms("GETCUSTOMER")) == 1


def test_exit_keystroke_ends_session(client):
    client.get(BASE)
    client.get(BASE + "/1234")
    assert client.get(BASE + "/000").text == "END Thank you for using EBO SACCO."


def test_cumulative_mode_uses_last_segment(client, bank, monkeypatch):
    monkeypatch.setattr(settings, "USSD_INPUT_MODE", "cumulative")
    client.get(BASE)
    res = client.get(BASE + "/1*1234")
    assert res.text.startswith("CON 1. Withdraw")


@pytest.mark.parametrize("msisdn", ["0772123456", "25677", "abc"])
def test_bad_msisdn_is_rejected(client, msisdn):
    res = client.get(f"/api/ussd/{msisdn}/S1/217")
    assert res.status_code == 400
    assert "MSISDN" in res.json()["error"]


def test_unhandled_error_still_answers_end(ctx):
    def boom():
        raise RuntimeError("no context")

    app.dependency_overrides[get_context] = boom
    try:
        res = TestClient(app, raise_server_exceptions=False).get(BASE)
    finally:
        app.dependency_overrides.clear()
    assert res.status_code == 200
    assert res.text == "END An error occurred. Please try again later."


def test_root_and_liveness(client):
    assert client.get("/").json()["status"] == "ok"
    assert client.get("/health").json() == {"status": "ok"}


@pytest.mark.parametrize("raw,mode,expected", [
    (None, "keystroke", ""),
    (" 12 ", "keystroke", "12"),
    ("<script>1", "keystroke", "script1"),
    ("1\x00\x1f2", "keystroke", "12"),
    ("1*2*5000", "cumulative", "5000"),
    ("1*2*5000", "keystroke", "1*2*5000"),
    ("9" * 300, "keystroke", "9" * 182),
])
def test_normalize_ussd_input(raw, mode, expected):
    assert normalize_ussd_input(raw, mode) == expected
