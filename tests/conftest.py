import asyncio
import json

import httpx
import pytest

from ussd_gateway.backend.client import ServiceGateway
from ussd_gateway.backend.crypto import decrypt_text, encrypt_text
from ussd_gateway.core.context import GatewayContext
from ussd_gateway.core.menus import build_graph
from ussd_gateway.core.validation import Validator
from ussd_gateway.observability.metrics import Metrics
from ussd_gateway.settings import settings
from ussd_gateway.store.session_repo import MemorySessionStore

MSISDN = "256772123456"

AUTH_OK = {
    "Status": "000",
    "Message": "Success",
    "CustomerDetails": [{"CustomerID": "C001", "FirstName": "Jane", "LastName": "Doe"}],
    "Accounts": [
        {
            "BankAccountID": "1001",
            "MaskedAccount": "10**01",
            "AliasName": "Savings",
            "CurrencyID": "UGX",
            "AccountType": "SA",
            "DefaultAccount": True,
        },
        {
            "BankAccountID": "1002",
            "MaskedAccount": "10**02",
            "AliasName": "Shares",
            "CurrencyID": "UGX",
            "AccountType": "SH",
            "DefaultAccount": False,
        },
    ],
}


class FakeBank:
    """
    Backend double speaking the {k, i, r} envelope over httpx.MockTransport.

    Replies are keyed by (FORMID, MERCHANTID) or FORMID; a value may be a dict,
    a callable(payload) -> dict, or an httpx exception instance to raise.
    """

    def __init__(self):
        self.calls = []
        self.replies = {"GETCUSTOMER": AUTH_OK}
        self.default = {"Status": "000", "Message": "Success"}
        self.delay = 0.0

    def forms(self, form_id: str):
        return [c for c in self.calls if c["FORMID"] == form_id]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        payload = json.loads(decrypt_text(body["r"], body["k"], body["i"]))
        self.calls.append(payload)
        if self.delay:
            await asyncio.sleep(self.delay)

        reply = self.replies.get((payload["FORMID"], payload.get("MERCHANTID")))
        if reply is None:
            reply = self.replies.get(payload["FORMID"], self.default)
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(payload)
        return httpx.Response(200, text=encrypt_text(json.dumps(reply), body["k"], body["i"]))


def make_gateway(bank: FakeBank, metrics: Metrics = None) -> ServiceGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(bank))
    return ServiceGateway(client=client, endpoint_for=lambda t: f"https://bank.test/{t}", timeout=5, metrics=metrics)


def make_ctx(bank: FakeBank, store=None) -> GatewayContext:
    validator = Validator()
    metrics = Metrics(redis=None)
    return GatewayContext(
        settings=settings,
        graph=build_graph(validator),
        validator=validator,
        store=store or MemorySessionStore(ttl_sec=1800, max_pin_attempts=3, lock_wait_ms=500),
        gateway=make_gateway(bank, metrics),
        metrics=metrics,
    )


@pytest.fixture
def bank():
    return FakeBank()


@pytest.fixture
def ctx(bank):
    return make_ctx(bank)


@pytest.fixture
def ctx_factory():
    return make_ctx


@pytest.fixture
def gateway_factory():
    return make_gateway


@pytest.fixture
def auth_ok():
    return json.loads(json.dumps(AUTH_OK))
