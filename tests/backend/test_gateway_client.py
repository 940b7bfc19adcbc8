import httpx
import pytest

from ussd_gateway.backend.client import ServiceGateway
from ussd_gateway.backend.crypto import wrap_pin
from ussd_gateway.backend.operations import Operation
from ussd_gateway.backend.payloads import CallIdentity
from ussd_gateway.backend.responses import OutcomeKind
from ussd_gateway.core.errors import ConfigurationError
from ussd_gateway.observability.metrics import Metrics

IDENT = CallIdentity("256772123456", "S1", "*217#", "C001")
WITHDRAW = {
    "sourceAccount": "1001",
    "walletNumber": "256772123456",
    "network": "mtn",
    "amount": "5000",
    "pin": wrap_pin("1234"),
}


@pytest.mark.asyncio
async def test_success_round_trip(bank, gateway_factory):
    gw = gateway_factory(bank)
    out = await gw.call(Operation.WITHDRAW, IDENT, WITHDRAW, unique_id="ABCD1234")
    assert out.kind is OutcomeKind.SUCCESS
    assert bank.calls[0]["UNIQUEID"] == "ABCD1234"
    await gw.aclose()


@pytest.mark.asyncio
async def test_read_is_retried_once_with_fresh_id(bank, gateway_factory):
    bank.replies["PAYBILL"] = [httpx.ConnectTimeout("slow"), {"Status": "000", "Message": "OK"}]
    gw = gateway_factory(bank)
    out = await gw.call(Operation.GET_BALANCE, IDENT, {"sourceAccount": "1001"}, unique_id="FIRST001")
    assert out.ok
    assert len(bank.calls) == 2
    assert bank.calls[0]["UNIQUEID"] == "FIRST001"
    assert bank.calls[1]["UNIQUEID"] != "FIRST001"


@pytest.mark.asyncio
async def test_read_gives_up_after_two_attempts(bank, gateway_factory):
    bank.replies["PAYBILL"] = httpx.ConnectError("down")
    gw = gateway_factory(bank)
    out = await gw.call(Operation.GET_BALANCE, IDENT, {"sourceAccount": "1001"})
    assert out.kind is OutcomeKind.TRANSPORT_FAILURE
    assert len(bank.calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("op,params", [
    (Operation.WITHDRAW, WITHDRAW),
    (Operation.AUTHENTICATE, {"pin": wrap_pin("1234")}),
])
async def test_money_and_auth_are_never_retried(bank, gateway_factory, op, params):
    bank.default = httpx.ReadTimeout("slow")
    bank.replies.clear()
    gw = gateway_factory(bank)
    out = await gw.call(op, IDENT, params)
    assert out.kind is OutcomeKind.TRANSPORT_FAILURE
    assert len(bank.calls) == 1


@pytest.mark.asyncio
async def test_http_error_status_is_a_transport_failure(bank):
    async def handler(request):
        return httpx.Response(502, text="bad gateway")

    gw = ServiceGateway(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        endpoint_for=lambda t: "https://bank.test/" + t,
        timeout=5,
    )
    out = await gw.call(Operation.DEPOSIT, IDENT, {
        "destinationAccount": "1002", "walletNumber": "256772123456", "network": "mtn", "amount": "700",
    })
    assert out.kind is OutcomeKind.TRANSPORT_FAILURE


@pytest.mark.asyncio
async def test_undecryptable_reply_is_a_transport_failure():
    async def handler(request):
        return httpx.Response(200, text="plain text, not an envelope")

    gw = ServiceGateway(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        endpoint_for=lambda t: "https://bank.test/" + t,
        timeout=5,
    )
    out = await gw.call(Operation.WITHDRAW, IDENT, WITHDRAW)
    assert out.kind is OutcomeKind.TRANSPORT_FAILURE


@pytest.mark.asyncio
async def test_requests_go_to_service_type_endpoint(bank):
    seen = []

    async def handler(request):
        seen.append(str(request.url))
        return await bank(request)

    gw = ServiceGateway(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        endpoint_for=lambda t: "https://bank.test/" + t,
        timeout=5,
    )
    await gw.call(Operation.AUTHENTICATE, IDENT, {"pin": wrap_pin("1234")})
    await gw.call(Operation.AIRTIME, IDENT, {
        "sourceAccount": "1001", "recipientNumber": "256772123456", "network": "mtn", "amount": "500",
        "pin": wrap_pin("1234"),
    })
    assert seen == ["https://bank.test/authenticate", "https://bank.test/purchase"]


@pytest.mark.asyncio
async def test_missing_endpoint_is_a_transport_failure(bank):
    gw = ServiceGateway(
        client=httpx.AsyncClient(transport=httpx.MockTransport(bank)),
        endpoint_for=lambda t: "",
        timeout=5,
    )
    out = await gw.call(Operation.GET_BALANCE, IDENT, {"sourceAccount": "1001"})
    assert out.kind is OutcomeKind.TRANSPORT_FAILURE
    assert bank.calls == []


@pytest.mark.asyncio
async def test_unknown_operation_is_refused(bank, gateway_factory):
    gw = gateway_factory(bank)
    with pytest.raises(ConfigurationError):
        await gw.call(Operation.UNKNOWN, IDENT, {})


@pytest.mark.asyncio
async def test_backend_calls_are_counted(bank, gateway_factory):
    metrics = Metrics(redis=None)
    bank.replies["VALIDATE"] = {"Status": "017", "Message": "Unknown wallet"}
    gw = gateway_factory(bank, metrics)
    await gw.call(Operation.VALIDATE_WALLET, IDENT, {"walletNumber": "256772123456", "network": "mtn"})
    await gw.call(Operation.GET_BALANCE, IDENT, {"sourceAccount": "1001"})
    snap = await metrics.snapshot()
    assert snap["backend_calls"] == {"success": 1, "business_failure": 1, "transport_failure": 0}
