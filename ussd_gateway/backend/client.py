import time
from typing import Callable, Optional

import httpx

from ussd_gateway.backend.crypto import open_reply, seal, transaction_id
from ussd_gateway.backend.operations import PIN_BEARING, SERVICE_TYPE, Operation, is_retryable
from ussd_gateway.backend.payloads import CallIdentity, build_payload
from ussd_gateway.backend.responses import Outcome, OutcomeKind, classify, transport_failure
from ussd_gateway.core.errors import ConfigurationError, EnvelopeError
from ussd_gateway.observability.logging import log
from ussd_gateway.observability.metrics import Metrics, null_metrics
from ussd_gateway.settings import settings


class ServiceGateway:
    """
    Stateless client for the core-banking API.

    One call = one freshly built payload under a fresh key/iv. Read-only
    operations get one retry on a transport failure; authentication and
    money movement never do.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        endpoint_for: Optional[Callable[[str], str]] = None,
        timeout: float = None,
        metrics: Optional[Metrics] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.BACKEND_TIMEOUT_SEC
        self.client = client or httpx.AsyncClient(timeout=self.timeout)
        self.endpoint_for = endpoint_for or settings.endpoint_for
        self.metrics = metrics or null_metrics()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def call(self, op: Operation, ident: CallIdentity, params: dict, unique_id: str = None) -> Outcome:
        if op is Operation.UNKNOWN or op not in SERVICE_TYPE:
            raise ConfigurationError(f"Unsupported backend operation: {op}")

        service_type = SERVICE_TYPE[op]
        url = self.endpoint_for(service_type)
        if not url:
            log(event="backend_call_failed", operation=op.value, serviceType=service_type, error="no endpoint configured")
            await self.metrics.backend_call("transport_failure", 0)
            return transport_failure()

        attempts = 2 if is_retryable(op) else 1
        outcome = transport_failure()
        for attempt in range(1, attempts + 1):
            uid = unique_id if (unique_id and attempt == 1) else transaction_id()
            outcome = await self._once(op, ident, params, url, uid, attempt)
            if outcome.kind is not OutcomeKind.TRANSPORT_FAILURE:
                break
        return outcome

    async def _once(self, op: Operation, ident: CallIdentity, params: dict, url: str, uid: str, attempt: int) -> Outcome:
        payload = build_payload(op, ident, params)
        payload["UNIQUEID"] = uid
        env = seal(payload)

        t0 = time.monotonic()
        try:
            resp = await self.client.post(
                url,
                json=env.as_body(),
                timeout=self.timeout,
                headers={"User-Agent": f"{settings.APP_NAME}/{settings.APP_VERSION}"},
            )
            resp.raise_for_status()
            reply = open_reply(resp.text, env.k, env.i)
        except (httpx.HTTPError, EnvelopeError) as e:
            ms = int((time.monotonic() - t0) * 1000)
            log(
                event="backend_call_failed",
                operation=op.value,
                uniqueId=uid,
                attempt=attempt,
                ms=ms,
                errorType=type(e).__name__,
                error=str(e),
            )
            await self.metrics.backend_call("transport_failure", ms)
            return transport_failure()

        ms = int((time.monotonic() - t0) * 1000)
        outcome = classify(
            reply,
            pin_bearing=op in PIN_BEARING,
            authenticating=op is Operation.AUTHENTICATE,
        )
        log(
            event="backend_call",
            operation=op.value,
            uniqueId=uid,
            attempt=attempt,
            status=outcome.status,
            kind=outcome.kind.value,
            ms=ms,
            msisdn=ident.msisdn,
        )
        await self.metrics.backend_call(outcome.kind.value, ms)
        return outcome
