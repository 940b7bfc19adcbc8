"""
Dialog engine: one keystroke in, one CON/END reply out.

Per request, under the per-key lock:
load-or-create session -> resolve node -> navigation -> validate ->
side effects -> run any Service nodes -> persist -> render.
"""
import hashlib
import hmac
import traceback
from dataclasses import dataclass
from typing import Optional, Tuple

from ussd_gateway.backend.crypto import transaction_id, wrap_pin
from ussd_gateway.backend.operations import Operation, is_money_moving
from ussd_gateway.backend.payloads import CallIdentity
from ussd_gateway.backend.responses import GENERIC_FAILURE, Outcome, OutcomeKind
from ussd_gateway.core.context import GatewayContext
from ussd_gateway.core.errors import ConfigurationError, InvalidChoice, LockedOut, SessionBusy
from ussd_gateway.core.menu_graph import InputNode, MenuNode, ServiceNode, SideEffect, StaticNode
from ussd_gateway.core.validation import Invalid
from ussd_gateway.observability.logging import log
from ussd_gateway.store.models import Session, SessionKey
from ussd_gateway.utils.time import elapsed_ms, now_ms

GENERIC_ERROR = "An error occurred. Please try again later."
SESSION_EXPIRED = "Session expired. Please start again."
PROCESSING = "Your request is being processed. Please wait."
LOCKED_OUT = "Maximum PIN attempts reached. Please contact EBO SACCO."
GOODBYE = "Thank you for using EBO SACCO."
PIN_EXPIRED_NOTE = "Your PIN has expired. Please change it under Settings."
INVALID_INPUT = "Invalid input"
MISMATCH = "Entries do not match. Please try again."

MAX_SERVICE_CHAIN = 8
SENSITIVE_FIELDS = ("pin", "oldPin", "newPin", "confirmPin")


@dataclass(frozen=True)
class UssdRequest:
    msisdn: str
    session_id: str
    shortcode: str
    text: str = ""


@dataclass(frozen=True)
class UssdReply:
    text: str
    end: bool = False

    def render(self) -> str:
        return ("END " if self.end else "CON ") + self.text


class DialogEngine:
    def __init__(self, ctx: GatewayContext):
        self.ctx = ctx
        self.graph = ctx.graph
        self.validator = ctx.validator
        self.store = ctx.store
        self.gateway = ctx.gateway
        self.metrics = ctx.metrics
        self.duplicate_window_ms = int(ctx.settings.DUPLICATE_WINDOW_SEC) * 1000

    async def handle(self, req: UssdRequest) -> UssdReply:
        key = SessionKey(req.msisdn, req.session_id, req.shortcode)
        raw = (req.text or "").strip()
        await self.metrics.request()
        log(event="ussd_request", msisdn=req.msisdn, sessionId=req.session_id, shortcode=req.shortcode, input=raw)

        try:
            async with self.store.lock(key):
                try:
                    reply = await self._handle_locked(key, raw)
                except LockedOut as e:
                    reply = await self._locked_out(key, e)
        except SessionBusy:
            log(event="duplicate_suppressed", msisdn=req.msisdn, sessionId=req.session_id, reason="busy")
            await self.metrics.duplicate_suppressed()
            reply = UssdReply(PROCESSING, end=True)
        except Exception as e:
            log(
                event="ussd_request_failed",
                msisdn=req.msisdn,
                sessionId=req.session_id,
                shortcode=req.shortcode,
                errorType=type(e).__name__,
                error=str(e),
                trace=traceback.format_exc(),
            )
            await self.metrics.error()
            await self._safe_destroy(key)
            reply = UssdReply(GENERIC_ERROR, end=True)

        log(event="ussd_reply", msisdn=req.msisdn, sessionId=req.session_id, end=reply.end, text=reply.text)
        return reply

    # ------------------------------------------------------------------

    async def _handle_locked(self, key: SessionKey, raw: str) -> UssdReply:
        now = now_ms()
        session = await self.store.load(key)

        if session is None:
            session = Session.new(key, self.graph.entry, now)
            await self.store.create(key, session)
            await self.metrics.session_created()
            log(event="session_created", msisdn=key.msisdn, sessionId=key.sessionId, shortcode=key.shortcode)
            # Input on a brand-new session is discarded: never authenticate implicitly.
            return UssdReply(self._text(session, self.graph.resolve(self.graph.entry)))

        session.lastActivityMs = now

        replay = self._replay(session, raw, now)
        if replay is not None:
            log(event="duplicate_suppressed", msisdn=key.msisdn, sessionId=key.sessionId, reason="replay")
            await self.metrics.duplicate_suppressed()
            return replay
        session.lastReply = None

        node = self.graph.resolve(session.currentNode)

        if not session.authenticated:
            if node.id != self.graph.entry:
                await self._destroy(key, "unauthenticated")
                return UssdReply(SESSION_EXPIRED, end=True)
            if raw == self.graph.exit_sentinel:
                await self._destroy(key, "exit")
                return UssdReply(GOODBYE, end=True)
            if not raw:
                return UssdReply(self._text(session, node))
            return await self._authenticate(key, session, node, raw)

        rec = session.serviceCall
        if isinstance(node, ServiceNode) and rec and rec.get("node") == node.id and rec.get("status") == "in_flight":
            log(event="duplicate_suppressed", msisdn=key.msisdn, sessionId=key.sessionId, reason="in_flight")
            await self.metrics.duplicate_suppressed()
            return UssdReply(PROCESSING, end=True)

        if isinstance(node, ServiceNode):
            # Persisted mid-chain (e.g. a completed call whose reply was lost): resume the branch.
            return await self._advance(key, session, node.id, raw)

        if not raw:
            prefix = INVALID_INPUT if isinstance(node, InputNode) else ""
            return UssdReply(self._text(session, node, prefix))

        nav = self.graph.navigate(node, raw)
        if nav is not None:
            if nav.exit:
                await self._destroy(key, "exit")
                return UssdReply(GOODBYE, end=True)
            session.serviceCall = None
            return await self._advance(key, session, nav.target, raw)

        if isinstance(node, StaticNode):
            if node.terminal:
                await self._destroy(key, "terminal")
                return UssdReply(self._text(session, node), end=True)
            return await self._advance(key, session, self.graph.transition(node).next, raw)

        if isinstance(node, MenuNode):
            try:
                t = self.graph.transition(node, raw, self._values(session))
            except InvalidChoice:
                return UssdReply(self._text(session, node, "Invalid selection. Please try again."))
            if t.store:
                session.fields[t.store[0]] = t.store[1]
            if t.side_effect is SideEffect.END_SESSION:
                await self._destroy(key, "menu_exit")
                return UssdReply((t.choice.value if t.choice else None) or GOODBYE, end=True)
            if t.side_effect is SideEffect.SET_LANGUAGE and t.choice and t.choice.value:
                session.language = t.choice.value
            if t.side_effect is SideEffect.USE_OWN_NUMBER and t.choice and t.choice.field:
                session.fields[t.choice.field] = key.msisdn
            return await self._advance(key, session, t.next, raw)

        if isinstance(node, InputNode):
            verdict = self.validator.validate(raw, node.validation)
            if isinstance(verdict, Invalid):
                return UssdReply(self._text(session, node, verdict.message))
            value = wrap_pin(verdict.value) if node.sensitive else verdict.value
            if node.confirm_of and session.fields.get(node.confirm_of) != value:
                return UssdReply(self._text(session, node, MISMATCH))
            t = self.graph.transition(node, value)
            session.fields[t.store[0]] = t.store[1]
            return await self._advance(key, session, t.next, raw)

        raise ConfigurationError(f"Unsupported node type at {node.id}")

    # ------------------------------------------------------------------

    async def _authenticate(self, key: SessionKey, session: Session, node, raw: str) -> UssdReply:
        verdict = self.validator.validate(raw, node.validation)
        if isinstance(verdict, Invalid):
            return UssdReply(self._text(session, node, verdict.message))

        ident = CallIdentity(key.msisdn, key.sessionId, key.shortcode, "")
        outcome = await self.gateway.call(Operation.AUTHENTICATE, ident, {"pin": wrap_pin(verdict.value)})

        if outcome.kind is OutcomeKind.TRANSPORT_FAILURE:
            await self._destroy(key, "auth_transport_failure")
            return UssdReply(GENERIC_FAILURE, end=True)

        if outcome.ok:
            session.authenticated = True
            session.customerId = outcome.data.get("customerId") or ""
            session.customerName = outcome.data.get("customerName") or ""
            session.accounts = outcome.data.get("accounts") or []
            session.pinExpired = outcome.pin_change_required
            session.pinAttempts = 0
            await self.store.reset_pin_attempts(key)
            session.currentNode = self.graph.home
            await self.store.save(key, session)
            log(event="session_authenticated", msisdn=key.msisdn, sessionId=key.sessionId, pinExpired=session.pinExpired)
            prefix = PIN_EXPIRED_NOTE if session.pinExpired else ""
            return UssdReply(self._text(session, self.graph.resolve(self.graph.home), prefix))

        await self._count_failed_pin(key, session, outcome)
        await self.store.save(key, session)
        return UssdReply(self._text(session, node, outcome.message))

    async def _count_failed_pin(self, key: SessionKey, session: Session, outcome: Outcome) -> None:
        if outcome.trials_remaining == 0:
            await self.store.destroy(key)
            raise LockedOut(session.pinAttempts + 1)
        n = await self.store.increment_pin_attempts(key)
        session.pinAttempts = n
        log(
            event="pin_attempt_failed",
            msisdn=key.msisdn,
            sessionId=key.sessionId,
            attempts=n,
            trialsRemaining=outcome.trials_remaining,
        )

    async def _locked_out(self, key: SessionKey, e: LockedOut) -> UssdReply:
        await self.store.destroy(key)
        await self.metrics.lockout()
        log(event="session_locked_out", msisdn=key.msisdn, sessionId=key.sessionId, attempts=e.attempts)
        return UssdReply(LOCKED_OUT, end=True)

    # ------------------------------------------------------------------

    async def _advance(self, key: SessionKey, session: Session, next_id: Optional[str], raw: str) -> UssdReply:
        if next_id is None:
            await self._destroy(key, "terminal")
            return UssdReply(GOODBYE, end=True)

        node = self.graph.resolve(next_id)
        prefix = ""
        ran_money = False
        hops = 0
        while isinstance(node, ServiceNode):
            hops += 1
            if hops > MAX_SERVICE_CHAIN:
                raise ConfigurationError(f"Service chain longer than {MAX_SERVICE_CHAIN} at {node.id}")
            session.currentNode = node.id
            outcome, money = await self._run_service(key, session, node)
            ran_money = ran_money or money

            if outcome.kind is OutcomeKind.TRANSPORT_FAILURE:
                await self._destroy(key, "transport_failure")
                return UssdReply(GENERIC_FAILURE, end=True)
            if outcome.wrong_pin:
                await self._count_failed_pin(key, session, outcome)

            if outcome.ok:
                for data_key, field_name in node.store_results.items():
                    if data_key in outcome.data:
                        session.fields[field_name] = outcome.data[data_key]
                prefix = ""
            else:
                prefix = outcome.message

            session.serviceCall = None
            node = self.graph.resolve(self.graph.transition(node, ok=outcome.ok).next)

        session.currentNode = node.id
        text = self._text(session, node, prefix)
        end = isinstance(node, StaticNode) and node.terminal

        if end:
            await self._destroy(key, "terminal")
        else:
            if ran_money:
                session.lastReply = {
                    "inputDigest": self._digest(raw),
                    "node": node.id,
                    "atMs": now_ms(),
                    "text": text,
                    "end": end,
                }
            await self.store.save(key, session)
        return UssdReply(text, end=end)

    async def _run_service(self, key: SessionKey, session: Session, node: ServiceNode) -> Tuple[Outcome, bool]:
        rec = session.serviceCall
        if rec and rec.get("node") == node.id and rec.get("status") == "completed":
            return Outcome.from_dict(rec.get("outcome") or {}), False

        op = node.operation
        money = is_money_moving(op)
        ident = CallIdentity(key.msisdn, key.sessionId, key.shortcode, session.customerId)
        uid = transaction_id()

        if money:
            session.serviceCall = {"node": node.id, "status": "in_flight", "uniqueId": uid}
            await self.store.save(key, session)

        outcome = await self.gateway.call(op, ident, self._params(session, node), unique_id=uid)

        if money:
            for name in SENSITIVE_FIELDS:
                session.fields.pop(name, None)
            session.serviceCall = {
                "node": node.id,
                "status": "completed",
                "uniqueId": uid,
                "outcome": outcome.to_dict(),
            }
            if outcome.kind is not OutcomeKind.TRANSPORT_FAILURE:
                await self.store.save(key, session)
        return outcome, money

    # ------------------------------------------------------------------

    def _values(self, session: Session) -> dict:
        values = dict(session.fields)
        values.update({
            "msisdn": session.msisdn,
            "customerId": session.customerId,
            "customerName": session.customerName,
            "accounts": session.accounts,
        })
        return values

    def _params(self, session: Session, node: ServiceNode) -> dict:
        values = self._values(session)
        params = dict(node.constants)
        for name, source in node.params.items():
            if values.get(source) is not None:
                params[name] = values[source]
        return params

    def _text(self, session: Session, node, prefix: str = "") -> str:
        text = self.graph.render(node, self._values(session), session.language)
        return f"{prefix}\n{text}" if prefix else text

    def _digest(self, raw: str) -> str:
        secret = str(self.ctx.settings.PIN_CIPHER_KEY).encode("utf-8")
        return hmac.new(secret, raw.encode("utf-8"), hashlib.sha256).hexdigest()

    def _replay(self, session: Session, raw: str, now: int) -> Optional[UssdReply]:
        last = session.lastReply
        if not last or last.get("node") != session.currentNode:
            return None
        if not hmac.compare_digest(last.get("inputDigest") or "", self._digest(raw)):
            return None
        if elapsed_ms(last.get("atMs") or 0, now) > self.duplicate_window_ms:
            return None
        # A keystroke the landing node would act on is a new request, not a retransmission.
        if self._accepts(session, self.graph.resolve(session.currentNode), raw):
            return None
        return UssdReply(last.get("text") or "", end=bool(last.get("end")))

    def _accepts(self, session: Session, node, raw: str) -> bool:
        if not raw:
            return False
        if self.graph.navigate(node, raw) is not None:
            return True
        if isinstance(node, StaticNode):
            return True
        if isinstance(node, MenuNode):
            try:
                self.graph.transition(node, raw, self._values(session))
            except InvalidChoice:
                return False
            return True
        if isinstance(node, InputNode):
            return not isinstance(self.validator.validate(raw, node.validation), Invalid)
        return False

    async def _destroy(self, key: SessionKey, reason: str) -> None:
        await self.store.destroy(key)
        log(event="session_destroyed", msisdn=key.msisdn, sessionId=key.sessionId, reason=reason)

    async def _safe_destroy(self, key: SessionKey) -> None:
        try:
            await self.store.destroy(key)
        except Exception as e:
            log(event="session_destroy_failed", msisdn=key.msisdn, sessionId=key.sessionId, error=str(e))
