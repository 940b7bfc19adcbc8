import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

STATUS_OK = "000"
STATUS_PIN_CHANGE = "101"
STATUS_WRONG_PIN = "091"

GENERIC_FAILURE = "Service temporarily unavailable. Please try again later."

_TRIALS_RE = re.compile(r"remaining\s+with\s+(\d+)\s+trials?", re.IGNORECASE)
_BALANCE_IDS = ("BALTEXT", "BALANCE")
STATEMENT_ROWS = 5


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    BUSINESS_FAILURE = "business_failure"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass
class Outcome:
    kind: OutcomeKind
    status: str = ""
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    pin_change_required: bool = False
    wrong_pin: bool = False
    trials_remaining: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "status": self.status,
            "message": self.message,
            "data": self.data,
            "pinChangeRequired": self.pin_change_required,
            "wrongPin": self.wrong_pin,
            "trialsRemaining": self.trials_remaining,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Outcome":
        return cls(
            kind=OutcomeKind(d.get("kind") or OutcomeKind.TRANSPORT_FAILURE.value),
            status=d.get("status") or "",
            message=d.get("message") or "",
            data=d.get("data") or {},
            pin_change_required=bool(d.get("pinChangeRequired")),
            wrong_pin=bool(d.get("wrongPin")),
            trials_remaining=d.get("trialsRemaining"),
        )


def transport_failure(message: str = GENERIC_FAILURE) -> Outcome:
    return Outcome(kind=OutcomeKind.TRANSPORT_FAILURE, message=message)


def parse_trials(message: str) -> Optional[int]:
    """Best effort; None means the backend wording did not match."""
    m = _TRIALS_RE.search(message or "")
    if not m:
        return None
    try:
        return int(m.group(1))
    except ValueError:
        return None


# --- data shaping -----------------------------------------------------------

def _accounts(raw) -> List[dict]:
    out = []
    for acc in raw or []:
        if not isinstance(acc, dict):
            continue
        out.append({
            "id": str(acc.get("BankAccountID") or ""),
            "label": acc.get("MaskedAccount") or acc.get("AliasName") or str(acc.get("BankAccountID") or ""),
            "alias": acc.get("AliasName") or "",
            "currency": acc.get("CurrencyID") or "",
            "type": acc.get("AccountType") or "",
            "default": bool(acc.get("DefaultAccount")),
        })
    return out


def _customer(raw) -> dict:
    if not isinstance(raw, list) or not raw or not isinstance(raw[0], dict):
        return {}
    c = raw[0]
    name = " ".join(x for x in (c.get("FirstName"), c.get("LastName")) if x)
    return {"customerId": str(c.get("CustomerID") or ""), "customerName": name}


def _balance(rows) -> Optional[str]:
    for row in rows or []:
        if isinstance(row, dict) and str(row.get("ControlID", "")).upper() in _BALANCE_IDS:
            return str(row.get("ControlValue") or "")
    return None


def _statement(rows) -> str:
    lines = []
    for row in (rows or [])[:STATEMENT_ROWS]:
        if isinstance(row, dict):
            text = row.get("ControlValue") or " ".join(str(v) for v in row.values() if v not in (None, ""))
        else:
            text = str(row)
        if text:
            lines.append(str(text))
    return "\n".join(lines)


def _options(rows) -> List[dict]:
    out = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        oid = row.get("ID") or row.get("Id") or row.get("ControlID") or row.get("Value")
        label = row.get("Description") or row.get("Name") or row.get("ControlValue") or oid
        if oid is None:
            continue
        out.append({"id": str(oid), "label": str(label)})
    return out


def classify(reply: Any, pin_bearing: bool = False, authenticating: bool = False) -> Outcome:
    """Map a decrypted backend reply onto an Outcome."""
    if not isinstance(reply, dict):
        return transport_failure()

    status = str(reply.get("Status") or "").strip()
    message = str(reply.get("Message") or "").strip()
    results = reply.get("ResultsData")

    data: Dict[str, Any] = {}
    data.update(_customer(reply.get("CustomerDetails")))
    if isinstance(reply.get("Accounts"), list):
        data["accounts"] = _accounts(reply.get("Accounts"))
    if isinstance(results, list):
        data["results"] = results
        bal = _balance(results)
        if bal is not None:
            data["balance"] = bal
        data["statement"] = _statement(results)
        data["options"] = _options(results)

    if status == STATUS_OK:
        return Outcome(kind=OutcomeKind.SUCCESS, status=status, message=message, data=data)

    if status == STATUS_PIN_CHANGE and authenticating:
        return Outcome(
            kind=OutcomeKind.SUCCESS, status=status, message=message, data=data, pin_change_required=True
        )

    outcome = Outcome(kind=OutcomeKind.BUSINESS_FAILURE, status=status, message=message or GENERIC_FAILURE, data=data)
    if status == STATUS_WRONG_PIN and pin_bearing:
        outcome.wrong_pin = True
        outcome.trials_remaining = parse_trials(message)
    return outcome
