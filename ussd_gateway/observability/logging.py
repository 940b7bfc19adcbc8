import json
import time
from ussd_gateway.settings import settings

# Never written in clear when PII redaction is on
SENSITIVE_KEYS = {"pin", "oldPin", "newPin", "confirmPin", "input", "text", "message", "payload", "reply"}


def _redact_value(v):
    if isinstance(v, str) and len(v) > 0:
        return f"[REDACTED:{len(v)}chars]"
    if isinstance(v, dict):
        return {k: _redact_value(val) for k, val in v.items()}
    return v


def _redact(fields: dict) -> dict:
    clean = {}
    for k, v in fields.items():
        if k in SENSITIVE_KEYS:
            clean[k] = _redact_value(v)
        elif isinstance(v, dict):
            clean[k] = {sk: (_redact_value(sv) if sk in SENSITIVE_KEYS else sv) for sk, sv in v.items()}
        else:
            clean[k] = v
    return clean


def log(event: str, **fields):
    payload = {"ts": int(time.time()), "event": event}
    payload.update(_redact(fields) if settings.ENABLE_PII_REDACTION else fields)
    print(json.dumps(payload, ensure_ascii=False, default=str))
