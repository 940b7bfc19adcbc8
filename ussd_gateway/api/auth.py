import re

from fastapi import Header, HTTPException
from ussd_gateway.observability.logging import log
from ussd_gateway.settings import settings

MSISDN_RE = re.compile(r"^256\d{9,}$")


def require_api_key(x_api_key: str = Header(default="", alias="x-api-key")):
    """
    Ops endpoints only. Secure default: with no API_KEY configured, reject all.
    """
    if not settings.API_KEY or x_api_key != settings.API_KEY:
        log(event="api_key_rejected", supplied=bool(x_api_key))
        raise HTTPException(status_code=401, detail="Unauthorized")


def validate_ussd_params(msisdn: str, session_id: str, shortcode: str):
    """Returns an error message, or None when the callback is well-formed."""
    if not msisdn or not session_id or not shortcode:
        return "Missing required parameters: msisdn, sessionId, shortcode"
    if not MSISDN_RE.match(msisdn):
        return "Invalid MSISDN format. Must start with 256 followed by digits"
    if not session_id.strip():
        return "Session ID cannot be empty"
    return None
