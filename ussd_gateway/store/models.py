from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class SessionKey:
    msisdn: str
    sessionId: str
    shortcode: str

    def redis_key(self, prefix: str) -> str:
        return f"{prefix}:{self.msisdn}:{self.sessionId}:{self.shortcode}"


@dataclass
class Session:
    # Identity (copied from the key so a loaded record is self-describing)
    msisdn: str = ""
    sessionId: str = ""
    shortcode: str = ""

    # Dialog position
    currentNode: str = ""

    # Collected input, normalized. PIN-typed values are stored wrapped.
    fields: Dict[str, Any] = field(default_factory=dict)

    # Set only after a confirmed authentication
    authenticated: bool = False
    customerId: str = ""
    customerName: str = ""
    accounts: List[dict] = field(default_factory=list)
    pinExpired: bool = False

    # Mirror of the store's atomic counter, for display/logging only
    pinAttempts: int = 0

    language: str = "en"

    createdAtMs: int = 0
    lastActivityMs: int = 0

    # Money-moving call bookkeeping for the current Service node:
    # {"node", "status": "in_flight"|"completed", "uniqueId", "outcome"}
    serviceCall: Optional[Dict[str, Any]] = None

    # Reply produced by the last request that ran a money-moving call:
    # {"inputDigest", "node", "atMs", "text", "end"}; inputDigest is a keyed HMAC of the keystroke
    lastReply: Optional[Dict[str, Any]] = None

    @classmethod
    def new(cls, key: SessionKey, entry_node: str, now_ms: int) -> "Session":
        return cls(
            msisdn=key.msisdn,
            sessionId=key.sessionId,
            shortcode=key.shortcode,
            currentNode=entry_node,
            createdAtMs=now_ms,
            lastActivityMs=now_ms,
        )
