from typing import Dict, Literal, Optional
from pydantic import BaseModel, Field


class UssdCallback(BaseModel):
    msisdn: str
    sessionId: str
    shortcode: str
    text: str = ""


class HealthResponse(BaseModel):
    status: Literal["OK", "DEGRADED"] = "OK"
    service: str = "EBO SACCO USSD"
    version: str
    timestamp: str
    sessionStore: Literal["up", "down"] = "up"


class CleanupResponse(BaseModel):
    success: bool = True
    message: str = "Session cleanup queued"
    jobId: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str


class StatsResponse(BaseModel):
    requests: int = 0
    sessions_created: int = 0
    lockouts: int = 0
    duplicates_suppressed: int = 0
    errors: int = 0
    backend_calls: Dict[str, int] = Field(default_factory=dict)
    p50_backend_latency: float = 0.0
    p95_backend_latency: float = 0.0
