from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from ussd_gateway.api.auth import require_api_key
from ussd_gateway.api.routes import get_context
from ussd_gateway.api.schemas import CleanupResponse, HealthResponse, StatsResponse
from ussd_gateway.core.context import GatewayContext
from ussd_gateway.observability.logging import log
from ussd_gateway.queue.jobs import cleanup_sessions_job
from ussd_gateway.queue.rq_conn import get_queue

ops_router = APIRouter(prefix="/api", tags=["ops"])
router = APIRouter(prefix="/admin", tags=["admin"])


@ops_router.get("/health", response_model=HealthResponse)
async def health(ctx: GatewayContext = Depends(get_context)):
    up = await ctx.store.ping()
    return HealthResponse(
        status="OK" if up else "DEGRADED",
        version=ctx.settings.APP_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        sessionStore="up" if up else "down",
    )


def _enqueue_cleanup(prefix: str) -> str:
    job = get_queue().enqueue(cleanup_sessions_job, prefix)
    return job.id


@ops_router.post("/sessions/cleanup", response_model=CleanupResponse)
async def cleanup_sessions(_=Depends(require_api_key), ctx: GatewayContext = Depends(get_context)):
    """Queue removal of orphaned pin-attempt/lock keys. Sessions themselves expire by TTL."""
    if ctx.settings.SESSION_BACKEND == "memory":
        return CleanupResponse(message="In-memory sessions expire on access; nothing to clean")
    try:
        job_id = await run_in_threadpool(_enqueue_cleanup, ctx.settings.SESSION_PREFIX)
    except Exception as e:
        log(event="cleanup_enqueue_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Could not queue session cleanup")
    log(event="cleanup_job_enqueued", jobId=job_id)
    return CleanupResponse(jobId=job_id)


@router.get("/stats", response_model=StatsResponse)
async def stats(_=Depends(require_api_key), ctx: GatewayContext = Depends(get_context)):
    """Counters and backend latency percentiles."""
    return StatsResponse(**(await ctx.metrics.snapshot()))
