from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import PlainTextResponse

from ussd_gateway.api.admin_routes import ops_router, router as admin_router
from ussd_gateway.api.routes import router
from ussd_gateway.core.context import build_context
from ussd_gateway.observability.logging import log
from ussd_gateway.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Graph defects surface here, before the first callback is accepted.
    app.state.ctx = build_context(settings)
    try:
        yield
    finally:
        await app.state.ctx.aclose()


app = FastAPI(title="EBO SACCO USSD Gateway", version=settings.APP_VERSION, lifespan=lifespan)

app.include_router(router)
app.include_router(ops_router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "USSD gateway is running. Carrier callbacks: GET /api/ussd/{msisdn}/{sessionId}/{shortcode}/{response}",
    }


@app.get("/health")
def health():
    return {"status": "ok"}


# The carrier only understands CON/END text; any escaped failure becomes a plain END.
@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    log(event="unhandled_exception", path=request.url.path, errorType=type(exc).__name__, error=str(exc))
    return PlainTextResponse("END An error occurred. Please try again later.", status_code=200)
