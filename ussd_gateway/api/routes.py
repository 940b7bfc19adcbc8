from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ussd_gateway.api.auth import validate_ussd_params
from ussd_gateway.api.normalize import normalize_ussd_input
from ussd_gateway.api.schemas import ErrorResponse, UssdCallback
from ussd_gateway.core.context import GatewayContext
from ussd_gateway.core.engine import DialogEngine, UssdRequest
from ussd_gateway.observability.logging import log

router = APIRouter(prefix="/api", tags=["ussd"])


def get_context(request: Request) -> GatewayContext:
    return request.app.state.ctx


async def _handle_ussd(ctx: GatewayContext, msisdn: str, session_id: str, shortcode: str, response: Optional[str]):
    err = validate_ussd_params(msisdn, session_id, shortcode)
    if err:
        log(event="ussd_request_rejected", msisdn=msisdn, sessionId=session_id, error=err)
        return JSONResponse(status_code=400, content=ErrorResponse(error=err).model_dump())

    cb = UssdCallback(
        msisdn=msisdn,
        sessionId=session_id,
        shortcode=shortcode,
        text=normalize_ussd_input(response, ctx.settings.USSD_INPUT_MODE),
    )
    reply = await DialogEngine(ctx).handle(UssdRequest(cb.msisdn, cb.sessionId, cb.shortcode, cb.text))
    return PlainTextResponse(reply.render())


# Carrier callback shape is fixed: one GET per keystroke, input as the optional last segment.
@router.get("/ussd/{msisdn}/{session_id}/{shortcode}", response_class=PlainTextResponse)
async def ussd_first(msisdn: str, session_id: str, shortcode: str, ctx: GatewayContext = Depends(get_context)):
    return await _handle_ussd(ctx, msisdn, session_id, shortcode, None)


@router.get("/ussd/{msisdn}/{session_id}/{shortcode}/{response}", response_class=PlainTextResponse)
async def ussd_keystroke(
    msisdn: str,
    session_id: str,
    shortcode: str,
    response: str,
    ctx: GatewayContext = Depends(get_context),
):
    return await _handle_ussd(ctx, msisdn, session_id, shortcode, response)
