"""Public counter routes — read the count, read the clock, place bricks."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import HTMLResponse, PlainTextResponse

from brick_counter.config import Settings
from brick_counter.services.brick_handler import BrickHandler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bricks"])

# Same body for every failure so callers cannot tell why they were refused.
FAILURE_BODY = (
    "<!DOCTYPE html>\n"
    "<html><head><title>Nope</title></head><body>\n"
    "<h1>That didn't work.</h1>\n"
    "<p>Bricks can only be placed through the official page. "
    "Please be nice and don't script this counter.</p>\n"
    "</body></html>\n"
)


def get_handler(request: Request) -> BrickHandler:
    """Return the handler built during app startup."""
    return request.app.state.handler


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def client_identifier(request: Request) -> str:
    """Identify the caller by socket peer.

    ``X-Forwarded-For`` is only honoured when ``trust_forwarded_for`` is set,
    i.e. when a reverse proxy in front of the app owns that header.
    """
    if request.app.state.settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def failure_response() -> Response:
    return HTMLResponse(content=FAILURE_BODY, status_code=400)


# ──────────────────────────────────────────────────────────────
# GET / and GET /bricks — current count
# ──────────────────────────────────────────────────────────────
@router.get("/", response_class=PlainTextResponse)
@router.get("/bricks", response_class=PlainTextResponse)
async def get_bricks(handler: BrickHandler = Depends(get_handler)) -> str:
    """Return the number of bricks placed so far."""
    return str(await handler.get_counter())


# ──────────────────────────────────────────────────────────────
# GET /time — server clock for client-side code derivation
# ──────────────────────────────────────────────────────────────
@router.get("/time", response_class=PlainTextResponse)
async def get_time(handler: BrickHandler = Depends(get_handler)) -> str:
    """Return the server time in epoch milliseconds."""
    return str(handler.get_server_time())


# ──────────────────────────────────────────────────────────────
# GET /place — add bricks with a one-time code
# ──────────────────────────────────────────────────────────────
@router.get("/place")
async def place_bricks(
    request: Request,
    code: str | None = Query(None, description="One-time code for the current window"),
    amount: str = Query("1", description="Bricks to place in this request"),
    handler: BrickHandler = Depends(get_handler),
    app_settings: Settings = Depends(get_settings),
) -> Response:
    """Place bricks if *code* is valid; every failure looks the same."""
    result = await handler.place_bricks(client_identifier(request), amount, code)
    if not result.ok:
        return failure_response()

    body = str(result.count)
    if app_settings.response_timestamp:
        body = f"{body} {handler.get_server_time()}"
    return PlainTextResponse(body)
