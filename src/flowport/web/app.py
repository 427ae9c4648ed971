"""FastAPI application for the Flowport JSON API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import APIError, AuthError, FlowportError, TransientError

logger = logging.getLogger(__name__)

app = FastAPI(title="Flowport", version=__version__)


def error_status(error: FlowportError) -> int:
    """HTTP status returned to the browser for a Flowport error."""
    if isinstance(error, AuthError):
        return error.status_code or 401
    if isinstance(error, TransientError):
        return 503
    if isinstance(error, APIError):
        # Upstream failures surface as a bad gateway; the upstream status rides along.
        return 502
    return error.status_code or 500


@app.exception_handler(FlowportError)
async def flowport_error_handler(request: Request, exc: FlowportError):
    status = error_status(exc)
    body = exc.to_dict()
    if isinstance(exc, APIError) and exc.status_code:
        body["status"] = exc.status_code
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(body, status_code=status)


# Import and register routers
from .routers import auth, flows, guidance, health  # noqa: E402

app.include_router(auth.router)
app.include_router(flows.router)
app.include_router(guidance.router)
app.include_router(health.router)
