"""Auth routes - password login, manual token hand-off, refresh, logout and helpdesk credentials."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from ...auth.broker import Success, TransientFailure
from ...auth.session import FlowSession, HelpdeskCredentials
from ...errors import FlowportError
from ..context import WebContext, get_context, get_session
from ..schemas import CredentialsRequest, LoginRequest, ManualTokenRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def _start_session(ctx: WebContext, request: Request, response: Response, session: FlowSession) -> None:
    ctx.registry.discard(ctx.session_id(request))
    response.set_cookie(
        ctx.config.web_cookie_name,
        ctx.registry.create(session),
        httponly=True,
        samesite="lax",
        secure=ctx.config.web_cookie_secure,
    )


@router.post("/auth/flows-login")
async def flows_login(body: LoginRequest, request: Request, ctx: WebContext = Depends(get_context)):
    if not body.subdomain or not body.email or not body.password:
        raise FlowportError("Subdomain, email, and password are required", 400)

    async with ctx.broker(body.subdomain.strip()) as broker:
        outcome = await broker.login(body.email, body.password, two_factor_code=body.two_factor_code)

    if isinstance(outcome, Success):
        response = JSONResponse(outcome.to_dict())
        _start_session(ctx, request, response, outcome.session)
        return response

    status = 503 if isinstance(outcome, TransientFailure) else 401
    payload = outcome.to_dict()
    payload["error"] = outcome.message
    return JSONResponse(payload, status_code=status)


@router.post("/auth/manual-token")
async def manual_token(body: ManualTokenRequest, request: Request, ctx: WebContext = Depends(get_context)):
    if not body.subdomain or not body.token:
        raise FlowportError("Subdomain and token are required", 400)

    session = ctx.broker(body.subdomain.strip()).accept_manual_token(body.token, body.session_cookie)
    response = JSONResponse(
        {
            "success": True,
            "message": "Successfully authenticated with manual token",
            "subdomain": session.subdomain,
            "accountId": session.account_id,
            "userId": session.user_id,
        }
    )
    _start_session(ctx, request, response, session)
    return response


@router.post("/auth/refresh-jwt")
async def refresh_jwt(
    session: FlowSession = Depends(get_session),
    ctx: WebContext = Depends(get_context),
):
    async with ctx.broker(session.subdomain) as broker:
        await broker.refresh(session)
    return {"success": True, "message": "JWT refreshed successfully"}


@router.post("/auth/logout")
async def logout(request: Request, ctx: WebContext = Depends(get_context)):
    ctx.registry.discard(ctx.session_id(request))
    response = JSONResponse({"success": True})
    response.delete_cookie(ctx.config.web_cookie_name)
    return response


@router.get("/credentials")
async def credentials_status(session: FlowSession = Depends(get_session)):
    return {
        "hasCredentials": session.helpdesk is not None,
        "username": session.helpdesk.username if session.helpdesk else None,
    }


@router.post("/credentials")
async def save_credentials(body: CredentialsRequest, session: FlowSession = Depends(get_session)):
    if not body.username or not body.api_key:
        raise FlowportError("Username and API key are required", 400)
    session.helpdesk = HelpdeskCredentials(username=body.username, api_key=body.api_key)
    logger.info("Stored helpdesk credentials for %s", session.subdomain)
    return {"success": True, "message": "Credentials saved to session"}
