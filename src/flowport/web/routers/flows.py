"""Flow routes - list, export, import and account-to-account migration."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ... import migration
from ...auth.session import FlowSession
from ...errors import FlowportError, InvalidTokenError
from ...flows.export import FlowExport
from ..context import WebContext, get_context, get_session
from ..schemas import FlowIdsRequest, ImportRequest, MigrateRequest

router = APIRouter(prefix="/api", tags=["flows"])


def require_flow_ids(flow_ids: list[str]) -> list[str]:
    if not flow_ids:
        raise FlowportError("No flows selected", 400)
    return flow_ids


def _shop(body, ctx: WebContext) -> migration.ShopTarget | None:
    if not body.target_shop_name:
        return None
    return migration.ShopTarget(
        body.target_shop_name,
        body.target_integration_type or ctx.config.default_integration_type,
    )


def _require_target_token(body) -> str:
    if not body.target_token.strip():
        raise InvalidTokenError("Target account Long JWT is required")
    return body.target_token


@router.get("/flows")
async def list_flows(
    session: FlowSession = Depends(get_session),
    ctx: WebContext = Depends(get_context),
):
    async with ctx.broker(session.subdomain) as broker:
        async with ctx.flows_client(session, broker) as client:
            flows = await client.configurations.list(include_drafts=True)
    return {"flows": flows, "subdomain": session.subdomain}


@router.post("/export-flows")
async def export_flows(
    body: FlowIdsRequest,
    session: FlowSession = Depends(get_session),
    ctx: WebContext = Depends(get_context),
):
    flow_ids = require_flow_ids(body.flow_ids)
    async with ctx.broker(session.subdomain) as broker:
        async with ctx.flows_client(session, broker) as client:
            bundle = await migration.export_flows(client, flow_ids)
    return bundle.to_dict()


@router.post("/import-flows")
async def import_flows(body: ImportRequest, ctx: WebContext = Depends(get_context)):
    token = _require_target_token(body)
    bundle = FlowExport.parse(body.export_document())
    async with ctx.target_client(token, body.target_subdomain) as target:
        result = await migration.import_flows(bundle, target, shop=_shop(body, ctx))
    return result.to_dict()


@router.post("/migrate-to-account")
async def migrate_to_account(
    body: MigrateRequest,
    session: FlowSession = Depends(get_session),
    ctx: WebContext = Depends(get_context),
):
    flow_ids = require_flow_ids(body.flow_ids)
    token = _require_target_token(body)
    async with ctx.broker(session.subdomain) as broker:
        async with ctx.flows_client(session, broker) as source:
            async with ctx.target_client(token, body.target_subdomain) as target:
                result = await migration.migrate_to_account(source, flow_ids, target, shop=_shop(body, ctx))
    return result.to_dict()
