"""Guidance routes - draft previews from flows, then publish the reviewed drafts."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ... import migration
from ...auth.session import FlowSession
from ...errors import FlowportError
from ...flows.guidance import Guidance, GuidanceWriter
from ..context import WebContext, get_context, get_session
from ..schemas import FlowIdsRequest, PushRequest
from .flows import require_flow_ids

router = APIRouter(prefix="/api/migrate", tags=["guidance"])


@router.post("/preview")
async def preview(
    body: FlowIdsRequest,
    session: FlowSession = Depends(get_session),
    ctx: WebContext = Depends(get_context),
):
    flow_ids = require_flow_ids(body.flow_ids)
    writer = GuidanceWriter(ctx.text_generator())
    async with ctx.broker(session.subdomain) as broker:
        async with ctx.flows_client(session, broker) as client:
            guidances = await migration.preview_guidances(client, flow_ids, writer)
    return {"success": True, "previews": [g.to_dict() for g in guidances]}


@router.post("/push")
async def push(
    body: PushRequest,
    session: FlowSession = Depends(get_session),
    ctx: WebContext = Depends(get_context),
):
    if not body.guidances:
        raise FlowportError("No guidances provided", 400)
    if session.helpdesk is None:
        raise FlowportError(
            "Gorgias API credentials not found. Please add your credentials first.", 400
        )

    guidances = [
        Guidance(flow_id=item.flow_id, name=item.flow_name, content=item.content)
        for item in body.guidances
    ]
    async with ctx.broker(session.subdomain) as broker:
        async with ctx.flows_client(session, broker) as client:
            async with ctx.helpdesk(session) as helpdesk:
                result = await migration.publish_guidances(
                    guidances, client, helpdesk, help_center_factory=ctx.help_center
                )
    return result.to_dict()
