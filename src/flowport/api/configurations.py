"""Flow configurations API.

Endpoints:
  GET /configurations              - list (``is_draft[]`` selects drafts/published)
  GET /configurations/{id}         - fetch one
  PUT /configurations/{id}         - create or replace (creates when the id is new)
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from .client import FlowsClient


class ConfigurationsAPI:
    """Flow configuration operations."""

    def __init__(self, client: "FlowsClient"):
        self._client = client

    async def list(self, include_drafts: bool | None = True) -> list[dict[str, Any]]:
        """List configurations.

        Args:
            include_drafts: True for drafts and published, False for published
                only, None to send no filter at all.
        """
        params: list[tuple[str, str]] = []
        if include_drafts is not None:
            params.append(("is_draft[]", "0"))
            if include_drafts:
                params.append(("is_draft[]", "1"))

        data = await self._client._get("/configurations", params=params or None)
        if isinstance(data, dict):
            data = data.get("data") or []
        return data or []

    async def get(self, flow_id: str) -> dict[str, Any]:
        return await self._client._get(f"/configurations/{flow_id}") or {}

    async def put(self, flow_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        data = await self._client._put(f"/configurations/{flow_id}", json=payload)
        return data if isinstance(data, dict) else {}
