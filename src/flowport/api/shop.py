"""Shop entrypoint registry on the chat host.

A configuration only shows up in a store's widget once its id is listed in
the store's ``workflowsEntrypoints``.
"""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from .client import FlowsClient

logger = logging.getLogger(__name__)

REGISTRY_PATH = "/ssp/helpdesk/configurations"


class ShopAPI:
    """Store entrypoint registry operations."""

    def __init__(self, client: "FlowsClient"):
        self._client = client

    def _url(self) -> str:
        return f"{self._client.config.chat_api_url.rstrip('/')}{REGISTRY_PATH}"

    @staticmethod
    def _params(shop_name: str, integration_type: str) -> dict[str, str]:
        return {"shop_name": shop_name, "type": integration_type}

    async def get_registry(self, shop_name: str, integration_type: str = "shopify") -> dict[str, Any]:
        data = await self._client._get(self._url(), params=self._params(shop_name, integration_type))
        return data if isinstance(data, dict) else {}

    async def put_registry(
        self,
        shop_name: str,
        registry: dict[str, Any],
        integration_type: str = "shopify",
    ) -> dict[str, Any]:
        data = await self._client._put(
            self._url(), params=self._params(shop_name, integration_type), json=registry
        )
        return data if isinstance(data, dict) else {}

    async def register_flow(
        self,
        shop_name: str,
        flow_id: str,
        integration_type: str = "shopify",
    ) -> bool:
        """Add ``flow_id`` to the store's entrypoints.

        Returns True when the registry was updated, False when the flow was
        already listed.
        """
        registry = await self.get_registry(shop_name, integration_type)
        entrypoints = list(registry.get("workflowsEntrypoints") or [])
        if any(entry.get("workflow_id") == flow_id for entry in entrypoints if isinstance(entry, dict)):
            logger.debug("Flow %s already registered with %s", flow_id, shop_name)
            return False

        entrypoints.append({"workflow_id": flow_id})
        await self.put_registry(shop_name, {**registry, "workflowsEntrypoints": entrypoints}, integration_type)
        logger.info("Registered flow %s with shop %s", flow_id, shop_name)
        return True
