"""AI-agent store configuration API.

Used to look up the help center that holds an account's guidance articles.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from ..errors import APIError

if TYPE_CHECKING:
    from .client import FlowsClient


class AIAgentAPI:
    def __init__(self, client: "FlowsClient"):
        self._client = client

    def _url(self, subdomain: str) -> str:
        base = self._client.config.ai_agent_api_url.rstrip("/")
        return f"{base}/api/config/accounts/{subdomain}/stores/configurations"

    async def store_configurations(self, subdomain: str | None = None) -> list[dict[str, Any]]:
        data = await self._client._get(self._url(subdomain or self._client.session.subdomain))
        if not isinstance(data, dict):
            return []
        return data.get("storeConfigurations") or []

    async def resolve_help_center_id(self, subdomain: str | None = None) -> Any:
        """Guidance help center id of the account's first store."""
        stores = await self.store_configurations(subdomain)
        if not stores:
            raise APIError("No store configurations found for this account", 404)

        help_center_id = stores[0].get("guidanceHelpCenterId")
        if not help_center_id:
            raise APIError("guidanceHelpCenterId not found in store configuration", 404, stores[0])
        return help_center_id
